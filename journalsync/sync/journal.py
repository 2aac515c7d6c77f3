from __future__ import annotations

import logging
from datetime import datetime

from journalsync.core import paths
from journalsync.core.config import GitHubConfig
from journalsync.providers.github.client import GitHubClient
from journalsync.providers.github.models import Document
from journalsync.sync.session import EditSession

logger = logging.getLogger(__name__)


class JournalService:
    """Daily journal intents: load today's file, append an entry, open for editing."""

    def __init__(self, settings: GitHubConfig, client: GitHubClient | None = None):
        self.settings = settings
        self.client = client or GitHubClient(settings)

    def path_for(self, at: datetime | None = None) -> str:
        return paths.resolve(self.settings.path_template, at)

    def load_today(self, at: datetime | None = None) -> Document:
        # Path and heading must come from the same instant.
        at = at or datetime.now()
        return self.client.get_document(self.path_for(at), default_content=paths.default_content(at))

    def open_session(self, at: datetime | None = None) -> EditSession:
        at = at or datetime.now()
        return EditSession.open(self.client, self.path_for(at), default_content=paths.default_content(at))

    def append(self, entry: str, at: datetime | None = None) -> Document:
        """Append `entry` on top of the freshest remote revision.

        A concurrent write between the read and the put surfaces as
        `ConflictError`; nothing is retried here.
        """

        text = (entry or "").strip("\n")
        if not text.strip():
            raise ValueError("entry must not be empty")

        current = self.load_today(at)
        updated = paths.format_entry(current.content, text)
        new_sha = self.client.put_document(current.path, updated, sha=current.sha)
        logger.info("journal_entry_appended path=%s lines=%s", current.path, len(text.splitlines()))
        return Document(path=current.path, content=updated, sha=new_sha, exists=True)
