from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from journalsync.core.errors import ConflictError, JournalSyncError
from journalsync.providers.github.client import GitHubClient
from journalsync.providers.github.models import Document

logger = logging.getLogger(__name__)


class SaveState(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SUCCEEDED = "succeeded"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass
class ConflictState:
    base_sha: Optional[str]
    local_content: str
    remote_content: Optional[str] = None
    remote_sha: Optional[str] = None


class EditSession:
    """One edit of one remote document, guarded by the sha it was read at.

    On a rejected save the remote revision is fetched at once and the caller
    picks exactly one of `accept_remote()` or `keep_mine()`. Keeping local
    content is a last-write-wins override: the retried save replaces the
    other writer's changes, nothing is merged.
    """

    def __init__(self, client: GitHubClient, path: str, content: str = "", sha: str | None = None):
        self.client = client
        self.path = path
        self.content = content
        self.base_sha = sha
        self.original_content = content
        self.state = SaveState.IDLE
        self.conflict: ConflictState | None = None
        self.last_error: JournalSyncError | None = None

    @classmethod
    def open(cls, client: GitHubClient, path: str, default_content: str = "") -> "EditSession":
        session = cls(client, path)
        session.load(default_content)
        return session

    @property
    def has_changes(self) -> bool:
        return self.content != self.original_content

    @property
    def conflict_pending(self) -> bool:
        return self.state is SaveState.CONFLICT and self.conflict is not None

    def _adopt(self, doc: Document) -> None:
        self.content = doc.content
        self.original_content = doc.content
        self.base_sha = doc.sha

    def load(self, default_content: str = "") -> Document:
        doc = self.client.get_document(self.path, default_content=default_content)
        self._adopt(doc)
        self.state = SaveState.IDLE
        self.conflict = None
        self.last_error = None
        return doc

    def save(self) -> str:
        """Put the local content with the session's base sha.

        Returns the new sha. Raises `ConflictError` after the remote revision
        has been captured in `self.conflict`, or any other error kind with the
        session left in FAILED.
        """

        self.state = SaveState.SAVING
        self.last_error = None
        conflict = ConflictState(base_sha=self.base_sha, local_content=self.content)
        self.conflict = conflict
        try:
            new_sha = self.client.put_document(self.path, self.content, sha=self.base_sha)
        except ConflictError as e:
            self.state = SaveState.CONFLICT
            self.last_error = e
            self._capture_remote(conflict)
            raise
        except JournalSyncError as e:
            self.state = SaveState.FAILED
            self.conflict = None
            self.last_error = e
            logger.warning("save_failed path=%s code=%s", self.path, e.code)
            raise

        self.base_sha = new_sha
        self.original_content = self.content
        self.conflict = None
        self.state = SaveState.SUCCEEDED
        return new_sha

    def _capture_remote(self, conflict: ConflictState) -> None:
        # The re-fetch strictly follows the rejected put.
        doc = self.client.fetch_document(self.path)
        conflict.remote_content = doc.content
        conflict.remote_sha = doc.sha
        logger.info(
            "conflict_detected path=%s local_base=%s remote_sha=%s",
            self.path,
            conflict.base_sha,
            doc.sha,
        )

    def accept_remote(self) -> bool:
        """Take the remote revision as the new base. No-op without a pending conflict."""
        if not self.conflict_pending or self.conflict.remote_content is None:
            return False
        self.content = self.conflict.remote_content
        self.original_content = self.content
        self.base_sha = self.conflict.remote_sha
        self._clear_conflict()
        return True

    def keep_mine(self) -> bool:
        """Keep local content and rebase onto the fetched sha; caller retries `save()`."""
        if not self.conflict_pending or self.conflict.remote_content is None:
            return False
        self.base_sha = self.conflict.remote_sha
        self._clear_conflict()
        return True

    def _clear_conflict(self) -> None:
        self.conflict = None
        self.last_error = None
        self.state = SaveState.IDLE
