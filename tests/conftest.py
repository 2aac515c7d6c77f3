from __future__ import annotations

import hashlib
import threading

import pytest

from journalsync.core.config import GitHubConfig
from journalsync.core.errors import ConflictError, JournalSyncError, NotFoundError
from journalsync.providers.github.models import Document, EntryKind, RepositoryEntry


class FakeRepository:
    """In-memory, content-addressed stand-in for `GitHubClient`.

    Every write produces a new sha; a put whose sha differs from the current
    one is rejected with `ConflictError`, as the real store does.
    """

    def __init__(self, files: dict[str, str] | None = None):
        self.files: dict[str, tuple[str, str]] = {}
        self.lock = threading.Lock()
        self.revision = 0
        self.fetch_errors: dict[str, JournalSyncError] = {}
        self.list_errors: dict[str, JournalSyncError] = {}
        self.put_errors: dict[str, JournalSyncError] = {}
        self.calls: list[tuple[str, str]] = []
        for path, content in (files or {}).items():
            self._write(path, content)

    def _write(self, path: str, content: str) -> str:
        self.revision += 1
        sha = hashlib.sha1(f"{self.revision}:{path}:{content}".encode("utf-8")).hexdigest()
        self.files[path] = (content, sha)
        return sha

    def sha_of(self, path: str) -> str:
        return self.files[path][1]

    def remote_edit(self, path: str, content: str) -> str:
        """Simulate the other writer."""
        with self.lock:
            return self._write(path, content)

    def fetch_document(self, path: str) -> Document:
        with self.lock:
            self.calls.append(("get", path))
            if path in self.fetch_errors:
                raise self.fetch_errors[path]
            if path not in self.files:
                raise NotFoundError(f"get {path}: not found")
            content, sha = self.files[path]
        return Document(path=path, content=content, sha=sha, exists=True)

    def get_document(self, path: str, default_content: str = "") -> Document:
        try:
            return self.fetch_document(path)
        except NotFoundError:
            return Document(path=path, content=default_content, sha=None, exists=False)

    def put_document(self, path: str, content: str, sha: str | None = None, message: str | None = None) -> str:
        with self.lock:
            self.calls.append(("put", path))
            if path in self.put_errors:
                raise self.put_errors[path]
            current = self.files.get(path)
            current_sha = current[1] if current else None
            if sha != current_sha:
                raise ConflictError(f"put {path}: remote version changed")
            return self._write(path, content)

    def list_directory(self, path: str = "") -> list[RepositoryEntry]:
        with self.lock:
            self.calls.append(("list", path))
            if path in self.list_errors:
                raise self.list_errors[path]
            prefix = f"{path}/" if path else ""
            seen: dict[str, RepositoryEntry] = {}
            for file_path in sorted(self.files):
                if not file_path.startswith(prefix):
                    continue
                head, _, rest = file_path[len(prefix):].partition("/")
                child = f"{prefix}{head}"
                kind = EntryKind.DIRECTORY if rest else EntryKind.FILE
                seen.setdefault(child, RepositoryEntry(name=head, path=child, kind=kind))
        if path and not seen:
            raise NotFoundError(f"list {path}: not found")
        return list(seen.values())


@pytest.fixture
def settings() -> GitHubConfig:
    return GitHubConfig(token="tok-123", repository="alice/notes", path_template="log/YYYY/MM/DD.md")


@pytest.fixture
def repo() -> FakeRepository:
    return FakeRepository()
