from journalsync.providers.github.client import GitHubClient
from journalsync.providers.github.models import Document, EntryKind, IndexEntry, RepositoryEntry

__all__ = ["GitHubClient", "Document", "EntryKind", "IndexEntry", "RepositoryEntry"]
