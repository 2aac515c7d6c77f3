from __future__ import annotations

import hashlib
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "dir"


class Document(BaseModel):
    path: str
    content: str = ""
    # Blob sha of the revision read; opaque, only ever compared.
    sha: Optional[str] = None
    exists: bool = True


class RepositoryEntry(BaseModel):
    name: str
    path: str
    kind: EntryKind = EntryKind.FILE

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    def has_suffix(self, suffixes: list[str] | tuple[str, ...]) -> bool:
        return any(self.name.endswith(s) for s in suffixes)

    @classmethod
    def from_api(cls, item: dict) -> "RepositoryEntry":
        kind = EntryKind.DIRECTORY if item.get("type") == "dir" else EntryKind.FILE
        return cls(name=str(item["name"]), path=str(item["path"]), kind=kind)


class IndexEntry(BaseModel):
    name: str
    path: str
    content: str
    created_at: datetime = Field(default_factory=datetime.now)

    def identifier(self, domain: str) -> str:
        digest = hashlib.sha1(self.path.encode("utf-8")).hexdigest()
        return f"{domain}.file.{digest}"
