"""
Content Store Base Class — Interface for the per-file remote store.

Every write is a commit with a human-readable message. Optimistic
concurrency is expressed through blob SHAs: updates and deletes must pass
the SHA that was read, creates pass none.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple

from ..errors import MalformedRecordError, NotFoundError


@dataclass
class StoredFile:
    """A file read from the store."""

    path: str
    sha: str
    content: bytes
    size: int = 0

    def text(self) -> str:
        return self.content.decode("utf-8")


@dataclass
class DirEntry:
    """One entry of a directory listing."""

    name: str
    path: str
    type: str  # "file" or "dir"
    size: int = 0
    sha: str = ""


class ContentStore(ABC):
    """
    Abstract per-file content store.

    Implementations raise NotFoundError, ConflictError, RemoteStoreError
    or StoreTimeoutError; they never return sentinel values for failures.
    """

    @abstractmethod
    def get(self, path: str) -> StoredFile:
        """Read a file and its current SHA. NotFoundError if absent."""

    @abstractmethod
    def put(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        """
        Create (sha=None) or update (sha given) a file.

        Returns the new blob SHA. ConflictError when the SHA is stale or
        when creating over an existing file.
        """

    @abstractmethod
    def delete(self, path: str, sha: str, message: str) -> None:
        """Delete a file. ConflictError on stale SHA, NotFoundError if absent."""

    @abstractmethod
    def list_dir(self, path: str) -> List[DirEntry]:
        """List one directory level. NotFoundError if the directory is absent."""

    # ── Conveniences shared by all stores ────────────────────────

    def get_json(self, path: str) -> Tuple[str, Any]:
        """Read and parse a JSON file. Returns (sha, data)."""
        stored = self.get(path)
        try:
            return stored.sha, json.loads(stored.text())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedRecordError(f"{path} is not valid JSON: {e}", path=path)

    def put_json(
        self,
        path: str,
        data: Any,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        body = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
        return self.put(path, body, message, sha)

    def delete_path(self, path: str, message: str) -> None:
        """Look up the current SHA of ``path`` and delete it."""
        stored = self.get(path)
        self.delete(path, stored.sha, message)

    def exists(self, path: str) -> bool:
        try:
            self.get(path)
        except NotFoundError:
            return False
        return True

    def walk_files(self, path: str) -> Iterator[DirEntry]:
        """Every file below ``path``, recursively. A missing directory yields nothing."""
        try:
            entries = self.list_dir(path)
        except NotFoundError:
            return
        for entry in entries:
            if entry.type == "file":
                yield entry
            elif entry.type == "dir":
                yield from self.walk_files(entry.path)
