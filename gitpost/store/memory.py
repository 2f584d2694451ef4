"""
In-Memory Content Store — Non-networked store for tests and local runs.

Behaves like the GitHub contents API where it matters to the engine:
blob SHAs change on every write, stale SHAs are rejected, creating over an
existing file is rejected, and directories exist only while they contain
files.

Failures can be injected per operation and path:

    store = InMemoryContentStore()
    store.inject_failure("delete", "images/a.png", RemoteStoreError("boom"))
"""

from __future__ import annotations

import hashlib
import logging
from typing import Dict, List, Optional, Tuple

from ..errors import ConflictError, GitPostError, NotFoundError
from .base import ContentStore, DirEntry, StoredFile

logger = logging.getLogger(__name__)


def blob_sha(content: bytes) -> str:
    """Git blob SHA-1, the same value GitHub reports for file contents."""
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


class InMemoryContentStore(ContentStore):
    """Dictionary-backed store that records every operation it performs."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self._files: Dict[str, bytes] = {}
        self._failures: Dict[Tuple[str, str], List[GitPostError]] = {}
        # (operation, path) in call order
        self.operations: List[Tuple[str, str]] = []
        # (path, commit message) for every write
        self.commits: List[Tuple[str, str]] = []
        for path, content in (files or {}).items():
            self._files[path.strip("/")] = content

    # ── Test hooks ───────────────────────────────────────────────

    def inject_failure(
        self,
        operation: str,
        path: str,
        error: GitPostError,
        times: int = 1,
    ) -> None:
        """Make the next ``times`` calls of ``operation`` on ``path`` raise ``error``."""
        self._failures.setdefault((operation, path), []).extend([error] * times)

    def _maybe_fail(self, operation: str, path: str) -> None:
        self.operations.append((operation, path))
        pending = self._failures.get((operation, path))
        if pending:
            raise pending.pop(0)

    def paths(self) -> List[str]:
        return sorted(self._files)

    def raw(self, path: str) -> bytes:
        return self._files[path]

    # ── ContentStore ─────────────────────────────────────────────

    def get(self, path: str) -> StoredFile:
        path = path.strip("/")
        self._maybe_fail("get", path)
        if path not in self._files:
            raise NotFoundError(f"Not found: {path}", path=path)
        content = self._files[path]
        return StoredFile(path=path, sha=blob_sha(content), content=content, size=len(content))

    def put(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        path = path.strip("/")
        self._maybe_fail("put", path)
        existing = self._files.get(path)
        if existing is None and sha:
            raise NotFoundError(f"Cannot update missing file: {path}", path=path)
        if existing is not None:
            if not sha:
                raise ConflictError(f"{path} already exists (sha not supplied)", path=path)
            if sha != blob_sha(existing):
                raise ConflictError(f"SHA mismatch for {path}", path=path)

        self._files[path] = content
        self.commits.append((path, message))
        logger.debug(f"[memory] {message}: {path}")
        return blob_sha(content)

    def delete(self, path: str, sha: str, message: str) -> None:
        path = path.strip("/")
        self._maybe_fail("delete", path)
        existing = self._files.get(path)
        if existing is None:
            raise NotFoundError(f"Not found: {path}", path=path)
        if sha != blob_sha(existing):
            raise ConflictError(f"SHA mismatch for {path}", path=path)

        del self._files[path]
        self.commits.append((path, message))
        logger.debug(f"[memory] {message}: {path}")

    def list_dir(self, path: str) -> List[DirEntry]:
        prefix = path.strip("/") + "/"
        self._maybe_fail("list", prefix.rstrip("/"))

        entries: Dict[str, DirEntry] = {}
        for file_path, content in self._files.items():
            if not file_path.startswith(prefix):
                continue
            rest = file_path[len(prefix):]
            name, sep, _ = rest.partition("/")
            if sep:
                entries.setdefault(
                    name, DirEntry(name=name, path=prefix + name, type="dir")
                )
            else:
                entries[name] = DirEntry(
                    name=name,
                    path=file_path,
                    type="file",
                    size=len(content),
                    sha=blob_sha(content),
                )

        if not entries:
            raise NotFoundError(f"Not found: {path}", path=path)
        return sorted(entries.values(), key=lambda e: e.name)
