"""
Post Index — Maintains posts/meta.json, the list of post filenames.

Every create and delete touches the index, so concurrent requests race on
its SHA. All writes are read-modify-write cycles under
``retry_on_conflict``: a stale SHA triggers a fresh read and another try.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

from ..errors import MalformedRecordError, NotFoundError
from ..models.post import PostIndexData
from ..reliability.retry import retry_on_conflict
from ..store.base import ContentStore
from ..store.layout import RepoLayout

logger = logging.getLogger(__name__)


class PostIndex:
    """Read and update the post index."""

    def __init__(
        self,
        store: ContentStore,
        layout: RepoLayout,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.store = store
        self.layout = layout
        self._retry_kwargs = {"sleep": sleep} if sleep else {}

    def read(self) -> Tuple[Optional[str], PostIndexData]:
        """
        Current index and its SHA.

        Raises NotFoundError when the index file does not exist.
        """
        sha, data = self.store.get_json(self.layout.meta_path)
        if not isinstance(data, dict):
            raise MalformedRecordError(
                f"{self.layout.meta_path} is not a JSON object", path=self.layout.meta_path
            )
        return sha, PostIndexData.model_validate(data)

    def _read_or_empty(self) -> Tuple[Optional[str], PostIndexData]:
        try:
            return self.read()
        except NotFoundError:
            logger.info(f"{self.layout.meta_path} not found, starting a new index")
            return None, PostIndexData()

    def _write(self, index: PostIndexData, sha: Optional[str]) -> None:
        self.store.put_json(
            self.layout.meta_path,
            index.model_dump(),
            "Update meta.json",
            sha,
        )

    def add(self, filename: str) -> bool:
        """Append ``filename``. Returns False when it was already listed."""

        def _attempt() -> bool:
            sha, index = self._read_or_empty()
            if filename in index.posts:
                return False
            index.posts.append(filename)
            self._write(index, sha)
            return True

        added = retry_on_conflict(_attempt, label=self.layout.meta_path, **self._retry_kwargs)
        if added:
            logger.info(f"meta.json: added {filename}")
        return added

    def remove(self, filename: str) -> bool:
        """
        Drop ``filename``. Returns False when it was not listed.

        Raises NotFoundError when there is no index at all.
        """

        def _attempt() -> bool:
            sha, index = self.read()
            if filename not in index.posts:
                return False
            index.posts = [p for p in index.posts if p != filename]
            self._write(index, sha)
            return True

        removed = retry_on_conflict(_attempt, label=self.layout.meta_path, **self._retry_kwargs)
        if removed:
            logger.info(f"meta.json: removed {filename}")
        return removed

    def ensure(self) -> bool:
        """Create an empty index if none exists. Returns True when created."""

        def _attempt() -> bool:
            if self.store.exists(self.layout.meta_path):
                return False
            self._write(PostIndexData(), None)
            return True

        return retry_on_conflict(_attempt, label=self.layout.meta_path, **self._retry_kwargs)
