"""
Orphan Cleanup — Delete media files that no post references.

A file under images/ or content/ is an orphan when no post record points at
it, through its attachments, its media records, or a durable URL written
into its content. Orphans appear when an operation fails after uploading
(for example a concurrent update losing on the post SHA).

## Safety

Deleting is only as correct as the reference set. The collector refuses
to run (StructuralAbortError, nothing deleted) when:

- a post record that has data cannot be read or parsed, since its
  references would be missing from the set;
- no references were found at all while media files exist, which looks
  like an unreadable posts directory rather than a blog without posts.

Individual delete failures do not stop the run; they are returned in
``errors``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from ..errors import GitPostError, NotFoundError, StructuralAbortError
from ..models.post import Post, PostIndexData
from ..store.base import ContentStore
from ..store.layout import PLACEHOLDER_FILENAME, RepoLayout

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"""https?://[^\s<>"']+""")


@dataclass
class CleanupResult:
    deleted: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    dry_run: bool = False

    @property
    def message(self) -> str:
        verb = "Would delete" if self.dry_run else "Deleted"
        text = f"{verb} {len(self.deleted)} orphaned file(s)"
        if self.errors:
            text += f", {len(self.errors)} failed"
        return text


class OrphanCollector:
    """Find and delete unreferenced media files."""

    def __init__(
        self,
        store: ContentStore,
        layout: RepoLayout,
        progress: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.layout = layout
        self._progress = progress

    def collect(self, dry_run: bool = False) -> CleanupResult:
        """
        Delete every orphaned media file.

        Args:
            dry_run: Report what would be deleted without deleting

        Raises:
            StructuralAbortError: the reference set cannot be trusted
        """
        referenced = self.referenced_paths()
        physical = self.physical_paths()

        if not referenced and physical:
            raise StructuralAbortError(
                f"No post references any file but {len(physical)} media file(s) exist; "
                "refusing to delete everything"
            )

        orphans = sorted(p for p in physical if p not in referenced)
        logger.info(
            f"Cleanup: {len(physical)} media file(s), {len(referenced)} referenced, "
            f"{len(orphans)} orphaned"
        )

        result = CleanupResult(dry_run=dry_run)
        for path in orphans:
            if dry_run:
                result.deleted.append(path)
                continue
            try:
                self.store.delete_path(path, f"Delete orphaned file: {path}")
            except GitPostError as e:
                logger.warning(f"Could not delete orphan {path}: {e}", extra={"path": path})
                result.errors.append({"file": path, "error": e.message})
                continue
            result.deleted.append(path)
            if self._progress:
                self._progress(f"Deleted orphan {path}")

        logger.info(result.message, extra={"operation": "cleanup"})
        return result

    def referenced_paths(self) -> Set[str]:
        """Repository paths of every media file some post points at."""
        try:
            entries = self.store.list_dir(self.layout.posts_dir)
        except NotFoundError:
            return set()
        except GitPostError as e:
            raise StructuralAbortError(f"Cannot list {self.layout.posts_dir}: {e}")

        referenced: Set[str] = set()
        listed: Set[str] = set()
        for entry in entries:
            if entry.type != "file" or not self.layout.is_post_record(entry.path):
                continue
            listed.add(entry.name)
            post = self._read_post(entry.path)
            if post is None:
                continue
            urls = [f.url for f in post.files]
            urls += [m.url for m in post.content_files]
            urls += _URL_PATTERN.findall(post.content)
            for url in urls:
                path = self.layout.path_from_url(url)
                if path and self.layout.is_media_path(path):
                    referenced.add(path)

        self._check_index(listed)
        return referenced

    def _check_index(self, listed: Set[str]) -> None:
        """Abort when meta.json names posts the directory listing missed."""
        meta_path = self.layout.meta_path
        try:
            _, data = self.store.get_json(meta_path)
        except NotFoundError:
            return
        except GitPostError as e:
            raise StructuralAbortError(f"Cannot read {meta_path}: {e}", path=meta_path)
        try:
            index = PostIndexData.model_validate(data)
        except ValidationError as e:
            raise StructuralAbortError(f"Cannot parse {meta_path}: {e}", path=meta_path)

        missing = sorted(set(index.posts) - listed)
        if missing:
            raise StructuralAbortError(
                f"{meta_path} lists {len(missing)} post(s) missing from "
                f"{self.layout.posts_dir}: {', '.join(missing[:5])}",
                path=meta_path,
            )

    def _read_post(self, path: str) -> Optional[Post]:
        try:
            stored = self.store.get(path)
        except GitPostError as e:
            raise StructuralAbortError(f"Cannot read {path}: {e}", path=path)
        if not stored.content.strip():
            logger.debug(f"Skipping empty record {path}")
            return None
        try:
            return Post.model_validate(json.loads(stored.content))
        except (ValueError, ValidationError) as e:
            raise StructuralAbortError(f"Cannot parse {path}: {e}", path=path)

    def physical_paths(self) -> Set[str]:
        """Every file under the media directories, placeholders excluded."""
        found = set()
        for directory in self.layout.media_dirs:
            for entry in self.store.walk_files(directory):
                if entry.name != PLACEHOLDER_FILENAME:
                    found.add(entry.path)
        return found
