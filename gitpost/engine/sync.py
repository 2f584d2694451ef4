"""
Post Synchronization Engine — Create, update and delete posts in the repository.

Each operation runs its remote calls one after another, in a fixed order:

    file deletions → uploads → post record write → index update

A crash part-way therefore leaves at worst uploaded files that no post
references yet (the orphan cleanup removes them), never a post record that
points at files which do not exist.

## Reference integrity

After every write, each img/video tag in a post's content points at the
durable URL of one of the post's UPLOADED media records. Requests that
would break this (a placeholder with nothing to upload, a URL of media
being removed) are rejected with RequestValidationError before the first
remote write.

## Concurrency

The post record is written with the SHA read at the start of the
operation. If another writer got there first the write fails with
ConflictError; nothing is retried or merged. Index writes are retried
(see ``PostIndex``).

## Usage

    engine = PostSyncEngine(store, layout)
    result = engine.create(decode_create_form(form, uploads))
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from uuid import uuid4

from pydantic import ValidationError

from ..content.codec import find_references, rewrite_references
from ..errors import (
    GitPostError,
    MalformedRecordError,
    NotFoundError,
    RequestValidationError,
)
from ..models.post import UPLOADED, AttachedFileRecord, MediaRecord, Post
from ..models.requests import IncomingAttachment, PostCreateRequest, PostUpdateRequest
from ..store.base import ContentStore
from ..store.layout import CONTENT_DIR, RepoLayout
from .index import PostIndex

logger = logging.getLogger(__name__)

_POST_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


@dataclass
class CreateResult:
    post_id: str
    filename: str


@dataclass
class UpdateResult:
    post: Post
    errors: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class DeleteResult:
    post_id: str
    deleted: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class _StagedMedia:
    """A draft media record, validated and decoded, waiting for upload."""

    record: MediaRecord
    path: str
    data: bytes


class PostSyncEngine:
    """
    Keeps post records, their media and the index consistent.

    Collaborators are injected so tests can use the in-memory store, a
    fixed clock and predictable identifiers.
    """

    def __init__(
        self,
        store: ContentStore,
        layout: RepoLayout,
        index: Optional[PostIndex] = None,
        progress: Optional[Callable[[str], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            store: Remote content store
            layout: Path and URL rules for the repository
            index: Index maintainer (defaults to one on the same store)
            progress: Optional callback receiving one line per remote step
            clock: Returns the current time (UTC)
            id_factory: Returns new post and attachment identifiers
        """
        self.store = store
        self.layout = layout
        self.index = index or PostIndex(store, layout)
        self._progress = progress
        self._now = clock or (lambda: datetime.now(timezone.utc))
        self._new_id = id_factory or (lambda: str(uuid4()))

    def _report(self, message: str, **context) -> None:
        logger.info(message, extra=context)
        if self._progress:
            self._progress(message)

    # ── Reads ────────────────────────────────────────────────────

    def list_posts(self) -> List[Post]:
        """
        Every readable post, newest first.

        Records that are empty, not JSON, or not post-shaped are skipped.
        """
        try:
            entries = self.store.list_dir(self.layout.posts_dir)
        except NotFoundError:
            return []

        posts = []
        for entry in entries:
            if entry.type != "file" or not self.layout.is_post_record(entry.path):
                continue
            try:
                _, data = self.store.get_json(entry.path)
                if not isinstance(data, dict):
                    raise MalformedRecordError(f"{entry.path} is not a JSON object")
                posts.append(Post.model_validate(data))
            except (MalformedRecordError, NotFoundError, ValidationError) as e:
                logger.warning(f"Skipping unreadable post {entry.path}: {e}")

        posts.sort(key=lambda p: p.created_at, reverse=True)
        return posts

    def get_post(self, post_id: str) -> Post:
        _, post = self._load(post_id)
        return post

    def _load(self, post_id: str) -> Tuple[str, Post]:
        _check_post_id(post_id)
        path = self.layout.post_path(post_id)
        sha, data = self.store.get_json(path)
        if not isinstance(data, dict):
            raise MalformedRecordError(f"{path} is not a JSON object", path=path)
        try:
            return sha, Post.model_validate(data)
        except ValidationError as e:
            raise MalformedRecordError(f"{path} is not a valid post: {e}", path=path)

    # ── Create ───────────────────────────────────────────────────

    def create(self, request: PostCreateRequest) -> CreateResult:
        """Upload media and attachments, write the post, add it to the index."""
        post_id = self._new_id()
        filename = self.layout.post_filename(post_id)

        staged = self._stage_media(request.content_files)
        self._check_references(
            request.content,
            placeholders={s.record.id for s in staged},
            retained_urls=set(),
        )

        uploaded, mapping = self._upload_media(staged, post_id)
        content = rewrite_references(request.content, mapping)
        files = [self._upload_attachment(u, post_id) for u in request.files]

        post = Post(
            id=post_id,
            title=request.title,
            content=content,
            created_at=self._now().isoformat(),
            files=files,
            content_files=uploaded,
        )
        self.store.put_json(
            self.layout.post_path(post_id),
            post.to_record(),
            f"Create post: {request.title}",
            None,
        )
        self._report(f"Created post {filename}", operation="create", post_id=post_id)

        try:
            self.index.add(filename)
        except GitPostError as e:
            # The post record stays; nothing is rolled back
            logger.error(
                f"Post {filename} written but meta.json update failed: {e}",
                extra={"operation": "create", "post_id": post_id},
            )

        return CreateResult(post_id=post_id, filename=filename)

    # ── Update ───────────────────────────────────────────────────

    def update(self, request: PostUpdateRequest) -> UpdateResult:
        """Reconcile a post's media and attachments with the incoming request."""
        post_id = request.post_id
        sha, existing = self._load(post_id)

        incoming_ids = {r.id for r in request.content_files}
        existing_ids = {r.id for r in existing.content_files}
        kept_media = [r for r in existing.content_files if r.id in incoming_ids]
        dropped_media = [r for r in existing.content_files if r.id not in incoming_ids]

        new_records = []
        for record in request.content_files:
            if record.id in existing_ids:
                continue
            if record.is_uploaded:
                logger.warning(
                    f"Ignoring media {record.id}: marked UPLOADED but unknown to post {post_id}"
                )
                continue
            new_records.append(record)
        staged = self._stage_media(new_records)

        kept_mapping = {r.id: r.url for r in kept_media}
        self._check_references(
            request.content,
            placeholders={s.record.id for s in staged} | set(kept_mapping),
            retained_urls={r.url for r in kept_media},
        )

        attached_ids = {f.id for f in existing.files}
        attached_urls = {f.url for f in existing.files}
        to_delete = [
            f for f in request.files_to_delete
            if f.id in attached_ids or f.url in attached_urls
        ]
        deleted_ids = {f.id for f in to_delete}
        deleted_urls = {f.url for f in to_delete}
        kept_files = [
            f for f in existing.files
            if f.id not in deleted_ids and f.url not in deleted_urls
        ]

        errors: List[Dict[str, str]] = []
        for f in request.files_to_delete:
            if f not in to_delete:
                errors.append({"file": f.url or f.id, "error": "Not attached to this post"})

        # Deletions first
        for record in dropped_media:
            self._delete_by_url(record.url, errors, post_id)
        for record in to_delete:
            self._delete_by_url(record.url, errors, post_id)

        # Then uploads
        uploaded, mapping = self._upload_media(staged, post_id)
        content = rewrite_references(request.content, {**kept_mapping, **mapping})
        new_files = [self._upload_attachment(u, post_id) for u in request.files]

        updated = existing.model_copy(update={
            "title": request.title,
            "content": content,
            "updated_at": self._now().isoformat(),
            "files": kept_files + new_files,
            "content_files": kept_media + uploaded,
        })

        # Then the record, against the SHA read above
        self.store.put_json(
            self.layout.post_path(post_id),
            updated.to_record(),
            f"Update post: {request.title}",
            sha,
        )
        self._report(
            f"Updated post {post_id}: -{len(dropped_media) + len(to_delete)} "
            f"+{len(uploaded) + len(new_files)} files",
            operation="update",
            post_id=post_id,
        )
        return UpdateResult(post=updated, errors=errors)

    # ── Delete ───────────────────────────────────────────────────

    def delete(self, post_id: str) -> DeleteResult:
        """
        Delete a post, its files and its index entry.

        File deletions that fail are reported in ``errors`` and do not stop
        the remaining steps.
        """
        sha, post = self._load(post_id)
        result = DeleteResult(post_id=post_id)

        for url in [f.url for f in post.files] + [m.url for m in post.content_files]:
            path = self._delete_by_url(url, result.errors, post_id)
            if path:
                result.deleted.append(path)

        path = self.layout.post_path(post_id)
        self.store.delete(path, sha, f"Delete post: {post.title}")
        self._report(f"Deleted post {post_id}", operation="delete", post_id=post_id)

        filename = self.layout.post_filename(post_id)
        try:
            self.index.remove(filename)
        except NotFoundError:
            logger.warning(f"{self.layout.meta_path} missing, nothing to remove for {filename}")
        except GitPostError as e:
            logger.error(f"Could not remove {filename} from meta.json: {e}")
            result.errors.append({"file": self.layout.meta_path, "error": e.message})

        return result

    # ── Helpers ──────────────────────────────────────────────────

    def _stage_media(self, records: Iterable[MediaRecord]) -> List[_StagedMedia]:
        """Validate and decode every draft media payload before any write."""
        staged: List[_StagedMedia] = []
        seen_paths: Set[str] = set()
        for record in records:
            payload = record.inline_payload()
            if not payload:
                continue
            if not record.name:
                raise RequestValidationError(f"Media {record.id} has no file name")
            try:
                path = self.layout.content_path(record.name)
            except ValueError as e:
                raise RequestValidationError(str(e))
            if path in seen_paths:
                raise RequestValidationError(f"Two media files would be stored at {path}")
            seen_paths.add(path)
            staged.append(_StagedMedia(record=record, path=path, data=_decode_payload(record.id, payload)))
        return staged

    def _check_references(
        self,
        content: str,
        placeholders: Set[str],
        retained_urls: Set[str],
    ) -> None:
        for kind, src in find_references(content):
            if src.startswith(("http://", "https://")):
                path = self.layout.path_from_url(src)
                if path and path.startswith(f"{CONTENT_DIR}/") and src not in retained_urls:
                    raise RequestValidationError(
                        f"Content references {kind} {src} which is not among the post's media"
                    )
            elif src not in placeholders:
                raise RequestValidationError(
                    f"Content references {kind} '{src}' with no file to upload"
                )

    def _upload_media(
        self,
        staged: List[_StagedMedia],
        post_id: str,
    ) -> Tuple[List[MediaRecord], Dict[str, str]]:
        uploaded: List[MediaRecord] = []
        mapping: Dict[str, str] = {}
        for item in staged:
            self.store.put(item.path, item.data, f"Upload content file: {item.record.id}")
            url = self.layout.raw_url(item.path)
            uploaded.append(item.record.model_copy(update={"url": url, "status": UPLOADED}))
            mapping[item.record.id] = url
            self._report(f"Uploaded {item.path}", operation="upload", post_id=post_id, path=item.path)
        return uploaded, mapping

    def _upload_attachment(self, upload: IncomingAttachment, post_id: str) -> AttachedFileRecord:
        file_id = self._new_id()
        path = self.layout.attachment_path(file_id, upload.filename)
        self.store.put(path, upload.data, f"Upload image: {file_id}")
        self._report(f"Uploaded {path}", operation="upload", post_id=post_id, path=path)
        return AttachedFileRecord(
            id=file_id,
            name=PurePosixPath(path).name,
            url=self.layout.raw_url(path),
        )

    def _delete_by_url(
        self,
        url: str,
        errors: List[Dict[str, str]],
        post_id: str,
    ) -> Optional[str]:
        """Delete the file behind a durable URL. Failures go into ``errors``."""
        path = self.layout.path_from_url(url)
        if not path or not self.layout.is_media_path(path):
            errors.append({"file": url, "error": "Not a media file of this repository"})
            return None
        try:
            self.store.delete_path(path, f"Delete file: {path}")
        except GitPostError as e:
            logger.warning(
                f"Could not delete {path}: {e}",
                extra={"post_id": post_id, "path": path},
            )
            errors.append({"file": path, "error": e.message})
            return None
        self._report(f"Deleted {path}", operation="delete-file", post_id=post_id, path=path)
        return path


def _check_post_id(post_id: str) -> None:
    if not post_id or not _POST_ID.match(post_id):
        raise RequestValidationError(f"Invalid post id: {post_id!r}")


def _decode_payload(media_id: str, payload: str) -> bytes:
    try:
        return base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError):
        raise RequestValidationError(f"Media {media_id} payload is not valid base64")
