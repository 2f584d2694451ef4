"""
Tests for the post synchronization engine.

Covers create/update/delete against the in-memory store: media upload and
reference rewriting, update reconciliation, deletion with partial failures,
write ordering, and the reference-integrity guarantee across sequences of
operations.
"""

from __future__ import annotations

import base64

import pytest

from gitpost.content.codec import find_references
from gitpost.engine.cleanup import OrphanCollector
from gitpost.errors import (
    ConflictError,
    MalformedRecordError,
    NotFoundError,
    RemoteStoreError,
    RequestValidationError,
)
from gitpost.models.post import UPLOADED, AttachedFileRecord, MediaRecord, Post
from gitpost.models.requests import (
    IncomingAttachment,
    PostCreateRequest,
    PostUpdateRequest,
)

RAW = "https://raw.githubusercontent.com/octo/blog/main"
PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"
PNG_DATA_URI = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


def _raw_url(path: str) -> str:
    return f"{RAW}/{path}"


def _draft(media_id: str, name: str, data: bytes = PNG_BYTES, mime: str = "image/png") -> MediaRecord:
    encoded = base64.b64encode(data).decode()
    return MediaRecord(id=media_id, name=name, url=f"data:{mime};base64,{encoded}", type=mime)


def _create(engine, content, media=(), files=(), title="Hello"):
    return engine.create(PostCreateRequest(
        title=title,
        content=content,
        content_files=list(media),
        files=list(files),
    ))


def _update(engine, post, content, media, files_to_delete=(), files=(), title=None):
    return engine.update(PostUpdateRequest(
        post_id=post.id,
        title=title or post.title,
        content=content,
        content_files=list(media),
        files_to_delete=list(files_to_delete),
        files=list(files),
    ))


def assert_reference_integrity(post: Post) -> None:
    """Every img/video src is the durable URL of an UPLOADED media record."""
    uploaded = {m.url for m in post.content_files if m.status == UPLOADED}
    for kind, src in find_references(post.content):
        assert src in uploaded, f"{kind} {src} has no uploaded media record"


# ── Create ───────────────────────────────────────────────────────


class TestCreate:
    """Creating posts with inline media and attachments."""

    def test_create_with_inline_image(self, engine, store):
        """Inline image is uploaded and the placeholder replaced by its URL."""
        result = _create(engine, '<p>Hi</p><img src="X"/>', [_draft("X", "a.png")])

        assert result.post_id == "id-1"
        assert result.filename == "id-1.json"
        assert store.raw("content/a.png") == PNG_BYTES

        record = store.get_json("posts/id-1.json")[1]
        url = _raw_url("content/a.png")
        assert record["content"] == f'<p>Hi</p><img src="{url}"/>'
        assert record["contentFiles"] == [{
            "id": "X",
            "name": "a.png",
            "url": url,
            "type": "image",
            "status": "UPLOADED",
        }]
        assert record["createdAt"] == "2026-01-01T00:01:00+00:00"
        assert "updatedAt" not in record
        assert store.get_json("posts/meta.json")[1] == {"posts": ["id-1.json"]}

    def test_create_uploads_attachments(self, engine, store):
        """Attached files land in images/ under a new id, keeping the extension."""
        upload = IncomingAttachment(filename="report.pdf", data=b"%PDF", content_type="application/pdf")
        _create(engine, "<p>See attached</p>", files=[upload])

        assert store.raw("images/id-2.pdf") == b"%PDF"
        record = store.get_json("posts/id-1.json")[1]
        assert record["files"] == [{
            "id": "id-2",
            "name": "id-2.pdf",
            "url": _raw_url("images/id-2.pdf"),
        }]

    def test_write_order(self, engine, store):
        """Uploads happen before the post record, the record before the index."""
        _create(
            engine,
            '<img src="X"/>',
            [_draft("X", "a.png")],
            files=[IncomingAttachment(filename="f.txt", data=b"x")],
        )

        puts = [path for op, path in store.operations if op == "put"]
        assert puts == ["content/a.png", "images/id-2.txt", "posts/id-1.json", "posts/meta.json"]

    def test_commit_messages(self, engine, store):
        _create(engine, '<img src="X"/>', [_draft("X", "a.png")], title="First")

        messages = [message for _, message in store.commits]
        assert messages == [
            "Upload content file: X",
            "Create post: First",
            "Update meta.json",
        ]

    def test_appends_to_existing_index(self, engine, store):
        _create(engine, "<p>one</p>")
        _create(engine, "<p>two</p>")

        assert store.get_json("posts/meta.json")[1] == {"posts": ["id-1.json", "id-2.json"]}

    def test_index_failure_keeps_post(self, engine, store):
        """A failing index write is logged; the post itself stays created."""
        store.inject_failure("put", "posts/meta.json", RemoteStoreError("down"))

        result = _create(engine, "<p>Hi</p>")

        assert store.raw("posts/id-1.json")
        assert result.filename == "id-1.json"
        assert "posts/meta.json" not in store.paths()

    def test_identifier_in_text_is_not_rewritten(self, engine, store):
        """Only tag attributes change; the same string in prose stays."""
        _create(engine, '<p>X marks the spot</p><img src="X"/>', [_draft("X", "a.png")])

        content = store.get_json("posts/id-1.json")[1]["content"]
        assert content.startswith("<p>X marks the spot</p>")
        assert _raw_url("content/a.png") in content

    def test_video_reference_rewritten(self, engine, store):
        _create(
            engine,
            '<video src="V"></video>',
            [_draft("V", "clip.mp4", data=b"mp4", mime="video/mp4")],
        )

        record = store.get_json("posts/id-1.json")[1]
        assert record["content"] == f'<video src="{_raw_url("content/clip.mp4")}"></video>'
        assert record["contentFiles"][0]["type"] == "video"


class TestCreateValidation:
    """Requests rejected before any remote write."""

    def test_placeholder_without_upload(self, engine, store):
        with pytest.raises(RequestValidationError):
            _create(engine, '<img src="ghost"/>')
        assert store.commits == []

    def test_invalid_base64(self, engine, store):
        media = MediaRecord(id="X", name="a.png", url="data:image/png;base64,@@not base64@@")
        with pytest.raises(RequestValidationError):
            _create(engine, '<img src="X"/>', [media])
        assert store.commits == []

    def test_media_without_name(self, engine, store):
        media = MediaRecord(id="X", name="", url=PNG_DATA_URI)
        with pytest.raises(RequestValidationError):
            _create(engine, '<img src="X"/>', [media])
        assert store.commits == []

    def test_two_media_with_same_name(self, engine, store):
        with pytest.raises(RequestValidationError):
            _create(
                engine,
                '<img src="A"/><img src="B"/>',
                [_draft("A", "same.png"), _draft("B", "same.png")],
            )
        assert store.commits == []

    def test_foreign_content_url_rejected(self, engine, store):
        """A content/ URL not backed by one of the post's records is dangling."""
        with pytest.raises(RequestValidationError):
            _create(engine, f'<img src="{_raw_url("content/other.png")}"/>')
        assert store.commits == []

    def test_external_image_allowed(self, engine, store):
        """Images hosted elsewhere are not managed media and pass through."""
        _create(engine, '<img src="https://example.com/cat.png"/>')

        assert store.get_json("posts/id-1.json")[1]["content"] == '<img src="https://example.com/cat.png"/>'

    def test_existing_media_name_conflicts(self, engine, store):
        """A name already taken in content/ surfaces as a conflict."""
        store.put("content/a.png", b"old", "seed")

        with pytest.raises(ConflictError):
            _create(engine, '<img src="X"/>', [_draft("X", "a.png")])
        assert "posts/id-1.json" not in store.paths()


# ── Update ───────────────────────────────────────────────────────


class TestUpdate:
    """Reconciling an existing post with an incoming request."""

    def _two_images(self, engine):
        _create(
            engine,
            '<img src="X"/><img src="Y"/>',
            [_draft("X", "x.png"), _draft("Y", "y.png")],
        )
        return engine.get_post("id-1")

    def test_update_removing_media(self, engine, store):
        """Media dropped from the request is deleted from the repository."""
        post = self._two_images(engine)
        keep = post.content_files[0]

        result = _update(engine, post, f'<img src="{keep.url}"/>', [keep])

        assert "content/y.png" not in store.paths()
        assert "content/x.png" in store.paths()
        assert [m.id for m in result.post.content_files] == ["X"]
        assert result.errors == []

        record = store.get_json("posts/id-1.json")[1]
        assert record["content"] == f'<img src="{keep.url}"/>'
        assert record["updatedAt"] == "2026-01-01T00:02:00+00:00"
        assert record["createdAt"] == post.created_at

    def test_update_adds_new_media(self, engine, store):
        post = self._two_images(engine)
        new = _draft("Z", "z.png")
        content = post.content + '<img src="Z"/>'

        result = _update(engine, post, content, list(post.content_files) + [new])

        assert "content/z.png" in store.paths()
        assert [m.id for m in result.post.content_files] == ["X", "Y", "Z"]
        assert_reference_integrity(result.post)

    def test_non_regression(self, engine, store):
        """Re-submitting a post unchanged touches nothing but the record."""
        post = self._two_images(engine)
        before = set(store.paths())
        commits_before = len(store.commits)

        result = _update(engine, post, post.content, post.content_files)

        assert set(store.paths()) == before
        assert store.commits[commits_before:] == [("posts/id-1.json", "Update post: Hello")]
        assert result.post.content_files == post.content_files
        assert result.post.content == post.content

    def test_files_to_delete(self, engine, store):
        _create(
            engine,
            "<p>files</p>",
            files=[
                IncomingAttachment(filename="a.pdf", data=b"a"),
                IncomingAttachment(filename="b.pdf", data=b"b"),
            ],
        )
        post = engine.get_post("id-1")
        gone, kept = post.files

        result = _update(engine, post, post.content, [], files_to_delete=[gone])

        assert gone.url.endswith("images/id-2.pdf")
        assert "images/id-2.pdf" not in store.paths()
        assert "images/id-3.pdf" in store.paths()
        assert result.post.files == [kept]

    def test_files_to_delete_matched_by_id(self, engine, store):
        """A delete entry naming the id alone still removes the attachment."""
        _create(engine, "<p>f</p>", files=[IncomingAttachment(filename="a.pdf", data=b"a")])
        post = engine.get_post("id-1")
        attached = post.files[0]

        result = _update(
            engine, post, post.content, [],
            files_to_delete=[AttachedFileRecord(id=attached.id, url=attached.url)],
        )

        assert result.post.files == []

    def test_foreign_file_not_deleted(self, engine, store):
        """Entries that are not attached to the post are refused."""
        store.put("images/other.png", b"x", "seed")
        _create(engine, "<p>f</p>")
        post = engine.get_post("id-1")

        result = _update(
            engine, post, post.content, [],
            files_to_delete=[AttachedFileRecord(id="other", url=_raw_url("images/other.png"))],
        )

        assert "images/other.png" in store.paths()
        assert len(result.errors) == 1

    def test_new_attachments_appended(self, engine, store):
        _create(engine, "<p>f</p>", files=[IncomingAttachment(filename="a.pdf", data=b"a")])
        post = engine.get_post("id-1")

        result = _update(
            engine, post, post.content, [],
            files=[IncomingAttachment(filename="b.png", data=b"b")],
        )

        assert [f.name for f in result.post.files] == ["id-2.pdf", "id-3.png"]

    def test_ordering_deletes_then_uploads_then_record(self, engine, store):
        post = self._two_images(engine)
        keep = post.content_files[0]
        start = len(store.operations)

        _update(
            engine, post,
            f'<img src="{keep.url}"/><img src="Z"/>',
            [keep, _draft("Z", "z.png")],
        )

        writes = [(op, path) for op, path in store.operations[start:] if op in ("put", "delete")]
        assert writes == [
            ("delete", "content/y.png"),
            ("put", "content/z.png"),
            ("put", "posts/id-1.json"),
        ]

    def test_delete_failure_reported(self, engine, store):
        post = self._two_images(engine)
        keep = post.content_files[0]
        store.inject_failure("delete", "content/y.png", RemoteStoreError("boom"))

        result = _update(engine, post, f'<img src="{keep.url}"/>', [keep])

        assert result.errors == [{"file": "content/y.png", "error": "boom"}]
        assert [m.id for m in result.post.content_files] == ["X"]

    def test_content_referencing_removed_media_rejected(self, engine, store):
        post = self._two_images(engine)
        keep = post.content_files[0]
        commits_before = len(store.commits)

        with pytest.raises(RequestValidationError):
            _update(engine, post, post.content, [keep])
        assert len(store.commits) == commits_before

    def test_kept_media_placeholder_resolved(self, engine, store):
        """A retained record referenced by id gets its durable URL back."""
        post = self._two_images(engine)
        x = post.content_files[0]

        result = _update(engine, post, '<img src="X"/>', [x])

        assert result.post.content == f'<img src="{x.url}"/>'

    def test_stale_sha_conflict(self, engine, store):
        """Scenario: a concurrent writer wins, our uploads become orphans."""
        post = self._two_images(engine)
        store.inject_failure("put", "posts/id-1.json", ConflictError("SHA mismatch"))

        with pytest.raises(ConflictError):
            _update(
                engine, post,
                post.content + '<img src="Z"/>',
                list(post.content_files) + [_draft("Z", "z.png")],
            )

        assert "content/z.png" in store.paths()
        result = OrphanCollector(store, engine.layout).collect()
        assert result.deleted == ["content/z.png"]
        assert "content/x.png" in store.paths()

    def test_update_missing_post(self, engine):
        with pytest.raises(NotFoundError):
            engine.update(PostUpdateRequest(post_id="nope", title="t", content="c"))

    def test_unknown_fields_preserved(self, engine, store):
        """Keys the engine does not know survive an update."""
        _create(engine, "<p>a</p>")
        record = store.get_json("posts/id-1.json")[1]
        record["tags"] = ["x"]
        sha = store.get("posts/id-1.json").sha
        store.put_json("posts/id-1.json", record, "edit", sha)

        post = engine.get_post("id-1")
        _update(engine, post, "<p>b</p>", [])

        assert store.get_json("posts/id-1.json")[1]["tags"] == ["x"]


class TestIntegrityOverSequences:
    """Reference integrity holds after any sequence of creates and updates."""

    def test_sequence(self, engine, store):
        _create(engine, '<p>v1</p><img src="A"/>', [_draft("A", "a.png")])
        post = engine.get_post("id-1")
        assert_reference_integrity(post)

        # add B, keep A
        post = _update(
            engine, post,
            post.content + '<video src="B"></video>',
            list(post.content_files) + [_draft("B", "b.mp4", b"v", "video/mp4")],
        ).post
        assert_reference_integrity(post)

        # drop A, add C
        b = post.content_files[1]
        post = _update(
            engine, post,
            f'<video src="{b.url}"></video><img src="C"/>',
            [b, _draft("C", "c.png")],
        ).post
        assert_reference_integrity(post)
        assert [m.id for m in post.content_files] == ["B", "C"]

        # unchanged resubmit
        post = _update(engine, post, post.content, post.content_files).post
        assert_reference_integrity(post)

        stored = engine.get_post("id-1")
        assert stored.content == post.content
        assert sorted(p for p in store.paths() if p.startswith("content/")) == [
            "content/b.mp4",
            "content/c.png",
        ]


# ── Delete ───────────────────────────────────────────────────────


class TestDelete:
    """Deleting posts with their files and index entry."""

    def _post_with_files(self, engine):
        _create(
            engine,
            '<img src="X"/>',
            [_draft("X", "x.png")],
            files=[IncomingAttachment(filename="a.pdf", data=b"a")],
        )

    def test_delete_post(self, engine, store):
        self._post_with_files(engine)

        result = engine.delete("id-1")

        assert result.errors == []
        assert sorted(result.deleted) == ["content/x.png", "images/id-2.pdf"]
        assert store.paths() == ["posts/meta.json"]
        assert store.get_json("posts/meta.json")[1] == {"posts": []}

    def test_delete_missing_post(self, engine):
        with pytest.raises(NotFoundError):
            engine.delete("nope")

    def test_partial_failure(self, engine, store):
        """A file that cannot be deleted does not stop the post deletion."""
        self._post_with_files(engine)
        store.inject_failure("delete", "images/id-2.pdf", RemoteStoreError("locked"))

        result = engine.delete("id-1")

        assert result.errors == [{"file": "images/id-2.pdf", "error": "locked"}]
        assert "posts/id-1.json" not in store.paths()
        assert "content/x.png" not in store.paths()

    def test_already_missing_file_reported(self, engine, store):
        self._post_with_files(engine)
        sha = store.get("content/x.png").sha
        store.delete("content/x.png", sha, "manual")

        result = engine.delete("id-1")

        assert [e["file"] for e in result.errors] == ["content/x.png"]
        assert "posts/id-1.json" not in store.paths()

    def test_missing_index_tolerated(self, engine, store):
        _create(engine, "<p>a</p>")
        sha = store.get("posts/meta.json").sha
        store.delete("posts/meta.json", sha, "manual")

        result = engine.delete("id-1")

        assert result.errors == []
        assert "posts/id-1.json" not in store.paths()

    def test_file_deletes_before_record(self, engine, store):
        self._post_with_files(engine)
        start = len(store.operations)

        engine.delete("id-1")

        deletes = [path for op, path in store.operations[start:] if op == "delete"]
        assert deletes[-1] == "posts/id-1.json"


# ── Reads ────────────────────────────────────────────────────────


class TestReads:
    """Listing and fetching posts."""

    def test_list_newest_first(self, engine):
        _create(engine, "<p>1</p>", title="first")
        _create(engine, "<p>2</p>", title="second")

        assert [p.title for p in engine.list_posts()] == ["second", "first"]

    def test_list_skips_bad_records(self, engine, store):
        _create(engine, "<p>1</p>")
        store.put("posts/broken.json", b"{not json", "seed")
        store.put("posts/empty.json", b"", "seed")
        store.put("posts/list.json", b"[1, 2]", "seed")

        assert [p.id for p in engine.list_posts()] == ["id-1"]

    def test_list_without_posts_dir(self, engine):
        assert engine.list_posts() == []

    def test_get_malformed(self, engine, store):
        store.put("posts/bad.json", b"{nope", "seed")
        with pytest.raises(MalformedRecordError):
            engine.get_post("bad")

    def test_invalid_post_id(self, engine):
        with pytest.raises(RequestValidationError):
            engine.get_post("../meta")

    def test_legacy_media_without_status(self, engine, store):
        """Records written before statuses existed read as UPLOADED."""
        url = _raw_url("content/a.png")
        store.put_json("posts/old.json", {
            "id": "old",
            "title": "Old",
            "content": f'<img src="{url}"/>',
            "createdAt": "2020-01-01T00:00:00Z",
            "contentFiles": [{"id": "a", "name": "a.png", "url": url, "type": "image/png"}],
        }, "seed")

        post = engine.get_post("old")

        assert post.content_files[0].status == UPLOADED
        assert post.content_files[0].type == "image"
        assert_reference_integrity(post)
