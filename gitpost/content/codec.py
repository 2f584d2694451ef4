"""
Media Reference Codec — Post markup ⇄ editor documents.

Post content is stored as a small markup language: plain text and a few
block tags, plus self-describing media tags:

    <p>Intro</p><img src="X"/><video src="https://raw.../content/v.mp4"/>
    <youtube src="https://www.youtube.com/embed/abc">

``src`` of img/video tags is either a placeholder identifier (the media
record's ``id``, before upload) or the durable URL (after upload).

## Editor documents

The editor side speaks a block list in the Editor.js style:

    {"blocks": [
        {"type": "paragraph", "data": {"text": "Intro"}},
        {"type": "image", "data": {"id": "X", "url": "data:...", "status": "DRAFT"}},
        {"type": "youtube", "data": {"url": "https://www.youtube.com/embed/abc"}}
    ]}

## Decoding

Tags are matched img → video → youtube, left to right, each match swapped
for a numbered placeholder so no text is matched twice. Remaining markup
is stripped, entities are decoded, and the resolved media are spliced back
in their original order. A tag whose reference matches no media record
stays as literal text.

## Usage

    from gitpost.content.codec import decode_document, encode_document

    markup = encode_document(document)
    document = decode_document(markup, post.content_files)
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..models.post import UPLOADED, MediaRecord

IMG_PATTERN = re.compile(r"""<img\s+src=["']([^"']+)["'][^>]*>""", re.IGNORECASE)
VIDEO_PATTERN = re.compile(
    r"""<video\s+src=["']([^"']+)["'][^>]*>(?:\s*</video>)?""", re.IGNORECASE
)
YOUTUBE_PATTERN = re.compile(
    r"""<youtube\s+src=["']([^"']+)["'][^>]*>(?:\s*</youtube>)?""", re.IGNORECASE
)

# Fixed precedence: earlier patterns claim their text first
TAG_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("image", IMG_PATTERN),
    ("video", VIDEO_PATTERN),
    ("youtube", YOUTUBE_PATTERN),
)

MEDIA_KINDS = ("image", "video")

_BLOCK_BREAK = re.compile(r"<br\s*/?>|</(?:p|h[1-6]|li|div|blockquote|pre)\s*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]*>")
_SLOT = "\x00"
_SLOT_SPLIT = re.compile(r"\x00(\d+)\x00")


@dataclass
class Segment:
    """One piece of decoded content, in document order."""

    kind: str  # text, image, video, youtube
    text: str = ""
    src: str = ""
    media_id: str = ""
    status: str = ""
    name: str = ""
    # Unresolvable media tag kept verbatim
    literal: bool = False


class MediaTable:
    """Lookup of media records by durable URL and by identifier."""

    def __init__(self, records: Iterable[MediaRecord] = ()):
        self._by_id: Dict[str, MediaRecord] = {}
        self._by_url: Dict[str, MediaRecord] = {}
        for record in records:
            self._by_id[record.id] = record
            if record.url and _is_remote(record.url):
                self._by_url[record.url] = record

    def resolve(self, ref: str) -> Optional[MediaRecord]:
        # A durable URL match wins over an identifier match
        return self._by_url.get(ref) or self._by_id.get(ref)


def _is_remote(url: Optional[str]) -> bool:
    return bool(url) and url.startswith(("http://", "https://"))


# ── Tag claiming ─────────────────────────────────────────────────


@dataclass
class Tag:
    """A media tag claimed from markup, with spans into that markup."""

    kind: str
    start: int
    end: int
    src_start: int
    src_end: int
    text: str
    ref: str


def claim_tags(markup: str) -> List[Tag]:
    """
    Media tags of ``markup`` in document order.

    Patterns run in TAG_PATTERNS order and text claimed by one pattern is
    masked before the next runs, so a tag is only ever seen once and as
    the kind the earliest pattern gave it. A match that starts inside an
    earlier-starting match is dropped.
    """
    masked = markup or ""
    found: List[Tuple[str, "re.Match[str]"]] = []
    for kind, pattern in TAG_PATTERNS:
        found.extend((kind, m) for m in pattern.finditer(masked))
        # Same-length mask keeps offsets valid against the original markup
        masked = pattern.sub(lambda m: _SLOT * len(m.group(0)), masked)

    tags: List[Tag] = []
    end = 0
    for kind, match in sorted(found, key=lambda item: item[1].start()):
        if match.start() < end:
            continue
        end = match.end()
        tags.append(Tag(
            kind=kind,
            start=match.start(),
            end=match.end(),
            src_start=match.start(1),
            src_end=match.end(1),
            text=markup[match.start():match.end()],
            ref=html.unescape(markup[match.start(1):match.end(1)]),
        ))
    return tags


# ── Decode ───────────────────────────────────────────────────────


def parse_markup(markup: str, media: Iterable[MediaRecord] = ()) -> List[Segment]:
    """
    Split markup into ordered text and media segments.

    Args:
        markup: Stored post content
        media: The post's media records, used to resolve img/video refs

    Returns:
        Segments in original order. Unresolvable media tags come back as
        text segments holding the literal tag.
    """
    table = media if isinstance(media, MediaTable) else MediaTable(media)
    slots: List[Segment] = []

    source = (markup or "").replace(_SLOT, "")
    pieces: List[str] = []
    pos = 0
    for tag in claim_tags(source):
        slots.append(_resolve(tag, table))
        pieces.append(source[pos:tag.start])
        pieces.append(f"{_SLOT}{len(slots) - 1}{_SLOT}")
        pos = tag.end
    pieces.append(source[pos:])

    work = _BLOCK_BREAK.sub("\n", "".join(pieces))
    work = _ANY_TAG.sub("", work)
    work = html.unescape(work)

    segments: List[Segment] = []
    for i, part in enumerate(_SLOT_SPLIT.split(work)):
        if i % 2:
            segments.append(slots[int(part)])
            continue
        for line in part.split("\n"):
            if line.strip():
                segments.append(Segment(kind="text", text=line.strip()))
    return segments


def _resolve(tag: Tag, table: MediaTable) -> Segment:
    if tag.kind == "youtube":
        return Segment(kind="youtube", src=tag.ref)

    record = table.resolve(tag.ref)
    if record is None:
        return Segment(kind="text", text=tag.text, literal=True)
    return Segment(
        kind=tag.kind,
        src=record.url,
        media_id=record.id,
        status=record.status,
        name=record.name,
    )


def decode_document(markup: str, media: Iterable[MediaRecord] = ()) -> Dict[str, Any]:
    """Markup → editor block document."""
    blocks: List[Dict[str, Any]] = []
    for seg in parse_markup(markup, media):
        if seg.kind == "text":
            blocks.append({"type": "paragraph", "data": {"text": seg.text}})
        elif seg.kind == "youtube":
            blocks.append({"type": "youtube", "data": {"url": seg.src}})
        else:
            blocks.append({
                "type": seg.kind,
                "data": {
                    "id": seg.media_id,
                    "url": seg.src,
                    "status": seg.status,
                    "name": seg.name,
                },
            })
    return {"blocks": blocks}


def preview_text(markup: str, limit: Optional[int] = None) -> str:
    """Plain text of the content with every tag stripped."""
    text = " ".join(s.text for s in parse_markup(markup) if s.kind == "text" and not s.literal)
    if limit is not None and len(text) > limit:
        return text[: max(0, limit - 1)].rstrip() + "…"
    return text


def render_preview(markup: str, media: Iterable[MediaRecord] = ()) -> str:
    """Markup → safe HTML for read-only previews."""
    parts = []
    for seg in parse_markup(markup, media):
        if seg.kind == "text":
            parts.append(f"<span>{html.escape(seg.text)}</span>")
        elif seg.kind == "image":
            parts.append(f'<img src="{html.escape(seg.src, quote=True)}" alt="Post content"/>')
        elif seg.kind == "video":
            parts.append(f'<video src="{html.escape(seg.src, quote=True)}" controls></video>')
        else:
            parts.append(
                f'<iframe src="{html.escape(seg.src, quote=True)}" '
                f'frameborder="0" allowfullscreen></iframe>'
            )
    return "\n".join(parts)


# ── Encode ───────────────────────────────────────────────────────


def encode_document(document: Mapping[str, Any]) -> str:
    """
    Editor block document → markup.

    Media blocks reference their durable URL once uploaded and their
    identifier while still a draft. Text is HTML-escaped.
    """
    parts: List[str] = []
    for block in document.get("blocks") or []:
        if not isinstance(block, Mapping):
            continue
        block_type = block.get("type", "paragraph")
        data = block.get("data")
        if not isinstance(data, Mapping):
            data = {}

        if block_type in ("image", "video"):
            ref = _media_ref(data)
            if not ref:
                continue
            tag = "img" if block_type == "image" else "video"
            parts.append(f'<{tag} src="{html.escape(ref, quote=True)}"/>')
        elif block_type == "youtube":
            url = data.get("url") or data.get("src")
            if url:
                parts.append(f'<youtube src="{html.escape(url, quote=True)}">')
        elif block_type == "header":
            level = _heading_level(data.get("level"))
            parts.append(f"<h{level}>{html.escape(data.get('text', ''))}</h{level}>")
        else:
            text = data.get("text")
            if text:
                parts.append(f"<p>{html.escape(text)}</p>")
    return "".join(parts)


def _heading_level(value: Any) -> int:
    try:
        level = int(value)
    except (TypeError, ValueError):
        return 2
    return min(6, max(1, level))


def _media_ref(data: Mapping[str, Any]) -> Optional[str]:
    media_id = data.get("id") or data.get("uuid")
    url = data.get("url") or data.get("src")
    if url and (data.get("status") == UPLOADED or _is_remote(url)):
        return url
    return media_id or url


# ── Reference rewriting ──────────────────────────────────────────


def find_references(markup: str) -> List[Tuple[str, str]]:
    """(kind, src) of every img/video tag, in document order."""
    return [(tag.kind, tag.ref) for tag in claim_tags(markup) if tag.kind in MEDIA_KINDS]


def rewrite_references(markup: str, mapping: Mapping[str, str]) -> str:
    """
    Replace img/video ``src`` values found in ``mapping``.

    Only attribute values are touched; an identifier that also occurs in
    the post's text is left alone there.
    """
    if not mapping:
        return markup

    pieces: List[str] = []
    pos = 0
    for tag in claim_tags(markup):
        new = mapping.get(tag.ref) if tag.kind in MEDIA_KINDS else None
        if new is None:
            continue
        pieces.append(markup[pos:tag.src_start])
        pieces.append(html.escape(new, quote=True))
        pos = tag.src_end
    pieces.append(markup[pos:])
    return "".join(pieces)
