"""
Post Models — Pydantic schemas for records stored in the repository.

A post is stored as posts/<id>.json:

    {
      "id": "6f1c...",
      "title": "Hello",
      "content": "<p>hi</p><img src=\"https://raw.githubusercontent.com/o/r/main/content/a.png\"/>",
      "createdAt": "2026-01-01T00:00:00+00:00",
      "updatedAt": "2026-01-02T00:00:00+00:00",
      "files": [{"id": "...", "name": "....pdf", "url": "https://..."}],
      "contentFiles": [{"id": "X", "name": "a.png", "url": "https://...",
                        "type": "image", "status": "UPLOADED"}]
    }

Keys are camelCase on disk and on the wire; Python attributes are
snake_case. Unknown keys in stored records are kept so older or newer
writers do not lose data on update.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MediaType = Literal["image", "video", "unknown"]
FileStatus = Literal["DRAFT", "UPLOADED", "DELETED"]

MEDIA_TYPES = ("image", "video", "unknown")

DRAFT = "DRAFT"
UPLOADED = "UPLOADED"
DELETED = "DELETED"


class AttachedFileRecord(BaseModel):
    """A file attached to a post (not referenced from the content)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    url: str = ""


class MediaRecord(BaseModel):
    """
    Inline media referenced from post content.

    ``id`` is the placeholder written into the content before upload and
    the permanent identifier after. While DRAFT, ``url`` holds the local
    payload (a data: URI or bare base64); once UPLOADED it is the durable
    raw URL.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    url: str = ""
    type: MediaType = "unknown"
    status: FileStatus = DRAFT

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        if isinstance(value, str):
            value = value.lower()
            if value in MEDIA_TYPES:
                return value
            # MIME types from browsers ("image/png")
            family = value.split("/", 1)[0]
            if family in ("image", "video"):
                return family
        return "unknown"

    @property
    def is_uploaded(self) -> bool:
        return self.status == UPLOADED

    def inline_payload(self) -> Optional[str]:
        """
        Base64 payload to upload, or None when there is nothing to send.

        "data:image/png;base64,AAAA" → "AAAA"; remote (http, blob:) URLs and
        already-uploaded records carry no payload.
        """
        if self.is_uploaded or not self.url:
            return None
        url = self.url.strip()
        if url.startswith(("http://", "https://", "blob:")):
            return None
        if "," in url:
            url = url.split(",", 1)[1]
        return url or None


class Post(BaseModel):
    """A blog post record."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    title: str = ""
    content: str = ""
    created_at: str = Field(default="", alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    files: List[AttachedFileRecord] = Field(default_factory=list)
    content_files: List[MediaRecord] = Field(default_factory=list, alias="contentFiles")

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy_media(cls, data: Any) -> Any:
        """Records written without a status were uploaded when their url is remote."""
        if not isinstance(data, dict):
            return data
        media = data.get("contentFiles")
        if isinstance(media, list):
            upgraded = []
            for item in media:
                if isinstance(item, dict) and "status" not in item:
                    url = str(item.get("url", ""))
                    status = UPLOADED if url.startswith(("http://", "https://")) else DRAFT
                    item = {**item, "status": status}
                upgraded.append(item)
            data = {**data, "contentFiles": upgraded}
        return data

    def to_record(self) -> Dict[str, Any]:
        """JSON-ready dict with on-disk key names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PostIndexData(BaseModel):
    """posts/meta.json."""

    model_config = ConfigDict(extra="allow")

    posts: List[str] = Field(default_factory=list)
