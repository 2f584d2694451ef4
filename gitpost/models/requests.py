"""
Request Models — Validated inputs for the synchronization engine.

The HTTP layer receives multipart forms where ``contentFiles`` and
``filesToDelete`` arrive as JSON strings. ``decode_create_form`` and
``decode_update_form`` turn those forms into typed requests, or raise
RequestValidationError before any remote I/O happens.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from ..content.codec import encode_document
from ..errors import RequestValidationError
from .post import AttachedFileRecord, MediaRecord


class IncomingAttachment(BaseModel):
    """A file uploaded alongside the form."""

    filename: str
    data: bytes
    content_type: str = ""


class PostCreateRequest(BaseModel):
    """Everything needed to create a post."""

    title: str
    content: str
    files: List[IncomingAttachment] = Field(default_factory=list)
    content_files: List[MediaRecord] = Field(default_factory=list)

    @field_validator("title", "content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value


class PostUpdateRequest(PostCreateRequest):
    """Everything needed to update an existing post."""

    post_id: str
    files_to_delete: List[AttachedFileRecord] = Field(default_factory=list)


_STRING_KEYS = ("text", "id", "uuid", "url", "src", "status", "name")


class EditorBlock(BaseModel):
    """One block of an editor document."""

    type: str = "paragraph"
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _null_data(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("data")
    @classmethod
    def _readable(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        for key in _STRING_KEYS:
            if value.get(key) is not None and not isinstance(value[key], str):
                raise ValueError(f"{key} must be a string")
        if value.get("level") is not None:
            try:
                int(value["level"])
            except (TypeError, ValueError):
                raise ValueError("level must be an integer")
        return value


class EditorDocument(BaseModel):
    """Block document sent by the editor in place of markup."""

    blocks: List[EditorBlock] = Field(default_factory=list)


_media_list = TypeAdapter(List[MediaRecord])
_file_list = TypeAdapter(List[AttachedFileRecord])


def _parse_json_list(raw: Optional[str], adapter: TypeAdapter, field: str) -> list:
    if raw is None or not str(raw).strip():
        return []
    try:
        return adapter.validate_json(raw)
    except ValidationError as e:
        raise RequestValidationError(f"Invalid {field}: {_summarize(e)}")


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{loc}: {item.get('msg')}" if loc else str(item.get("msg")))
    return "; ".join(parts)


def _build(model: type, **fields: Any):
    try:
        return model(**fields)
    except ValidationError as e:
        raise RequestValidationError(f"Invalid request: {_summarize(e)}")


def _content_from(form: Mapping[str, str]) -> str:
    """``content`` markup, or markup encoded from an editor ``document``."""
    content = form.get("content") or ""
    raw = form.get("document")
    if content.strip() or not raw:
        return content
    try:
        document = EditorDocument.model_validate_json(raw)
    except ValidationError as e:
        raise RequestValidationError(f"Invalid document: {_summarize(e)}")
    return encode_document(document.model_dump())


def decode_create_form(
    form: Mapping[str, str],
    uploads: Sequence[IncomingAttachment] = (),
) -> PostCreateRequest:
    """Build a PostCreateRequest from multipart form fields."""
    return _build(
        PostCreateRequest,
        title=form.get("title") or "",
        content=_content_from(form),
        files=list(uploads),
        content_files=_parse_json_list(form.get("contentFiles"), _media_list, "contentFiles"),
    )


def decode_update_form(
    post_id: str,
    form: Mapping[str, str],
    uploads: Sequence[IncomingAttachment] = (),
) -> PostUpdateRequest:
    """Build a PostUpdateRequest from multipart form fields."""
    return _build(
        PostUpdateRequest,
        post_id=post_id,
        title=form.get("title") or "",
        content=_content_from(form),
        files=list(uploads),
        content_files=_parse_json_list(form.get("contentFiles"), _media_list, "contentFiles"),
        files_to_delete=_parse_json_list(
            form.get("filesToDelete"), _file_list, "filesToDelete"
        ),
    )
