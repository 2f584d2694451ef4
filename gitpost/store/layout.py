"""
Repository layout — where things live in the backing repository.

    posts/<id>.json       one record per post
    posts/meta.json       index of post filenames
    images/<id>.<ext>     attached files
    content/<name>        inline media referenced from post content

Durable URLs are raw-content URLs for the configured branch:

    https://raw.githubusercontent.com/<owner>/<repo>/<branch>/<path>
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

from werkzeug.utils import secure_filename

from ..config.loader import DEFAULT_BRANCH, DEFAULT_RAW_URL, BlogConfig

POSTS_DIR = "posts"
IMAGES_DIR = "images"
CONTENT_DIR = "content"
META_FILENAME = "meta.json"
PLACEHOLDER_FILENAME = ".gitkeep"


@dataclass(frozen=True)
class RepoLayout:
    """Path and URL rules for one owner/repo/branch."""

    owner: str
    repo: str
    branch: str = DEFAULT_BRANCH
    raw_base: str = DEFAULT_RAW_URL

    @classmethod
    def from_config(cls, config: BlogConfig) -> "RepoLayout":
        return cls(
            owner=config.github_owner or "",
            repo=config.github_repo or "",
            branch=config.github_branch,
            raw_base=config.github_raw_url,
        )

    # ── Paths ────────────────────────────────────────────────────

    @property
    def posts_dir(self) -> str:
        return POSTS_DIR

    @property
    def meta_path(self) -> str:
        return f"{POSTS_DIR}/{META_FILENAME}"

    @property
    def media_dirs(self) -> tuple:
        return (IMAGES_DIR, CONTENT_DIR)

    def post_filename(self, post_id: str) -> str:
        return f"{post_id}.json"

    def post_path(self, post_id: str) -> str:
        return f"{POSTS_DIR}/{self.post_filename(post_id)}"

    def attachment_path(self, file_id: str, original_name: str) -> str:
        """images/<file_id><ext>, keeping the uploaded file's extension."""
        return f"{IMAGES_DIR}/{file_id}{attachment_extension(original_name)}"

    def content_path(self, name: str) -> str:
        """content/<name> for an inline media file."""
        safe = secure_filename(name)
        if not safe:
            raise ValueError(f"Unusable media file name: {name!r}")
        return f"{CONTENT_DIR}/{safe}"

    def is_post_record(self, path: str) -> bool:
        """True for posts/<id>.json, False for the index and placeholders."""
        name = PurePosixPath(path).name
        return name.endswith(".json") and name != META_FILENAME

    def is_media_path(self, path: str) -> bool:
        return any(path.startswith(f"{d}/") for d in self.media_dirs)

    # ── URLs ─────────────────────────────────────────────────────

    @property
    def url_prefix(self) -> str:
        return f"{self.raw_base}/{self.owner}/{self.repo}/{self.branch}/"

    def raw_url(self, path: str) -> str:
        return f"{self.url_prefix}{path}"

    def path_from_url(self, url: str) -> Optional[str]:
        """
        Repository path for a durable URL, or None for anything else.

        URLs of this repository map exactly; other raw URLs fall back to
        the segment after "/<branch>/" so records written under a
        different owner spelling still resolve.
        """
        if not url:
            return None
        if url.startswith(self.url_prefix):
            return url[len(self.url_prefix):] or None
        match = re.search(rf"/{re.escape(self.branch)}/(.+)$", url)
        if match and url.startswith(self.raw_base):
            return match.group(1)
        return None

    def is_durable_url(self, url: Optional[str]) -> bool:
        return bool(url) and self.path_from_url(url) is not None


def attachment_extension(original_name: str) -> str:
    """Extension (with dot) of an uploaded file name; empty when it has none."""
    suffix = PurePosixPath(original_name or "").suffix
    return suffix if re.fullmatch(r"\.[A-Za-z0-9]{1,10}", suffix) else ""
