"""
Repository Bootstrap — Prepare an empty repository for the blog.

Creates the directory placeholders, the post index and the registered
template files. Every step is idempotent, so it runs on each server start.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..content.repo_templates import REPO_TEMPLATES
from ..errors import ConflictError, GitPostError, NotFoundError
from ..reliability.retry import retry_on_conflict
from ..store.base import ContentStore
from ..store.layout import CONTENT_DIR, IMAGES_DIR, PLACEHOLDER_FILENAME, POSTS_DIR, RepoLayout
from .index import PostIndex

logger = logging.getLogger(__name__)


@dataclass
class BootstrapReport:
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)


class RepoBootstrapper:
    """Idempotent setup of directories, index and templates."""

    def __init__(
        self,
        store: ContentStore,
        layout: RepoLayout,
        templates: Optional[Dict[str, str]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.store = store
        self.layout = layout
        self.templates = REPO_TEMPLATES if templates is None else templates
        self._retry_kwargs = {"sleep": sleep} if sleep else {}
        self.index = PostIndex(store, layout, sleep=sleep)

    def run(self) -> BootstrapReport:
        """Run every step; a failing step is recorded and the rest still run."""
        report = BootstrapReport()
        logger.info(f"Bootstrapping {self.layout.owner}/{self.layout.repo}@{self.layout.branch}")
        self.ensure_directories(report)
        self.ensure_index(report)
        self.sync_templates(report)
        logger.info(
            f"Bootstrap done: {len(report.created)} created, {len(report.updated)} updated, "
            f"{len(report.unchanged)} unchanged, {len(report.errors)} failed"
        )
        return report

    def ensure_directories(self, report: BootstrapReport) -> None:
        for directory in (POSTS_DIR, IMAGES_DIR, CONTENT_DIR):
            path = f"{directory}/{PLACEHOLDER_FILENAME}"
            try:
                if self.store.exists(path):
                    report.unchanged.append(path)
                    continue
                self.store.put(path, b"", f"Create {directory} directory")
                report.created.append(path)
            except ConflictError:
                # Created by someone else in the meantime
                report.unchanged.append(path)
            except GitPostError as e:
                logger.error(f"Could not create {path}: {e}")
                report.errors.append({"file": path, "error": e.message})

    def ensure_index(self, report: BootstrapReport) -> None:
        path = self.layout.meta_path
        try:
            if self.index.ensure():
                report.created.append(path)
            else:
                report.unchanged.append(path)
        except GitPostError as e:
            logger.error(f"Could not create {path}: {e}")
            report.errors.append({"file": path, "error": e.message})

    def sync_templates(self, report: BootstrapReport) -> None:
        for path, content in self.templates.items():
            try:
                outcome = retry_on_conflict(
                    lambda: self._sync_one(path, content.encode("utf-8")),
                    label=path,
                    **self._retry_kwargs,
                )
            except GitPostError as e:
                logger.error(f"Could not publish {path}: {e}")
                report.errors.append({"file": path, "error": e.message})
                continue
            getattr(report, outcome).append(path)

    def _sync_one(self, path: str, content: bytes) -> str:
        try:
            current = self.store.get(path)
        except NotFoundError:
            self.store.put(path, content, f"Create {path}")
            logger.info(f"{path} created")
            return "created"

        if current.content == content:
            logger.debug(f"{path} is up to date")
            return "unchanged"

        self.store.put(path, content, f"Update {path}", current.sha)
        logger.info(f"{path} updated")
        return "updated"
