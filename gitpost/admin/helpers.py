"""
Admin server shared helpers.

Route blueprints reach the store and layout through the application
config, set once by ``create_app``. Engines are cheap and built per
request around those shared objects.
"""

from __future__ import annotations

import logging
from typing import List

from flask import current_app, request

from ..engine.cleanup import OrphanCollector
from ..engine.sync import PostSyncEngine
from ..models.requests import IncomingAttachment
from ..store.base import ContentStore
from ..store.layout import RepoLayout

logger = logging.getLogger(__name__)


def store() -> ContentStore:
    return current_app.config["GITPOST_STORE"]


def layout() -> RepoLayout:
    return current_app.config["GITPOST_LAYOUT"]


def sync_engine() -> PostSyncEngine:
    return PostSyncEngine(store(), layout())


def orphan_collector() -> OrphanCollector:
    return OrphanCollector(store(), layout())


def incoming_attachments(field: str = "files") -> List[IncomingAttachment]:
    """Files uploaded under ``field`` in the current multipart request."""
    uploads = []
    for upload in request.files.getlist(field):
        if not upload or not upload.filename:
            continue
        uploads.append(IncomingAttachment(
            filename=upload.filename,
            data=upload.read(),
            content_type=upload.mimetype or "",
        ))
    return uploads
