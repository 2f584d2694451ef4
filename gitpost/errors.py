"""
Error taxonomy shared by the store client, the engine and the HTTP layer.

Each error carries the HTTP status the admin server answers with, so route
handlers never need to map exception types by hand.

Partial failures (a single file delete failing during a post delete or an
orphan cleanup) are NOT exceptions: they are collected into ``errors`` lists
and returned to the caller.
"""

from __future__ import annotations

from typing import Optional


class GitPostError(Exception):
    """Base class for every error raised by gitpost."""

    status_code = 500

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path


class ConfigError(GitPostError):
    """Required configuration (credentials, repository) is missing."""


class NotFoundError(GitPostError):
    """Requested post, file or index does not exist in the remote store."""

    status_code = 404


class ConflictError(GitPostError):
    """The remote object changed since it was read (stale or missing SHA)."""

    status_code = 409


class RequestValidationError(GitPostError):
    """Request rejected before any remote write."""

    status_code = 400


class MalformedRecordError(GitPostError):
    """A stored JSON record could not be decoded or has the wrong shape."""


class StructuralAbortError(GitPostError):
    """Cleanup refused to run because its input looks structurally wrong.

    Raised instead of returning an empty result when an empty result could
    mean deleting every media file in the repository.
    """


class RemoteStoreError(GitPostError):
    """The hosting provider answered with an unexpected status."""

    status_code = 502

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(message, path=path)
        self.upstream_status = upstream_status


class StoreTimeoutError(RemoteStoreError):
    """A remote store call did not complete within the configured timeout."""

    status_code = 504
