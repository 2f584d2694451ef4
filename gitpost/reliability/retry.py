"""
Conflict Retry — Bounded retries for read-modify-write of shared files.

Template and index files are written by every request, so their SHA goes
stale often. Writes to them run through ``retry_on_conflict``: the whole
read-modify-write callable is re-run, which re-reads the current SHA,
with an incremental backoff between attempts (1s, 2s, ...).

Post and media writes are never wrapped: a conflict there surfaces to the
caller (last writer loses, no merge).

## Usage

    from gitpost.reliability.retry import retry_on_conflict

    def _write():
        sha, data = store.get_json("posts/meta.json")
        data["posts"].append(filename)
        store.put_json("posts/meta.json", data, "Update meta.json", sha)

    retry_on_conflict(_write, label="posts/meta.json")
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from ..errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 1.0


def retry_on_conflict(
    operation: Callable[[], T],
    label: str = "",
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation``, retrying it on ConflictError.

    Args:
        operation: Zero-argument callable doing a full read-modify-write
        label: Name used in log lines (usually the file path)
        max_attempts: Total attempts including the first
        backoff_seconds: Delay unit; attempt N waits N × backoff_seconds
        sleep: Injected for tests

    Returns:
        Whatever ``operation`` returns

    Raises:
        ConflictError: when the last attempt still conflicts
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except ConflictError:
            if attempt >= max_attempts:
                logger.error(
                    f"{label} still conflicting after {max_attempts} attempts"
                )
                raise
            delay = backoff_seconds * attempt
            logger.warning(
                f"{label} SHA mismatch (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.1f}s"
            )
            sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
