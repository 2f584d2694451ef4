"""
GitHub Content Store — Per-file storage on the GitHub REST contents API.

Endpoints used (all under /repos/{owner}/{repo}/contents/{path}):

- GET    → file metadata + base64 content, or a directory listing
- PUT    → create (no sha) or update (sha of the version that was read)
- DELETE → delete (sha required)

## Configuration

- GITHUB_TOKEN: Personal access token with contents:write
- GITHUB_OWNER / GITHUB_REPO: target repository
- GITHUB_BRANCH: branch every read and commit targets (default: main)
- GITPOST_HTTP_TIMEOUT: per-request timeout in seconds (default: 30)

## Status mapping

| GitHub | Raised |
|--------|--------|
| 404 | NotFoundError |
| 409 | ConflictError (stale sha) |
| 422 mentioning "sha" | ConflictError (file exists, sha not supplied) |
| timeout | StoreTimeoutError |
| anything else ≥ 400 | RemoteStoreError |
| listing of 1,000+ entries | RemoteStoreError (possibly truncated) |

The httpx client is injected so one connection pool can be shared for the
application lifetime, and so tests can pass an ``httpx.MockTransport``.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..config.loader import BlogConfig
from ..errors import ConflictError, NotFoundError, RemoteStoreError, StoreTimeoutError
from .base import ContentStore, DirEntry, StoredFile

logger = logging.getLogger(__name__)

# Directory listings from the contents API are capped at this many entries
LISTING_LIMIT = 1000


class GitHubContentStore(ContentStore):
    """
    Real GitHub store.

    Holds no state besides the HTTP client; safe to share across requests.
    """

    def __init__(self, config: BlogConfig, client: Optional[httpx.Client] = None):
        config.require()
        self.config = config
        self.api_base = config.github_api_url.rstrip("/")
        self.branch = config.github_branch
        self._client = client or httpx.Client(timeout=config.http_timeout)

    def close(self) -> None:
        self._client.close()

    def _get_headers(self) -> Dict[str, str]:
        """Get API request headers."""
        return {
            "Authorization": f"Bearer {self.config.github_token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "gitpost/1.0",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _contents_url(self, path: str) -> str:
        return (
            f"{self.api_base}/repos/{self.config.repository}"
            f"/contents/{quote(path.strip('/'), safe='/')}"
        )

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send one contents API request and map failures to store errors."""
        url = self._contents_url(path)
        try:
            resp = self._client.request(
                method,
                url,
                headers=self._get_headers(),
                timeout=self.config.http_timeout,
                **kwargs,
            )
        except httpx.TimeoutException:
            raise StoreTimeoutError(
                f"GitHub {method} {path} timed out after {self.config.http_timeout}s",
                path=path,
            )
        except httpx.RequestError as e:
            raise RemoteStoreError(f"GitHub {method} {path} failed: {e}", path=path)

        if resp.status_code < 400:
            return resp

        detail = _error_message(resp)
        if resp.status_code == 404:
            raise NotFoundError(f"Not found: {path}", path=path)
        if resp.status_code == 409:
            raise ConflictError(f"SHA mismatch for {path}: {detail}", path=path)
        if resp.status_code == 422 and "sha" in detail.lower():
            raise ConflictError(f"{path} already exists or changed: {detail}", path=path)

        logger.error(f"GitHub API error: {method} {path} → {resp.status_code} {detail}")
        raise RemoteStoreError(
            f"GitHub {method} {path} failed ({resp.status_code}): {detail}",
            path=path,
            upstream_status=resp.status_code,
        )

    # ── Reads ────────────────────────────────────────────────────

    def get(self, path: str) -> StoredFile:
        resp = self._request("GET", path, params={"ref": self.branch})
        data = resp.json()

        if isinstance(data, list) or data.get("type") != "file":
            raise NotFoundError(f"{path} is not a file", path=path)

        encoded = data.get("content") or ""
        if encoded.strip():
            content = base64.b64decode(encoded)
        elif data.get("size", 0) and data.get("download_url"):
            # Files over 1 MB come back without inline content
            content = self._download(path, data["download_url"])
        else:
            content = b""

        return StoredFile(
            path=data.get("path", path),
            sha=data["sha"],
            content=content,
            size=data.get("size", len(content)),
        )

    def _download(self, path: str, download_url: str) -> bytes:
        logger.debug(f"Fetching large file via download_url: {path}")
        try:
            resp = self._client.get(
                download_url,
                headers={"Authorization": f"Bearer {self.config.github_token}"},
                timeout=self.config.http_timeout,
            )
        except httpx.TimeoutException:
            raise StoreTimeoutError(f"Download of {path} timed out", path=path)
        except httpx.RequestError as e:
            raise RemoteStoreError(f"Download of {path} failed: {e}", path=path)

        if resp.status_code >= 400:
            raise RemoteStoreError(
                f"Download of {path} failed ({resp.status_code})",
                path=path,
                upstream_status=resp.status_code,
            )
        return resp.content

    def list_dir(self, path: str) -> List[DirEntry]:
        resp = self._request("GET", path, params={"ref": self.branch})
        data = resp.json()
        if not isinstance(data, list):
            raise NotFoundError(f"{path} is not a directory", path=path)
        if len(data) >= LISTING_LIMIT:
            # The contents API stops at LISTING_LIMIT entries without saying so
            raise RemoteStoreError(
                f"Listing of {path} returned {len(data)} entries and may be truncated",
                path=path,
            )

        return [
            DirEntry(
                name=item.get("name", ""),
                path=item.get("path", ""),
                type=item.get("type", "file"),
                size=item.get("size", 0),
                sha=item.get("sha", ""),
            )
            for item in data
        ]

    # ── Writes ───────────────────────────────────────────────────

    def put(
        self,
        path: str,
        content: bytes,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha

        resp = self._request("PUT", path, json=body)
        result = resp.json()
        new_sha = result.get("content", {}).get("sha", "")
        commit_sha = result.get("commit", {}).get("sha", "unknown")
        logger.debug(f"Committed {path} ({commit_sha[:8]}): {message}")
        return new_sha

    def delete(self, path: str, sha: str, message: str) -> None:
        body = {"message": message, "sha": sha, "branch": self.branch}
        self._request("DELETE", path, json=body)
        logger.debug(f"Deleted {path}: {message}")


def _error_message(resp: httpx.Response) -> str:
    try:
        return str(resp.json().get("message", ""))[:200]
    except (ValueError, AttributeError):
        return resp.text[:200]
