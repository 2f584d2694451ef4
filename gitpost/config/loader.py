"""
Config Loader — Load repository credentials from a master key or env vars.

Supports two modes:
1. Master JSON key: Single GITPOST_CONFIG env var with all settings
2. Individual keys: Separate env vars (fallback, and fills gaps)

## Usage

    # Option 1: Master config (one deployment secret)
    export GITPOST_CONFIG='{"github_token": "ghp_xxx", "github_owner": "me", "github_repo": "blog"}'

    # Option 2: Individual keys
    export GITHUB_TOKEN="ghp_xxx"
    export GITHUB_OWNER="me"
    export GITHUB_REPO="blog"

The loader tries master config first, then falls back to individual keys.
Token, owner and repository are required: `BlogConfig.require()` raises
ConfigError when any of them is missing.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_RAW_URL = "https://raw.githubusercontent.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_UPLOAD_MB = 100
DEFAULT_PORT = 5000


@dataclass
class BlogConfig:
    """Everything needed to talk to the backing repository."""

    # GitHub
    github_token: Optional[str] = None
    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_branch: str = DEFAULT_BRANCH
    github_api_url: str = DEFAULT_API_URL
    github_raw_url: str = DEFAULT_RAW_URL

    # Transport
    http_timeout: float = DEFAULT_TIMEOUT_SECONDS

    # Server
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB
    port: int = DEFAULT_PORT

    @property
    def repository(self) -> str:
        """owner/repo slug."""
        return f"{self.github_owner}/{self.github_repo}"

    def missing(self) -> List[str]:
        """Names of required variables that are not set."""
        required = {
            "GITHUB_TOKEN": self.github_token,
            "GITHUB_OWNER": self.github_owner,
            "GITHUB_REPO": self.github_repo,
        }
        return [name for name, value in required.items() if not value]

    def require(self) -> "BlogConfig":
        """Fail fast when credentials are incomplete."""
        missing = self.missing()
        if missing:
            raise ConfigError(
                f"Missing required configuration: {', '.join(missing)}"
            )
        return self

    def describe(self) -> Dict[str, Any]:
        """Loggable summary (token redacted)."""
        return {
            "repository": self.repository,
            "branch": self.github_branch,
            "api_url": self.github_api_url,
            "token": "set" if self.github_token else "not set",
            "timeout": self.http_timeout,
        }


def load_config() -> BlogConfig:
    """
    Load configuration from master key or individual env vars.

    Priority:
    1. GITPOST_CONFIG (master JSON)
    2. Individual environment variables

    Returns:
        BlogConfig with every value that could be found
    """
    config = BlogConfig()

    master_config = os.environ.get("GITPOST_CONFIG")
    if master_config:
        try:
            data = json.loads(master_config)
            config = _parse_master_config(data)
            logger.info("Loaded configuration from GITPOST_CONFIG")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid GITPOST_CONFIG JSON: {e}")
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to parse GITPOST_CONFIG: {e}")

    return _load_individual_vars(config)


def _pick(data: Dict[str, Any], key: str) -> Any:
    return data.get(key) or data.get(key.upper())


def _parse_master_config(data: Dict[str, Any]) -> BlogConfig:
    """Parse master config JSON into a BlogConfig."""
    if not isinstance(data, dict):
        raise TypeError("GITPOST_CONFIG must be a JSON object")

    return BlogConfig(
        github_token=_pick(data, "github_token"),
        github_owner=_pick(data, "github_owner"),
        github_repo=_pick(data, "github_repo"),
        github_branch=_pick(data, "github_branch") or DEFAULT_BRANCH,
        github_api_url=_pick(data, "github_api_url") or DEFAULT_API_URL,
        github_raw_url=_pick(data, "github_raw_url") or DEFAULT_RAW_URL,
        http_timeout=float(_pick(data, "gitpost_http_timeout") or DEFAULT_TIMEOUT_SECONDS),
        max_upload_mb=int(_pick(data, "gitpost_max_upload_mb") or DEFAULT_MAX_UPLOAD_MB),
        port=int(_pick(data, "port") or DEFAULT_PORT),
    )


def _env_number(name: str, current, default, cast):
    """Env var wins only when the master config left the default in place."""
    raw = os.environ.get(name)
    if raw is None or current != default:
        return current
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {current}")
        return current


def _load_individual_vars(existing: BlogConfig) -> BlogConfig:
    """Load from individual env vars, filling in missing values."""

    def _str(current: Optional[str], name: str, default: Optional[str] = None):
        if current and current != default:
            return current
        return os.environ.get(name) or current

    return BlogConfig(
        github_token=_str(existing.github_token, "GITHUB_TOKEN"),
        github_owner=_str(existing.github_owner, "GITHUB_OWNER"),
        github_repo=_str(existing.github_repo, "GITHUB_REPO"),
        github_branch=_str(existing.github_branch, "GITHUB_BRANCH", DEFAULT_BRANCH),
        github_api_url=_str(existing.github_api_url, "GITHUB_API_URL", DEFAULT_API_URL).rstrip("/"),
        github_raw_url=_str(existing.github_raw_url, "GITHUB_RAW_URL", DEFAULT_RAW_URL).rstrip("/"),
        http_timeout=_env_number(
            "GITPOST_HTTP_TIMEOUT", existing.http_timeout, DEFAULT_TIMEOUT_SECONDS, float
        ),
        max_upload_mb=_env_number(
            "GITPOST_MAX_UPLOAD_MB", existing.max_upload_mb, DEFAULT_MAX_UPLOAD_MB, int
        ),
        port=_env_number("PORT", existing.port, DEFAULT_PORT, int),
    )


def generate_master_config_template() -> str:
    """Generate a template for GITPOST_CONFIG."""
    template = {
        "github_token": "ghp_xxxxx",
        "github_owner": "your-user",
        "github_repo": "your-blog-repo",
        "github_branch": DEFAULT_BRANCH,
    }
    return json.dumps(template, indent=2)
