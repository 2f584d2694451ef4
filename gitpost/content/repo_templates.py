"""
Repository templates — files published to the backing repository.

Bootstrap writes each registered file at its path when it is missing and
rewrites it when the content differs. Only files owned by gitpost belong
here; posts and media are never templates.
"""
from __future__ import annotations

from typing import Dict

REPO_TEMPLATES: Dict[str, str] = {}
"""repository path → text content"""


def _register(rel_path: str, content: str) -> None:
    """Register a repository template."""
    REPO_TEMPLATES[rel_path] = content


# ── README.md ──────────────────────────────────────────────────────

_register("README.md", """\
# Blog content

This repository is the storage backend of a gitpost blog. It is written by
the gitpost server; edit posts through the editor rather than by hand.

## Layout

| Path | Contents |
|------|----------|
| `posts/<id>.json` | One record per post |
| `posts/meta.json` | Index of post filenames |
| `images/` | Files attached to posts |
| `content/` | Images and videos shown inside post content |

Media are served from raw URLs of this repository's branch. Files in
`images/` and `content/` that no post references are removed by
`gitpost clean-orphans`.
""")
