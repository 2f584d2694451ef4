"""
Store Module — Remote content store clients and repository layout.
"""

from .base import ContentStore, DirEntry, StoredFile
from .github import GitHubContentStore
from .layout import RepoLayout
from .memory import InMemoryContentStore

__all__ = [
    "ContentStore",
    "DirEntry",
    "StoredFile",
    "GitHubContentStore",
    "InMemoryContentStore",
    "RepoLayout",
]
