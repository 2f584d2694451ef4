"""
Reliability Module — Conflict retries for shared repository files.
"""

from .retry import retry_on_conflict

__all__ = ["retry_on_conflict"]
