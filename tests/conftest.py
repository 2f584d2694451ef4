"""
Shared fixtures for gitpost tests.

Provides an in-memory content store, a layout for a fixed test repository,
a sync engine with a predictable clock and identifiers, and a Flask test
app wired to the same store.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from gitpost.config.loader import BlogConfig
from gitpost.engine.index import PostIndex
from gitpost.engine.sync import PostSyncEngine
from gitpost.store.layout import RepoLayout
from gitpost.store.memory import InMemoryContentStore


class StepClock:
    """Clock that advances one minute per call."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def config() -> BlogConfig:
    return BlogConfig(
        github_token="ghp_test",
        github_owner="octo",
        github_repo="blog",
    )


@pytest.fixture
def layout(config) -> RepoLayout:
    return RepoLayout.from_config(config)


@pytest.fixture
def store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture
def ids():
    """Predictable identifiers: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def engine(store, layout, ids) -> PostSyncEngine:
    index = PostIndex(store, layout, sleep=lambda _: None)
    return PostSyncEngine(store, layout, index=index, clock=StepClock(), id_factory=ids)


@pytest.fixture
def app(store, config):
    """Flask test app backed by the in-memory store."""
    pytest.importorskip("flask")
    from gitpost.admin.server import create_app

    app = create_app(store=store, config=config)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()
