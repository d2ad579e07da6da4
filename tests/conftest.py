"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from penwright.events import EventBus
from penwright.services.article_store import ArticleStore
from penwright.services.conversation_store import ConversationStore
from penwright.services.draft_cache import DraftCache
from tests.helpers import ManualScheduler


@pytest.fixture(autouse=True)
def _isolated_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "PENWRIGHT_API_KEY",
        "PENWRIGHT_BASE_URL",
        "PENWRIGHT_MODEL",
        "PENWRIGHT_TRANSFORM_BACKEND",
        "PENWRIGHT_TRANSFORM_ENDPOINT",
        "PENWRIGHT_UPLOAD_ENDPOINT",
        "PENWRIGHT_DATA_DIR",
        "PENWRIGHT_DEBUG_LOGGING",
        "PENWRIGHT_REQUEST_TIMEOUT",
        "PENWRIGHT_TEMPERATURE",
        "PENWRIGHT_MAX_HISTORY",
        "PENWRIGHT_SETTINGS_PATH",
        "PENWRIGHT_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PENWRIGHT_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def article_store(tmp_path: Path) -> ArticleStore:
    return ArticleStore(tmp_path / "articles")


@pytest.fixture
def conversation_store(tmp_path: Path) -> ConversationStore:
    return ConversationStore(tmp_path / "conversations")


@pytest.fixture
def draft_cache(tmp_path: Path) -> DraftCache:
    return DraftCache(tmp_path / "drafts.json")
