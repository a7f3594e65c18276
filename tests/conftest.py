"""Common test fixtures for the notesync client."""

import pytest

from notesync.config import config
from notesync.observability import metrics
from notesync.services.sync_service import NoteSyncService
from notesync.storage.cache import NoteCache
from notesync.storage.memory_store import MemoryStore
from tests.fakes import (
    SAVE_DELAY,
    SAVED_DISPLAY,
    SYNCED_DISPLAY,
    FakeClock,
    FakeNotesClient,
    ImmediateExecutor,
    TimerRecorder,
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep tests away from real API settings and the user's cache."""
    monkeypatch.delenv("NOTESYNC_API_BASE", raising=False)
    monkeypatch.delenv("NOTESYNC_BACKEND_URL", raising=False)
    monkeypatch.setattr(config, "api_base_url", None)
    monkeypatch.setattr(config, "cache_path", tmp_path / "cache.db")
    metrics.reset()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache(store):
    return NoteCache(store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return TimerRecorder()


@pytest.fixture
def remote():
    """A configured but unreachable remote by default."""
    return FakeNotesClient(configured=True)


@pytest.fixture
def local_remote():
    """A remote with no base URL."""
    return FakeNotesClient(configured=False)


@pytest.fixture
def make_service(cache, remote, timers, clock):
    """Build a NoteSyncService over the shared fakes."""

    def _make(client=None, executor=None):
        return NoteSyncService(
            cache,
            client if client is not None else remote,
            save_delay=SAVE_DELAY,
            saved_display=SAVED_DISPLAY,
            synced_display=SYNCED_DISPLAY,
            executor=executor if executor is not None else ImmediateExecutor(),
            timer_factory=timers,
            clock=clock,
        )

    return _make
