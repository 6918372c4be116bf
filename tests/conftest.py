"""Pytest configuration and fixtures for offline-kit tests."""

import pytest

from offline_kit.storage.file import FileStorage
from offline_kit.storage.memory import MemoryStorage
from offline_kit.storage.sqlite import SqliteStorage


class FakeClock:
    """A controllable millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    """Fixture providing a fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def memory_storage(clock):
    """Fixture providing an empty memory adapter on the fake clock."""
    return MemoryStorage(clock=clock)


@pytest.fixture(params=["memory", "file", "sqlite"])
def storage(request, tmp_path, clock):
    """Fixture providing each adapter implementation in turn."""
    if request.param == "memory":
        return MemoryStorage(clock=clock)
    if request.param == "file":
        return FileStorage(tmp_path / "store.json", clock=clock)
    return SqliteStorage(tmp_path / "store.sqlite", clock=clock)
