"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from pagechat.services.storage import MemoryKeyValueStore
from pagechat.snapshots.store import SnapshotStore, StoreConfig


class FakeClock:
    """Manually advanced wall clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def snapshot_store(kv_store: MemoryKeyValueStore, clock: FakeClock) -> SnapshotStore:
    return SnapshotStore(kv_store, config=StoreConfig(), clock=clock)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep tests away from the real home directory and PAGECHAT_* variables."""

    for name in list(os.environ):
        if name.startswith("PAGECHAT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PAGECHAT_LOG_DIR", str(tmp_path / "logs"))
