"""Pytest configuration and shared fixtures for PocketSync tests.

This module provides an isolated SQLite store per test, in-memory fakes of the
remote record service that record every call, and factories for the queue,
conflict ledger, connectivity monitor and sync engine.
"""

from __future__ import annotations

import threading
from typing import Any, Optional

import pytest

from pocketsync.errors import RemoteUnreachable, VersionConflict
from pocketsync.infra.store import LocalStore
from pocketsync.models.enums import EntityKind
from pocketsync.scheduler import SyncScheduler
from pocketsync.services.conflicts import ConflictLedger
from pocketsync.services.connectivity import ConnectivityMonitor
from pocketsync.services.mutation_queue import MutationQueue
from pocketsync.services.sync_engine import SyncEngine


@pytest.fixture(autouse=True)
def _isolated_data_dir(tmp_path, monkeypatch):
    """Keep BaseConfig() from writing into the working directory."""
    monkeypatch.setenv("POCKETSYNC_DATA_DIR", str(tmp_path / "instance"))
    monkeypatch.delenv("POCKETSYNC_DATABASE_URL", raising=False)
    monkeypatch.delenv("POCKETSYNC_API_TOKEN", raising=False)


# =============================================================================
# Remote service fake
# =============================================================================


class FakeRecordService:
    """In-memory stand-in for the remote record service.

    Every call is appended to ``calls`` as ``(method, args)``. Failures can be
    scripted per method with :meth:`fail`; ``list_gate`` blocks ``list`` until
    the event is set, which lets tests hold a sync cycle open.
    """

    def __init__(self, items: Optional[list[dict[str, Any]]] = None, *, next_id: int = 1000):
        self.items: dict[Any, dict[str, Any]] = {item["id"]: dict(item) for item in items or []}
        self.calls: list[tuple[str, tuple]] = []
        self.next_id = next_id
        self.list_gate: Optional[threading.Event] = None
        self.list_entered = threading.Event()
        self._failures: dict[str, list[Exception]] = {}
        self._always_fail: dict[str, Exception] = {}

    def fail(self, method: str, exc: Exception, *, times: Optional[int] = None) -> None:
        """Raise ``exc`` from ``method``; forever when ``times`` is None."""
        if times is None:
            self._always_fail[method] = exc
        else:
            self._failures.setdefault(method, []).extend([exc] * times)

    def heal(self) -> None:
        self._failures.clear()
        self._always_fail.clear()

    def calls_for(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def _enter(self, method: str, *args) -> None:
        self.calls.append((method, args))
        if method in self._always_fail:
            raise self._always_fail[method]
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def list(self) -> list[dict[str, Any]]:
        self.list_entered.set()
        if self.list_gate is not None:
            self.list_gate.wait(timeout=5)
        self._enter("list")
        return [dict(item) for item in self.items.values()]

    def get(self, entity_id):
        self._enter("get", entity_id)
        if entity_id not in self.items:
            raise RemoteUnreachable(f"{entity_id} not found", status_code=404)
        return dict(self.items[entity_id])

    def create(self, payload):
        self._enter("create", payload)
        item = {**payload, "id": self.next_id}
        self.next_id += 1
        self.items[item["id"]] = item
        return dict(item)

    def update(self, entity_id, payload):
        self._enter("update", entity_id, payload)
        if entity_id not in self.items:
            raise RemoteUnreachable(f"{entity_id} not found", status_code=404)
        self.items[entity_id].update(payload)
        return dict(self.items[entity_id])

    def delete(self, entity_id):
        self._enter("delete", entity_id)
        self.items.pop(entity_id, None)


def make_record(record_id, **overrides) -> dict[str, Any]:
    """Server-shaped record payload with sensible defaults."""
    data = {
        "id": record_id,
        "user_id": 1,
        "category_id": 3,
        "amount": 42.5,
        "kind": "expense",
        "note": "Groceries",
        "occurred_on": "2024-03-01",
        "created_at": "2024-03-01T10:00:00+00:00",
        "updated_at": "2024-03-01T10:00:00+00:00",
    }
    data.update(overrides)
    return data


def make_category(category_id, **overrides) -> dict[str, Any]:
    data = {"id": category_id, "name": f"Category {category_id}", "kind": "expense", "icon": None}
    data.update(overrides)
    return data


def conflict_error(server_version: Optional[dict[str, Any]]) -> VersionConflict:
    return VersionConflict("stale update", server_version=server_version)


# =============================================================================
# Store and service fixtures
# =============================================================================


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'offline.db'}"


@pytest.fixture
def store(db_url):
    """An initialized store backed by a temporary SQLite file."""
    # Sync cycles in these tests also run on worker threads.
    local_store = LocalStore(db_url, engine_options={"connect_args": {"check_same_thread": False}})
    local_store.init()
    yield local_store
    local_store.close()


@pytest.fixture
def queue(store) -> MutationQueue:
    return MutationQueue(store)


@pytest.fixture
def record_service() -> FakeRecordService:
    return FakeRecordService([make_record(1), make_record(2, amount=10.0, kind="income")])


@pytest.fixture
def category_service() -> FakeRecordService:
    return FakeRecordService([make_category(3, name="Food")], next_id=500)


@pytest.fixture
def services(record_service, category_service):
    return {EntityKind.RECORD: record_service, EntityKind.CATEGORY: category_service}


@pytest.fixture
def ledger(store, queue, services) -> ConflictLedger:
    return ConflictLedger(store, queue, services)


@pytest.fixture
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


@pytest.fixture
def engine(store, queue, ledger, services, connectivity) -> SyncEngine:
    """Engine without a scheduler; cycles run only when a test calls them."""
    return SyncEngine(store, queue, ledger, services, connectivity)


@pytest.fixture
def scheduler():
    sync_scheduler = SyncScheduler()
    yield sync_scheduler
    sync_scheduler.shutdown(wait=False)


@pytest.fixture
def auto_engine(store, queue, ledger, services, connectivity, scheduler) -> SyncEngine:
    engine = SyncEngine(store, queue, ledger, services, connectivity, scheduler=scheduler)
    yield engine
    engine.stop_auto_sync()
