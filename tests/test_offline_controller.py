"""Tests for the UI-facing offline controller."""

from __future__ import annotations

import pytest
from conftest import conflict_error, make_record

from pocketsync.errors import RemoteUnreachable
from pocketsync.infra.store import LocalStore
from pocketsync.models.enums import EntityKind, OpKind
from pocketsync.services.conflicts import ConflictLedger
from pocketsync.services.mutation_queue import MutationQueue
from pocketsync.services.offline import OfflineController, OfflineStatus
from pocketsync.services.sync_engine import SyncEngine, SyncStatus


@pytest.fixture
def controller(engine):
    ctrl = OfflineController(engine)
    yield ctrl
    ctrl.stop()


def test_status_reports_pending_work(controller, queue, connectivity):
    connectivity.set_online(False)
    queue.enqueue(OpKind.DELETE, EntityKind.RECORD, entity_id=1)

    status = controller.start()

    assert status == OfflineStatus(
        is_online=False,
        is_syncing=False,
        last_sync=None,
        pending_count=1,
    )


def test_start_without_scheduler_does_not_sync(controller, record_service):
    controller.start()

    assert record_service.calls == []


def test_start_with_unavailable_storage_disables_offline(tmp_path, connectivity, services):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    store = LocalStore(f"sqlite:///{blocker / 'db' / 'offline.db'}")
    queue = MutationQueue(store)
    engine = SyncEngine(store, queue, ConflictLedger(store, queue, services), services, connectivity)
    controller = OfflineController(engine)

    status = controller.start()

    assert status.offline_available is False
    assert status.pending_count == 0
    assert controller.local_records() == []
    assert controller.dropped_mutations() == []
    assert controller.unresolved_conflicts() == []


def test_trigger_sync_while_offline_is_a_no_op(controller, connectivity, record_service):
    controller.start()
    connectivity.set_online(False)

    result = controller.trigger_sync()

    assert result.status is SyncStatus.SKIPPED_OFFLINE
    assert record_service.calls == []


def test_trigger_sync_surfaces_pull_failure(controller, record_service):
    controller.start()
    record_service.fail("list", RemoteUnreachable("server down"))

    with pytest.raises(RemoteUnreachable):
        controller.trigger_sync()


def test_trigger_sync_updates_status(controller, store):
    controller.start()

    result = controller.trigger_sync()

    assert result.ok
    status = controller.status()
    assert status.last_sync == result.last_sync
    assert [r.id for r in controller.local_records()] == [1, 2]
    assert [c.id for c in controller.local_categories()] == [3]


def test_observers_receive_snapshots(controller, connectivity):
    controller.start()
    snapshots = []
    controller.subscribe(snapshots.append)

    connectivity.set_online(False)
    connectivity.set_online(True)
    controller.trigger_sync()

    assert [s.is_online for s in snapshots[:2]] == [False, True]
    assert any(s.is_syncing for s in snapshots)
    assert snapshots[-1].is_syncing is False
    assert snapshots[-1].last_sync is not None


def test_unsubscribed_observer_is_not_called(controller, connectivity):
    controller.start()
    snapshots = []
    unsubscribe = controller.subscribe(snapshots.append)
    unsubscribe()

    connectivity.set_online(False)

    assert snapshots == []


def test_failing_observer_does_not_break_others(controller, connectivity):
    controller.start()
    seen = []

    def broken(status):
        raise RuntimeError("render failed")

    controller.subscribe(broken)
    controller.subscribe(seen.append)
    connectivity.set_online(False)

    assert len(seen) == 1


def test_conflicts_and_drops_are_counted(controller, queue, record_service):
    controller.start()
    record_service.fail("update", conflict_error(make_record(1, amount=1.0)))
    queue.enqueue(OpKind.UPDATE, EntityKind.RECORD, entity_id=1, payload={"amount": 2.0})
    record_service.fail("delete", RemoteUnreachable("HTTP 500", status_code=500))
    queue.enqueue(OpKind.DELETE, EntityKind.RECORD, entity_id=2)

    for _ in range(3):
        controller.trigger_sync()

    status = controller.status()
    assert status.unresolved_conflicts == 1
    assert status.dropped_count == 1
    assert status.pending_count == 1

    conflict = controller.unresolved_conflicts()[0]
    record_service.heal()
    controller.resolve_conflict(conflict.id, "use-server")

    status = controller.status()
    assert status.unresolved_conflicts == 0
    assert status.pending_count == 0
