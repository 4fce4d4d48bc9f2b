"""Pull-then-push synchronization between the local store and the server."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from ..domain.remote import RemoteRecordService
from ..errors import PocketSyncError, RemoteUnreachable, RetryExhausted, VersionConflict
from ..infra.store import LocalStore
from ..logging_config import get_logger
from ..models import Category, ConflictRecord, MutationQueueEntry, Record
from ..models.enums import EntityKind, OpKind, Resolution
from ..models.metadata import LAST_SYNC_KEY
from ..models.types import EntityKey
from ..scheduler import SyncScheduler
from .conflicts import ConflictLedger
from .connectivity import ONLINE, ConnectivityMonitor
from .mutation_queue import MutationQueue
from .mutations import (
    CategoryCreate,
    CategoryDelete,
    CategoryUpdate,
    Mutation,
    RecordCreate,
    RecordDelete,
    RecordUpdate,
    mutation_from_entry,
)

logger = get_logger("services.sync_engine")

DEFAULT_SYNC_INTERVAL_SECONDS = 30.0
AUTO_SYNC_JOB_ID = "pocketsync-auto-sync"
RECONNECT_SYNC_JOB_ID = "pocketsync-reconnect-sync"
TEMP_ID_PREFIX = "tmp-"

_MODELS = {EntityKind.RECORD: Record, EntityKind.CATEGORY: Category}
_TABLES = {EntityKind.RECORD: "records", EntityKind.CATEGORY: "categories"}


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class SyncStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED_OFFLINE = "skipped-offline"
    SKIPPED_BUSY = "skipped-busy"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Outcome of one ``sync_now`` call."""

    status: SyncStatus
    records_pulled: int = 0
    categories_pulled: int = 0
    pushed: int = 0
    conflicts: int = 0
    retried: int = 0
    dropped: int = 0
    error: Optional[str] = None
    last_sync: Optional[str] = None
    conflict_ids: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is SyncStatus.COMPLETED


class AutoSyncHandle:
    """Cancellation token for automatic sync; ``cancel`` is the only teardown."""

    def __init__(
        self, scheduler: SyncScheduler, job_id: str, unsubscribe: Callable[[], None]
    ) -> None:
        self._scheduler = scheduler
        self._job_id = job_id
        self._unsubscribe = unsubscribe
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._unsubscribe()
        self._scheduler.remove_job(self._job_id)
        logger.info("Automatic sync stopped")


class _PullFailed(Exception):
    """Marks an error raised during the pull phase."""


class SyncEngine:
    """Runs sync cycles, at most one at a time per engine.

    A cycle pulls the authoritative records and categories (replacing the
    local tables) and then drains the mutation queue in FIFO order. Errors
    are logged and reported through :class:`SyncResult`; only manual callers
    that pass ``raise_on_pull_failure=True`` see pull failures raised.
    """

    def __init__(
        self,
        store: LocalStore,
        queue: MutationQueue,
        ledger: ConflictLedger,
        services: Mapping[EntityKind, RemoteRecordService],
        connectivity: ConnectivityMonitor,
        *,
        scheduler: Optional[SyncScheduler] = None,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
    ) -> None:
        missing = [kind.value for kind in EntityKind if kind not in services]
        if missing:
            raise ValueError(f"Remote services missing for: {', '.join(missing)}")
        self.store = store
        self.queue = queue
        self.ledger = ledger
        self.services = dict(services)
        self.connectivity = connectivity
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds

        self._cycle_lock = threading.Lock()
        self._state = SyncState.IDLE
        self._auto_lock = threading.Lock()
        self._auto_handle: Optional[AutoSyncHandle] = None
        self._listeners: list[Callable[[SyncState], None]] = []

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state is SyncState.SYNCING

    def subscribe(self, callback: Callable[[SyncState], None]) -> Callable[[], None]:
        """Call ``callback`` with the new state on every IDLE/SYNCING transition."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_state(self, state: SyncState) -> None:
        self._state = state
        for callback in list(self._listeners):
            try:
                callback(state)
            except Exception as exc:
                logger.error(f"Sync state listener failed: {exc}", exc_info=True)

    def last_sync(self) -> Optional[str]:
        if not self.store.is_initialized:
            return None
        return self.store.get_metadata(LAST_SYNC_KEY)

    # ------------------------------------------------------------------ cycle

    def sync_now(self, *, raise_on_pull_failure: bool = False) -> SyncResult:
        """Run one pull-then-push cycle.

        Returns immediately when offline or when another cycle is running.
        """
        if not self.connectivity.is_online:
            logger.info("Offline - skipping sync")
            return SyncResult(status=SyncStatus.SKIPPED_OFFLINE)

        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Sync already in progress")
            return SyncResult(status=SyncStatus.SKIPPED_BUSY)

        result = SyncResult(status=SyncStatus.COMPLETED)
        self._set_state(SyncState.SYNCING)
        try:
            self.store.init()
            try:
                self._pull(result)
            except Exception as exc:
                raise _PullFailed() from exc
            self._push(result)
            result.last_sync = datetime.now(timezone.utc).isoformat()
            self.store.set_metadata(LAST_SYNC_KEY, result.last_sync)
            logger.info(
                "Sync completed successfully",
                extra={
                    "records_pulled": result.records_pulled,
                    "categories_pulled": result.categories_pulled,
                    "pushed": result.pushed,
                    "conflicts": result.conflicts,
                    "retried": result.retried,
                    "dropped": result.dropped,
                },
            )
        except _PullFailed as failure:
            cause = failure.__cause__
            result.status = SyncStatus.FAILED
            result.error = str(cause)
            logger.error(f"Sync failed while pulling from server: {cause}", exc_info=cause)
            if raise_on_pull_failure:
                if isinstance(cause, PocketSyncError):
                    raise cause
                raise RemoteUnreachable(f"Pull from server failed: {cause}") from cause
        except Exception as exc:
            result.status = SyncStatus.FAILED
            result.error = str(exc)
            logger.error(f"Sync failed: {exc}", exc_info=True)
        finally:
            self._set_state(SyncState.IDLE)
            self._cycle_lock.release()
        return result

    def _pull(self, result: SyncResult) -> None:
        """Replace the local records and categories with the server's current sets."""
        records = [Record.from_payload(item) for item in self.services[EntityKind.RECORD].list()]
        categories = [
            Category.from_payload(item) for item in self.services[EntityKind.CATEGORY].list()
        ]
        result.records_pulled = self.store.replace_all("records", records)
        result.categories_pulled = self.store.replace_all("categories", categories)
        logger.info(
            f"Pulled {result.records_pulled} records and {result.categories_pulled} categories"
        )

    def _push(self, result: SyncResult) -> None:
        """Apply pending mutations in order; each entry succeeds or fails on its own."""
        entries = self.queue.pending()
        if not entries:
            logger.debug("No items in sync queue")
            return

        logger.info(f"Processing {len(entries)} items in sync queue")
        for entry in entries:
            mutation: Optional[Mutation] = None
            try:
                mutation = mutation_from_entry(entry)
                response = self._apply(mutation)
            except VersionConflict as exc:
                if exc.server_version is not None and isinstance(
                    mutation, (RecordUpdate, CategoryUpdate)
                ):
                    try:
                        conflict = self._record_conflict(entry, mutation, exc.server_version)
                    except Exception as record_exc:
                        # The entry stays queued unheld and is attempted again next cycle.
                        logger.error(
                            f"Could not record conflict for sync item {entry.id}: {record_exc}",
                            exc_info=True,
                        )
                        continue
                    result.conflicts += 1
                    result.conflict_ids.append(conflict.id)
                else:
                    self._retry_or_drop(entry, exc, result)
            except Exception as exc:
                self._retry_or_drop(entry, exc, result)
            else:
                self.queue.remove(entry.id)
                result.pushed += 1
                if isinstance(mutation, (RecordCreate, CategoryCreate)):
                    self._adopt_created(entry, response)

    def _apply(self, mutation: Mutation) -> Any:
        service = self.services[mutation.entity_kind]
        if isinstance(mutation, (RecordCreate, CategoryCreate)):
            return service.create(mutation.payload)
        elif isinstance(mutation, (RecordUpdate, CategoryUpdate)):
            return service.update(mutation.entity_id, mutation.payload)
        elif isinstance(mutation, (RecordDelete, CategoryDelete)):
            return service.delete(mutation.entity_id)
        else:
            raise TypeError(f"Unhandled mutation type: {type(mutation).__name__}")

    def _adopt_created(self, entry: MutationQueueEntry, created: Any) -> None:
        """Swap the local draft row for the row the server just created."""
        if not _is_draft_id(entry.entity_id):
            return
        kind = EntityKind(entry.entity_kind)
        self.store.delete(_TABLES[kind], entry.entity_id)
        if not isinstance(created, dict) or created.get("id") is None:
            # The server id comes back with the next pull.
            return
        try:
            self.store.put(_TABLES[kind], _MODELS[kind].from_payload(created))
        except (ValueError, PocketSyncError) as exc:
            logger.warning(f"Could not cache created {kind.value} {created.get('id')}: {exc}")

    def _record_conflict(
        self,
        entry: MutationQueueEntry,
        mutation: RecordUpdate | CategoryUpdate,
        server_version: dict[str, Any],
    ) -> ConflictRecord:
        local_version = {"id": mutation.entity_id, **mutation.payload}
        conflict = self.ledger.build(
            mutation.entity_kind, mutation.entity_id, local_version, server_version
        )
        stored = self.ledger.record(conflict)
        # Held entries are skipped by later cycles until the user resolves the conflict.
        self.queue.hold(entry, stored.id)
        return stored

    def _retry_or_drop(self, entry: MutationQueueEntry, exc: Exception, result: SyncResult) -> None:
        try:
            attempts = self.queue.bump_retry(entry)
        except RetryExhausted as exhausted:
            logger.warning(
                f"Max retries reached, dropping queued mutation: {exhausted}",
                extra={"sequence_id": entry.id, "last_error": str(exc)},
            )
            self.queue.remove(entry.id)
            self.queue.record_dropped(entry, str(exc))
            result.dropped += 1
        else:
            logger.warning(
                f"Error processing sync item {entry.id} "
                f"(attempt {attempts}/{self.queue.max_retries}): {exc}"
            )
            result.retried += 1

    # ------------------------------------------------------------------ scheduling

    def start_auto_sync(self) -> AutoSyncHandle:
        """Sync once now, then every ``interval_seconds`` while online and on reconnect.

        Idempotent: while a handle is active the same handle is returned.
        """
        if self.scheduler is None:
            raise RuntimeError("Automatic sync requires a scheduler")
        with self._auto_lock:
            if self._auto_handle is not None and not self._auto_handle.cancelled:
                return self._auto_handle
            self.scheduler.start()
            self.scheduler.add_interval_job(
                self._scheduled_sync,
                seconds=self.interval_seconds,
                job_id=AUTO_SYNC_JOB_ID,
                name="Periodic sync",
            )
            unsubscribe = self.connectivity.subscribe(ONLINE, self._handle_online)
            handle = AutoSyncHandle(self.scheduler, AUTO_SYNC_JOB_ID, unsubscribe)
            self._auto_handle = handle
        logger.info(f"Automatic sync started (every {self.interval_seconds:g}s)")
        self.sync_now()
        return handle

    def stop_auto_sync(self) -> None:
        """Disarm the timer and reconnect listener; safe to call repeatedly."""
        with self._auto_lock:
            handle, self._auto_handle = self._auto_handle, None
        if handle is not None:
            handle.cancel()

    @property
    def auto_sync_active(self) -> bool:
        return self._auto_handle is not None and not self._auto_handle.cancelled

    def _scheduled_sync(self) -> None:
        if self.connectivity.is_online:
            self.sync_now()

    def _handle_online(self) -> None:
        logger.info("Network connection restored, starting sync...")
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.run_soon(self.sync_now, job_id=RECONNECT_SYNC_JOB_ID, name="Reconnect sync")
        else:
            self.sync_now()

    # ------------------------------------------------------------------ local writes

    def queue_create(
        self, payload: dict[str, Any], *, entity_kind: EntityKind | str = EntityKind.RECORD
    ) -> MutationQueueEntry:
        """Queue a create, show it locally under a temporary id, then try to sync."""
        kind = EntityKind(entity_kind)
        self.store.init()
        draft = dict(payload)
        draft_id = None
        if draft.get("id") is None:
            draft_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex[:12]}"
            draft["id"] = draft_id
        local_row = _MODELS[kind].from_payload(draft)
        entry = self.queue.enqueue(OpKind.CREATE, kind, entity_id=draft_id, payload=payload)
        self.store.put(_TABLES[kind], local_row)
        self._sync_if_online()
        return entry

    def queue_update(
        self,
        entity_id: EntityKey,
        payload: dict[str, Any],
        *,
        entity_kind: EntityKind | str = EntityKind.RECORD,
    ) -> MutationQueueEntry:
        """Queue an update and apply it to the cached copy, then try to sync."""
        kind = EntityKind(entity_kind)
        self.store.init()
        cached = self.store.get(_TABLES[kind], entity_id)
        local_row = None
        if cached is not None:
            local_row = _MODELS[kind].from_payload({**cached.model_dump(), **payload, "id": entity_id})
        draft_create = self._pending_draft_create(kind, entity_id)
        if draft_create is not None:
            # Not on the server yet, so the edit travels with the create.
            merged = {**(draft_create.payload or {}), **payload}
            merged.pop("id", None)
            entry = self.queue.replace_payload(draft_create, merged)
        else:
            entry = self.queue.enqueue(OpKind.UPDATE, kind, entity_id=entity_id, payload=payload)
        if local_row is not None:
            self.store.put(_TABLES[kind], local_row)
        self._sync_if_online()
        return entry

    def queue_delete(
        self, entity_id: EntityKey, *, entity_kind: EntityKind | str = EntityKind.RECORD
    ) -> Optional[MutationQueueEntry]:
        """Queue a delete and drop the cached copy, then try to sync.

        Deleting a draft that was never pushed just forgets it and returns ``None``.
        """
        kind = EntityKind(entity_kind)
        self.store.init()
        if self._pending_draft_create(kind, entity_id) is not None:
            removed = self.queue.remove_for_entity(kind, entity_id)
            self.store.delete(_TABLES[kind], entity_id)
            logger.info(
                f"Discarded unsynced {kind.value} draft {entity_id}",
                extra={"entity_id": entity_id, "removed": removed},
            )
            return None
        entry = self.queue.enqueue(OpKind.DELETE, kind, entity_id=entity_id)
        self.store.delete(_TABLES[kind], entity_id)
        self._sync_if_online()
        return entry

    def _pending_draft_create(
        self, kind: EntityKind, entity_id: EntityKey
    ) -> Optional[MutationQueueEntry]:
        if not _is_draft_id(entity_id):
            return None
        return self.queue.find_create(kind, entity_id)

    def _sync_if_online(self) -> None:
        if self.connectivity.is_online:
            self.sync_now()

    # ------------------------------------------------------------------ conflicts

    def get_unresolved_conflicts(self) -> list[ConflictRecord]:
        self.store.init()
        return self.ledger.list(resolved=False)

    def resolve_conflict(self, conflict_id: str, resolution: Resolution | str) -> ConflictRecord:
        self.store.init()
        return self.ledger.resolve(conflict_id, resolution)


def _is_draft_id(entity_id: Optional[EntityKey]) -> bool:
    return isinstance(entity_id, str) and entity_id.startswith(TEMP_ID_PREFIX)


__all__ = [
    "AUTO_SYNC_JOB_ID",
    "AutoSyncHandle",
    "DEFAULT_SYNC_INTERVAL_SECONDS",
    "SyncEngine",
    "SyncResult",
    "SyncState",
    "SyncStatus",
]
