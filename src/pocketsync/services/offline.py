"""Observable offline/sync status and actions for the UI layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..errors import PocketSyncError, StorageUnavailable
from ..logging_config import get_logger
from ..models import Category, ConflictRecord, Record
from ..models.enums import Resolution
from .sync_engine import SyncEngine, SyncResult, SyncState, SyncStatus
from .connectivity import OFFLINE, ONLINE

logger = get_logger("services.offline")


@dataclass(frozen=True)
class OfflineStatus:
    """Snapshot the UI renders: connectivity, sync progress and pending work."""

    is_online: bool
    is_syncing: bool
    last_sync: Optional[str]
    pending_count: int
    unresolved_conflicts: int = 0
    dropped_count: int = 0
    offline_available: bool = True


class OfflineController:
    """Bridges the sync engine to a UI: status snapshots, change callbacks and actions."""

    def __init__(self, engine: SyncEngine) -> None:
        self.engine = engine
        self.offline_available = True
        self._observers: list[Callable[[OfflineStatus], None]] = []
        self._unsubscribers: list[Callable[[], None]] = []

    def start(self) -> OfflineStatus:
        """Open the local store and start automatic sync.

        A missing persistent store disables offline features instead of failing.
        """
        try:
            self.engine.store.init()
        except StorageUnavailable as exc:
            logger.warning(f"Failed to initialize offline support: {exc}")
            self.offline_available = False
            return self.status()

        if not self._unsubscribers:
            self._unsubscribers = [
                self.engine.subscribe(self._on_engine_state),
                self.engine.connectivity.subscribe(ONLINE, self._notify),
                self.engine.connectivity.subscribe(OFFLINE, self._notify),
            ]
        if self.engine.scheduler is not None:
            self.engine.start_auto_sync()
        return self.status()

    def stop(self) -> None:
        self.engine.stop_auto_sync()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # ------------------------------------------------------------------ status

    def status(self) -> OfflineStatus:
        store = self.engine.store
        if not self.offline_available or not store.is_initialized:
            return OfflineStatus(
                is_online=self.engine.connectivity.is_online,
                is_syncing=self.engine.is_syncing,
                last_sync=None,
                pending_count=0,
                offline_available=self.offline_available,
            )
        return OfflineStatus(
            is_online=self.engine.connectivity.is_online,
            is_syncing=self.engine.is_syncing,
            last_sync=self.engine.last_sync(),
            pending_count=self.engine.queue.count(),
            unresolved_conflicts=len(self.engine.ledger.list(resolved=False)),
            dropped_count=len(self.engine.queue.dropped_mutations()),
        )

    def subscribe(self, callback: Callable[[OfflineStatus], None]) -> Callable[[], None]:
        """Call ``callback`` with a fresh snapshot whenever sync or connectivity changes."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _on_engine_state(self, state: SyncState) -> None:
        self._notify()

    def _notify(self) -> None:
        if not self._observers:
            return
        try:
            snapshot = self.status()
        except PocketSyncError as exc:
            logger.error(f"Could not build offline status: {exc}")
            return
        for callback in list(self._observers):
            try:
                callback(snapshot)
            except Exception as exc:
                logger.error(f"Status observer failed: {exc}", exc_info=True)

    # ------------------------------------------------------------------ actions

    def trigger_sync(self) -> SyncResult:
        """Manual sync; pull failures are raised so the UI can show an error."""
        if not self.engine.connectivity.is_online:
            logger.warning("Cannot sync while offline")
            return SyncResult(status=SyncStatus.SKIPPED_OFFLINE)
        try:
            return self.engine.sync_now(raise_on_pull_failure=True)
        finally:
            self._notify()

    def resolve_conflict(self, conflict_id: str, resolution: Resolution | str) -> ConflictRecord:
        try:
            return self.engine.resolve_conflict(conflict_id, resolution)
        finally:
            self._notify()

    def unresolved_conflicts(self) -> list[ConflictRecord]:
        return self.engine.ledger.list(resolved=False)

    def dropped_mutations(self) -> list[dict[str, Any]]:
        if not self.engine.store.is_initialized:
            return []
        return self.engine.queue.dropped_mutations()

    # ------------------------------------------------------------------ local reads

    def local_records(self) -> list[Record]:
        return self._read_local("records")

    def local_categories(self) -> list[Category]:
        return self._read_local("categories")

    def _read_local(self, table: str) -> list[Any]:
        try:
            self.engine.store.init()
            return self.engine.store.get_all(table)
        except PocketSyncError as exc:
            logger.error(f"Failed to get local {table}: {exc}")
            return []


__all__ = ["OfflineController", "OfflineStatus"]
