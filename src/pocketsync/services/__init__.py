"""Offline queue, conflict ledger and sync engine services."""

from .conflicts import ConflictLedger
from .connectivity import ConnectivityMonitor
from .mutation_queue import MutationQueue
from .offline import OfflineController, OfflineStatus
from .sync_engine import SyncEngine, SyncResult, SyncState, SyncStatus

__all__ = [
    "ConflictLedger",
    "ConnectivityMonitor",
    "MutationQueue",
    "OfflineController",
    "OfflineStatus",
    "SyncEngine",
    "SyncResult",
    "SyncState",
    "SyncStatus",
]
