"""Sync context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests

from .config import BaseConfig
from .domain.remote import RemoteRecordService
from .infra.remote import build_http_session, create_remote_services
from .infra.store import LocalStore
from .models.enums import EntityKind
from .scheduler import SyncScheduler
from .services.conflicts import ConflictLedger
from .services.connectivity import ConnectivityMonitor
from .services.mutation_queue import MutationQueue
from .services.offline import OfflineController
from .services.sync_engine import SyncEngine


@dataclass
class SyncContext:
    """Explicitly constructed set of offline services sharing one store."""

    config: BaseConfig
    store: LocalStore
    queue: MutationQueue
    ledger: ConflictLedger
    connectivity: ConnectivityMonitor
    scheduler: SyncScheduler
    engine: SyncEngine
    controller: OfflineController
    http_session: Optional[requests.Session] = None

    def close(self) -> None:
        """Stop automatic sync, the scheduler and release connections."""
        self.controller.stop()
        self.scheduler.shutdown(wait=False)
        self.store.close()
        if self.http_session is not None:
            self.http_session.close()


def create_sync_context(
    config: Optional[BaseConfig] = None,
    *,
    record_service: Optional[RemoteRecordService] = None,
    category_service: Optional[RemoteRecordService] = None,
    connectivity: Optional[ConnectivityMonitor] = None,
    scheduler: Optional[SyncScheduler] = None,
    store: Optional[LocalStore] = None,
) -> SyncContext:
    """Create the offline services; the store is opened lazily on first use."""

    if config is None:
        config = BaseConfig()

    http_session = None
    if record_service is None or category_service is None:
        http_session = build_http_session(config)
        http_records, http_categories = create_remote_services(config, http_session)
        record_service = record_service or http_records
        category_service = category_service or http_categories

    store = store or LocalStore.from_config(config)
    queue = MutationQueue(store, max_retries=config.MAX_RETRY_COUNT)
    services = {EntityKind.RECORD: record_service, EntityKind.CATEGORY: category_service}
    ledger = ConflictLedger(store, queue, services)
    connectivity = connectivity or ConnectivityMonitor(
        probe_url=config.API_URL, session=http_session, timeout=config.API_TIMEOUT_SECONDS
    )
    scheduler = scheduler or SyncScheduler()
    engine = SyncEngine(
        store,
        queue,
        ledger,
        services,
        connectivity,
        scheduler=scheduler,
        interval_seconds=config.SYNC_INTERVAL_SECONDS,
    )
    return SyncContext(
        config=config,
        store=store,
        queue=queue,
        ledger=ledger,
        connectivity=connectivity,
        scheduler=scheduler,
        engine=engine,
        controller=OfflineController(engine),
        http_session=http_session,
    )


__all__ = ["SyncContext", "create_sync_context"]
