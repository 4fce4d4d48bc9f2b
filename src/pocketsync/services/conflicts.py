"""Conflict ledger: stores divergent versions until the user picks one."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..domain.remote import RemoteRecordService
from ..errors import ConflictNotFound
from ..infra.store import LocalStore
from ..logging_config import get_logger
from ..models import Category, ConflictRecord, Record
from ..models.enums import EntityKind, Resolution
from ..models.types import EntityKey
from .mutation_queue import MutationQueue

logger = get_logger("services.conflicts")

TABLE = "conflicts"

_EDITABLE_FIELDS = {
    EntityKind.RECORD: Record.EDITABLE_FIELDS,
    EntityKind.CATEGORY: Category.EDITABLE_FIELDS,
}


def conflict_id_for(entity_id: EntityKey, detected_ms: Optional[int] = None) -> str:
    """Return ``conflict-{epoch-ms}-{entityId}``, unique and sortable by time."""

    if detected_ms is None:
        detected_ms = int(time.time() * 1000)
    return f"conflict-{detected_ms}-{entity_id}"


def editable_fields(entity_kind: EntityKind | str, version: Mapping[str, Any]) -> dict[str, Any]:
    """Subset of ``version`` a client is allowed to send back to the server."""

    allowed = _EDITABLE_FIELDS[EntityKind(entity_kind)]
    return {key: version[key] for key in allowed if key in version}


class ConflictLedger:
    """Durable record of rejected stale updates; never merges automatically."""

    def __init__(
        self,
        store: LocalStore,
        queue: MutationQueue,
        services: Mapping[EntityKind, RemoteRecordService],
    ) -> None:
        self.store = store
        self.queue = queue
        self.services = dict(services)

    def build(
        self,
        entity_kind: EntityKind | str,
        entity_id: EntityKey,
        local_version: Mapping[str, Any],
        server_version: Mapping[str, Any],
    ) -> ConflictRecord:
        now = datetime.now(timezone.utc)
        return ConflictRecord(
            id=conflict_id_for(entity_id, int(now.timestamp() * 1000)),
            entity_id=entity_id,
            entity_kind=EntityKind(entity_kind).value,
            local_version=dict(local_version),
            server_version=dict(server_version),
            detected_at=now.isoformat(),
            resolved=False,
        )

    def record(self, conflict: ConflictRecord) -> ConflictRecord:
        """Upsert a conflict record."""
        stored = self.store.put(TABLE, conflict)
        logger.warning(
            "Conflict detected",
            extra={"conflict_id": stored.id, "entity_id": stored.entity_id},
        )
        return stored

    def list(self, resolved: Optional[bool] = None) -> list[ConflictRecord]:
        """Conflicts ordered by detection time; empty when the store is not ready."""
        if not self.store.is_initialized:
            return []
        if resolved is None:
            rows = self.store.get_all(TABLE)
        else:
            rows = self.store.query(TABLE, resolved=resolved)
        return sorted(rows, key=lambda c: (c.detected_at, c.id))

    def get(self, conflict_id: str) -> Optional[ConflictRecord]:
        return self.store.get(TABLE, conflict_id)

    def delete(self, conflict_id: str) -> None:
        self.store.delete(TABLE, conflict_id)

    def clear_resolved(self) -> int:
        resolved = self.list(resolved=True)
        for conflict in resolved:
            self.store.delete(TABLE, conflict.id)
        return len(resolved)

    def resolve(self, conflict_id: str, resolution: Resolution | str) -> ConflictRecord:
        """Push the chosen version to the server and mark the conflict resolved.

        Raises:
            ConflictNotFound: no conflict with ``conflict_id``
            ValueError: ``resolution`` is not use-local / use-server
        """
        choice = Resolution(resolution)
        if choice is Resolution.MERGE:
            raise ValueError("Merge resolution is not supported; choose use-local or use-server")

        conflict = self.get(conflict_id)
        if conflict is None:
            raise ConflictNotFound(conflict_id)

        kind = EntityKind(conflict.entity_kind)
        chosen = conflict.local_version if choice is Resolution.USE_LOCAL else conflict.server_version
        self.services[kind].update(conflict.entity_id, editable_fields(kind, chosen))

        conflict.resolved = True
        conflict.resolution = choice.value
        conflict.resolved_at = datetime.now(timezone.utc).isoformat()
        stored = self.store.put(TABLE, conflict)

        # The resolution supersedes every queued change to the entity.
        removed = self.queue.remove_for_entity(kind, conflict.entity_id)
        logger.info(
            "Conflict resolved",
            extra={
                "conflict_id": conflict_id,
                "resolution": choice.value,
                "removed_queue_entries": removed,
            },
        )
        return stored


__all__ = ["ConflictLedger", "conflict_id_for", "editable_fields"]
