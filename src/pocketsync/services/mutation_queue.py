"""FIFO queue of local writes waiting to be pushed to the server."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Optional

from ..errors import RetryExhausted
from ..infra.store import LocalStore
from ..logging_config import get_logger
from ..models.enums import EntityKind, OpKind
from ..models.metadata import DROPPED_MUTATIONS_KEY
from ..models.mutation import MutationQueueEntry
from ..models.types import EntityKey
from .mutations import build_mutation

logger = get_logger("services.mutation_queue")

TABLE = "mutation_queue"
DEFAULT_MAX_RETRIES = 3
# Only the most recent drops are kept for the UI.
MAX_DROPPED_HISTORY = 50


class MutationQueue:
    """Ordered, durable log of pending CREATE/UPDATE/DELETE operations."""

    def __init__(self, store: LocalStore, *, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        self.store = store
        self.max_retries = max_retries

    def enqueue(
        self,
        op_kind: OpKind | str,
        entity_kind: EntityKind | str,
        entity_id: Optional[EntityKey] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> MutationQueueEntry:
        """Append an entry with a fresh sequence id and ``retry_count = 0``."""

        mutation = build_mutation(op_kind, entity_kind, entity_id, payload)
        entry = MutationQueueEntry(
            op_kind=mutation.op_kind.value,
            entity_kind=mutation.entity_kind.value,
            # CREATE entries keep the local draft id so later edits can find them
            entity_id=getattr(mutation, "entity_id", entity_id),
            payload=getattr(mutation, "payload", None),
            enqueued_at=time.time(),
            retry_count=0,
        )
        stored = self.store.add(TABLE, entry)
        logger.debug(
            "Queued mutation",
            extra={
                "sequence_id": stored.id,
                "op_kind": stored.op_kind,
                "entity_kind": stored.entity_kind,
                "entity_id": stored.entity_id,
            },
        )
        return stored

    def list(self) -> list[MutationQueueEntry]:
        """All entries in ascending sequence-id order."""
        return self.store.get_all(TABLE)

    def pending(self) -> list[MutationQueueEntry]:
        """Entries the push phase may attempt (not held by a conflict)."""
        return [entry for entry in self.list() if not entry.is_held]

    def count(self) -> int:
        return len(self.list())

    def get(self, sequence_id: int) -> Optional[MutationQueueEntry]:
        return self.store.get(TABLE, sequence_id)

    def remove(self, sequence_id: int) -> None:
        """Delete one entry; absent ids are ignored."""
        self.store.delete(TABLE, sequence_id)

    def remove_for_entity(
        self,
        entity_kind: EntityKind | str,
        entity_id: EntityKey,
        op_kind: Optional[OpKind | str] = None,
    ) -> int:
        """Remove entries that reference the given entity, optionally of one op kind."""
        filters: dict[str, Any] = {
            "entity_kind": EntityKind(entity_kind).value,
            "entity_id": entity_id,
        }
        if op_kind is not None:
            filters["op_kind"] = OpKind(op_kind).value
        matches = self.store.query(TABLE, **filters)
        for entry in matches:
            self.store.delete(TABLE, entry.id)
        return len(matches)

    def find_create(
        self, entity_kind: EntityKind | str, draft_id: EntityKey
    ) -> Optional[MutationQueueEntry]:
        """The queued CREATE for a locally drafted entity, if it has not been pushed yet."""
        matches = self.store.query(
            TABLE,
            entity_kind=EntityKind(entity_kind).value,
            entity_id=draft_id,
            op_kind=OpKind.CREATE.value,
        )
        return matches[0] if matches else None

    def replace_payload(
        self, entry: MutationQueueEntry, payload: dict[str, Any]
    ) -> MutationQueueEntry:
        """Rewrite the payload of a queued entry in place, keeping its position."""
        if OpKind(entry.op_kind) is OpKind.DELETE:
            raise ValueError("DELETE entries carry no payload")
        mutation = build_mutation(entry.op_kind, entry.entity_kind, entry.entity_id, payload)
        entry.payload = dict(mutation.payload)
        return self.store.put(TABLE, entry)

    def hold(self, entry: MutationQueueEntry, conflict_id: str) -> MutationQueueEntry:
        """Park an entry until the named conflict is resolved."""
        entry.conflict_id = conflict_id
        return self.store.put(TABLE, entry)

    def bump_retry(self, entry: MutationQueueEntry) -> int:
        """Increment and persist the retry counter.

        Raises:
            RetryExhausted: once the counter reaches ``max_retries``; the
                entry is left in place for the caller to drop.
        """
        entry.retry_count += 1
        if entry.retry_count >= self.max_retries:
            raise RetryExhausted(entry)
        self.store.put(TABLE, entry)
        return entry.retry_count

    def record_dropped(self, entry: MutationQueueEntry, reason: str) -> None:
        """Remember a mutation dropped after retry exhaustion so the UI can surface it."""
        history = list(self.store.get_metadata(DROPPED_MUTATIONS_KEY, []) or [])
        history.append(
            {
                "sequence_id": entry.id,
                "op_kind": entry.op_kind,
                "entity_kind": entry.entity_kind,
                "entity_id": entry.entity_id,
                "payload": entry.payload,
                "retry_count": entry.retry_count,
                "reason": reason,
                "dropped_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        self.store.set_metadata(DROPPED_MUTATIONS_KEY, history[-MAX_DROPPED_HISTORY:])

    def dropped_mutations(self) -> list[dict[str, Any]]:
        return list(self.store.get_metadata(DROPPED_MUTATIONS_KEY, []) or [])

    def clear_dropped(self) -> None:
        self.store.set_metadata(DROPPED_MUTATIONS_KEY, [])


__all__ = ["DEFAULT_MAX_RETRIES", "MutationQueue"]
