"""Remote record service protocol."""

from __future__ import annotations

from typing import Any, Protocol

from ..models.types import EntityKey


class RemoteRecordService(Protocol):
    """CRUD access to the authoritative server copy of one entity type.

    Payloads use the local field names (``kind``, ``note``, ``occurred_on``).
    Implementations raise :class:`~pocketsync.errors.RemoteUnreachable` for
    transport failures and :class:`~pocketsync.errors.VersionConflict` when
    an update is rejected as stale.
    """

    def list(self) -> list[dict[str, Any]]:
        """Return the full current set of entities."""
        ...

    def get(self, entity_id: EntityKey) -> dict[str, Any]:
        """Return one entity by id."""
        ...

    def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create an entity and return it with its server-assigned id."""
        ...

    def update(self, entity_id: EntityKey, payload: dict[str, Any]) -> dict[str, Any]:
        """Update an entity; raises VersionConflict carrying the server version."""
        ...

    def delete(self, entity_id: EntityKey) -> None:
        """Delete an entity by id."""
        ...
