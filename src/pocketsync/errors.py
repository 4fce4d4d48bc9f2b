"""Error taxonomy surfaced by the offline store and sync engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .models.mutation import MutationQueueEntry


class PocketSyncError(Exception):
    """Base class for every failure raised by this package."""


class StorageUnavailable(PocketSyncError):
    """No persistent store can be opened; offline features should be disabled."""


class NotInitialized(PocketSyncError):
    """The local store was used before ``init()`` completed."""

    def __init__(self, message: str = "Local store not initialized; call init() first") -> None:
        super().__init__(message)


class RemoteUnreachable(PocketSyncError):
    """Network or transport failure talking to the remote record service."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VersionConflict(PocketSyncError):
    """The server rejected an update because the local copy is stale (HTTP 409)."""

    def __init__(
        self,
        message: str = "Server version differs from local version",
        *,
        server_version: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.server_version = server_version


class ConflictNotFound(PocketSyncError):
    """``resolve`` was called with an unknown conflict id."""

    def __init__(self, conflict_id: str) -> None:
        super().__init__(f"Conflict not found: {conflict_id}")
        self.conflict_id = conflict_id


class RetryExhausted(PocketSyncError):
    """A queued mutation hit the retry ceiling and is being dropped."""

    def __init__(self, entry: "MutationQueueEntry") -> None:
        super().__init__(
            f"Mutation {entry.id} ({entry.op_kind} {entry.entity_kind}) "
            f"failed {entry.retry_count} times"
        )
        self.entry = entry


__all__ = [
    "ConflictNotFound",
    "NotInitialized",
    "PocketSyncError",
    "RemoteUnreachable",
    "RetryExhausted",
    "StorageUnavailable",
    "VersionConflict",
]
