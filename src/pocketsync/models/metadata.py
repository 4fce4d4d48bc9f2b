"""Sync metadata stored in the local database."""

from __future__ import annotations

from typing import Any, ClassVar

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

LAST_SYNC_KEY = "lastSync"
SCHEMA_VERSION_KEY = "schemaVersion"
DROPPED_MUTATIONS_KEY = "droppedMutations"


class SyncMetadata(SQLModel, table=True):
    """Key-value storage for sync bookkeeping (last sync time, schema version)."""

    __tablename__: ClassVar[str] = "sync_metadata"

    key: str = Field(primary_key=True, max_length=64)
    value: Any = Field(default=None, sa_column=Column("value", JSON))


__all__ = [
    "DROPPED_MUTATIONS_KEY",
    "LAST_SYNC_KEY",
    "SCHEMA_VERSION_KEY",
    "SyncMetadata",
]
