"""Detected divergences between local and server versions of an entity."""

from __future__ import annotations

from typing import Any, ClassVar, Optional, Union

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from .enums import EntityKind
from .types import EntityId


class ConflictRecord(SQLModel, table=True):
    """A stale update the server refused, kept until the user picks a side."""

    __tablename__: ClassVar[str] = "conflicts"

    id: str = Field(primary_key=True, max_length=96)
    entity_id: Union[int, str] = Field(
        sa_column=Column("entity_id", EntityId(), nullable=False, index=True)
    )
    entity_kind: str = Field(default=EntityKind.RECORD.value, max_length=16)
    local_version: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("local_version", JSON, nullable=False)
    )
    server_version: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("server_version", JSON, nullable=False)
    )
    detected_at: str = Field(index=True, max_length=40)
    resolved: bool = Field(default=False, index=True)
    resolution: Optional[str] = Field(default=None, max_length=16)
    resolved_at: Optional[str] = Field(default=None, max_length=40)


__all__ = ["ConflictRecord"]
