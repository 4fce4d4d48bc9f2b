"""Durable log of local writes that the server has not confirmed yet."""

from __future__ import annotations

import time
from typing import Any, ClassVar, Optional, Union

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from .types import EntityId


class MutationQueueEntry(SQLModel, table=True):
    """One pending CREATE/UPDATE/DELETE; processed in ascending ``id`` order."""

    __tablename__: ClassVar[str] = "mutation_queue"

    id: Optional[int] = Field(default=None, primary_key=True)
    op_kind: str = Field(nullable=False, max_length=8)
    entity_kind: str = Field(nullable=False, index=True, max_length=16)
    entity_id: Optional[Union[int, str]] = Field(
        default=None, sa_column=Column("entity_id", EntityId(), nullable=True)
    )
    payload: Optional[dict[str, Any]] = Field(default=None, sa_column=Column("payload", JSON))
    enqueued_at: float = Field(default_factory=time.time, index=True)
    retry_count: int = Field(default=0, nullable=False)
    # Set while an unresolved conflict holds this entry back from the push phase.
    conflict_id: Optional[str] = Field(default=None, max_length=96)

    @property
    def is_held(self) -> bool:
        return self.conflict_id is not None


__all__ = ["MutationQueueEntry"]
