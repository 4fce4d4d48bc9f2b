"""SQLModel definition for locally cached ledger records."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping, Optional, Union

from sqlalchemy import Column
from sqlmodel import Field, SQLModel

from .enums import RecordKind
from .types import EntityId, normalize_entity_id


class Record(SQLModel, table=True):
    """A single ledger transaction as last pulled from, or queued for, the server."""

    __tablename__: ClassVar[str] = "records"

    # Fields a client may change; the server owns id and timestamps.
    EDITABLE_FIELDS: ClassVar[tuple[str, ...]] = (
        "user_id",
        "category_id",
        "kind",
        "amount",
        "note",
        "occurred_on",
    )

    id: Union[int, str] = Field(sa_column=Column("id", EntityId(), primary_key=True))
    user_id: Optional[Union[int, str]] = Field(
        default=None, sa_column=Column("user_id", EntityId(), index=True)
    )
    category_id: Optional[Union[int, str]] = Field(
        default=None, sa_column=Column("category_id", EntityId(), nullable=True)
    )
    amount: float = Field(nullable=False)
    kind: str = Field(default=RecordKind.EXPENSE.value, index=True, max_length=16)
    note: Optional[str] = Field(default=None)
    occurred_on: str = Field(index=True, max_length=32, description="ISO-8601 date")
    created_at: Optional[str] = Field(default=None, max_length=40)
    updated_at: Optional[str] = Field(default=None, max_length=40)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Record":
        """Build a record from a service payload, normalizing ids and kind."""

        if data.get("id") is None:
            raise ValueError("Record payload is missing an id")
        user_id = data.get("user_id")
        category_id = data.get("category_id")
        return cls(
            id=normalize_entity_id(data["id"]),
            user_id=normalize_entity_id(user_id) if user_id is not None else None,
            category_id=normalize_entity_id(category_id) if category_id is not None else None,
            amount=float(data.get("amount", 0.0)),
            kind=RecordKind.normalize(data.get("kind", RecordKind.EXPENSE.value)).value,
            note=data.get("note"),
            occurred_on=str(data.get("occurred_on", "")),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_payload(self) -> dict[str, Any]:
        """Full snapshot suitable for queue payloads and conflict versions."""

        return self.model_dump()


__all__ = ["Record"]
