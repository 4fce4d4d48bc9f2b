"""Ledger category definitions cached for offline use."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping, Optional, Union

from sqlalchemy import Column
from sqlmodel import Field, SQLModel

from .enums import RecordKind
from .types import EntityId, normalize_entity_id


class Category(SQLModel, table=True):
    """Transaction category; replaced wholesale on every pull."""

    __tablename__: ClassVar[str] = "categories"

    EDITABLE_FIELDS: ClassVar[tuple[str, ...]] = ("name", "kind", "icon")

    id: Union[int, str] = Field(sa_column=Column("id", EntityId(), primary_key=True))
    name: str = Field(nullable=False, max_length=64)
    kind: str = Field(default="expense", nullable=False, max_length=16)
    icon: Optional[str] = Field(default=None, max_length=64)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Category":
        if data.get("id") is None:
            raise ValueError("Category payload is missing an id")
        return cls(
            id=normalize_entity_id(data["id"]),
            name=str(data.get("name", "")),
            kind=RecordKind.normalize(data.get("kind", RecordKind.EXPENSE.value)).value,
            icon=data.get("icon"),
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump()


__all__ = ["Category"]
