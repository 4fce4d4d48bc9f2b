"""Typed view over queue entries: one class per (entity kind, operation)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union

from ..models.enums import EntityKind, OpKind
from ..models.mutation import MutationQueueEntry
from ..models.types import EntityKey


@dataclass(frozen=True)
class _Create:
    op_kind: ClassVar[OpKind] = OpKind.CREATE
    entity_kind: ClassVar[EntityKind]

    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class _Update:
    op_kind: ClassVar[OpKind] = OpKind.UPDATE
    entity_kind: ClassVar[EntityKind]

    entity_id: EntityKey
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class _Delete:
    op_kind: ClassVar[OpKind] = OpKind.DELETE
    entity_kind: ClassVar[EntityKind]

    entity_id: EntityKey


@dataclass(frozen=True)
class RecordCreate(_Create):
    entity_kind: ClassVar[EntityKind] = EntityKind.RECORD


@dataclass(frozen=True)
class RecordUpdate(_Update):
    entity_kind: ClassVar[EntityKind] = EntityKind.RECORD


@dataclass(frozen=True)
class RecordDelete(_Delete):
    entity_kind: ClassVar[EntityKind] = EntityKind.RECORD


@dataclass(frozen=True)
class CategoryCreate(_Create):
    entity_kind: ClassVar[EntityKind] = EntityKind.CATEGORY


@dataclass(frozen=True)
class CategoryUpdate(_Update):
    entity_kind: ClassVar[EntityKind] = EntityKind.CATEGORY


@dataclass(frozen=True)
class CategoryDelete(_Delete):
    entity_kind: ClassVar[EntityKind] = EntityKind.CATEGORY


Mutation = Union[
    RecordCreate, RecordUpdate, RecordDelete, CategoryCreate, CategoryUpdate, CategoryDelete
]

_MUTATION_TYPES: dict[tuple[OpKind, EntityKind], type] = {
    (OpKind.CREATE, EntityKind.RECORD): RecordCreate,
    (OpKind.UPDATE, EntityKind.RECORD): RecordUpdate,
    (OpKind.DELETE, EntityKind.RECORD): RecordDelete,
    (OpKind.CREATE, EntityKind.CATEGORY): CategoryCreate,
    (OpKind.UPDATE, EntityKind.CATEGORY): CategoryUpdate,
    (OpKind.DELETE, EntityKind.CATEGORY): CategoryDelete,
}


def build_mutation(
    op_kind: OpKind | str,
    entity_kind: EntityKind | str,
    entity_id: Optional[EntityKey] = None,
    payload: Optional[dict[str, Any]] = None,
) -> Mutation:
    """Validate the combination of fields and return the matching mutation type."""

    op = OpKind(op_kind)
    kind = EntityKind(entity_kind)
    cls = _MUTATION_TYPES[(op, kind)]
    if op is OpKind.CREATE:
        if payload is None:
            raise ValueError(f"CREATE {kind.value} requires a payload")
        return cls(payload=dict(payload))
    if entity_id is None:
        raise ValueError(f"{op.value} {kind.value} requires an entity id")
    if op is OpKind.UPDATE:
        if payload is None:
            raise ValueError(f"UPDATE {kind.value} requires a payload")
        return cls(entity_id=entity_id, payload=dict(payload))
    return cls(entity_id=entity_id)


def mutation_from_entry(entry: MutationQueueEntry) -> Mutation:
    return build_mutation(entry.op_kind, entry.entity_kind, entry.entity_id, entry.payload)


__all__ = [
    "CategoryCreate",
    "CategoryDelete",
    "CategoryUpdate",
    "Mutation",
    "RecordCreate",
    "RecordDelete",
    "RecordUpdate",
    "build_mutation",
    "mutation_from_entry",
]
