"""Enumerations for queue operations, entity kinds and conflict resolutions."""

from __future__ import annotations

from enum import Enum


class OpKind(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class EntityKind(str, Enum):
    RECORD = "record"
    CATEGORY = "category"


class RecordKind(str, Enum):
    """Direction of money flow for a record."""

    INCOME = "income"
    EXPENSE = "expense"

    @classmethod
    def normalize(cls, value: str) -> "RecordKind":
        """Map server spellings onto the two kinds.

        The server calls inflow ``withdrawal`` (``deposit`` before its rename).
        """

        lowered = str(value).strip().lower()
        if lowered in {"income", "deposit", "withdrawal", "inflow"}:
            return cls.INCOME
        if lowered in {"expense", "outflow"}:
            return cls.EXPENSE
        raise ValueError(f"Unknown record kind: {value!r}")


class Resolution(str, Enum):
    USE_LOCAL = "use-local"
    USE_SERVER = "use-server"
    MERGE = "merge"


__all__ = ["EntityKind", "OpKind", "RecordKind", "Resolution"]
