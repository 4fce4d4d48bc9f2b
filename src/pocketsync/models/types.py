"""Custom column types shared by the offline tables."""

from __future__ import annotations

from typing import Optional, Union

from sqlalchemy.types import String, TypeDecorator

EntityKey = Union[int, str]


class EntityId(TypeDecorator):
    """Identifier column that keeps server ints and temporary string ids apart.

    Values are stored tagged (``i:42`` / ``s:tmp-1``) so that ``42`` and
    ``"42"`` never collide and come back with their original Python type.
    """

    impl = String(128)
    cache_ok = True

    def process_bind_param(self, value: Optional[EntityKey], dialect) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool):
            raise TypeError("Entity ids must be int or str, not bool")
        if isinstance(value, int):
            return f"i:{value}"
        if isinstance(value, str):
            return f"s:{value}"
        raise TypeError(f"Entity ids must be int or str, got {type(value).__name__}")

    def process_result_value(self, value: Optional[str], dialect) -> Optional[EntityKey]:
        if value is None:
            return None
        tag, _, raw = value.partition(":")
        if tag == "i":
            return int(raw)
        if tag == "s":
            return raw
        # Untagged values written by other tools
        return int(value) if value.lstrip("-").isdigit() else value


def normalize_entity_id(value: EntityKey) -> EntityKey:
    """Coerce numeric strings from the wire into ints; keep temporary ids as str."""

    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return value


__all__ = ["EntityId", "EntityKey", "normalize_entity_id"]
