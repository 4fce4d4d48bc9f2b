"""SQLModel table exports."""

from .category import Category
from .conflict import ConflictRecord
from .enums import EntityKind, OpKind, RecordKind, Resolution
from .metadata import SyncMetadata
from .mutation import MutationQueueEntry
from .record import Record

__all__ = [
    "Category",
    "ConflictRecord",
    "EntityKind",
    "MutationQueueEntry",
    "OpKind",
    "Record",
    "RecordKind",
    "Resolution",
    "SyncMetadata",
]
