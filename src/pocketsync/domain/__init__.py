"""Protocol definitions for external collaborators."""

from .remote import RemoteRecordService

__all__ = ["RemoteRecordService"]
