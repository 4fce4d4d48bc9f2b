"""PocketSync offline store and synchronization engine."""

from __future__ import annotations

from .config import BaseConfig
from .context import SyncContext, create_sync_context

__all__ = ["BaseConfig", "SyncContext", "create_sync_context"]
