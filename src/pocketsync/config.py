"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    """Read a numeric environment variable, falling back on bad input."""

    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "PocketSync"
    DB_FILENAME = "pocketsync.db"
    SCHEMA_VERSION = 2
    MAX_RETRY_COUNT = 3
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on"}

    def __init__(self) -> None:
        self.DEV_MODE = _env_bool("POCKETSYNC_DEV_MODE", default=True)
        self.DATA_DIR = self._resolve_data_dir()
        self.DATABASE_URL = os.getenv("POCKETSYNC_DATABASE_URL", self._build_sqlite_url())
        self.API_URL = os.getenv("POCKETSYNC_API_URL", "http://127.0.0.1:8000/api").rstrip("/")
        self.RECORDS_PATH = os.getenv("POCKETSYNC_RECORDS_PATH", "/transactions")
        self.CATEGORIES_PATH = os.getenv("POCKETSYNC_CATEGORIES_PATH", "/categories")
        self.API_TOKEN = os.getenv("POCKETSYNC_API_TOKEN")
        self.API_TIMEOUT_SECONDS = _env_float("POCKETSYNC_API_TIMEOUT", 10.0)
        self.SYNC_INTERVAL_SECONDS = _env_float("POCKETSYNC_SYNC_INTERVAL", 30.0)
        if self.SYNC_INTERVAL_SECONDS <= 0:
            raise ValueError("POCKETSYNC_SYNC_INTERVAL must be a positive number of seconds.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite file and logs live."""

        data_root = os.getenv("POCKETSYNC_DATA_DIR", "instance")
        base_path = Path(data_root).expanduser()
        try:
            path = base_path.resolve()
            path.mkdir(parents=True, exist_ok=True)
            return path
        except PermissionError:
            # Read-only install locations fall back to user-local storage.
            local_app_data = os.getenv("LOCALAPPDATA") or (Path.home() / ".local" / "share")
            fallback_path = Path(local_app_data).expanduser() / self.APP_NAME
            fallback_path.mkdir(parents=True, exist_ok=True)
            return fallback_path.resolve()

    def _build_sqlite_url(self) -> str:
        """Construct the default SQLite URL inside the data directory."""

        db_path = self.DATA_DIR / self.DB_FILENAME
        return f"sqlite:///{db_path}"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        connect_args: dict[str, Any] = {}
        if self.DATABASE_URL.startswith("sqlite"):
            # Scheduled sync cycles run on worker threads.
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = 30
        return {"connect_args": connect_args}

    @property
    def records_url(self) -> str:
        return f"{self.API_URL}{self.RECORDS_PATH}"

    @property
    def categories_url(self) -> str:
        return f"{self.API_URL}{self.CATEGORIES_PATH}"
