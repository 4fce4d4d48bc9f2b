"""Durable key-indexed local store backing the offline client."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import delete as sa_delete
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlmodel import SQLModel, select

from ..config import BaseConfig
from ..errors import NotInitialized, StorageUnavailable
from ..logging_config import get_logger
from ..models import Category, ConflictRecord, MutationQueueEntry, Record, SyncMetadata
from .database import SCHEMA_VERSION, create_db_engine, create_session_factory, migrate_schema

logger = get_logger("infra.store")

# Logical table name -> model. Primary keys are declared on the models.
TABLES: dict[str, type[SQLModel]] = {
    "records": Record,
    "categories": Category,
    "mutation_queue": MutationQueueEntry,
    "metadata": SyncMetadata,
    "conflicts": ConflictRecord,
}


class LocalStore:
    """Five-table SQLite store with per-call sessions and no cross-table transactions.

    Every accessor raises :class:`NotInitialized` until :meth:`init` succeeds.
    Rows handed back are detached from their session, so callers may keep and
    mutate them freely before writing them back with :meth:`put`.
    """

    def __init__(
        self,
        database_url: str,
        *,
        engine_options: Optional[Mapping[str, Any]] = None,
        pragmas: Optional[Mapping[str, str]] = None,
        schema_version: int = SCHEMA_VERSION,
    ) -> None:
        self.database_url = database_url
        self._engine_options = dict(engine_options or {})
        self._pragmas = dict(pragmas or {})
        self._target_version = schema_version
        self._engine: Optional[Engine] = None
        self._session_factory = None
        self._schema_version = 0
        self._init_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: BaseConfig) -> "LocalStore":
        return cls(
            config.DATABASE_URL,
            engine_options=config.sqlalchemy_engine_options(),
            pragmas=config.SQLITE_PRAGMAS,
            schema_version=config.SCHEMA_VERSION,
        )

    # ------------------------------------------------------------------ lifecycle

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def schema_version(self) -> int:
        return self._schema_version

    def init(self) -> None:
        """Open or create the database and apply pending schema upgrades.

        Safe to call repeatedly; existing data is never cleared.
        """
        with self._init_lock:
            if self._engine is not None:
                return
            engine = None
            try:
                self._ensure_database_dir()
                engine = create_db_engine(self.database_url, self._engine_options, self._pragmas)
                version = migrate_schema(engine, self._target_version)
            except (OSError, SQLAlchemyError, ArgumentError, StorageUnavailable) as exc:
                if engine is not None:
                    engine.dispose()
                logger.warning(
                    "Persistent storage unavailable; offline features disabled",
                    extra={"database_url": self.database_url, "error": str(exc)},
                )
                raise StorageUnavailable(f"Cannot open local store: {exc}") from exc
            self._engine = engine
            self._session_factory = create_session_factory(engine)
            self._schema_version = version
            logger.info("Local store ready", extra={"schema_version": version})

    def close(self) -> None:
        """Dispose the engine; the store must be re-initialized before further use."""
        with self._init_lock:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._session_factory = None

    def _ensure_database_dir(self) -> None:
        url = make_url(self.database_url)
        if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
            return
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    def _session(self):
        if self._session_factory is None:
            raise NotInitialized()
        return self._session_factory()

    @staticmethod
    def _model(table: str) -> type[SQLModel]:
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table!r}") from None

    def _check_row(self, table: str, row: SQLModel) -> type[SQLModel]:
        model = self._model(table)
        if not isinstance(row, model):
            raise TypeError(f"Table {table!r} stores {model.__name__}, got {type(row).__name__}")
        return model

    # ------------------------------------------------------------------ keyed CRUD

    def put(self, table: str, row: SQLModel) -> SQLModel:
        """Upsert ``row`` by the table's primary key and return the stored copy."""
        self._check_row(table, row)
        with self._session() as session:
            merged = session.merge(row)
            session.flush()
            session.refresh(merged)
            session.expunge(merged)
            return merged

    def add(self, table: str, row: SQLModel) -> SQLModel:
        """Insert ``row`` letting the database assign an autoincrement key."""
        self._check_row(table, row)
        with self._session() as session:
            session.add(row)
            session.flush()
            session.refresh(row)
            session.expunge(row)
            return row

    def get(self, table: str, key: Any) -> Optional[SQLModel]:
        model = self._model(table)
        with self._session() as session:
            obj = session.get(model, key)
            if obj is not None:
                session.expunge(obj)
            return obj

    def get_all(self, table: str) -> list[SQLModel]:
        """Return every row ordered by primary key."""
        return self.query(table)

    def query(self, table: str, **equals: Any) -> list[SQLModel]:
        """Return rows whose columns equal the given values, ordered by primary key."""
        model = self._model(table)
        statement = select(model)
        for column, value in equals.items():
            statement = statement.where(getattr(model, column) == value)
        statement = statement.order_by(*model.__table__.primary_key.columns)
        with self._session() as session:
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def delete(self, table: str, key: Any) -> None:
        """Delete one row; missing keys are ignored."""
        model = self._model(table)
        with self._session() as session:
            obj = session.get(model, key)
            if obj is not None:
                session.delete(obj)

    def clear(self, table: str) -> None:
        model = self._model(table)
        with self._session() as session:
            session.connection().execute(sa_delete(model))

    def replace_all(self, table: str, rows: Iterable[SQLModel]) -> int:
        """Clear ``table`` then insert ``rows`` in a single session."""
        model = self._model(table)
        rows = list(rows)
        for row in rows:
            self._check_row(table, row)
        with self._session() as session:
            session.connection().execute(sa_delete(model))
            for row in rows:
                session.merge(row)
        return len(rows)

    # ------------------------------------------------------------------ metadata

    def get_metadata(self, key: str, default: Any = None) -> Any:
        row = self.get("metadata", key)
        if row is None:
            return default
        return row.value

    def set_metadata(self, key: str, value: Any) -> None:
        self.put("metadata", SyncMetadata(key=key, value=value))

    # ------------------------------------------------------------------ utility

    def clear_all_data(self) -> None:
        """Drop cached records, categories and pending mutations."""
        for table in ("records", "categories", "mutation_queue"):
            self.clear(table)
        logger.info("Cleared local offline data")


__all__ = ["LocalStore", "TABLES"]
