"""Database infrastructure: engine, sessions and versioned schema upgrades."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from sqlalchemy import event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from ..errors import StorageUnavailable
from ..logging_config import get_logger
from ..models import Category, ConflictRecord, MutationQueueEntry, Record, SyncMetadata
from ..models.metadata import SCHEMA_VERSION_KEY

logger = get_logger("infra.database")

# Tables introduced by each schema version. Upgrades only ever add tables.
SCHEMA_TABLES: dict[int, tuple[type[SQLModel], ...]] = {
    1: (Record, Category, MutationQueueEntry, SyncMetadata),
    2: (ConflictRecord,),
}
SCHEMA_VERSION = max(SCHEMA_TABLES)


def _is_memory_url(database_url: str) -> bool:
    return database_url in {"sqlite://", "sqlite:///:memory:"}


def create_db_engine(
    database_url: str,
    engine_options: Optional[Mapping[str, Any]] = None,
    pragmas: Optional[Mapping[str, str]] = None,
) -> Engine:
    """Create a SQLModel engine, applying SQLite pragmas on every connection."""

    options = dict(engine_options or {})
    if _is_memory_url(database_url):
        # One shared connection, otherwise every session sees an empty database.
        options.setdefault("poolclass", StaticPool)
        options.setdefault("connect_args", {}).setdefault("check_same_thread", False)
    engine = create_engine(database_url, **options)

    if pragmas and database_url.startswith("sqlite") and not _is_memory_url(database_url):

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:  # pragma: no cover
            cursor = dbapi_connection.cursor()
            for name, value in pragmas.items():
                cursor.execute(f"PRAGMA {name}={value}")
            cursor.close()

    return engine


def create_session_factory(engine: Engine):
    """Create a session factory function."""

    @contextmanager
    def factory() -> Iterator[Session]:
        """Create a new session."""
        session = Session(engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return factory


def read_schema_version(engine: Engine) -> int:
    """Return the schema version recorded in the database (0 for a fresh file)."""

    inspector = inspect(engine)
    if not inspector.has_table(SyncMetadata.__tablename__):
        return 0
    with Session(engine) as session:
        row = session.get(SyncMetadata, SCHEMA_VERSION_KEY)
    if row is None or row.value is None:
        # Tables from before version tracking existed.
        return 1 if inspector.has_table(Record.__tablename__) else 0
    return int(row.value)


def migrate_schema(engine: Engine, target_version: int = SCHEMA_VERSION) -> int:
    """Create tables for every version above the recorded one, up to ``target_version``."""

    current = read_schema_version(engine)
    if current > target_version:
        raise StorageUnavailable(
            f"Database schema version {current} is newer than supported version {target_version}"
        )
    for version in range(current + 1, target_version + 1):
        tables = [model.__table__ for model in SCHEMA_TABLES[version]]
        SQLModel.metadata.create_all(engine, tables=tables, checkfirst=True)
        with Session(engine) as session:
            session.merge(SyncMetadata(key=SCHEMA_VERSION_KEY, value=version))
            session.commit()
        logger.info(
            "Applied schema upgrade",
            extra={"schema_version": version, "tables": [t.name for t in tables]},
        )
    return max(current, target_version)


__all__ = [
    "SCHEMA_TABLES",
    "SCHEMA_VERSION",
    "create_db_engine",
    "create_session_factory",
    "migrate_schema",
    "read_schema_version",
]
