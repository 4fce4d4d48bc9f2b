"""Tests for the local store: lifecycle, keyed CRUD and schema upgrades."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect
from sqlmodel import Session

from pocketsync.errors import NotInitialized, StorageUnavailable
from pocketsync.infra.database import create_db_engine, migrate_schema, read_schema_version
from pocketsync.infra.store import TABLES, LocalStore
from pocketsync.models import Category, ConflictRecord, MutationQueueEntry, Record, SyncMetadata
from pocketsync.models.metadata import SCHEMA_VERSION_KEY


def _sample_rows():
    return {
        "records": Record(
            id=7,
            user_id=1,
            category_id=2,
            amount=12.5,
            kind="expense",
            note="Coffee",
            occurred_on="2024-02-10",
            created_at="2024-02-10T08:00:00+00:00",
            updated_at=None,
        ),
        "categories": Category(id=2, name="Food", kind="expense", icon="utensils"),
        "mutation_queue": MutationQueueEntry(
            id=1,
            op_kind="UPDATE",
            entity_kind="record",
            entity_id=7,
            payload={"amount": 13.0, "note": "Coffee + tip"},
            enqueued_at=1700000000.25,
            retry_count=0,
        ),
        "metadata": SyncMetadata(key="lastSync", value="2024-02-10T09:00:00+00:00"),
        "conflicts": ConflictRecord(
            id="conflict-1700000000000-7",
            entity_id=7,
            entity_kind="record",
            local_version={"id": 7, "amount": 13.0},
            server_version={"id": 7, "amount": 15.0},
            detected_at="2024-02-10T09:00:00+00:00",
            resolved=False,
        ),
    }


def _key(table, row):
    return row.key if table == "metadata" else row.id


def test_accessors_before_init_raise(db_url):
    """Every accessor fails with NotInitialized until init() runs."""
    store = LocalStore(db_url)

    with pytest.raises(NotInitialized):
        store.get("records", 1)
    with pytest.raises(NotInitialized):
        store.get_all("categories")
    with pytest.raises(NotInitialized):
        store.put("metadata", SyncMetadata(key="x", value=1))
    with pytest.raises(NotInitialized):
        store.delete("records", 1)
    with pytest.raises(NotInitialized):
        store.clear("conflicts")


def test_init_is_idempotent_and_keeps_data(db_url):
    """Calling init twice, or reopening the file, never clears existing rows."""
    store = LocalStore(db_url)
    store.init()
    store.put("records", _sample_rows()["records"])

    store.init()
    assert store.get("records", 7) is not None

    store.close()
    reopened = LocalStore(db_url)
    reopened.init()
    assert reopened.get("records", 7).note == "Coffee"
    assert reopened.schema_version == 2
    reopened.close()


@pytest.mark.parametrize("table", sorted(TABLES))
def test_put_then_get_round_trips(store, table):
    """put(table, x); get(table, key(x)) returns an equal value for every table."""
    row = _sample_rows()[table]
    expected = row.model_dump()

    store.put(table, row)
    loaded = store.get(table, _key(table, row))

    assert loaded is not None
    assert loaded.model_dump() == expected


def test_put_is_upsert(store):
    store.put("categories", Category(id=1, name="Food", kind="expense"))
    store.put("categories", Category(id=1, name="Groceries", kind="expense"))

    rows = store.get_all("categories")
    assert len(rows) == 1
    assert rows[0].name == "Groceries"


def test_int_and_string_ids_do_not_collide(store):
    """A server id 5 and a temporary id "5" are distinct keys with preserved types."""
    store.put("records", Record(id=5, amount=1.0, kind="expense", occurred_on="2024-01-01"))
    store.put("records", Record(id="5", amount=2.0, kind="income", occurred_on="2024-01-02"))
    store.put("records", Record(id="tmp-abc", amount=3.0, kind="income", occurred_on="2024-01-03"))

    assert store.get("records", 5).amount == 1.0
    assert store.get("records", "5").amount == 2.0
    assert isinstance(store.get("records", 5).id, int)
    assert store.get("records", "tmp-abc").id == "tmp-abc"
    assert len(store.get_all("records")) == 3


def test_delete_is_idempotent(store):
    store.put("categories", Category(id=1, name="Food", kind="expense"))

    store.delete("categories", 1)
    store.delete("categories", 1)

    assert store.get("categories", 1) is None


def test_clear_empties_only_one_table(store):
    rows = _sample_rows()
    store.put("records", rows["records"])
    store.put("categories", rows["categories"])

    store.clear("records")

    assert store.get_all("records") == []
    assert len(store.get_all("categories")) == 1


def test_replace_all_drops_stale_rows(store):
    store.put("records", Record(id="tmp-1", amount=1.0, kind="expense", occurred_on="2024-01-01"))

    count = store.replace_all(
        "records",
        [
            Record(id=1, amount=5.0, kind="expense", occurred_on="2024-01-01"),
            Record(id=2, amount=6.0, kind="income", occurred_on="2024-01-02"),
        ],
    )

    assert count == 2
    assert sorted(r.id for r in store.get_all("records")) == [1, 2]


def test_add_assigns_increasing_sequence_ids(store):
    first = store.add("mutation_queue", MutationQueueEntry(op_kind="DELETE", entity_kind="record", entity_id=1))
    second = store.add("mutation_queue", MutationQueueEntry(op_kind="DELETE", entity_kind="record", entity_id=2))

    assert first.id is not None
    assert second.id > first.id


def test_query_filters_by_column(store):
    rows = _sample_rows()
    store.put("conflicts", rows["conflicts"])
    store.put(
        "conflicts",
        ConflictRecord(
            id="conflict-2-7",
            entity_id=7,
            entity_kind="record",
            local_version={"id": 7},
            server_version={"id": 7},
            detected_at="2024-02-11T09:00:00+00:00",
            resolved=True,
            resolution="use-server",
        ),
    )

    assert [c.id for c in store.query("conflicts", resolved=False)] == ["conflict-1700000000000-7"]
    assert [c.id for c in store.query("conflicts", resolved=True)] == ["conflict-2-7"]


def test_unknown_table_and_wrong_row_type(store):
    with pytest.raises(ValueError):
        store.get_all("budgets")
    with pytest.raises(TypeError):
        store.put("records", Category(id=1, name="Food", kind="expense"))


def test_metadata_helpers(store):
    assert store.get_metadata("lastSync") is None
    assert store.get_metadata("lastSync", "never") == "never"

    store.set_metadata("lastSync", "2024-05-01T00:00:00+00:00")
    store.set_metadata("counters", {"pushed": 3})

    assert store.get_metadata("lastSync") == "2024-05-01T00:00:00+00:00"
    assert store.get_metadata("counters") == {"pushed": 3}


def test_clear_all_data_keeps_conflicts_and_metadata(store):
    for table, row in _sample_rows().items():
        store.put(table, row)

    store.clear_all_data()

    assert store.get_all("records") == []
    assert store.get_all("categories") == []
    assert store.get_all("mutation_queue") == []
    assert len(store.get_all("conflicts")) == 1
    assert store.get_metadata("lastSync") is not None


def test_init_without_persistent_storage_raises_storage_unavailable(tmp_path):
    """A database path that cannot be created degrades to StorageUnavailable."""
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied")
    store = LocalStore(f"sqlite:///{blocker / 'nested' / 'offline.db'}")

    with pytest.raises(StorageUnavailable):
        store.init()
    assert not store.is_initialized


def test_init_with_unknown_driver_raises_storage_unavailable():
    store = LocalStore("nosuchdialect://localhost/offline")

    with pytest.raises(StorageUnavailable):
        store.init()


def test_schema_upgrade_adds_conflicts_and_preserves_existing_tables(db_url):
    """Opening a version-1 database adds the conflicts table without touching other data."""
    engine = create_db_engine(db_url)
    assert migrate_schema(engine, target_version=1) == 1
    assert not inspect(engine).has_table("conflicts")

    with Session(engine) as session:
        session.add(Record(id=1, amount=9.0, kind="expense", occurred_on="2024-01-01"))
        session.add(MutationQueueEntry(op_kind="DELETE", entity_kind="record", entity_id=1))
        session.commit()
    engine.dispose()

    store = LocalStore(db_url)
    store.init()

    assert store.schema_version == 2
    assert store.get("records", 1).amount == 9.0
    assert len(store.get_all("mutation_queue")) == 1
    assert store.get_all("conflicts") == []
    assert store.get_metadata(SCHEMA_VERSION_KEY) == 2
    store.close()


def test_read_schema_version_on_fresh_database(db_url):
    engine = create_db_engine(db_url)
    assert read_schema_version(engine) == 0
    migrate_schema(engine)
    assert read_schema_version(engine) == 2
    # Running the upgrade again is a no-op
    assert migrate_schema(engine) == 2
    engine.dispose()


def test_in_memory_store_shares_one_database():
    store = LocalStore("sqlite://")
    store.init()
    store.put("categories", Category(id=1, name="Food", kind="expense"))

    assert store.get("categories", 1).name == "Food"
    store.close()


def test_database_from_newer_release_raises_storage_unavailable(db_url):
    """A schema version above the supported one refuses to open instead of guessing."""
    store = LocalStore(db_url)
    store.init()
    store.set_metadata(SCHEMA_VERSION_KEY, 3)
    store.close()

    reopened = LocalStore(db_url)
    with pytest.raises(StorageUnavailable, match="newer than supported"):
        reopened.init()
    assert not reopened.is_initialized

    engine = create_db_engine(db_url)
    with pytest.raises(StorageUnavailable):
        migrate_schema(engine)
    engine.dispose()
