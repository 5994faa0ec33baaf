"""Unit tests covering every ``RecordStore`` implementation."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from vaultdrop.core.exceptions import RecordExistsError, StorageError
from vaultdrop.core.models import ObjectRecord
from vaultdrop.database.connection import DatabaseConnection
from vaultdrop.database.models import SqliteRecordStore
from vaultdrop.database.schema import SCHEMA_VERSION
from vaultdrop.database.stores import JsonRecordStore, MemoryRecordStore, RecordStore

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_record(owner="alice", name="1-aaaa", offset=0, **overrides) -> ObjectRecord:
    fields = dict(
        owner_id=owner,
        object_name=f"{owner}/{name}",
        display_name=f"{name}.bin",
        byte_size=42,
        mime_type="application/octet-stream",
        salt=b"\x11" * 16,
        nonce=b"\x22" * 12,
        key_verifier="c2hhMjU2",
        created_at=T0 + timedelta(seconds=offset),
    )
    fields.update(overrides)
    return ObjectRecord(**fields)


@pytest.fixture()
def tmpdir_path() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(params=["memory", "json", "sqlite"])
def store(request, tmpdir_path) -> Generator[RecordStore, None, None]:
    """Each test runs once per store implementation."""
    if request.param == "memory":
        yield MemoryRecordStore()
    elif request.param == "json":
        yield JsonRecordStore(tmpdir_path / "records.json")
    else:
        db = DatabaseConnection(tmpdir_path / "vaultdrop.db")
        yield SqliteRecordStore(db)
        db.close()


def test_create_then_get_roundtrips_all_fields(store: RecordStore) -> None:
    record = make_record()
    store.create(record)

    loaded = store.get_by_id("alice", record.record_id)
    assert loaded == record
    assert loaded.object_name == "alice/1-aaaa"
    assert loaded.display_name == "1-aaaa.bin"
    assert loaded.byte_size == 42
    assert loaded.salt == b"\x11" * 16
    assert loaded.nonce == b"\x22" * 12
    assert loaded.key_verifier == "c2hhMjU2"
    assert loaded.created_at == T0


def test_get_missing_returns_none(store: RecordStore) -> None:
    assert store.get_by_id("alice", "nope") is None


def test_records_are_scoped_to_owner(store: RecordStore) -> None:
    record = store.create(make_record(owner="alice"))
    store.create(make_record(owner="bob"))

    assert store.get_by_id("bob", record.record_id) is None
    assert [r.owner_id for r in store.find_by_owner("alice")] == ["alice"]
    assert store.delete("bob", record.record_id) is False
    assert store.get_by_id("alice", record.record_id) is not None


def test_find_by_owner_is_newest_first(store: RecordStore) -> None:
    store.create(make_record(name="1-old", offset=0))
    store.create(make_record(name="3-new", offset=120))
    store.create(make_record(name="2-mid", offset=60))

    names = [r.object_name for r in store.find_by_owner("alice")]
    assert names == ["alice/3-new", "alice/2-mid", "alice/1-old"]


def test_find_by_owner_empty(store: RecordStore) -> None:
    assert store.find_by_owner("nobody") == []


def test_duplicate_record_id_rejected(store: RecordStore) -> None:
    store.create(make_record(record_id="r1", name="1-a"))
    with pytest.raises(RecordExistsError):
        store.create(make_record(record_id="r1", name="2-b"))


def test_second_commit_of_same_object_rejected(store: RecordStore) -> None:
    store.create(make_record(name="1-a"))
    with pytest.raises(RecordExistsError):
        store.create(make_record(name="1-a"))
    assert len(store.find_by_owner("alice")) == 1


def test_delete_is_idempotent(store: RecordStore) -> None:
    record = store.create(make_record())
    assert store.delete("alice", record.record_id) is True
    assert store.delete("alice", record.record_id) is False
    assert store.get_by_id("alice", record.record_id) is None


def test_legacy_record_without_verifier(store: RecordStore) -> None:
    record = store.create(make_record(key_verifier=None))
    assert store.get_by_id("alice", record.record_id).key_verifier is None


def test_zero_byte_record(store: RecordStore) -> None:
    record = store.create(make_record(byte_size=0))
    assert store.get_by_id("alice", record.record_id).byte_size == 0


# ==============================================================================
# Implementation specifics
# ==============================================================================

def test_json_store_persists_across_instances(tmpdir_path: Path) -> None:
    path = tmpdir_path / "nested" / "records.json"
    record = JsonRecordStore(path).create(make_record())

    reopened = JsonRecordStore(path)
    assert reopened.get_by_id("alice", record.record_id) == record
    assert not path.with_suffix(".json.tmp").exists()


def test_json_store_corrupt_file_raises_storage_error(tmpdir_path: Path) -> None:
    path = tmpdir_path / "records.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        JsonRecordStore(path).find_by_owner("alice")


def test_json_store_rejects_non_list_document(tmpdir_path: Path) -> None:
    path = tmpdir_path / "records.json"
    path.write_text('{"owner_id": "alice"}', encoding="utf-8")
    with pytest.raises(StorageError, match="record list"):
        JsonRecordStore(path).get_by_id("alice", "x")


def test_sqlite_store_accepts_a_path(tmpdir_path: Path) -> None:
    store = SqliteRecordStore(tmpdir_path / "by-path.db")
    record = store.create(make_record())
    assert store.get_by_id("alice", record.record_id) == record
    store.db.close()


def test_sqlite_initialize_is_idempotent(tmpdir_path: Path) -> None:
    db = DatabaseConnection(tmpdir_path / "vaultdrop.db")
    db.initialize()
    db.initialize()
    assert db.get_version() == SCHEMA_VERSION
    db.close()


def test_sqlite_store_persists_across_connections(tmpdir_path: Path) -> None:
    path = tmpdir_path / "vaultdrop.db"
    first = SqliteRecordStore(path)
    record = first.create(make_record())
    first.db.close()

    second = SqliteRecordStore(path)
    assert second.get_by_id("alice", record.record_id) == record
    second.db.close()
