"""SQLite-backed record store."""

import sqlite3

from .connection import DatabaseConnection
from .stores import RecordStore
from ..core.exceptions import RecordExistsError, StorageError
from ..core.models import ObjectRecord


class SqliteRecordStore(RecordStore):
    """DB model for object records."""

    __slots__ = ("db",)

    def __init__(self, db):
        """Initialize with a DatabaseConnection (or a path to one)."""
        if not isinstance(db, DatabaseConnection):
            db = DatabaseConnection(db)
        db.initialize()
        self.db = db

    def find_by_owner(self, owner_id):
        """List all records for an owner, newest first."""
        query = "SELECT * FROM object_records WHERE owner_id = ? ORDER BY created_at DESC"
        return [ObjectRecord.from_dict(row) for row in self._fetch_all(query, (owner_id,))]

    def create(self, record):
        """Insert a record; the primary key and UNIQUE(owner_id, object_name) reject duplicates."""
        query = """
            INSERT INTO object_records (
                owner_id, record_id, object_name, display_name, byte_size,
                mime_type, salt, nonce, key_verifier, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        row = record.to_dict()
        params = (
            row["owner_id"],
            row["record_id"],
            row["object_name"],
            row["display_name"],
            row["byte_size"],
            row["mime_type"],
            row["salt"],
            row["nonce"],
            row["key_verifier"],
            row["created_at"],
        )
        try:
            self.db.execute(query, params)
        except sqlite3.IntegrityError as e:
            raise RecordExistsError(f"Record for {record.object_name} already exists: {e}")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to create record: {e}")
        return record

    def get_by_id(self, owner_id, record_id):
        """Get a record by owner and id."""
        query = "SELECT * FROM object_records WHERE owner_id = ? AND record_id = ?"
        try:
            row = self.db.fetch_one(query, (owner_id, record_id))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read record: {e}")
        return ObjectRecord.from_dict(row) if row else None

    def delete(self, owner_id, record_id):
        """Delete a record; deleting a missing one is not an error."""
        query = "DELETE FROM object_records WHERE owner_id = ? AND record_id = ?"
        try:
            return self.db.execute(query, (owner_id, record_id)) > 0
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete record: {e}")

    def _fetch_all(self, query, params):
        try:
            return self.db.fetch_all(query, params)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list records: {e}")
