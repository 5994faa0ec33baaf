"""
Metadata store interface and its in-process implementations.

Records are keyed by (owner_id, record_id) and only ever looked up through the
owner, so one user can never see another user's records. ``create`` refuses
duplicate keys and a second record for the same object name, which is what
stops a double commit.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..core.exceptions import RecordExistsError, StorageError
from ..core.models import ObjectRecord

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    @abstractmethod
    def find_by_owner(self, owner_id: str) -> List[ObjectRecord]:
        """All records of one owner, newest first."""

    @abstractmethod
    def create(self, record: ObjectRecord) -> ObjectRecord:
        """Persist a new record; raises RecordExistsError on a duplicate."""

    @abstractmethod
    def get_by_id(self, owner_id: str, record_id: str) -> Optional[ObjectRecord]:
        """Point lookup; None when absent."""

    @abstractmethod
    def delete(self, owner_id: str, record_id: str) -> bool:
        """Remove a record; False when it was already gone."""


def _newest_first(records):
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class MemoryRecordStore(RecordStore):
    """Dict-backed store for tests and throwaway processes."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], ObjectRecord] = {}
        self._lock = threading.Lock()

    def find_by_owner(self, owner_id):
        with self._lock:
            return _newest_first(r for (o, _), r in self._records.items() if o == owner_id)

    def create(self, record):
        with self._lock:
            key = (record.owner_id, record.record_id)
            if key in self._records:
                raise RecordExistsError(f"Record {record.record_id} already exists")
            for existing in self._records.values():
                if existing.owner_id == record.owner_id and existing.object_name == record.object_name:
                    raise RecordExistsError(f"Object {record.object_name} is already committed")
            self._records[key] = record
            return record

    def get_by_id(self, owner_id, record_id):
        with self._lock:
            return self._records.get((owner_id, record_id))

    def delete(self, owner_id, record_id):
        with self._lock:
            return self._records.pop((owner_id, record_id), None) is not None


class JsonRecordStore(RecordStore):
    """
    File fallback: every record lives in one JSON array on disk.

    Whole-file rewrite on every change; fine for a single process and small
    record counts, which is the only place this store is meant for.
    """

    def __init__(self, path):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _read(self) -> List[dict]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Error reading {self.path}: {e}")
        if not isinstance(data, list):
            raise StorageError(f"{self.path} does not contain a record list")
        return data

    def _write(self, rows: List[dict]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(rows, f, indent=2)
            tmp.replace(self.path)
        except OSError as e:
            raise StorageError(f"Error writing {self.path}: {e}")

    def find_by_owner(self, owner_id):
        with self._lock:
            rows = self._read()
        return _newest_first(ObjectRecord.from_dict(r) for r in rows if r.get("owner_id") == owner_id)

    def create(self, record):
        with self._lock:
            rows = self._read()
            for row in rows:
                if row.get("owner_id") != record.owner_id:
                    continue
                if row.get("record_id") == record.record_id:
                    raise RecordExistsError(f"Record {record.record_id} already exists")
                if row.get("object_name") == record.object_name:
                    raise RecordExistsError(f"Object {record.object_name} is already committed")
            rows.append(record.to_dict())
            self._write(rows)
        return record

    def get_by_id(self, owner_id, record_id):
        with self._lock:
            rows = self._read()
        for row in rows:
            if row.get("owner_id") == owner_id and row.get("record_id") == record_id:
                return ObjectRecord.from_dict(row)
        return None

    def delete(self, owner_id, record_id):
        with self._lock:
            rows = self._read()
            kept = [
                r for r in rows
                if not (r.get("owner_id") == owner_id and r.get("record_id") == record_id)
            ]
            if len(kept) == len(rows):
                return False
            self._write(kept)
            return True
