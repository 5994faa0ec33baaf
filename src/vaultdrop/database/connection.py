"""Thread-local SQLite connections for the record store."""

from contextlib import contextmanager
from pathlib import Path
import sqlite3
import threading

from .schema import get_init_schema
from ..core.exceptions import StorageError

BUSY_TIMEOUT_MS = 5000


class DatabaseConnection:
    """One SQLite connection per thread, all pointing at the same file."""

    __slots__ = ("db_path", "_local", "_lock", "_initialized")

    def __init__(self, db_path="./vaultdrop.db"):
        self.db_path = Path(db_path).expanduser()
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

    def initialize(self):
        """Apply the schema once per process; later calls return immediately."""
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                with self._cursor() as cur:
                    for statement in get_init_schema():
                        cur.execute(statement)
            except sqlite3.Error as e:
                raise StorageError(f"Failed to initialize database at {self.db_path}: {e}")
            self._initialized = True

    def _connect(self):
        conn = getattr(self._local, "connection", None)
        if conn is None:
            # autocommit; every statement the stores issue is a single write
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
            conn.execute("PRAGMA journal_mode = WAL")
            self._local.connection = conn
        return conn

    @contextmanager
    def _cursor(self):
        cur = self._connect().cursor()
        try:
            yield cur
        finally:
            cur.close()

    def execute(self, query, params=()):
        """Run one statement and return the affected row count."""
        with self._cursor() as cur:
            cur.execute(query, params)
            return cur.rowcount

    def fetch_one(self, query, params=()):
        with self._cursor() as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        return dict(row) if row is not None else None

    def fetch_all(self, query, params=()):
        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [dict(r) for r in rows]

    def get_version(self):
        """Highest applied schema version, or 0 on an empty database."""
        row = self.fetch_one("SELECT MAX(version) AS version FROM schema_version")
        return (row or {}).get("version") or 0

    def close(self):
        """Close the calling thread's connection, if it has one."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None
