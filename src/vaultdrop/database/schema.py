"""SQLite schema definitions for VaultDrop."""

SCHEMA_VERSION = 1

CREATE_TABLES = [
    # Object records - one row per committed encrypted object; rows are never updated
    """
    CREATE TABLE IF NOT EXISTS object_records (
        owner_id TEXT NOT NULL,
        record_id TEXT NOT NULL,
        object_name TEXT NOT NULL,
        display_name TEXT NOT NULL,
        byte_size INTEGER NOT NULL,
        mime_type TEXT NOT NULL,
        salt TEXT NOT NULL,          -- base64, 16 bytes
        nonce TEXT NOT NULL,         -- base64, 12 bytes
        key_verifier TEXT,           -- base64 sha-256; NULL for legacy records
        created_at TEXT NOT NULL,
        PRIMARY KEY (owner_id, record_id),
        UNIQUE (owner_id, object_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_object_records_owner_created ON object_records(owner_id, created_at)",
]


def get_init_schema():
    """Return every statement needed to initialize an empty database."""
    return (
        CREATE_TABLES
        + CREATE_INDEXES
        + [f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})"]
    )
