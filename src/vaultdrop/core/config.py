"""
Environment-driven settings and the factories that turn them into a store and a backend.

Variables (all optional unless the chosen backend needs them):
  VAULTDROP_BACKEND                azure | s3 (default azure)
  AZURE_STORAGE_CONNECTION_STRING  or AZURE_STORAGE_ACCOUNT + AZURE_STORAGE_KEY
  AZURE_CONTAINER_NAME
  VAULTDROP_S3_BUCKET, VAULTDROP_S3_ENDPOINT, VAULTDROP_S3_REGION
  VAULTDROP_STORE                  memory | json | sqlite (default sqlite)
  VAULTDROP_DB_PATH, VAULTDROP_JSON_PATH
  VAULTDROP_UPLOAD_TTL_MINUTES     (10)
  VAULTDROP_DOWNLOAD_TTL_MINUTES   (30)
  VAULTDROP_MAX_RETRIES            (3)
  VAULTDROP_RETRY_BASE_DELAY       (1.0 seconds)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import ConfigurationError
from ..database.models import SqliteRecordStore
from ..database.stores import JsonRecordStore, MemoryRecordStore
from ..network.capabilities import AzureBlobBackend, S3BlobBackend

DEFAULT_HOME = Path.home() / ".vaultdrop"


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative")
    return value


@dataclass
class Settings:
    backend: str = "azure"
    azure_connection_string: Optional[str] = None
    azure_account_name: Optional[str] = None
    azure_account_key: Optional[str] = None
    azure_container_name: Optional[str] = None
    s3_bucket_name: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_region: Optional[str] = None
    store: str = "sqlite"
    db_path: Path = DEFAULT_HOME / "vaultdrop.db"
    json_path: Path = DEFAULT_HOME / "records.json"
    upload_ttl_minutes: int = 10
    download_ttl_minutes: int = 30
    max_retries: int = 3
    retry_base_delay: float = 1.0

    @property
    def upload_ttl(self) -> timedelta:
        return timedelta(minutes=self.upload_ttl_minutes)

    @property
    def download_ttl(self) -> timedelta:
        return timedelta(minutes=self.download_ttl_minutes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        backend = env.get("VAULTDROP_BACKEND", "azure").strip().lower()
        if backend not in ("azure", "s3"):
            raise ConfigurationError(f"VAULTDROP_BACKEND must be 'azure' or 's3', got {backend!r}")
        store = env.get("VAULTDROP_STORE", "sqlite").strip().lower()
        if store not in ("memory", "json", "sqlite"):
            raise ConfigurationError(f"VAULTDROP_STORE must be memory, json or sqlite, got {store!r}")

        return cls(
            backend=backend,
            azure_connection_string=env.get("AZURE_STORAGE_CONNECTION_STRING") or None,
            azure_account_name=env.get("AZURE_STORAGE_ACCOUNT") or None,
            azure_account_key=env.get("AZURE_STORAGE_KEY") or None,
            azure_container_name=env.get("AZURE_CONTAINER_NAME") or None,
            s3_bucket_name=env.get("VAULTDROP_S3_BUCKET") or None,
            s3_endpoint_url=env.get("VAULTDROP_S3_ENDPOINT") or None,
            s3_region=env.get("VAULTDROP_S3_REGION") or None,
            store=store,
            db_path=Path(env.get("VAULTDROP_DB_PATH") or DEFAULT_HOME / "vaultdrop.db").expanduser(),
            json_path=Path(env.get("VAULTDROP_JSON_PATH") or DEFAULT_HOME / "records.json").expanduser(),
            upload_ttl_minutes=_int(env, "VAULTDROP_UPLOAD_TTL_MINUTES", 10, minimum=1),
            download_ttl_minutes=_int(env, "VAULTDROP_DOWNLOAD_TTL_MINUTES", 30, minimum=1),
            max_retries=_int(env, "VAULTDROP_MAX_RETRIES", 3),
            retry_base_delay=_float(env, "VAULTDROP_RETRY_BASE_DELAY", 1.0),
        )


def build_store(settings: Settings):
    """Pick the metadata store named by the settings."""
    if settings.store == "memory":
        return MemoryRecordStore()
    if settings.store == "json":
        return JsonRecordStore(settings.json_path)
    return SqliteRecordStore(settings.db_path)


def build_backend(settings: Settings):
    """Pick the blob backend named by the settings."""
    if settings.backend == "s3":
        if not settings.s3_bucket_name:
            raise ConfigurationError("VAULTDROP_S3_BUCKET is required for the s3 backend")
        return S3BlobBackend.from_settings(settings)
    if not settings.azure_container_name:
        raise ConfigurationError("AZURE_CONTAINER_NAME is required for the azure backend")
    return AzureBlobBackend.from_settings(settings)
