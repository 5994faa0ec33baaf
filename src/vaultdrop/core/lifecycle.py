"""
Server-side object lifecycle: reserve, commit, fetch, delete.

  reserve -> object name allocated + write capability issued, nothing persisted
  commit  -> ObjectRecord persisted after the client has pushed the ciphertext
  fetch   -> read capability for a committed record of the caller
  delete  -> key-verifier gate, then backing object, then metadata

The lifecycle never sees plaintext, keys or passphrases; it only stores the
salt, nonce and key verifier the client computed. Records are never updated in
place, so the store is the only shared state between requests.
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .encoding import coerce_bytes
from .exceptions import (
    InvalidInputError,
    ObjectNotFoundError,
    VerificationFailedError,
    VerificationRequiredError,
)
from .models import DownloadGrant, ObjectRecord, ReservedUpload, utc_now
from ..database.stores import RecordStore
from ..network.capabilities import DEFAULT_DOWNLOAD_TTL, DEFAULT_UPLOAD_TTL, BlobBackend
from ..security.crypto import NONCE_LEN
from ..security.kdf import SALT_LEN, verify_verifier

logger = logging.getLogger(__name__)

# {owner}/{epoch ms}-{12 hex}, as produced by new_object_name
_OBJECT_NAME_RE = re.compile(r"(?P<owner>.+)/\d+-[0-9a-f]{12}")


def _missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ObjectLifecycle:
    def __init__(
        self,
        store: RecordStore,
        backend: BlobBackend,
        upload_ttl: timedelta = DEFAULT_UPLOAD_TTL,
        download_ttl: timedelta = DEFAULT_DOWNLOAD_TTL,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.backend = backend
        self.upload_ttl = upload_ttl
        self.download_ttl = download_ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def new_object_name(self, owner_id: str) -> str:
        """``{owner}/{epoch ms}-{48 random bits}``: time-ordered, collision-free in practice."""
        millis = int(self._clock().timestamp() * 1000)
        return f"{owner_id}/{millis}-{secrets.token_hex(6)}"

    @staticmethod
    def _require_owner(owner_id: str) -> None:
        if _missing(owner_id):
            raise InvalidInputError("owner id required")

    @staticmethod
    def _check_size(size) -> int:
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise InvalidInputError("size must be a non-negative integer")
        return size

    # ------------------------------------------------------------------
    # Protocol operations
    # ------------------------------------------------------------------

    def reserve(self, owner_id: str, display_name: str, size: int, mime_type: str) -> ReservedUpload:
        """Allocate an object name and hand back a write capability for it."""
        self._require_owner(owner_id)
        if _missing(display_name) or size is None or _missing(mime_type):
            raise InvalidInputError("filename, size, mimeType required")
        self._check_size(size)

        object_name = self.new_object_name(owner_id)
        upload_url = self.backend.issue_write_capability(object_name, self.upload_ttl)
        logger.info("Reserved %s for owner %s", object_name, owner_id)
        return ReservedUpload(object_name, upload_url, self._clock() + self.upload_ttl)

    def commit(
        self,
        owner_id: str,
        object_name: str,
        size: int,
        mime_type: str,
        salt,
        nonce,
        display_name: str,
        key_verifier: Optional[str] = None,
    ) -> ObjectRecord:
        """Persist the metadata of an uploaded object."""
        self._require_owner(owner_id)
        required = (object_name, size, mime_type, salt, nonce, display_name)
        if any(_missing(v) for v in required):
            raise InvalidInputError("missing fields")
        self._check_size(size)

        match = _OBJECT_NAME_RE.fullmatch(object_name) if isinstance(object_name, str) else None
        if match is None or match.group("owner") != owner_id:
            raise InvalidInputError("object name does not belong to this owner")

        salt = coerce_bytes(salt, "salt")
        nonce = coerce_bytes(nonce, "nonce")
        if len(salt) != SALT_LEN:
            raise InvalidInputError(f"salt must be exactly {SALT_LEN} bytes")
        if len(nonce) != NONCE_LEN:
            raise InvalidInputError(f"nonce must be exactly {NONCE_LEN} bytes")
        if key_verifier is not None and not isinstance(key_verifier, str):
            raise InvalidInputError("key verifier must be text")

        record = ObjectRecord(
            owner_id=owner_id,
            object_name=object_name,
            display_name=display_name,
            byte_size=size,
            mime_type=mime_type,
            salt=salt,
            nonce=nonce,
            key_verifier=key_verifier or None,
            created_at=self._clock(),
        )
        self.store.create(record)
        logger.info("Committed record %s (%s)", record.record_id, object_name)
        return record

    def fetch(self, owner_id: str, record_id: str) -> DownloadGrant:
        """Issue a read capability for one of the caller's records."""
        self._require_owner(owner_id)
        record = self.store.get_by_id(owner_id, record_id)
        if record is None:
            logger.warning("Record %s not found for owner %s", record_id, owner_id)
            raise ObjectNotFoundError(f"File not found: {record_id}")
        if _missing(record.object_name):
            raise InvalidInputError("Invalid file data - missing blob reference")

        download_url = self.backend.issue_read_capability(record.object_name, self.download_ttl)
        return DownloadGrant(record, download_url, self._clock() + self.download_ttl)

    def get(self, owner_id: str, record_id: str) -> Optional[ObjectRecord]:
        """The caller's record, or None; issues no capability."""
        self._require_owner(owner_id)
        return self.store.get_by_id(owner_id, record_id)

    def list(self, owner_id: str) -> List[ObjectRecord]:
        self._require_owner(owner_id)
        return self.store.find_by_owner(owner_id)

    def delete(self, owner_id: str, record_id: str, key_verifier: Optional[str] = None) -> bool:
        """
        Delete a record and its backing object.

        Returns False when the record is already gone. When the record stores
        a verifier, the caller must present the same one. Records committed
        without a verifier are deleted without proof of key knowledge.
        """
        self._require_owner(owner_id)
        record = self.store.get_by_id(owner_id, record_id)
        if record is None:
            logger.info("Record %s already absent", record_id)
            return False

        if record.has_verifier:
            if _missing(key_verifier):
                raise VerificationRequiredError("Encryption key required to delete this file")
            if not verify_verifier(record.key_verifier, key_verifier):
                logger.warning("Rejected delete of %s: key verifier mismatch", record_id)
                raise VerificationFailedError("Invalid encryption key for deletion")
        else:
            logger.warning("Deleting legacy record %s without key verification", record_id)

        try:
            self.backend.delete_object(record.object_name)
        except Exception:
            # metadata still goes, otherwise the record is stuck pointing at nothing
            logger.exception("Error deleting %s from storage; removing metadata anyway", record.object_name)

        deleted = self.store.delete(owner_id, record_id)
        logger.info("Deleted record %s", record_id)
        return deleted
