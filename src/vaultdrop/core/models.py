"""
Data models for stored object metadata and the lifecycle hand-offs
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
import uuid

from .encoding import b64encode, b64decode


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ObjectRecord:
    """
    Committed metadata for one encrypted object.

    ``salt`` and ``nonce`` are kept as raw bytes in memory and base64 text in
    every serialized form. ``key_verifier`` is optional; records committed
    without one can be deleted without proving knowledge of the key.
    """

    __slots__ = (
        'record_id',
        'owner_id',
        'object_name',
        'display_name',
        'byte_size',
        'mime_type',
        'salt',
        'nonce',
        'key_verifier',
        'created_at',
    )

    def __init__(self, owner_id, object_name, display_name, byte_size, mime_type, salt, nonce,
                 key_verifier=None, record_id=None, created_at=None):
        self.record_id = record_id if record_id is not None else str(uuid.uuid4())
        self.owner_id = owner_id
        self.object_name = object_name
        self.display_name = display_name
        self.byte_size = byte_size
        self.mime_type = mime_type
        self.salt = salt
        self.nonce = nonce
        self.key_verifier = key_verifier
        self.created_at = created_at if created_at is not None else utc_now()

    @property
    def has_verifier(self) -> bool:
        return bool(self.key_verifier)

    def to_dict(self) -> Dict[str, Any]:
        """Full serialized form, as persisted by the record stores."""
        return {
            'record_id': self.record_id,
            'owner_id': self.owner_id,
            'object_name': self.object_name,
            'display_name': self.display_name,
            'byte_size': self.byte_size,
            'mime_type': self.mime_type,
            'salt': b64encode(self.salt),
            'nonce': b64encode(self.nonce),
            'key_verifier': self.key_verifier,
            'created_at': self.created_at.isoformat(),
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialized form safe to hand back to clients (no verifier)."""
        data = self.to_dict()
        data.pop('key_verifier')
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObjectRecord":
        created_at = data.get('created_at')
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            record_id=data['record_id'],
            owner_id=data['owner_id'],
            object_name=data['object_name'],
            display_name=data['display_name'],
            byte_size=int(data['byte_size']),
            mime_type=data['mime_type'],
            salt=b64decode(data['salt'], 'salt'),
            nonce=b64decode(data['nonce'], 'nonce'),
            key_verifier=data.get('key_verifier') or None,
            created_at=created_at,
        )

    def __repr__(self):
        return f"ObjectRecord(record_id={self.record_id!r}, display_name={self.display_name!r})"

    def __eq__(self, other):
        if not isinstance(other, ObjectRecord):
            return NotImplemented
        return (self.owner_id, self.record_id) == (other.owner_id, other.record_id)

    def __hash__(self):
        return hash((self.owner_id, self.record_id))


class ReservedUpload:
    """Result of reserve: a write capability for a not-yet-committed object."""

    __slots__ = ('object_name', 'upload_url', 'expires_at')

    def __init__(self, object_name: str, upload_url: str, expires_at: datetime):
        self.object_name = object_name
        self.upload_url = upload_url
        self.expires_at = expires_at

    def to_dict(self):
        return {
            'object_name': self.object_name,
            'upload_url': self.upload_url,
            'expires_at': self.expires_at.isoformat(),
        }

    def __repr__(self):
        # the url is a bearer credential; keep it out of reprs and logs
        return f"ReservedUpload(object_name={self.object_name!r})"


class DownloadGrant:
    """Result of fetch: the committed record plus a read capability."""

    __slots__ = ('record', 'download_url', 'expires_at')

    def __init__(self, record: ObjectRecord, download_url: str, expires_at: datetime):
        self.record = record
        self.download_url = download_url
        self.expires_at = expires_at

    def to_dict(self):
        return {
            'record': self.record.to_public_dict(),
            'download_url': self.download_url,
            'expires_at': self.expires_at.isoformat(),
        }

    def __repr__(self):
        return f"DownloadGrant(record_id={self.record.record_id!r})"


class PulledObject:
    __slots__ = ('data', 'content_type')

    def __init__(self, data: bytes, content_type: Optional[str] = None):
        self.data = data
        self.content_type = content_type

    def __repr__(self):
        return f"PulledObject(size={len(self.data)}, content_type={self.content_type!r})"
