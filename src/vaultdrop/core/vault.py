"""Client-side orchestration of the full upload / download / delete flows.

Upload:   encrypt (fresh salt + nonce) -> reserve -> push ciphertext -> commit
Download: fetch -> pull ciphertext -> re-derive key from stored salt -> decrypt
Delete:   re-derive the key verifier from the stored salt -> gated delete

The passphrase and derived key only live inside these calls.
"""

import logging
from typing import Union

from .lifecycle import ObjectLifecycle
from .models import ObjectRecord
from ..network.transfer import TransferClient
from ..security.crypto import decrypt, encrypt
from ..security.kdf import DEFAULT_ITERATIONS, derive_key, derive_verifier, generate_salt

logger = logging.getLogger(__name__)


class Vault:
    def __init__(
        self,
        lifecycle: ObjectLifecycle,
        transfer: TransferClient,
        iterations: int = DEFAULT_ITERATIONS,
    ):
        self.lifecycle = lifecycle
        self.transfer = transfer
        self.iterations = iterations

    def upload(
        self,
        owner_id: str,
        passphrase: Union[str, bytes],
        data: bytes,
        display_name: str,
        mime_type: str = "application/octet-stream",
    ) -> ObjectRecord:
        # nothing is reserved until the passphrase has produced a key
        salt = generate_salt()
        key = derive_key(passphrase, salt, iterations=self.iterations)
        payload = encrypt(key, data)
        verifier = derive_verifier(passphrase, salt, iterations=self.iterations)

        reservation = self.lifecycle.reserve(owner_id, display_name, len(data), mime_type)

        self.transfer.push(reservation.upload_url, payload.ciphertext, mime_type)
        record = self.lifecycle.commit(
            owner_id,
            reservation.object_name,
            len(data),
            mime_type,
            salt,
            payload.nonce,
            display_name,
            key_verifier=verifier,
        )
        logger.info("Uploaded %s as record %s", display_name, record.record_id)
        return record

    def download(self, owner_id: str, record_id: str, passphrase: Union[str, bytes]) -> bytes:
        grant = self.lifecycle.fetch(owner_id, record_id)
        pulled = self.transfer.pull(grant.download_url)
        record = grant.record
        key = derive_key(passphrase, record.salt, iterations=self.iterations)
        return decrypt(key, record.nonce, record.salt, pulled.data)

    def delete(self, owner_id: str, record_id: str, passphrase: Union[str, bytes, None] = None) -> bool:
        record = self.lifecycle.get(owner_id, record_id)
        if record is None:
            return False
        verifier = None
        if record.has_verifier and passphrase:
            verifier = derive_verifier(passphrase, record.salt, iterations=self.iterations)
        return self.lifecycle.delete(owner_id, record_id, key_verifier=verifier)
