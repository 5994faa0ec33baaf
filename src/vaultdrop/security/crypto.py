"""Whole-buffer AEAD encryption (AES-256-GCM) for stored objects.

Stored layout per object:
- ciphertext: AES-GCM output, i.e. encrypted bytes followed by the 16-byte tag
- nonce: 12 random bytes, fresh per encryption, stored next to the record
- salt: 16 random bytes mixed into key derivation, stored next to the record

No associated data is bound, so buffers produced by a browser's WebCrypto
``AES-GCM`` with the same key and nonce decrypt here unchanged.
"""
import os
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import AuthenticationFailedError, InvalidInputError
from .kdf import DEFAULT_ITERATIONS, KEY_LEN, SALT_LEN, derive_key, derive_verifier, generate_salt

NONCE_LEN = 12
TAG_LEN = 16


@dataclass(frozen=True)
class EncryptedPayload:
    ciphertext: bytes
    nonce: bytes


@dataclass(frozen=True)
class SealedObject:
    """Everything a caller needs to upload and later commit one object."""

    ciphertext: bytes
    salt: bytes
    nonce: bytes
    verifier: str


def generate_nonce() -> bytes:
    return os.urandom(NONCE_LEN)


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LEN:
        raise InvalidInputError(f"key must be exactly {KEY_LEN} bytes")


def encrypt(key: bytes, plaintext: bytes, nonce: Optional[bytes] = None) -> EncryptedPayload:
    """
    Encrypt ``plaintext`` under ``key`` and return ciphertext plus nonce.

    A fresh random nonce is drawn on every call. ``nonce`` may be passed
    explicitly for known-answer checks only; reusing a nonce with the same key
    breaks GCM.
    """
    _check_key(key)
    if nonce is None:
        nonce = generate_nonce()
    elif len(nonce) != NONCE_LEN:
        raise InvalidInputError(f"nonce must be exactly {NONCE_LEN} bytes")

    ct = AESGCM(bytes(key)).encrypt(bytes(nonce), bytes(plaintext), None)
    return EncryptedPayload(ciphertext=ct, nonce=bytes(nonce))


def decrypt(key: bytes, nonce: bytes, salt: bytes, ciphertext: bytes) -> bytes:
    """
    Decrypt ``ciphertext`` and return the plaintext.

    Input shape is checked first (:class:`InvalidInputError`); a tag mismatch
    from a wrong key or tampered data raises
    :class:`AuthenticationFailedError` with one generic message.
    """
    if nonce is None or len(nonce) != NONCE_LEN:
        raise InvalidInputError("Invalid initialization vector")
    if salt is None or len(salt) != SALT_LEN:
        raise InvalidInputError("Invalid salt value")
    if not ciphertext:
        raise InvalidInputError("No data to decrypt")
    if len(ciphertext) < TAG_LEN:
        raise InvalidInputError("Ciphertext too short to contain an authentication tag")
    _check_key(key)

    try:
        return AESGCM(bytes(key)).decrypt(bytes(nonce), bytes(ciphertext), None)
    except InvalidTag:
        raise AuthenticationFailedError() from None


def encrypt_with_passphrase(
    passphrase: Union[str, bytes],
    plaintext: bytes,
    iterations: int = DEFAULT_ITERATIONS,
) -> SealedObject:
    """Generate salt and nonce, derive the key and verifier, and encrypt."""
    salt = generate_salt()
    key = derive_key(passphrase, salt, iterations=iterations)
    payload = encrypt(key, plaintext)
    return SealedObject(
        ciphertext=payload.ciphertext,
        salt=salt,
        nonce=payload.nonce,
        verifier=derive_verifier(passphrase, salt, iterations=iterations),
    )


def decrypt_with_passphrase(
    passphrase: Union[str, bytes],
    ciphertext: bytes,
    nonce: bytes,
    salt: bytes,
    iterations: int = DEFAULT_ITERATIONS,
) -> bytes:
    # shape checks before paying for key derivation
    if nonce is None or len(nonce) != NONCE_LEN:
        raise InvalidInputError("Invalid initialization vector")
    if salt is None or len(salt) != SALT_LEN:
        raise InvalidInputError("Invalid salt value")
    if not ciphertext:
        raise InvalidInputError("No data to decrypt")
    key = derive_key(passphrase, salt, iterations=iterations)
    return decrypt(key, nonce, salt, ciphertext)
