"""Passphrase key derivation and the deletion key verifier."""
import hashlib
import hmac
import os
from typing import Dict, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.encoding import b64encode
from ..core.exceptions import InvalidInputError

SALT_LEN = 16
KEY_LEN = 32
DEFAULT_ITERATIONS = 210_000


def generate_salt(length: int = SALT_LEN) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def _check_inputs(passphrase: Union[str, bytes], salt: bytes) -> bytes:
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    if not isinstance(passphrase, (bytes, bytearray)) or not passphrase.strip():
        raise InvalidInputError("Encryption key is required")
    if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_LEN:
        raise InvalidInputError(f"salt must be exactly {SALT_LEN} bytes")
    return bytes(passphrase)


def _pbkdf2(passphrase: bytes, salt: bytes, iterations: int, length: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=bytes(salt),
        iterations=iterations,
    )
    return kdf.derive(passphrase)


def derive_key(
    passphrase: Union[str, bytes],
    salt: bytes,
    iterations: int = DEFAULT_ITERATIONS,
) -> bytes:
    """
    Derive a 256-bit AES key from a passphrase using PBKDF2-HMAC-SHA256.
    Returns raw key bytes; the key is never persisted anywhere.
    """
    passphrase = _check_inputs(passphrase, salt)
    return _pbkdf2(passphrase, salt, iterations, KEY_LEN)


def derive_verifier(
    passphrase: Union[str, bytes],
    salt: bytes,
    iterations: int = DEFAULT_ITERATIONS,
) -> str:
    """
    Derive the non-secret key verifier for (passphrase, salt).

    256 bits are derived with the same PBKDF2 parameters as :func:`derive_key`
    and then hashed with SHA-256, so the stored value cannot be used as the
    key. The digest is returned as base64 text, which is what gets persisted
    and sent over the wire.
    """
    passphrase = _check_inputs(passphrase, salt)
    bits = _pbkdf2(passphrase, salt, iterations, KEY_LEN)
    return b64encode(hashlib.sha256(bits).digest())


def verify_verifier(expected: str, supplied: str) -> bool:
    """Constant-time comparison of two verifiers."""
    if not isinstance(expected, str) or not isinstance(supplied, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def kdf_params_to_dict(salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> Dict:
    return {
        "algo": "pbkdf2-sha256",
        "salt": salt.hex(),
        "iterations": iterations,
    }
