"""Security helpers: passphrase KDF, key verifier and AEAD primitives for VaultDrop.

This package provides:
- PBKDF2-HMAC-SHA256 key derivation (210,000 iterations by default)
- a hashed key verifier used to authorize deletion without revealing the key
- whole-buffer AES-256-GCM encryption/decryption
"""

from .kdf import generate_salt, derive_key, derive_verifier, verify_verifier
from .crypto import (
    generate_nonce,
    encrypt,
    decrypt,
    encrypt_with_passphrase,
    decrypt_with_passphrase,
    EncryptedPayload,
    SealedObject,
)

__all__ = [
    "generate_salt",
    "derive_key",
    "derive_verifier",
    "verify_verifier",
    "generate_nonce",
    "encrypt",
    "decrypt",
    "encrypt_with_passphrase",
    "decrypt_with_passphrase",
    "EncryptedPayload",
    "SealedObject",
]
