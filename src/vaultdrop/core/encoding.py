"""Wire-boundary helpers: base64 text and payload normalization.

Everything past the transport boundary only ever sees ``bytes``. Payloads that
arrive in a JSON body may be a base64 string, a list of byte values, or a
serialized Node-style buffer (``{"type": "Buffer", "data": [...]}``); they are
collapsed into ``bytes`` here, once, on ingress.
"""

import base64
import binascii
import re
from typing import Any

from .exceptions import InvalidInputError

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")


def b64encode(data: bytes) -> str:
    """Return standard base64 text for ``data``."""
    return base64.b64encode(bytes(data)).decode("ascii")


def b64decode(text: str, field: str = "value") -> bytes:
    """Decode standard base64 text, raising InvalidInputError on garbage."""
    if not isinstance(text, str):
        raise InvalidInputError(f"{field} must be base64 text")
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as e:
        raise InvalidInputError(f"{field} is not valid base64: {e}")


def coerce_bytes(value: Any, field: str) -> bytes:
    """Accept raw bytes or base64 text for a binary field."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return b64decode(value, field)
    raise InvalidInputError(f"{field} must be bytes or base64 text")


def _from_int_list(values, field: str) -> bytes:
    try:
        return bytes(values)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field} must contain byte values 0..255")


def normalize_payload(data: Any, field: str = "data") -> bytes:
    """Collapse every accepted payload shape into one ``bytes`` object."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)

    if isinstance(data, list):
        return _from_int_list(data, field)

    if isinstance(data, str):
        if _BASE64_RE.match(data):
            try:
                return base64.b64decode(data, validate=True)
            except binascii.Error:
                # looked like base64 but the padding is off; treat as text
                pass
        return data.encode("utf-8")

    if isinstance(data, dict) and data.get("type") == "Buffer" and isinstance(data.get("data"), list):
        return _from_int_list(data["data"], field)

    raise InvalidInputError(f"Unsupported {field} format: {type(data).__name__}")
