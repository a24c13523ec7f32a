# privshare/shared/codec.py
"""
Binary/text transcoding and key normalization for PrivShare.

Provides:
- Chunked base64 encoding/decoding for payload transport
- Deterministic expansion of short user keys to 256-bit AES keys
- JSON-safe conversion of oversized integers for record publication
"""

import base64
import binascii
import dataclasses
import re
from decimal import Decimal
from typing import Any

from privshare.config import AES_KEY_SIZE, CODEC_CHUNK_SIZE
from privshare.errors import DecodeError, ValidationError

_HEX_RE = re.compile(r"[0-9a-fA-F]+")

# Largest integer a JSON consumer using IEEE doubles represents exactly
MAX_SAFE_INTEGER = 2 ** 53 - 1


def _encode_chunk_size(chunk_size: int) -> int:
    # base64 groups 3 input bytes, so chunk boundaries must fall on a multiple of 3
    return max(3, chunk_size - chunk_size % 3)


def _decode_chunk_size(chunk_size: int) -> int:
    return max(4, (chunk_size // 3) * 4)


def chunked_encode(data: bytes, chunk_size: int = CODEC_CHUNK_SIZE) -> str:
    """
    Encode bytes to base64 text, processing the input in fixed-size chunks.

    The output is identical to encoding the whole buffer in one call.
    """
    view = memoryview(data)
    step = _encode_chunk_size(chunk_size)
    parts = [
        base64.b64encode(view[i:i + step]).decode("ascii")
        for i in range(0, len(view), step)
    ]
    return "".join(parts)


def chunked_decode(text: str, chunk_size: int = CODEC_CHUNK_SIZE) -> bytes:
    """
    Decode base64 text produced by chunked_encode.

    Raises:
        DecodeError: If the text is not valid base64
    """
    if isinstance(text, bytes):
        text = text.decode("ascii", errors="replace")
    if len(text) % 4:
        raise DecodeError(f"Invalid base64 length: {len(text)}")

    step = _decode_chunk_size(chunk_size)
    out = bytearray()
    try:
        for i in range(0, len(text), step):
            out += base64.b64decode(text[i:i + step], validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Malformed base64 input: {e}") from e
    return bytes(out)


def is_hex(value: str) -> bool:
    """True when value is non-empty and made only of hex digits."""
    return bool(value) and _HEX_RE.fullmatch(value) is not None


def normalize_key_to_hex(key: str) -> str:
    """
    Expand a short key to exactly 64 hex characters (32 bytes).

    Hex keys are used as-is; anything else is converted character by
    character to two-digit hex codes. The result is doubled until it is
    at least 64 characters long and then truncated.
    """
    if not key:
        raise ValidationError("Encryption key must not be empty")

    if is_hex(key):
        hex_key = key
    else:
        # UTF-16 code units, so astral characters expand as surrogate pairs
        units = key.encode("utf-16-be")
        hex_key = "".join(
            f"{int.from_bytes(units[i:i + 2], 'big'):02x}" for i in range(0, len(units), 2)
        )

    target = AES_KEY_SIZE * 2
    while len(hex_key) < target:
        hex_key += hex_key
    return hex_key[:target]


def key_to_bytes(key: str) -> bytes:
    """Normalized AES key bytes for a raw user key."""
    return bytes.fromhex(normalize_key_to_hex(key))


def to_json_safe(obj: Any) -> Any:
    """
    Recursively convert values a JSON consumer cannot represent exactly.

    Integers outside the IEEE double safe range and Decimals become decimal
    text. Containers are copied. Other objects are reduced to their public
    attributes when they have any, and to their string form otherwise.
    """
    if obj is None or isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        return str(obj) if abs(obj) > MAX_SAFE_INTEGER else obj
    if isinstance(obj, Decimal):
        return str(obj)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return to_json_safe(dataclasses.asdict(obj))
    if isinstance(obj, dict):
        return {str(k): to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_json_safe(v) for v in obj]
    if isinstance(obj, (str, float)):
        return obj
    attrs = getattr(obj, "__dict__", None)
    if attrs:
        return {k: to_json_safe(v) for k, v in attrs.items() if not k.startswith("_")}
    return str(obj)
