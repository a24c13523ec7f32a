"""
Shared modules for PrivShare.
"""

from .codec import (
    chunked_encode,
    chunked_decode,
    normalize_key_to_hex,
    key_to_bytes,
    to_json_safe,
)

from .crypto import (
    EncryptedPayload,
    generate_key,
    generate_iv,
    validate_key,
    encrypt_file,
    decrypt_file,
    decrypt_bytes,
)

from . import sharecode

__all__ = [
    "chunked_encode",
    "chunked_decode",
    "normalize_key_to_hex",
    "key_to_bytes",
    "to_json_safe",
    "EncryptedPayload",
    "generate_key",
    "generate_iv",
    "validate_key",
    "encrypt_file",
    "decrypt_file",
    "decrypt_bytes",
    "sharecode",
]
