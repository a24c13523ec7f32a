# privshare/shared/crypto.py
"""
Cryptographic utilities for PrivShare.

Security model:
- The uploader picks (or is given) a short key of 4-12 characters
- The key is expanded deterministically to 32 bytes (see codec.normalize_key_to_hex)
- Payloads are encrypted with AES-256-CBC and a fresh random 16-byte IV
- The IV travels with the published record; the key travels with the share text
"""

import os
import secrets
import string
from typing import NamedTuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from privshare.config import AES_IV_SIZE, KEY_MAX_LENGTH, KEY_MIN_LENGTH
from privshare.errors import DecodeError, DecryptionError, EncryptionError, ValidationError
from privshare.shared.codec import chunked_decode, chunked_encode, key_to_bytes

KEY_ALPHABET = string.ascii_lowercase + string.digits


class EncryptedPayload(NamedTuple):
    """Ciphertext as base64 transport text plus the hex IV used."""
    encrypted_data: str
    iv: str


def generate_key() -> str:
    """Generate a random 4-12 character lowercase-alphanumeric key."""
    length = KEY_MIN_LENGTH + secrets.randbelow(KEY_MAX_LENGTH - KEY_MIN_LENGTH + 1)
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


def generate_iv() -> str:
    """Generate a random IV, hex encoded (32 characters)."""
    return os.urandom(AES_IV_SIZE).hex()


def validate_key(key: str) -> str:
    """
    Check a user-supplied key: 4-12 printable characters.

    Returns the key unchanged so it can be echoed verbatim.
    """
    if not isinstance(key, str) or not (KEY_MIN_LENGTH <= len(key) <= KEY_MAX_LENGTH):
        raise ValidationError(
            f"Encryption key must be {KEY_MIN_LENGTH}-{KEY_MAX_LENGTH} characters long"
        )
    if not key.isprintable():
        raise ValidationError("Encryption key must contain printable characters only")
    return key


def _iv_from_hex(iv: str) -> bytes:
    try:
        raw = bytes.fromhex(iv or "")
    except ValueError as e:
        raise DecryptionError("Invalid IV: not a hex string") from e
    if len(raw) != AES_IV_SIZE:
        raise DecryptionError(f"Invalid IV: expected {AES_IV_SIZE} bytes, got {len(raw)}")
    return raw


def _cipher(key: str, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(key_to_bytes(key)), modes.CBC(iv))


def encrypt_file(data: bytes, key: str) -> EncryptedPayload:
    """
    Encrypt a payload with AES-256-CBC.

    Args:
        data: Raw file bytes
        key: Short user key (not the expanded form)

    Returns:
        EncryptedPayload(encrypted_data=<base64>, iv=<hex>)
    """
    iv = generate_iv()
    try:
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(bytes(data)) + padder.finalize()

        encryptor = _cipher(key, bytes.fromhex(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
    except ValidationError:
        raise
    except (TypeError, ValueError) as e:
        raise EncryptionError(f"File encryption failed: {e}") from e

    return EncryptedPayload(encrypted_data=chunked_encode(ciphertext), iv=iv)


def decrypt_file(encrypted_data: str, key: str, iv: str) -> str:
    """
    Decrypt a payload produced by encrypt_file.

    Args:
        encrypted_data: Ciphertext as base64 text
        key: Short user key, exactly as given at upload
        iv: Hex IV from the published record

    Returns:
        Plaintext as base64 text

    Raises:
        DecryptionError: Wrong key/IV or corrupted data
    """
    raw_iv = _iv_from_hex(iv)
    try:
        ciphertext = chunked_decode(encrypted_data)

        decryptor = _cipher(key, raw_iv).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except (DecodeError, ValidationError, ValueError) as e:
        raise DecryptionError() from e

    return chunked_encode(plaintext)


def decrypt_bytes(ciphertext: bytes, key: str, iv: str) -> bytes:
    """Decrypt raw ciphertext bytes to raw plaintext bytes."""
    return chunked_decode(decrypt_file(chunked_encode(ciphertext), key, iv))
