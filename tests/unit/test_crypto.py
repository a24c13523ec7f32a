import base64
import os
import string
import unittest
from unittest import mock

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from privshare.errors import DecryptionError, ValidationError
from privshare.shared.codec import chunked_decode, chunked_encode
from privshare.shared.crypto import (
    decrypt_bytes,
    decrypt_file,
    encrypt_file,
    generate_iv,
    generate_key,
    validate_key,
)

KEYS = ("ab12", "hello", "p@ss w0rd!", "Pässwörd12", "a1b2c3d4e5f6", "ZZZZZZZZZZZZ")


class TestEncryptDecrypt(unittest.TestCase):
    def test_roundtrip_various_keys_and_sizes(self) -> None:
        for key in KEYS:
            for size in (0, 1, 15, 16, 17, 1000):
                data = os.urandom(size)
                with self.subTest(key=key, size=size):
                    encrypted = encrypt_file(data, key)
                    plain_b64 = decrypt_file(encrypted.encrypted_data, key, encrypted.iv)
                    self.assertEqual(chunked_decode(plain_b64), data)

    def test_roundtrip_large_payload(self) -> None:
        data = os.urandom(11 * 1024 * 1024)
        encrypted = encrypt_file(data, "bigfile1")
        self.assertEqual(chunked_decode(decrypt_file(encrypted.encrypted_data, "bigfile1", encrypted.iv)), data)

    def test_decrypt_returns_base64_text(self) -> None:
        encrypted = encrypt_file(b"hello world", "ab12")
        plain_b64 = decrypt_file(encrypted.encrypted_data, "ab12", encrypted.iv)
        self.assertEqual(plain_b64, base64.b64encode(b"hello world").decode("ascii"))

    def test_fresh_iv_per_encryption(self) -> None:
        first = encrypt_file(b"same", "ab12")
        second = encrypt_file(b"same", "ab12")
        self.assertNotEqual(first.iv, second.iv)
        self.assertNotEqual(first.encrypted_data, second.encrypted_data)
        self.assertEqual(len(first.iv), 32)
        int(first.iv, 16)

    def test_ciphertext_is_plain_aes_cbc_with_expanded_key(self) -> None:
        iv = "00112233445566778899aabbccddeeff"
        with mock.patch("privshare.shared.crypto.generate_iv", return_value=iv):
            encrypted = encrypt_file(b"interop check", "hello")
        self.assertEqual(encrypted.iv, iv)

        key = bytes.fromhex(("68656c6c6f" * 8)[:64])
        decryptor = Cipher(algorithms.AES(key), modes.CBC(bytes.fromhex(iv))).decryptor()
        padded = decryptor.update(base64.b64decode(encrypted.encrypted_data)) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        self.assertEqual(unpadder.update(padded) + unpadder.finalize(), b"interop check")

    def test_wrong_key_never_yields_plaintext(self) -> None:
        data = b"top secret payload"
        encrypted = encrypt_file(data, "rightkey")
        try:
            out = decrypt_file(encrypted.encrypted_data, "wrongkey", encrypted.iv)
        except DecryptionError:
            return
        self.assertNotEqual(chunked_decode(out), data)

    def test_truncated_ciphertext_fails(self) -> None:
        encrypted = encrypt_file(b"x" * 64, "ab12")
        raw = chunked_decode(encrypted.encrypted_data)[:-5]
        with self.assertRaises(DecryptionError):
            decrypt_file(chunked_encode(raw), "ab12", encrypted.iv)

    def test_bad_iv_fails(self) -> None:
        encrypted = encrypt_file(b"data", "ab12")
        for iv in ("", "zz" * 16, "00" * 8):
            with self.subTest(iv=iv):
                with self.assertRaises(DecryptionError):
                    decrypt_file(encrypted.encrypted_data, "ab12", iv)

    def test_malformed_transport_text_fails(self) -> None:
        with self.assertRaises(DecryptionError):
            decrypt_file("not base64!", "ab12", "00" * 16)

    def test_decrypt_bytes(self) -> None:
        encrypted = encrypt_file(b"raw bytes", "ab12")
        self.assertEqual(decrypt_bytes(chunked_decode(encrypted.encrypted_data), "ab12", encrypted.iv), b"raw bytes")


class TestKeys(unittest.TestCase):
    def test_generate_key_shape(self) -> None:
        allowed = set(string.ascii_lowercase + string.digits)
        for _ in range(200):
            key = generate_key()
            self.assertTrue(4 <= len(key) <= 12)
            self.assertTrue(set(key) <= allowed)

    def test_generate_iv_shape(self) -> None:
        iv = generate_iv()
        self.assertEqual(len(iv), 32)
        self.assertEqual(len(bytes.fromhex(iv)), 16)

    def test_validate_key_accepts_and_echoes(self) -> None:
        for key in ("ab12", "abcdefghijkl", "p@ss w0rd!"):
            self.assertEqual(validate_key(key), key)

    def test_validate_key_rejects(self) -> None:
        for key in ("", "abc", "abcdefghijklm", "ab\ncd", None):
            with self.subTest(key=key):
                with self.assertRaises(ValidationError):
                    validate_key(key)


if __name__ == "__main__":
    unittest.main()
