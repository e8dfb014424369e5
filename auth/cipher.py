"""
auth/cipher.py -- Symmetric encryption of client request payloads.

Login and registration accept an optional {"encryptedData": "..."} body that
the frontend produces with CryptoJS.AES.encrypt(json, passphrase). This module
speaks the same wire format so both ends interoperate:

    base64( b"Salted__" + salt[8] + AES-256-CBC(PKCS7(plaintext)) )

with key and IV derived from (passphrase, salt) by OpenSSL's EVP_BytesToKey
(MD5, one iteration). The format is what the existing clients emit; it is
not an authenticated cipher, so the transport still has to be TLS.

Every failure mode (bad base64, missing header, wrong key, bad padding,
non-UTF-8 output, empty output, invalid JSON) collapses into DecryptionError
so callers cannot distinguish a key mismatch from corrupt input.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
from functools import lru_cache
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from auth.errors import DecryptionError
from core.config import get_settings

logger = logging.getLogger("staffauth.auth.cipher")

_MAGIC = b"Salted__"
_SALT_LEN = 8
_KEY_LEN = 32
_IV_LEN = 16
_BLOCK_BITS = 128


def _derive_key_iv(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
    derived = b""
    block = b""
    while len(derived) < _KEY_LEN + _IV_LEN:
        block = hashlib.md5(block + passphrase + salt).digest()  # noqa: S324 -- KDF fixed by wire format
        derived += block
    return derived[:_KEY_LEN], derived[_KEY_LEN : _KEY_LEN + _IV_LEN]


class PayloadCipher:
    """Encrypt and decrypt strings and JSON objects with one shared passphrase.

    Usage:
        cipher = PayloadCipher("shared passphrase")
        blob = cipher.encrypt_object({"email": "a@b.com"})
        cipher.decrypt_object(blob)  # {"email": "a@b.com"}
    """

    def __init__(self, passphrase: str) -> None:
        if not passphrase:
            raise ValueError("PayloadCipher requires a non-empty passphrase")
        self._passphrase = passphrase.encode("utf-8")

    def encrypt(self, plaintext: str) -> str:
        salt = os.urandom(_SALT_LEN)
        key, iv = _derive_key_iv(self._passphrase, salt)
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(_MAGIC + salt + ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError, AttributeError) as exc:
            raise DecryptionError() from exc

        header_len = len(_MAGIC) + _SALT_LEN
        body = raw[header_len:]
        if not raw.startswith(_MAGIC) or not body or len(body) % (_BLOCK_BITS // 8):
            raise DecryptionError()

        key, iv = _derive_key_iv(self._passphrase, raw[len(_MAGIC) : header_len])
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
        try:
            padded = decryptor.update(body) + decryptor.finalize()
            plain = unpadder.update(padded) + unpadder.finalize()
            text = plain.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            logger.info("Payload decryption failed (invalid key or corrupted data)")
            raise DecryptionError() from exc

        if not text:
            raise DecryptionError()
        return text

    def encrypt_object(self, obj: Any) -> str:
        return self.encrypt(json.dumps(obj, ensure_ascii=False))

    def decrypt_object(self, ciphertext: str) -> Any:
        text = self.decrypt(ciphertext)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise DecryptionError() from exc


@lru_cache
def get_cipher() -> PayloadCipher:
    """Return the process-wide cipher keyed by ENCRYPTION_SECRET_KEY."""
    return PayloadCipher(get_settings().encryption_secret_key)
