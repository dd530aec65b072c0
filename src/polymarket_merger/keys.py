from __future__ import annotations

import base64
import binascii
import hashlib
import os
import re

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

# CryptoJS passphrase format: base64("Salted__" + salt + ciphertext)
SALT_HEADER = b"Salted__"
_KEY_BYTES = 32
_IV_BYTES = 16
_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


class KeyDecryptionError(RuntimeError):
    pass


def _evp_bytes_to_key(password: bytes, salt: bytes) -> tuple[bytes, bytes]:
    derived = b""
    block = b""
    while len(derived) < _KEY_BYTES + _IV_BYTES:
        block = hashlib.md5(block + password + salt).digest()
        derived += block
    return derived[:_KEY_BYTES], derived[_KEY_BYTES : _KEY_BYTES + _IV_BYTES]


def encrypt_private_key(private_key: str, password: str, salt: bytes | None = None) -> str:
    salt = salt if salt is not None else os.urandom(8)
    key, iv = _evp_bytes_to_key(password.encode("utf-8"), salt)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(private_key.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(SALT_HEADER + salt + ciphertext).decode("ascii")


def _decrypt(ciphertext_b64: str, password: str) -> str:
    try:
        raw = base64.b64decode(ciphertext_b64.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyDecryptionError("Encrypted key is not valid base64.") from exc
    if not raw.startswith(SALT_HEADER) or len(raw) <= 16 or (len(raw) - 16) % 16 != 0:
        raise KeyDecryptionError("Encrypted key is not in salted AES format.")

    salt, body = raw[8:16], raw[16:]
    key, iv = _evp_bytes_to_key(password.encode("utf-8"), salt)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()
    try:
        unpadder = padding.PKCS7(128).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        # Wrong password: padding or encoding does not survive.
        return ""


def decrypt_private_key(ciphertext_b64: str, password: str) -> str:
    """Decrypt ENCRYPT_PRIVATE_KEY and return a 0x-prefixed 32-byte hex key."""
    if not ciphertext_b64:
        raise KeyDecryptionError("ENCRYPT_PRIVATE_KEY is not set.")
    plain = _decrypt(ciphertext_b64, password)
    if not plain:
        raise KeyDecryptionError("Failed to decrypt private key. Ensure ENCRYPT_PRIVATE_KEY and password are correct.")

    key = plain.strip()
    if _HEX_KEY.match(key):
        key = "0x" + key
    if not (key.startswith("0x") and _HEX_KEY.match(key[2:])):
        raise KeyDecryptionError("Decrypted key is not a valid 32-byte hex private key.")
    return key
