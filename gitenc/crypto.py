"""
Compress-then-encrypt with AES-256-GCM.

Sealed data is 'nonce || ciphertext || tag'. The nonce is random for
every call and is not secret.
"""

import gzip
import hashlib
import secrets
import zlib

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .utils import AuthenticationFailure, CryptoFailure, DecompressionFailure

NONCE_SIZE = 12
TAG_SIZE = 16


def digest128(data: bytes) -> bytes:
    """Fingerprint for equality checks only; tampering is caught by GCM."""
    return hashlib.md5(data).digest()


def _cipher(key: bytes) -> AESGCM:
    try:
        return AESGCM(key)
    except (TypeError, ValueError) as error:
        raise CryptoFailure(f"Could not create cipher: {error}")


def seal(plaintext: bytes, key: bytes) -> bytes:
    aesgcm = _cipher(key)
    nonce = secrets.token_bytes(NONCE_SIZE)
    return nonce + aesgcm.encrypt(nonce, gzip.compress(plaintext), None)


def open(ciphertext: bytes, key: bytes) -> bytes:
    aesgcm = _cipher(key)

    if len(ciphertext) < NONCE_SIZE + TAG_SIZE:
        raise AuthenticationFailure("Ciphertext is too short")

    nonce, sealed = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
    try:
        compressed = aesgcm.decrypt(nonce, sealed, None)
    except InvalidTag:
        raise AuthenticationFailure("Ciphertext failed authentication")

    try:
        return gzip.decompress(compressed)
    except (OSError, EOFError, zlib.error) as error:
        raise DecompressionFailure(f"Decrypted data is not gzip: {error}")
