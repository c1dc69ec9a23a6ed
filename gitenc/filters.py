"""
The clean, smudge and diff filters.

git runs one filter process per file, so a Pipeline loads the key from
the store on every call and keeps nothing between calls.
"""

import logging
import pathlib
import typing

import attr

from . import crypto, envelope
from .keys import KeyMaterial, KeyStore, key_name
from .utils import (
    ContentHashMismatch,
    KeyMismatch,
    VerificationFailure,
)

log = logging.getLogger(__name__)


@attr.s(frozen=True)
class Pipeline:
    keys: KeyStore = attr.ib()
    name: str = attr.ib(default=None, converter=key_name)

    def key(self) -> KeyMaterial:
        return self.keys.load(self.name)

    def clean(self, plaintext: bytes) -> bytes:
        """Encrypt plaintext into an envelope. Fails if the key can't be read."""
        key = self.key().key
        ciphertext = crypto.seal(plaintext, key)
        header = envelope.Header(
            key_hash=crypto.digest128(key),
            content_hash=crypto.digest128(plaintext),
            size=len(ciphertext))
        return envelope.encode(header) + ciphertext

    def verify(self, data: bytes) -> typing.Optional[bytes]:
        """
        Decrypt an envelope and check it against its header.

        Returns None if the data is not an envelope at all, and raises a
        VerificationFailure if it is one but can't be trusted.
        """
        parts = envelope.split(data)
        if parts is None:
            return None
        header, ciphertext = parts

        key = self.key().key
        if header.key_hash != crypto.digest128(key):
            raise KeyMismatch(
                f"Key {self.name!r} is not the key this file was encrypted with")

        plaintext = crypto.open(ciphertext, key)

        if header.content_hash != crypto.digest128(plaintext):
            raise ContentHashMismatch("Decrypted content does not match its hash")

        return plaintext

    def smudge(self, data: bytes) -> bytes:
        """
        Decrypt an envelope for the working tree.

        Anything that doesn't verify is returned unchanged.
        """
        try:
            plaintext = self.verify(data)
        except VerificationFailure as error:
            log.error(f"{error.message}, leaving the file encrypted")
            return data

        if plaintext is None:
            log.warning(
                "File is not encrypted, run 'gitenc doctor' to check the repository")
            return data

        return plaintext

    def diff(self, path: pathlib.Path) -> bytes:
        """Decrypt a file for display. Verification failures propagate."""
        data = path.read_bytes()
        plaintext = self.verify(data)
        return data if plaintext is None else plaintext
