"""
Key material: derivation from a seed and the on-disk key store.

Keys live in '<git-dir>/gitenc/keys/<name>' as 32 raw bytes. The store
is written by 'init' and 'set' and only ever read by the filters.
"""

import hashlib
import logging
import os
import pathlib
import secrets
import typing

import attr

from .utils import KeyUnavailable

log = logging.getLogger(__name__)

DEFAULT_KEY_NAME = 'default'
KEY_SIZE = 32
SEED_SIZE = 32

Seed = typing.Union[str, bytes]


def derive_key(seed: Seed) -> bytes:
    """
    Expand a seed into a 32 byte key.

    The key is md5(seed) followed by md5(reversed seed). This is not a
    real KDF, but existing repositories depend on it.
    """
    if isinstance(seed, str):
        forward, backward = seed.encode('utf-8'), seed[::-1].encode('utf-8')
    else:
        forward, backward = bytes(seed), bytes(seed[::-1])
    return hashlib.md5(forward).digest() + hashlib.md5(backward).digest()


def key_name(name: typing.Optional[str]) -> str:
    return name or DEFAULT_KEY_NAME


@attr.s(frozen=True, repr=False)
class KeyMaterial:
    name: str = attr.ib()
    key: bytes = attr.ib()

    @key.validator
    def _check_size(self, attribute, value):
        if len(value) != KEY_SIZE:
            raise KeyUnavailable(
                f"Key {self.name!r} is {len(value)} bytes, expected {KEY_SIZE}")

    def __repr__(self):
        return f"KeyMaterial(name={self.name!r}, key=[REDACTED])"

    @classmethod
    def from_seed(cls, name: str, seed: typing.Optional[Seed] = None) -> 'KeyMaterial':
        if not seed:
            seed = secrets.token_bytes(SEED_SIZE)
        return cls(name=name, key=derive_key(seed))


@attr.s(frozen=True)
class KeyStore:
    directory: pathlib.Path = attr.ib()

    @classmethod
    def for_repository(cls, git_dir: pathlib.Path) -> 'KeyStore':
        return cls(git_dir / 'gitenc' / 'keys')

    def path(self, name: typing.Optional[str]) -> pathlib.Path:
        return self.directory / key_name(name)

    def initialized(self) -> bool:
        return self.directory.is_dir()

    def exists(self, name: typing.Optional[str]) -> bool:
        return self.path(name).is_file()

    def load(self, name: typing.Optional[str]) -> KeyMaterial:
        """Read a stored key. Never creates one."""
        path = self.path(name)
        log.debug(f"Reading key from {path}")
        try:
            key = path.read_bytes()
        except OSError as error:
            raise KeyUnavailable(f"Could not read key {key_name(name)!r}: {error}")
        return KeyMaterial(name=key_name(name), key=key)

    def store(self, material: KeyMaterial) -> KeyMaterial:
        """Write a key, replacing any existing key with the same name."""
        path = self.path(material.name)
        log.debug(f"Writing key to {path}")
        try:
            self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'wb') as f:
                f.write(material.key)
            os.chmod(path, 0o600)
        except OSError as error:
            raise KeyUnavailable(f"Could not write key {material.name!r}: {error}")
        return material

    def resolve(
            self,
            name: typing.Optional[str],
            seed: typing.Optional[Seed] = None) -> KeyMaterial:
        """
        Load the named key, or derive and store it if there is none yet.

        An existing key is returned as-is; the seed is ignored.
        """
        if self.exists(name):
            return self.load(name)
        return self.store(KeyMaterial.from_seed(key_name(name), seed))
