"""
The fixed 45 byte header written in front of every encrypted blob.

    magic          4 bytes   b'\\x00MR\\x00'
    version        1 byte    1
    key hash      16 bytes   digest of the key
    content hash  16 bytes   digest of the plaintext
    size           8 bytes   ciphertext length, little endian
"""

import struct
import typing

import attr

MAGIC = b'\x00MR\x00'
VERSION = 1
TAG = MAGIC + bytes([VERSION])
HASH_SIZE = 16

_LAYOUT = struct.Struct('<4sB16s16sQ')
HEADER_SIZE = _LAYOUT.size


def _hash_bytes(instance, attribute, value):
    if not isinstance(value, bytes) or len(value) != HASH_SIZE:
        raise ValueError(f"{attribute.name} must be {HASH_SIZE} bytes")


@attr.s(frozen=True)
class Header:
    key_hash: bytes = attr.ib(validator=_hash_bytes)
    content_hash: bytes = attr.ib(validator=_hash_bytes)
    size: int = attr.ib()
    version: int = attr.ib(default=VERSION)


def encode(header: Header) -> bytes:
    return _LAYOUT.pack(
        MAGIC,
        header.version,
        header.key_hash,
        header.content_hash,
        header.size)


def is_envelope(data: bytes) -> bool:
    return len(data) > HEADER_SIZE and data[:len(TAG)] == TAG


def decode(data: bytes) -> typing.Optional[Header]:
    """
    Parse the header at the start of a buffer.

    Returns None when the buffer is not an envelope: too short, or the
    magic and version don't match. That usually means plaintext.
    """
    if not is_envelope(data):
        return None
    _, version, key_hash, content_hash, size = _LAYOUT.unpack_from(data, 0)
    return Header(
        key_hash=key_hash,
        content_hash=content_hash,
        size=size,
        version=version)


def split(data: bytes) -> typing.Optional[typing.Tuple[Header, bytes]]:
    """Decode the header and return it with the ciphertext it describes."""
    header = decode(data)
    if header is None:
        return None
    return header, data[HEADER_SIZE:HEADER_SIZE + header.size]
