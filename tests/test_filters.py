import logging

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from gitenc import crypto, envelope
from gitenc.envelope import HEADER_SIZE
from gitenc.filters import Pipeline
from gitenc.keys import KeyMaterial, KeyStore
from gitenc.utils import (
    AuthenticationFailure,
    ContentHashMismatch,
    DecompressionFailure,
    KeyMismatch,
    KeyUnavailable,
)


def test_full_cycle(pipeline: Pipeline, material):
    blob = pipeline.clean(b'hello world')
    header = envelope.decode(blob)
    assert header.version == 1
    assert header.size == len(blob) - HEADER_SIZE
    assert header.key_hash == crypto.digest128(material.key)
    assert header.content_hash == crypto.digest128(b'hello world')
    assert pipeline.smudge(blob) == b'hello world'


def test_clean_empty_file(pipeline: Pipeline):
    assert pipeline.smudge(pipeline.clean(b'')) == b''


def test_clean_without_key(keys: KeyStore):
    with pytest.raises(KeyUnavailable):
        Pipeline(keys, 'missing').clean(b'secret')


@pytest.mark.parametrize('data', [
    b'',
    b'short',
    b'x' * HEADER_SIZE,
    b'not an envelope, but long enough to have been one',
])
def test_smudge_passes_through(pipeline: Pipeline, data, caplog):
    with caplog.at_level(logging.WARNING):
        assert pipeline.smudge(data) == data
    assert "not encrypted" in caplog.text


def test_smudge_passes_through_without_key(keys: KeyStore):
    assert Pipeline(keys, 'missing').smudge(b'plain') == b'plain'


def test_smudge_key_mismatch(pipeline: Pipeline, keys: KeyStore, monkeypatch, caplog):
    other = Pipeline(keys, keys.store(KeyMaterial.from_seed('other', 'other seed')).name)
    blob = other.clean(b'hello world')

    def fail(*args):
        raise AssertionError("decryption was attempted")

    monkeypatch.setattr(crypto, 'open', fail)
    assert pipeline.smudge(blob) == blob
    assert "not the key" in caplog.text


def test_smudge_tampered(pipeline: Pipeline, caplog):
    blob = bytearray(pipeline.clean(b'hello world'))
    blob[-1] ^= 0xff
    assert pipeline.smudge(bytes(blob)) == bytes(blob)
    assert "authentication" in caplog.text


def test_smudge_not_compressed(pipeline: Pipeline, caplog):
    blob = seal_uncompressed(pipeline, b'hello world')
    assert pipeline.smudge(blob) == blob
    assert "not gzip" in caplog.text


def test_smudge_hash_mismatch(pipeline: Pipeline, caplog):
    blob = forge_content_hash(pipeline.clean(b'hello world'))
    assert pipeline.smudge(blob) == blob
    assert "does not match" in caplog.text


def test_verify_plaintext(pipeline: Pipeline):
    assert pipeline.verify(b'hello world') is None


def test_verify_key_mismatch(pipeline: Pipeline, keys: KeyStore):
    other = Pipeline(keys, keys.store(KeyMaterial.from_seed('other', 'other')).name)
    with pytest.raises(KeyMismatch):
        pipeline.verify(other.clean(b'hello world'))


def test_diff(pipeline: Pipeline, tmp_path):
    path = tmp_path / 'file'
    path.write_bytes(pipeline.clean(b'hello world'))
    assert pipeline.diff(path) == b'hello world'


def test_diff_plaintext(pipeline: Pipeline, tmp_path):
    path = tmp_path / 'file'
    path.write_bytes(b'hi')
    assert pipeline.diff(path) == b'hi'


def test_diff_hash_mismatch(pipeline: Pipeline, tmp_path):
    path = tmp_path / 'file'
    path.write_bytes(forge_content_hash(pipeline.clean(b'hello world')))
    with pytest.raises(ContentHashMismatch):
        pipeline.diff(path)


def test_diff_tampered(pipeline: Pipeline, tmp_path):
    blob = bytearray(pipeline.clean(b'hello world'))
    blob[HEADER_SIZE] ^= 0x01
    path = tmp_path / 'file'
    path.write_bytes(bytes(blob))
    with pytest.raises(AuthenticationFailure):
        pipeline.diff(path)


def test_diff_not_compressed(pipeline: Pipeline, tmp_path):
    path = tmp_path / 'file'
    path.write_bytes(seal_uncompressed(pipeline, b'hello world'))
    with pytest.raises(DecompressionFailure):
        pipeline.diff(path)


def seal_uncompressed(pipeline: Pipeline, plaintext: bytes) -> bytes:
    """An envelope that authenticates but whose payload was never gzipped."""
    key = pipeline.key().key
    nonce = b'\x00' * crypto.NONCE_SIZE
    ciphertext = nonce + AESGCM(key).encrypt(nonce, plaintext, None)
    header = envelope.Header(
        key_hash=crypto.digest128(key),
        content_hash=crypto.digest128(plaintext),
        size=len(ciphertext))
    return envelope.encode(header) + ciphertext


def forge_content_hash(blob: bytes) -> bytes:
    header, ciphertext = envelope.split(blob)
    forged = envelope.Header(
        key_hash=header.key_hash,
        content_hash=crypto.digest128(b'something else'),
        size=header.size)
    return envelope.encode(forged) + ciphertext
