"""Tests for app/core/fingerprint.py."""
from __future__ import annotations

import hashlib

import pytest

from app.core.fingerprint import HASH_HEX_LENGTH, fingerprint, fingerprint_text, verify


def test_known_digest():
    assert fingerprint(b"abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_digest_is_lowercase_hex_of_fixed_length():
    digest = fingerprint(b"Notificacao extrajudicial")
    assert len(digest) == HASH_HEX_LENGTH
    assert digest == digest.lower()
    int(digest, 16)


def test_deterministic_for_identical_bytes():
    content = "Fica V.Sa. notificada".encode("utf-8")
    assert fingerprint(content) == fingerprint(bytes(content))


def test_single_byte_change_changes_digest():
    assert fingerprint(b"valor R$ 100") != fingerprint(b"valor R$ 101")


def test_text_is_hashed_as_utf8():
    text = "Notificação"
    assert fingerprint_text(text) == hashlib.sha256(text.encode("utf-8")).hexdigest()


def test_empty_content_has_a_digest():
    assert fingerprint(b"") == hashlib.sha256(b"").hexdigest()


@pytest.mark.parametrize("value", ["text", 123, None])
def test_non_bytes_rejected(value):
    with pytest.raises(TypeError):
        fingerprint(value)


class TestVerify:
    def test_matching_hash(self):
        assert verify(b"abc", fingerprint(b"abc")) is True

    def test_uppercase_hash_accepted(self):
        assert verify(b"abc", fingerprint(b"abc").upper()) is True

    def test_mismatch(self):
        assert verify(b"abd", fingerprint(b"abc")) is False

    def test_wrong_length(self):
        assert verify(b"abc", "deadbeef") is False

    def test_empty_expected(self):
        assert verify(b"abc", "") is False
