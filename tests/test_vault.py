"""
Tests for the credential vault
"""

import pytest

from pulse_core.errors import DecryptionError
from pulse_core.vault import CredentialVault, hash_token


def _flip_bit(hex_segment: str, index: int = 0) -> str:
    raw = bytearray(bytes.fromhex(hex_segment))
    raw[index] ^= 0x01
    return raw.hex()


class TestRoundTrip:
    def test_ascii(self, vault):
        assert vault.decrypt(vault.encrypt("EAAB-page-token-123")) == "EAAB-page-token-123"

    def test_multibyte_utf8(self, vault):
        secret = "héllo 日本語 🎉"
        assert vault.decrypt(vault.encrypt(secret)) == secret

    def test_empty_string(self, vault):
        assert vault.decrypt(vault.encrypt("")) == ""

    def test_envelope_layout(self, vault):
        iv, tag, ciphertext = vault.encrypt("abc").split(":")
        assert len(iv) == 24  # 12 bytes
        assert len(tag) == 32  # 16 bytes
        assert len(ciphertext) == 6

    def test_fresh_iv_per_call(self, vault):
        first = vault.encrypt("same")
        second = vault.encrypt("same")
        assert first != second
        assert first.split(":")[0] != second.split(":")[0]


class TestTamperDetection:
    def test_ciphertext_bit_flip(self, vault):
        iv, tag, ciphertext = vault.encrypt("sensitive").split(":")
        with pytest.raises(DecryptionError):
            vault.decrypt(f"{iv}:{tag}:{_flip_bit(ciphertext)}")

    def test_tag_bit_flip(self, vault):
        iv, tag, ciphertext = vault.encrypt("sensitive").split(":")
        with pytest.raises(DecryptionError):
            vault.decrypt(f"{iv}:{_flip_bit(tag, 15)}:{ciphertext}")

    def test_iv_bit_flip(self, vault):
        iv, tag, ciphertext = vault.encrypt("sensitive").split(":")
        with pytest.raises(DecryptionError):
            vault.decrypt(f"{_flip_bit(iv)}:{tag}:{ciphertext}")

    def test_wrong_key(self, vault):
        envelope = vault.encrypt("sensitive")
        other = CredentialVault(bytes(32))
        with pytest.raises(DecryptionError):
            other.decrypt(envelope)


class TestMalformedEnvelope:
    @pytest.mark.parametrize(
        "envelope",
        [
            "",
            "deadbeef",
            "aa:bb",
            "aa:bb:cc:dd",
            "zz:zz:zz",
            "00ff:" + "00" * 16 + ":00",  # IV too short
            "00" * 12 + ":00ff:00",  # tag too short
        ],
    )
    def test_rejected(self, vault, envelope):
        with pytest.raises(DecryptionError):
            vault.decrypt(envelope)


class TestKeyHandling:
    def test_key_must_be_32_bytes(self):
        with pytest.raises(ValueError):
            CredentialVault(b"short")

    def test_from_hex_key(self):
        key = CredentialVault.generate_key()
        assert len(key) == 64
        vault = CredentialVault.from_hex_key(key)
        assert vault.decrypt(vault.encrypt("x")) == "x"

    def test_from_hex_key_rejects_non_hex(self):
        with pytest.raises(ValueError):
            CredentialVault.from_hex_key("g" * 64)

    def test_from_hex_key_rejects_empty(self):
        with pytest.raises(ValueError):
            CredentialVault.from_hex_key("")


def test_hash_token_is_stable_and_opaque():
    digest = hash_token("page-token")
    assert digest == hash_token("page-token")
    assert digest != hash_token("other-token")
    assert len(digest) == 64
    assert "page-token" not in digest
