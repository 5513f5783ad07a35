"""CredentialVault — AES-256-GCM encryption for long-lived platform tokens.

Envelope format (all hex, colon separated, in this order)::

    <iv>:<auth tag>:<ciphertext>

A fresh 96-bit IV is drawn for every ``encrypt`` call, so encrypting the same
token twice never yields the same envelope.
"""

from __future__ import annotations

import binascii
import hashlib
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from pulse_core.errors import DecryptionError

IV_BYTES = 12
TAG_BYTES = 16
KEY_BYTES = 32


def hash_token(token: str) -> str:
    """Stable, non-reversible identifier for a credential (safe to log or key on)."""
    return hashlib.sha256(token.encode()).hexdigest()


class CredentialVault:
    """Encrypts/decrypts credentials at rest. Owns the key and envelope format."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_BYTES:
            raise ValueError(f"Vault key must be {KEY_BYTES} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_hex_key(cls, hex_key: str) -> CredentialVault:
        """Build a vault from the 64-char hex key held in settings."""
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as e:
            raise ValueError("Vault key is not valid hex") from e
        return cls(key)

    @staticmethod
    def generate_key() -> str:
        """Return a new random key, hex encoded, for ENCRYPTION_KEY."""
        return secrets.token_hex(KEY_BYTES)

    def encrypt(self, plaintext: str) -> str:
        iv = secrets.token_bytes(IV_BYTES)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        # cryptography appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, envelope: str) -> str:
        """Recover the plaintext.

        Raises:
            DecryptionError: wrong segment count, bad hex, wrong IV/tag size,
                or the authentication tag does not verify.
        """
        parts = envelope.split(":")
        if len(parts) != 3:
            raise DecryptionError(
                f"Malformed credential envelope: expected 3 segments, got {len(parts)}"
            )

        try:
            iv, tag, ciphertext = (binascii.unhexlify(p) for p in parts)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Malformed credential envelope: invalid hex") from e

        if len(iv) != IV_BYTES or len(tag) != TAG_BYTES:
            raise DecryptionError("Malformed credential envelope: bad IV or tag length")

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError("Credential failed authentication (tampered or wrong key)") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Credential plaintext is not valid UTF-8") from e
