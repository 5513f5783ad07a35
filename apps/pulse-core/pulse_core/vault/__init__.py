"""Credential vault — encryption of platform access tokens at rest."""

from pulse_core.vault.credentials import CredentialVault, hash_token

__all__ = ["CredentialVault", "hash_token"]
