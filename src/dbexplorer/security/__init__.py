"""Credential protection for stored connection profiles."""

from .vault import CredentialVault, EncryptedSecret, derive_key

__all__ = ["CredentialVault", "EncryptedSecret", "derive_key"]
