"""Credential encryption at rest.

Passwords are encrypted with AES-256-CBC (PKCS7 padding) under a key derived
once per process from the application passphrase. Every call to ``encrypt``
draws a fresh 16-byte IV, so the same password never produces the same
ciphertext twice.

Example:
    >>> vault = CredentialVault.from_passphrase("dbexplorer-local-key")
    >>> sealed = vault.encrypt("secret123")
    >>> vault.decrypt(sealed.ciphertext, sealed.iv)
    'secret123'
"""

import functools
import hashlib
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core.exceptions import DecryptionError, ErrorCodes
from ..logging import get_logger

IV_SIZE = 16
KEY_SIZE = 32

logger = get_logger(__name__)


@functools.lru_cache(maxsize=4)
def derive_key(passphrase: str) -> bytes:
    """Hash the passphrase into a 256-bit key. Cached for the process lifetime."""
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


@dataclass(frozen=True)
class EncryptedSecret:
    """An encrypted payload and the IV it was encrypted with, both hex encoded."""

    iv: str
    ciphertext: str

    def to_record(self) -> Dict[str, str]:
        return {"iv": self.iv, "encryptedData": self.ciphertext}

    @classmethod
    def from_record(cls, record: Any) -> "EncryptedSecret":
        """Parse the stored ``{iv, encryptedData}`` form.

        Raises:
            DecryptionError: If the record is not a well-formed encrypted payload
        """
        if not isinstance(record, Mapping):
            raise DecryptionError(
                "Stored password is not an encrypted payload",
                code=ErrorCodes.DECRYPTION_FAILED,
            )
        iv = record.get("iv")
        ciphertext = record.get("encryptedData", record.get("ciphertext"))
        if not isinstance(iv, str) or not isinstance(ciphertext, str):
            raise DecryptionError(
                "Stored password is missing its iv or ciphertext",
                code=ErrorCodes.DECRYPTION_FAILED,
            )
        return cls(iv=iv, ciphertext=ciphertext)


class CredentialVault:
    """Encrypts and decrypts stored connection passwords."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"Vault key must be {KEY_SIZE} bytes, got {len(key)}")
        self._key = key

    @classmethod
    def from_passphrase(cls, passphrase: str) -> "CredentialVault":
        return cls(derive_key(passphrase))

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        """Encrypt ``plaintext`` under a freshly generated IV."""
        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return EncryptedSecret(iv=iv.hex(), ciphertext=ciphertext.hex())

    def decrypt(self, ciphertext: str, iv: str) -> str:
        """Decrypt a hex ciphertext produced by ``encrypt``.

        Raises:
            DecryptionError: If the IV or ciphertext is malformed, or the key is wrong
        """
        try:
            iv_bytes = bytes.fromhex(iv)
            data = bytes.fromhex(ciphertext)
            if len(iv_bytes) != IV_SIZE:
                raise ValueError(f"IV must be {IV_SIZE} bytes, got {len(iv_bytes)}")
            if not data or len(data) % IV_SIZE:
                raise ValueError("Ciphertext length is not a multiple of the block size")

            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv_bytes)).decryptor()
            padded = decryptor.update(data) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (TypeError, ValueError) as e:
            # UnicodeDecodeError is a ValueError
            logger.warning("Password decryption failed", error_type=type(e).__name__)
            raise DecryptionError(
                f"Unable to decrypt stored password: {e}",
                code=ErrorCodes.DECRYPTION_FAILED,
                cause=e,
            ) from e

    def seal(self, plaintext: str) -> Dict[str, str]:
        """Encrypt into the stored record form."""
        return self.encrypt(plaintext).to_record()

    def unseal(self, record: Any) -> str:
        """Decrypt the stored record form."""
        secret = EncryptedSecret.from_record(record)
        return self.decrypt(secret.ciphertext, secret.iv)
