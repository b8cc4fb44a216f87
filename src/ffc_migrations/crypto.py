"""Crypto provider contract and a Fernet-based implementation.

Migrations only need four operations from a provider: reversible
authenticated encryption, decryption, a deterministic keyed hash used for
equality search, and a configuration check.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from abc import ABC, abstractmethod

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .exceptions import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32


class CryptoProvider(ABC):
    """Encrypt, decrypt and hash single field values."""

    @abstractmethod
    def encrypt(self, plaintext: str) -> str | None:
        """Encrypt a value; empty input yields None."""
        pass

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a value.

        Raises:
            DecryptionError: If the ciphertext is invalid or was produced
                with another key
        """
        pass

    @abstractmethod
    def hash(self, plaintext: str) -> str | None:
        """Deterministic keyed digest; empty input yields None."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        pass


def derive_key(secret: str, salt: bytes, info: bytes) -> bytes:
    """Derive 32 bytes of key material from the application secret using HKDF."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        info=info,
    )
    return hkdf.derive(secret.encode("utf-8"))


class FernetCryptoProvider(CryptoProvider):
    """Fernet (AES-128-CBC + HMAC-SHA256) encryption with HMAC-SHA256 hashes.

    Both the encryption key and the hash key are derived from one secret with
    HKDF under different ``info`` labels. A dedicated ``hash_salt`` replaces
    the derived hash key, so digests can stay stable across a change of
    encryption secret.

    Args:
        secret_key: Application secret, at least 32 characters
        hash_salt: Optional explicit key for the keyed hash
    """

    KDF_SALT = b"ffc-field-encryption-v1"

    def __init__(self, secret_key: str | None, hash_salt: str | None = None):
        self._secret_key = secret_key or ""
        self._hash_salt = hash_salt or ""
        self._fernet: Fernet | None = None
        self._hash_key: bytes | None = None

    @classmethod
    def from_config(cls, config: dict) -> FernetCryptoProvider:
        return cls(config.get("secret_key"), config.get("hash_salt"))

    def is_configured(self) -> bool:
        return len(self._secret_key) >= MIN_SECRET_LENGTH

    def _get_fernet(self) -> Fernet:
        if not self.is_configured():
            raise ConfigurationError(
                "Encryption secret not configured",
                context={"min_length": MIN_SECRET_LENGTH},
            )
        if self._fernet is None:
            key = derive_key(self._secret_key, self.KDF_SALT, b"field-encryption-key")
            self._fernet = Fernet(base64.urlsafe_b64encode(key))
        return self._fernet

    def _get_hash_key(self) -> bytes:
        if self._hash_key is None:
            if self._hash_salt:
                self._hash_key = self._hash_salt.encode("utf-8")
            else:
                if not self.is_configured():
                    raise ConfigurationError("Hash key not configured")
                self._hash_key = derive_key(
                    self._secret_key, self.KDF_SALT, b"field-hash-key"
                )
        return self._hash_key

    def encrypt(self, plaintext: str) -> str | None:
        if not plaintext:
            return None
        token = self._get_fernet().encrypt(plaintext.encode("utf-8"))
        return token.decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            raise DecryptionError("Cannot decrypt an empty value")
        try:
            return self._get_fernet().decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise DecryptionError(
                "Decryption failed: invalid token or wrong key",
                context={"ciphertext_length": len(ciphertext)},
            ) from e

    def hash(self, plaintext: str) -> str | None:
        if not plaintext:
            return None
        return hmac.new(
            self._get_hash_key(), plaintext.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def get_info(self) -> dict:
        """Describe the provider (for status screens)."""
        return {
            "configured": self.is_configured(),
            "cipher": "Fernet (AES-128-CBC + HMAC-SHA256)",
            "hash_algorithm": "HMAC-SHA256",
            "key_derivation": "HKDF-SHA256",
            "hash_key_source": "hash_salt" if self._hash_salt else "derived",
        }
