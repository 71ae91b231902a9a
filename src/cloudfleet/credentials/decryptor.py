"""Decryption of stored credential blobs.

The decrypt API is treated as opaque: a ``Decryptor`` turns an encrypted
string into a plaintext JSON document. The built-in backend uses Fernet
symmetric encryption from ``cryptography``.
"""

from __future__ import annotations

import os
from typing import Any, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

from cloudfleet.errors import DecryptionError

DEFAULT_KEY_ENV = "CLOUDFLEET_ENCRYPTION_KEY"


@runtime_checkable
class Decryptor(Protocol):
    """Protocol for credential decryptors."""

    def decrypt(self, encrypted_data: str) -> bytes:
        """Return the plaintext for *encrypted_data*.

        Raises:
            DecryptionError: If the data is empty or cannot be decrypted.
        """
        ...


class FernetDecryptor:
    """Fernet-based decryptor (AES-128-CBC + HMAC-SHA256)."""

    def __init__(self, key: str | bytes) -> None:
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise DecryptionError(f"Invalid Fernet key: {exc}") from None

    def decrypt(self, encrypted_data: str) -> bytes:
        if not encrypted_data:
            raise DecryptionError("Encrypted credential data is empty")
        try:
            return self._fernet.decrypt(encrypted_data.encode("utf-8"))
        except InvalidToken:
            raise DecryptionError("Credential data could not be decrypted") from None

    def encrypt(self, plaintext: bytes) -> str:
        """Encrypt *plaintext* (used by tooling and tests to seed stores)."""
        return self._fernet.encrypt(plaintext).decode("utf-8")


def generate_key() -> str:
    """Generate a new url-safe base64 Fernet key."""
    return Fernet.generate_key().decode("utf-8")


def build_decryptor(config: dict[str, Any]) -> Decryptor:
    """Build a decryptor from a configuration dict.

    Supported keys:
    - key: Fernet key (inline; prefer ``key_env`` outside tests)
    - key_env: environment variable holding the key
      (default ``CLOUDFLEET_ENCRYPTION_KEY``)
    """
    key = config.get("key") or os.environ.get(config.get("key_env", DEFAULT_KEY_ENV))
    if not key:
        raise DecryptionError(
            "No encryption key configured. Set 'decryptor.key' or "
            f"the {config.get('key_env', DEFAULT_KEY_ENV)} environment variable."
        )
    return FernetDecryptor(key)
