"""Credential store protocol and built-in backends.

The store is an external collaborator: it owns credential creation and
rotation and hands out encrypted blobs. cloudfleet only reads from it.

Built-in backends:
- InMemoryCredentialStore: dict-backed (development/testing)
- FileCredentialStore: a YAML file listing stored credentials
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from cloudfleet.models import StoredCredential


class CredentialStoreError(Exception):
    """Raised when a store backend is misconfigured or unreadable."""


@runtime_checkable
class CredentialStore(Protocol):
    """Protocol for credential store backends.

    Any object with a ``get_credential_by_id()`` method satisfies this
    protocol.
    """

    def get_credential_by_id(
        self,
        tenant_id: str,
        credential_id: str,
    ) -> StoredCredential | None:
        """Return the stored credential, or ``None`` if it does not exist.

        ``tenant_id`` is the caller's tenant. Backends may use it as a
        lookup hint but must return the credential's real owning tenant;
        ownership is enforced by ``CredentialResolver``.
        """
        ...


class InMemoryCredentialStore:
    """Dict-backed store keyed by credential id."""

    def __init__(self, credentials: list[StoredCredential] | None = None) -> None:
        self._credentials = {c.credential_id: c for c in credentials or []}

    def add(self, credential: StoredCredential) -> None:
        self._credentials[credential.credential_id] = credential

    def get_credential_by_id(
        self,
        tenant_id: str,
        credential_id: str,
    ) -> StoredCredential | None:
        return self._credentials.get(credential_id)


class FileCredentialStore:
    """Reads stored credentials from a YAML file.

    Expected layout::

        credentials:
          - credential_id: cred-aws-prod
            tenant_id: team-a
            provider: aws
            encrypted_data: gAAAAAB...

    The file is re-read on every lookup so rotated entries are picked up
    without a restart.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def get_credential_by_id(
        self,
        tenant_id: str,
        credential_id: str,
    ) -> StoredCredential | None:
        for entry in self._load():
            if entry.get("credential_id") == credential_id:
                return StoredCredential(**entry)
        return None

    def _load(self) -> list[dict[str, Any]]:
        if not self._path.is_file():
            raise CredentialStoreError(f"Credential file not found: {self._path}")
        data = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise CredentialStoreError(
                f"Expected a YAML mapping in {self._path}, got {type(data).__name__}"
            )
        entries = data.get("credentials") or []
        if not isinstance(entries, list):
            raise CredentialStoreError(f"'credentials' must be a list in {self._path}")
        return entries


def build_store(config: dict[str, Any]) -> CredentialStore:
    """Build a credential store from a configuration dict.

    Supported keys:
    - type: ``"file"`` (default when ``path`` is set) or ``"memory"``
    - path: YAML file for the file backend
    - credentials: list of credential dicts for the memory backend
    """
    store_type = config.get("type") or ("file" if config.get("path") else "memory")

    if store_type == "file":
        if not config.get("path"):
            raise CredentialStoreError("File credential store requires 'path'")
        return FileCredentialStore(config["path"])

    if store_type == "memory":
        return InMemoryCredentialStore(
            [StoredCredential(**c) for c in config.get("credentials") or []],
        )

    raise CredentialStoreError(
        f"Unknown credential store type: {store_type}. Available: 'file', 'memory'."
    )
