"""Credential resolver: turns a stored credential into provider auth material.

The resolver:
1. Looks the credential up in the store
2. Verifies the caller's tenant owns it (before any decryption, so a
   foreign tenant can never use the resolver as a decryption oracle)
3. Decrypts the blob and parses the JSON key/value map
4. Checks the provider-specific required keys
5. Returns a DecryptedCredential

Any failure is fatal; a partially decoded credential is never returned.
"""

from __future__ import annotations

import json
import logging

from cloudfleet.credentials.decryptor import Decryptor
from cloudfleet.credentials.store import CredentialStore
from cloudfleet.errors import (
    AuthorizationError,
    DecryptionError,
    NotFoundError,
    ValidationError,
)
from cloudfleet.models import DecryptedCredential, Provider, RequestContext

logger = logging.getLogger(__name__)

REQUIRED_KEYS: dict[Provider, tuple[str, ...]] = {
    Provider.AWS: ("access_key", "secret_key"),
    Provider.GCP: ("project_id", "client_email", "private_key"),
    Provider.AZURE: ("subscription_id", "client_id", "client_secret", "tenant_id"),
}


class CredentialResolver:
    """Resolves credential ids into decrypted, provider-tagged credentials.

    Stateless: all context comes from the arguments, the store and the
    decryptor.
    """

    def __init__(self, store: CredentialStore, decryptor: Decryptor) -> None:
        self._store = store
        self._decryptor = decryptor

    def resolve(self, credential_id: str, tenant_id: str) -> DecryptedCredential:
        """Resolve *credential_id* on behalf of *tenant_id*.

        Raises:
            NotFoundError: The credential does not exist.
            AuthorizationError: The credential belongs to another tenant.
            DecryptionError: The blob cannot be decrypted or is not a JSON object.
            ValidationError: Required provider keys are missing.
        """
        stored = self._store.get_credential_by_id(tenant_id, credential_id)
        if stored is None:
            raise NotFoundError("credential", credential_id)

        if stored.tenant_id != tenant_id:
            logger.warning(
                "Tenant %s denied access to credential %s", tenant_id, credential_id,
            )
            raise AuthorizationError(
                f"Credential {credential_id} does not belong to tenant {tenant_id}"
            )

        plaintext = self._decryptor.decrypt(stored.encrypted_data)
        try:
            data = json.loads(plaintext)
        except (ValueError, UnicodeDecodeError):
            raise DecryptionError(
                f"Decrypted data for credential {credential_id} is not valid JSON"
            ) from None
        if not isinstance(data, dict):
            raise DecryptionError(
                f"Decrypted data for credential {credential_id} is not a JSON object"
            )

        missing = [k for k in REQUIRED_KEYS[stored.provider] if not data.get(k)]
        if missing:
            raise ValidationError(
                f"{stored.provider} credential {credential_id} is missing: "
                f"{', '.join(missing)}"
            )

        return DecryptedCredential(
            credential_id=stored.credential_id,
            tenant_id=stored.tenant_id,
            provider=stored.provider,
            data=data,
        )

    def resolve_for(self, context: RequestContext) -> DecryptedCredential:
        """Resolve the context's credential and require a matching provider."""
        credential = self.resolve(context.credential_id, context.tenant_id)
        if credential.provider != context.provider:
            raise AuthorizationError(
                f"Credential {context.credential_id} is a {credential.provider} "
                f"credential, not {context.provider}"
            )
        return credential
