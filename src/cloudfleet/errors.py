"""Error taxonomy shared by every cloudfleet component.

- ``ValidationError``: bad request shape, raised before any provider call.
- ``AuthorizationError``: credential, provider or tenant mismatch.
- ``NotFoundError``: the resource is absent. Idempotent deletes treat it
  as success.
- ``ProviderError``: a raw SDK error wrapped with provider and operation
  context.
- ``PartialFailureError``: some targets of a multi-target operation
  failed. Bulk operations report these through their counters.

Non-fatal side-channel failures (event publishing) are reported with
``EventWarning`` instead of an exception.
"""

from __future__ import annotations

from typing import Any


class CloudFleetError(Exception):
    """Base class for all cloudfleet errors."""


class ValidationError(CloudFleetError):
    """Raised when a request is malformed. Never retried."""


class UnsupportedProviderError(ValidationError):
    """Raised for a provider (or provider feature) that is not supported."""

    def __init__(self, provider: str, feature: str = "") -> None:
        self.provider = provider
        self.feature = feature
        what = f"{feature} for provider" if feature else "provider"
        super().__init__(f"Unsupported {what}: {provider}")


class InvalidRegionError(ValidationError):
    """Raised when a region name is not valid for the provider."""

    def __init__(self, provider: str, region: str) -> None:
        self.provider = provider
        self.region = region
        super().__init__(f"Invalid {provider} region: {region!r}")


class AuthorizationError(CloudFleetError):
    """Raised on tenant, credential or provider mismatch."""


class NotFoundError(CloudFleetError):
    """Raised when a credential or cloud resource does not exist."""

    def __init__(self, kind: str, name: str, detail: str = "") -> None:
        self.kind = kind
        self.name = name
        msg = f"{kind} not found: {name}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class DecryptionError(CloudFleetError):
    """Raised when credential data cannot be decrypted or parsed."""


class ProviderError(CloudFleetError):
    """Wraps a provider SDK error with the operation that triggered it.

    ``code`` is a coarse classification (``forbidden``, ``unauthenticated``,
    ``throttled``, ``invalid``, ``error``) and ``message`` the original
    SDK message.
    """

    def __init__(
        self,
        provider: str,
        operation: str,
        message: str,
        code: str = "error",
    ) -> None:
        self.provider = provider
        self.operation = operation
        self.message = message
        self.code = code
        super().__init__(f"{provider} {operation} failed ({code}): {message}")


class AuthError(ProviderError):
    """Raised when provider credentials cannot be turned into a client."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(provider, "build_client", message, code="unauthenticated")


class PartialFailureError(CloudFleetError):
    """Some targets of a multi-target operation failed.

    ``failures`` maps each failed target to its error message.
    """

    def __init__(
        self,
        operation: str,
        failures: dict[str, str],
        succeeded: int = 0,
    ) -> None:
        self.operation = operation
        self.failures = failures
        self.succeeded = succeeded
        super().__init__(
            f"{operation}: {len(failures)} failed, {succeeded} succeeded "
            f"({', '.join(sorted(failures))})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "succeeded": self.succeeded,
            "failures": dict(self.failures),
        }


class EventWarning(UserWarning):
    """Emitted when an event publisher fails (non-fatal)."""
