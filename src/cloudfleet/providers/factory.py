"""ProviderClientFactory: build region-bound SDK clients from credentials.

A fresh client is built for every request; nothing is cached across
credentials, tenants or regions.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from cloudfleet.errors import (
    AuthError,
    AuthorizationError,
    CloudFleetError,
    InvalidRegionError,
    UnsupportedProviderError,
)
from cloudfleet.models import DecryptedCredential, Provider
from cloudfleet.providers.base import ProviderClient

logger = logging.getLogger(__name__)

REGION_PATTERNS: dict[Provider, re.Pattern[str]] = {
    Provider.AWS: re.compile(r"^[a-z]{2}(-gov)?-[a-z]+-\d$"),
    Provider.GCP: re.compile(r"^[a-z]+-[a-z]+\d+(-[a-z])?$"),
    Provider.AZURE: re.compile(r"^[a-z]+[a-z0-9]*$"),
}


def validate_region(provider: Provider | str, region: str) -> str:
    """Return *region* if it is well-formed for *provider*.

    Raises:
        UnsupportedProviderError: Unknown provider.
        InvalidRegionError: Region does not match the provider's format.
    """
    try:
        provider = Provider(provider)
    except ValueError:
        raise UnsupportedProviderError(str(provider)) from None
    if not region or not REGION_PATTERNS[provider].match(region):
        raise InvalidRegionError(provider, region)
    return region


class ProviderClientFactory:
    """Builds provider clients for one credential + region at a time.

    Args:
        aws_endpoint_url: Optional endpoint override for AWS (e.g. LocalStack).
    """

    def __init__(self, aws_endpoint_url: str | None = None) -> None:
        self._aws_endpoint_url = aws_endpoint_url

    def build_client(
        self,
        provider: Provider | str,
        credential: DecryptedCredential,
        region: str,
        resource_group: str | None = None,
    ) -> ProviderClient:
        """Build a client for *provider* in *region*.

        Raises:
            UnsupportedProviderError: Unknown provider.
            InvalidRegionError: Malformed region.
            AuthorizationError: Credential belongs to another provider.
            AuthError: SDK rejected the credential material.
        """
        validate_region(provider, region)
        provider = Provider(provider)
        if credential.provider != provider:
            raise AuthorizationError(
                f"Credential {credential.credential_id} is for {credential.provider}, "
                f"not {provider}"
            )

        builder = {
            Provider.AWS: self._build_aws,
            Provider.GCP: self._build_gcp,
            Provider.AZURE: self._build_azure,
        }[provider]
        try:
            client = builder(credential.data, region, resource_group)
        except (ImportError, CloudFleetError):
            raise
        except Exception as exc:
            logger.warning(
                "Failed to build %s client for credential %s: %s",
                provider, credential.credential_id, exc,
            )
            raise AuthError(provider, str(exc)) from exc
        logger.debug("Built %s client for %s", provider, region)
        return client

    # --- Private: per-provider builders ---

    def _build_aws(self, data: dict[str, Any], region: str, resource_group: str | None):
        from cloudfleet.providers.aws import AwsClient, _check_boto3_available

        _check_boto3_available()
        import boto3

        session = boto3.Session(
            aws_access_key_id=data["access_key"],
            aws_secret_access_key=data["secret_key"],
            aws_session_token=data.get("session_token"),
            region_name=region,
        )
        return AwsClient(session, region, endpoint_url=self._aws_endpoint_url)

    def _build_gcp(self, data: dict[str, Any], region: str, resource_group: str | None):
        from cloudfleet.providers.gcp import GcpClient, _check_gcp_available, build_credentials

        _check_gcp_available()
        info = dict(data)
        info.setdefault("type", "service_account")
        info.setdefault("token_uri", "https://oauth2.googleapis.com/token")
        return GcpClient(build_credentials(info), data["project_id"], region)

    def _build_azure(self, data: dict[str, Any], region: str, resource_group: str | None):
        from cloudfleet.providers.azure import (
            AzureClient,
            _check_azure_available,
            build_credential,
        )

        _check_azure_available()
        return AzureClient(
            build_credential(data),
            data["subscription_id"],
            region,
            resource_group=resource_group or data.get("resource_group"),
        )
