"""Provider SDK adapters.

Clients: AwsClient (boto3), GcpClient (google-cloud-*), AzureClient (azure-mgmt-*).
SDKs are optional extras and imported lazily by the factory.
"""

from cloudfleet.providers.base import NetworkClient, ProviderClient
from cloudfleet.providers.factory import ProviderClientFactory, validate_region

__all__ = [
    "NetworkClient",
    "ProviderClient",
    "ProviderClientFactory",
    "validate_region",
]
