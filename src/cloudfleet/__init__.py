"""cloudfleet: multi-cloud Kubernetes and network orchestration for EKS, GKE and AKS."""

__version__ = "0.4.0"

from cloudfleet.bulk.engine import BulkOperation, BulkOperationEngine
from cloudfleet.config import CloudFleetConfig, find_config, load_config
from cloudfleet.credentials.decryptor import FernetDecryptor, generate_key
from cloudfleet.credentials.resolver import CredentialResolver
from cloudfleet.credentials.store import FileCredentialStore, InMemoryCredentialStore
from cloudfleet.errors import (
    AuthError,
    AuthorizationError,
    CloudFleetError,
    DecryptionError,
    InvalidRegionError,
    NotFoundError,
    PartialFailureError,
    ProviderError,
    UnsupportedProviderError,
    ValidationError,
)
from cloudfleet.events.notifier import (
    InMemoryEventNotifier,
    LoggingEventNotifier,
    WebhookEventNotifier,
)
from cloudfleet.models import (
    AWSNodeGroup,
    AzureNodePool,
    BulkProgress,
    Cluster,
    ClusterMode,
    ClusterStatus,
    CreateClusterRequest,
    CreateSecurityGroupRequest,
    CreateSubnetRequest,
    CreateVPCRequest,
    GCPNodePool,
    KubeconfigDocument,
    LifecycleEvent,
    Provider,
    RequestContext,
    SecurityGroup,
    SecurityGroupRule,
    StoredCredential,
    Subnet,
    VPC,
)
from cloudfleet.orchestrator.cluster import ClusterOrchestrator
from cloudfleet.orchestrator.network import NetworkOrchestrator
from cloudfleet.providers.factory import ProviderClientFactory
from cloudfleet.sdk.client import CloudFleet, ConfigurationError

__all__ = [
    "AuthError",
    "AuthorizationError",
    "AWSNodeGroup",
    "AzureNodePool",
    "BulkOperation",
    "BulkOperationEngine",
    "BulkProgress",
    "CloudFleet",
    "CloudFleetConfig",
    "CloudFleetError",
    "Cluster",
    "ClusterMode",
    "ClusterOrchestrator",
    "ClusterStatus",
    "ConfigurationError",
    "CreateClusterRequest",
    "CreateSecurityGroupRequest",
    "CreateSubnetRequest",
    "CreateVPCRequest",
    "CredentialResolver",
    "DecryptionError",
    "FernetDecryptor",
    "FileCredentialStore",
    "find_config",
    "GCPNodePool",
    "generate_key",
    "InMemoryCredentialStore",
    "InMemoryEventNotifier",
    "InvalidRegionError",
    "KubeconfigDocument",
    "LifecycleEvent",
    "load_config",
    "LoggingEventNotifier",
    "NetworkOrchestrator",
    "NotFoundError",
    "PartialFailureError",
    "Provider",
    "ProviderClientFactory",
    "ProviderError",
    "RequestContext",
    "SecurityGroup",
    "SecurityGroupRule",
    "StoredCredential",
    "Subnet",
    "UnsupportedProviderError",
    "ValidationError",
    "VPC",
    "WebhookEventNotifier",
    "__version__",
]
