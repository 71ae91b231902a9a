"""Unified domain model for clusters, node pools, networks and bulk operations.

Every provider response is normalised into these models by
``cloudfleet.translate`` and every provider request is built from them.
Records are ephemeral views of provider state; nothing here is persisted
beyond the lifetime of a call.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# --- Enums ---


class Provider(StrEnum):
    AWS = "aws"
    GCP = "gcp"
    AZURE = "azure"


class ClusterStatus(StrEnum):
    CREATING = "CREATING"
    ACTIVE = "ACTIVE"
    UPDATING = "UPDATING"
    DELETING = "DELETING"
    FAILED = "FAILED"


class ClusterMode(StrEnum):
    STANDARD = "standard"
    AUTOPILOT = "autopilot"


class CapacityType(StrEnum):
    ON_DEMAND = "ON_DEMAND"
    SPOT = "SPOT"


class NetworkState(StrEnum):
    CREATING = "creating"
    ACTIVE = "active"
    DELETING = "deleting"
    ERROR = "error"


class RuleDirection(StrEnum):
    INGRESS = "ingress"
    EGRESS = "egress"


class RuleProtocol(StrEnum):
    TCP = "tcp"
    UDP = "udp"
    ICMP = "icmp"
    ALL = "all"


class RuleAction(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


class BulkOperationKind(StrEnum):
    DELETE = "delete"
    TAG = "tag"


class BulkOperationState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    COMPLETE_CANCELLED = "complete_cancelled"


class TargetOutcome(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# --- Cluster lifecycle ---

CLUSTER_TRANSITIONS: dict[ClusterStatus, frozenset[ClusterStatus]] = {
    ClusterStatus.CREATING: frozenset({ClusterStatus.ACTIVE, ClusterStatus.FAILED}),
    ClusterStatus.ACTIVE: frozenset({ClusterStatus.UPDATING, ClusterStatus.DELETING}),
    ClusterStatus.UPDATING: frozenset({ClusterStatus.ACTIVE}),
    ClusterStatus.DELETING: frozenset(),
    ClusterStatus.FAILED: frozenset(),
}


def can_transition(current: ClusterStatus, target: ClusterStatus) -> bool:
    """Return True if a cluster may move from *current* to *target*.

    ``DELETING`` ends with the cluster removed; ``FAILED`` is terminal.
    """
    return target in CLUSTER_TRANSITIONS[current]


# --- Credentials & request context ---


class StoredCredential(BaseModel):
    """An encrypted credential as held by the external credential store."""

    credential_id: str
    tenant_id: str
    provider: Provider
    name: str = ""
    encrypted_data: str = ""


class DecryptedCredential(BaseModel):
    """Provider-tagged auth material produced by ``CredentialResolver``.

    ``data`` is the decrypted key/value map: an access/secret key pair for
    AWS, a service-account document for GCP, a service principal for Azure.
    """

    credential_id: str
    tenant_id: str
    provider: Provider
    data: dict[str, Any] = Field(default_factory=dict, repr=False)


class RequestContext(BaseModel):
    """Explicit per-call context passed into every orchestrator operation."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    credential_id: str
    provider: Provider
    region: str
    resource_group: str | None = None


# --- Clusters ---


class ScalingConfig(BaseModel):
    """Node count bounds. Ordering is checked by the orchestrator."""

    min_size: int = Field(1, ge=0)
    desired_size: int = Field(1, ge=0)
    max_size: int = Field(1, ge=0)


class _NodePoolBase(BaseModel):
    name: str
    cluster_name: str = ""
    instance_types: list[str] = Field(default_factory=list)
    scaling: ScalingConfig = Field(default_factory=ScalingConfig)
    disk_size_gb: int | None = Field(None, ge=1)
    capacity_type: CapacityType = CapacityType.ON_DEMAND
    status: ClusterStatus = ClusterStatus.CREATING
    labels: dict[str, str] = Field(default_factory=dict)
    region: str = ""
    version: str = ""


class AWSNodeGroup(_NodePoolBase):
    """An EKS managed node group."""

    provider: Literal[Provider.AWS] = Provider.AWS
    id: str = ""
    node_role_arn: str = ""
    ami_type: str | None = None
    subnet_ids: list[str] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)
    created_at: datetime | None = None


class GCPNodePool(_NodePoolBase):
    """A GKE node pool. ``instance_types[0]`` is the machine type."""

    provider: Literal[Provider.GCP] = Provider.GCP
    disk_type: str | None = None
    preemptible: bool = False
    autoscaling_enabled: bool = True


class AzureNodePool(_NodePoolBase):
    """An AKS agent pool. ``instance_types[0]`` is the VM size."""

    provider: Literal[Provider.AZURE] = Provider.AZURE
    os_type: str = "Linux"
    mode: Literal["System", "User"] = "User"


NodePool = Annotated[
    AWSNodeGroup | GCPNodePool | AzureNodePool,
    Field(discriminator="provider"),
]


class Cluster(BaseModel):
    """A provider cluster, normalised. The provider is the source of truth."""

    id: str
    name: str
    provider: Provider
    region: str
    version: str = ""
    status: ClusterStatus
    endpoint: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)
    created_at: datetime | None = None
    node_pool_count: int = 0


class CreateClusterRequest(BaseModel):
    """Unified create-cluster request. Provider-specific fields are optional
    here and checked per provider by the orchestrator."""

    name: str = Field(min_length=1)
    version: str = ""
    mode: ClusterMode = ClusterMode.STANDARD
    tags: dict[str, str] = Field(default_factory=dict)
    node_pool: NodePool | None = None
    # AWS
    role_arn: str | None = None
    subnet_ids: list[str] = Field(default_factory=list)
    security_group_ids: list[str] = Field(default_factory=list)
    authentication_mode: str = "API"
    bootstrap_cluster_creator_admin_permissions: bool = True
    # GCP
    network: str | None = None
    subnetwork: str | None = None
    zone: str | None = None
    # Azure
    dns_prefix: str | None = None


class KubeconfigDocument(BaseModel):
    """A kubeconfig proxied for download."""

    content: str = Field(repr=False)
    content_type: str = "application/yaml"
    filename: str


# --- Network ---


class SecurityGroupRule(BaseModel):
    """A single firewall / security group rule.

    ``from_port``/``to_port`` of ``None`` means every port. ``source_groups``
    holds peer security group ids (AWS) or network tags (GCP).
    ``priority`` and ``action`` only exist natively on GCP; AWS rules are
    implicit-allow and carry the defaults.
    """

    direction: RuleDirection
    protocol: RuleProtocol
    from_port: int | None = Field(None, ge=0, le=65535)
    to_port: int | None = Field(None, ge=0, le=65535)
    cidr_blocks: list[str] = Field(default_factory=list)
    source_groups: list[str] = Field(default_factory=list)
    description: str = ""
    priority: int = Field(1000, ge=0, le=65535)
    action: RuleAction = RuleAction.ALLOW

    @model_validator(mode="after")
    def _check_shape(self) -> SecurityGroupRule:
        if (self.from_port is None) != (self.to_port is None):
            raise ValueError("from_port and to_port must be set together")
        if self.from_port is not None:
            if self.protocol in (RuleProtocol.ICMP, RuleProtocol.ALL):
                raise ValueError(f"ports are not allowed with protocol {self.protocol}")
            if self.from_port > self.to_port:  # type: ignore[operator]
                raise ValueError("from_port must be <= to_port")
        if self.protocol != RuleProtocol.ALL and not (self.cidr_blocks or self.source_groups):
            raise ValueError("rule needs at least one CIDR block or source group")
        # One form per rule: a full port range is "every port", IPv4 ranges
        # come before IPv6 and peer groups before prefix lists.
        if (self.from_port, self.to_port) == (0, 65535):
            self.from_port = self.to_port = None
        self.cidr_blocks = sorted(self.cidr_blocks, key=lambda c: ":" in c)
        self.source_groups = sorted(self.source_groups, key=lambda g: g.startswith("pl-"))
        return self


class VPC(BaseModel):
    id: str
    name: str = ""
    state: NetworkState = NetworkState.ACTIVE
    cidr_block: str | None = None
    region: str = ""
    is_default: bool = False
    description: str = ""
    routing_mode: str | None = None
    mtu: int | None = None
    auto_subnets: bool | None = None
    tags: dict[str, str] = Field(default_factory=dict)


class Subnet(BaseModel):
    id: str
    name: str = ""
    vpc_id: str
    cidr_block: str = ""
    availability_zone: str | None = None
    region: str = ""
    state: NetworkState = NetworkState.ACTIVE
    is_public: bool = False
    gateway_address: str | None = None
    private_ip_google_access: bool | None = None
    tags: dict[str, str] = Field(default_factory=dict)


class SecurityGroup(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    vpc_id: str = ""
    region: str = ""
    rules: list[SecurityGroupRule] = Field(default_factory=list)
    target_tags: list[str] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)


class CreateVPCRequest(BaseModel):
    name: str = Field(min_length=1)
    cidr_block: str | None = None
    description: str = ""
    auto_subnets: bool = False
    routing_mode: Literal["REGIONAL", "GLOBAL"] = "REGIONAL"
    mtu: int | None = None
    tags: dict[str, str] = Field(default_factory=dict)


class CreateSubnetRequest(BaseModel):
    name: str = Field(min_length=1)
    vpc_id: str = Field(min_length=1)
    cidr_block: str = Field(min_length=1)
    availability_zone: str | None = None
    private_ip_google_access: bool = False
    tags: dict[str, str] = Field(default_factory=dict)


class CreateSecurityGroupRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    vpc_id: str = Field(min_length=1)
    rules: list[SecurityGroupRule] = Field(default_factory=list)
    target_tags: list[str] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)


# --- Events ---


class LifecycleEvent(BaseModel):
    """A resource change published to downstream subscribers."""

    event_type: str
    resource_kind: str
    resource_id: str
    action: str
    status: str
    timestamp: datetime
    provider: Provider
    credential_id: str
    region: str
    data: dict[str, Any] = Field(default_factory=dict)

    def matches(self, credential_id: str | None = None, region: str | None = None) -> bool:
        """Subscriber-side filter on credential and region."""
        if credential_id is not None and credential_id != self.credential_id:
            return False
        return region is None or region == self.region


# --- Bulk operations ---


class BulkProgress(BaseModel):
    """Point-in-time snapshot of a bulk operation."""

    operation_id: str
    kind: BulkOperationKind
    state: BulkOperationState
    total: int
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    is_complete: bool = False
    is_cancelled: bool = False
    outcomes: dict[str, TargetOutcome] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    completed_at: datetime | None = None
