"""Node pool translation for the tagged ``NodePool`` variant.

``AWSNodeGroup``, ``GCPNodePool`` and ``AzureNodePool`` each carry an
explicit ``provider`` discriminant and map to exactly one native shape.
Provider-specific fields travel losslessly; anything the target provider
cannot express is dropped with a warning and never folded into another
field.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from cloudfleet.errors import ValidationError
from cloudfleet.models import (
    AWSNodeGroup,
    AzureNodePool,
    CapacityType,
    ClusterStatus,
    GCPNodePool,
    NodePool,
    Provider,
    ScalingConfig,
)

logger = logging.getLogger(__name__)

NODE_POOL_MODELS: dict[Provider, type[AWSNodeGroup | GCPNodePool | AzureNodePool]] = {
    Provider.AWS: AWSNodeGroup,
    Provider.GCP: GCPNodePool,
    Provider.AZURE: AzureNodePool,
}

EKS_NODEGROUP_STATUS: dict[str, ClusterStatus] = {
    "CREATING": ClusterStatus.CREATING,
    "ACTIVE": ClusterStatus.ACTIVE,
    "UPDATING": ClusterStatus.UPDATING,
    "DEGRADED": ClusterStatus.ACTIVE,
    "DELETING": ClusterStatus.DELETING,
    "CREATE_FAILED": ClusterStatus.FAILED,
    "DELETE_FAILED": ClusterStatus.FAILED,
}

GKE_NODEPOOL_STATUS: dict[str, ClusterStatus] = {
    "PROVISIONING": ClusterStatus.CREATING,
    "RUNNING": ClusterStatus.ACTIVE,
    "RUNNING_WITH_ERROR": ClusterStatus.ACTIVE,
    "RECONCILING": ClusterStatus.UPDATING,
    "STOPPING": ClusterStatus.DELETING,
    "ERROR": ClusterStatus.FAILED,
}

AKS_POOL_STATUS: dict[str, ClusterStatus] = {
    "Creating": ClusterStatus.CREATING,
    "Succeeded": ClusterStatus.ACTIVE,
    "Updating": ClusterStatus.UPDATING,
    "Upgrading": ClusterStatus.UPDATING,
    "Scaling": ClusterStatus.UPDATING,
    "Deleting": ClusterStatus.DELETING,
    "Failed": ClusterStatus.FAILED,
    "Canceled": ClusterStatus.FAILED,
}


class NodePoolTranslator(Protocol):
    provider: Provider

    def to_native(self, pool: Any) -> dict[str, Any]:
        ...

    def to_unified(
        self, native: dict[str, Any], cluster_name: str = "", region: str = "",
    ) -> NodePool:
        ...


def node_pool_from_payload(provider: Provider | str, payload: dict[str, Any]) -> NodePool:
    """Build the provider's node pool variant from a loose payload.

    Keys the variant does not define are dropped with a warning.
    """
    model = NODE_POOL_MODELS[Provider(provider)]
    known = set(model.model_fields)
    dropped = sorted(k for k in payload if k not in known)
    if dropped:
        logger.warning(
            "Dropping fields unsupported by %s node pools: %s", provider, ", ".join(dropped),
        )
    data = {k: v for k, v in payload.items() if k in known and k != "provider"}
    return model(**data)


def _single_instance_type(pool: GCPNodePool | AzureNodePool) -> str:
    if not pool.instance_types:
        raise ValidationError(f"Node pool {pool.name} needs an instance type")
    if len(pool.instance_types) > 1:
        logger.warning(
            "%s node pools take one machine type; dropping %s",
            pool.provider, ", ".join(pool.instance_types[1:]),
        )
    return pool.instance_types[0]


def _or_default(value: Any, default: int) -> int:
    return default if value is None else value


def _status(table: dict[str, ClusterStatus], raw: Any) -> ClusterStatus:
    return table.get(str(raw or ""), ClusterStatus.CREATING)


# --- AWS EKS managed node groups ---


class EksNodeGroupTranslator:
    provider = Provider.AWS

    def to_native(self, pool: AWSNodeGroup) -> dict[str, Any]:
        native: dict[str, Any] = {
            "clusterName": pool.cluster_name,
            "nodegroupName": pool.name,
            "nodeRole": pool.node_role_arn,
            "subnets": list(pool.subnet_ids),
            "instanceTypes": list(pool.instance_types),
            "scalingConfig": {
                "minSize": pool.scaling.min_size,
                "maxSize": pool.scaling.max_size,
                "desiredSize": pool.scaling.desired_size,
            },
            "capacityType": pool.capacity_type.value,
        }
        if pool.disk_size_gb is not None:
            native["diskSize"] = pool.disk_size_gb
        if pool.ami_type:
            native["amiType"] = pool.ami_type
        if pool.labels:
            native["labels"] = dict(pool.labels)
        if pool.tags:
            native["tags"] = dict(pool.tags)
        if pool.version:
            native["version"] = pool.version
        return native

    def to_unified(
        self, native: dict[str, Any], cluster_name: str = "", region: str = "",
    ) -> AWSNodeGroup:
        scaling = native.get("scalingConfig") or {}
        return AWSNodeGroup(
            id=native.get("nodegroupArn") or "",
            name=native["nodegroupName"],
            cluster_name=native.get("clusterName") or cluster_name,
            instance_types=list(native.get("instanceTypes") or []),
            scaling=ScalingConfig(
                min_size=scaling.get("minSize", 0),
                desired_size=scaling.get("desiredSize", 0),
                max_size=scaling.get("maxSize", 0),
            ),
            disk_size_gb=native.get("diskSize"),
            capacity_type=CapacityType(native.get("capacityType") or "ON_DEMAND"),
            status=_status(EKS_NODEGROUP_STATUS, native.get("status")),
            labels=dict(native.get("labels") or {}),
            region=region,
            version=native.get("version") or "",
            node_role_arn=native.get("nodeRole") or "",
            ami_type=native.get("amiType"),
            subnet_ids=list(native.get("subnets") or []),
            tags=dict(native.get("tags") or {}),
            created_at=native.get("createdAt"),
        )


# --- GCP GKE node pools ---


class GkeNodePoolTranslator:
    provider = Provider.GCP

    def to_native(self, pool: GCPNodePool) -> dict[str, Any]:
        config: dict[str, Any] = {"machine_type": _single_instance_type(pool)}
        if pool.disk_size_gb is not None:
            config["disk_size_gb"] = pool.disk_size_gb
        if pool.disk_type:
            config["disk_type"] = pool.disk_type
        if pool.labels:
            config["labels"] = dict(pool.labels)
        if pool.preemptible:
            config["preemptible"] = True
        if pool.capacity_type == CapacityType.SPOT:
            config["spot"] = True

        native: dict[str, Any] = {
            "name": pool.name,
            "initial_node_count": pool.scaling.desired_size,
            "config": config,
            "autoscaling": {
                "enabled": pool.autoscaling_enabled,
                "min_node_count": pool.scaling.min_size,
                "max_node_count": pool.scaling.max_size,
            },
        }
        if pool.version:
            native["version"] = pool.version
        return native

    def to_unified(
        self, native: dict[str, Any], cluster_name: str = "", region: str = "",
    ) -> GCPNodePool:
        config = native.get("config") or {}
        autoscaling = native.get("autoscaling") or {}
        desired = native.get("initial_node_count", 0)
        machine_type = config.get("machine_type")
        return GCPNodePool(
            name=native["name"],
            cluster_name=cluster_name,
            instance_types=[machine_type] if machine_type else [],
            scaling=ScalingConfig(
                min_size=autoscaling.get("min_node_count", desired),
                desired_size=desired,
                max_size=autoscaling.get("max_node_count", desired),
            ),
            disk_size_gb=config.get("disk_size_gb") or None,
            capacity_type=CapacityType.SPOT if config.get("spot") else CapacityType.ON_DEMAND,
            status=_status(GKE_NODEPOOL_STATUS, native.get("status")),
            labels=dict(config.get("labels") or {}),
            region=region,
            version=native.get("version") or "",
            disk_type=config.get("disk_type") or None,
            preemptible=bool(config.get("preemptible", False)),
            autoscaling_enabled=bool(autoscaling.get("enabled", False)),
        )


# --- Azure AKS agent pools ---


class AksAgentPoolTranslator:
    provider = Provider.AZURE

    def to_native(self, pool: AzureNodePool) -> dict[str, Any]:
        native: dict[str, Any] = {
            "name": pool.name,
            "count": pool.scaling.desired_size,
            "vm_size": _single_instance_type(pool),
            "os_type": pool.os_type,
            "mode": pool.mode,
            "enable_auto_scaling": True,
            "min_count": pool.scaling.min_size,
            "max_count": pool.scaling.max_size,
            "scale_set_priority": (
                "Spot" if pool.capacity_type == CapacityType.SPOT else "Regular"
            ),
        }
        if pool.disk_size_gb is not None:
            native["os_disk_size_gb"] = pool.disk_size_gb
        if pool.labels:
            native["node_labels"] = dict(pool.labels)
        if pool.version:
            native["orchestrator_version"] = pool.version
        return native

    def to_unified(
        self, native: dict[str, Any], cluster_name: str = "", region: str = "",
    ) -> AzureNodePool:
        count = native.get("count") or 0
        vm_size = native.get("vm_size")
        return AzureNodePool(
            name=native["name"],
            cluster_name=cluster_name,
            instance_types=[vm_size] if vm_size else [],
            scaling=ScalingConfig(
                min_size=_or_default(native.get("min_count"), count),
                desired_size=count,
                max_size=_or_default(native.get("max_count"), count),
            ),
            disk_size_gb=native.get("os_disk_size_gb") or None,
            capacity_type=(
                CapacityType.SPOT
                if native.get("scale_set_priority") == "Spot"
                else CapacityType.ON_DEMAND
            ),
            status=_status(AKS_POOL_STATUS, native.get("provisioning_state")),
            labels=dict(native.get("node_labels") or {}),
            region=region,
            version=native.get("orchestrator_version") or "",
            os_type=native.get("os_type") or "Linux",
            mode=native.get("mode") or "User",
        )


NODE_POOL_TRANSLATORS: dict[Provider, NodePoolTranslator] = {
    Provider.AWS: EksNodeGroupTranslator(),
    Provider.GCP: GkeNodePoolTranslator(),
    Provider.AZURE: AksAgentPoolTranslator(),
}
