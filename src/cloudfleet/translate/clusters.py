"""Cluster translation between the unified model and provider shapes.

Each translator is a pure mapping pair:

- ``to_native(request, ...)`` builds the provider's create request
- ``to_unified(native, region)`` normalises a provider cluster record

Native shapes are the plain dicts the SDK adapters exchange:
boto3 EKS dicts (camelCase), GKE proto messages as snake_case dicts, and
AKS models as snake_case attribute dicts.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Protocol

from cloudfleet.models import (
    Cluster,
    ClusterMode,
    ClusterStatus,
    CreateClusterRequest,
    Provider,
)
from cloudfleet.translate.node_pools import NODE_POOL_TRANSLATORS

logger = logging.getLogger(__name__)

GCP_LABEL_MAX_LENGTH = 63

EKS_STATUS: dict[str, ClusterStatus] = {
    "PENDING": ClusterStatus.CREATING,
    "CREATING": ClusterStatus.CREATING,
    "ACTIVE": ClusterStatus.ACTIVE,
    "UPDATING": ClusterStatus.UPDATING,
    "DELETING": ClusterStatus.DELETING,
    "FAILED": ClusterStatus.FAILED,
}

GKE_STATUS: dict[str, ClusterStatus] = {
    "STATUS_UNSPECIFIED": ClusterStatus.CREATING,
    "PROVISIONING": ClusterStatus.CREATING,
    "RUNNING": ClusterStatus.ACTIVE,
    "RECONCILING": ClusterStatus.UPDATING,
    "DEGRADED": ClusterStatus.ACTIVE,
    "STOPPING": ClusterStatus.DELETING,
    "ERROR": ClusterStatus.FAILED,
}

AKS_STATUS: dict[str, ClusterStatus] = {
    "Creating": ClusterStatus.CREATING,
    "Succeeded": ClusterStatus.ACTIVE,
    "Updating": ClusterStatus.UPDATING,
    "Upgrading": ClusterStatus.UPDATING,
    "Scaling": ClusterStatus.UPDATING,
    "Deleting": ClusterStatus.DELETING,
    "Failed": ClusterStatus.FAILED,
    "Canceled": ClusterStatus.FAILED,
}


def map_status(table: dict[str, ClusterStatus], raw: Any, default: ClusterStatus) -> ClusterStatus:
    """Look *raw* up in a provider status table, falling back to *default*."""
    status = table.get(str(raw or ""))
    if status is None:
        logger.debug("Unknown provider status %r, using %s", raw, default)
        return default
    return status


class ClusterTranslator(Protocol):
    provider: Provider

    def to_native(self, request: CreateClusterRequest, region: str, **scope: Any) -> dict[str, Any]:
        ...

    def to_unified(self, native: dict[str, Any], region: str) -> Cluster:
        ...

    def tags_to_native(self, tags: dict[str, str]) -> dict[str, str]:
        ...


# --- GCP label sanitising ---

_GCP_INVALID = re.compile(r"[^a-z0-9_-]")


def sanitize_gcp_label_key(key: str) -> str:
    """Convert an arbitrary tag key into a valid GCP label key.

    Lowercases, replaces invalid characters with ``_``, prefixes ``tag_``
    when the key does not start with a letter, collapses repeated
    underscores and trims them from both ends. An empty result becomes
    ``"tag"``.
    """
    result = _GCP_INVALID.sub("_", key.lower())
    if result and not ("a" <= result[0] <= "z"):
        result = "tag_" + result
    result = re.sub(r"_{2,}", "_", result).strip("_")
    return (result or "tag")[:GCP_LABEL_MAX_LENGTH]


def sanitize_gcp_label_value(value: str) -> str:
    """Lowercase and strip invalid characters from a GCP label value."""
    return _GCP_INVALID.sub("_", str(value).lower())[:GCP_LABEL_MAX_LENGTH]


def to_gcp_labels(tags: dict[str, str]) -> dict[str, str]:
    labels: dict[str, str] = {}
    for key, value in tags.items():
        clean = sanitize_gcp_label_key(key)
        if clean != key:
            logger.debug("GCP label key %r rewritten to %r", key, clean)
        labels[clean] = sanitize_gcp_label_value(value)
    return labels


# --- AWS EKS ---


class EksClusterTranslator:
    provider = Provider.AWS

    def tags_to_native(self, tags: dict[str, str]) -> dict[str, str]:
        return dict(tags)

    def to_native(self, request: CreateClusterRequest, region: str, **scope: Any) -> dict[str, Any]:
        vpc_config: dict[str, Any] = {"subnetIds": list(request.subnet_ids)}
        if request.security_group_ids:
            vpc_config["securityGroupIds"] = list(request.security_group_ids)

        native: dict[str, Any] = {
            "name": request.name,
            "roleArn": request.role_arn,
            "resourcesVpcConfig": vpc_config,
            "accessConfig": {
                "authenticationMode": request.authentication_mode or "API",
                "bootstrapClusterCreatorAdminPermissions": (
                    request.bootstrap_cluster_creator_admin_permissions
                ),
            },
        }
        if request.version:
            native["version"] = request.version
        if request.tags:
            native["tags"] = dict(request.tags)
        return native

    def to_unified(self, native: dict[str, Any], region: str) -> Cluster:
        return Cluster(
            id=native.get("arn") or native["name"],
            name=native["name"],
            provider=Provider.AWS,
            region=region,
            version=native.get("version") or "",
            status=map_status(EKS_STATUS, native.get("status"), ClusterStatus.CREATING),
            endpoint=native.get("endpoint") or None,
            tags=dict(native.get("tags") or {}),
            created_at=_as_datetime(native.get("createdAt")),
        )


# --- GCP GKE ---


class GkeClusterTranslator:
    provider = Provider.GCP

    def tags_to_native(self, tags: dict[str, str]) -> dict[str, str]:
        return to_gcp_labels(tags)

    def to_native(self, request: CreateClusterRequest, region: str, **scope: Any) -> dict[str, Any]:
        project_id = scope["project_id"]
        location = request.zone or region

        cluster: dict[str, Any] = {
            "name": request.name,
            "network": request.network,
        }
        if request.subnetwork:
            cluster["subnetwork"] = request.subnetwork
        if request.version:
            cluster["initial_cluster_version"] = request.version
        if request.tags:
            cluster["resource_labels"] = to_gcp_labels(request.tags)

        if request.mode == ClusterMode.AUTOPILOT:
            cluster["autopilot"] = {"enabled": True}
        elif request.node_pool is not None:
            pool = NODE_POOL_TRANSLATORS[Provider.GCP].to_native(request.node_pool)
            cluster["node_pools"] = [pool]

        return {
            "parent": f"projects/{project_id}/locations/{location}",
            "cluster": cluster,
        }

    def to_unified(self, native: dict[str, Any], region: str) -> Cluster:
        location = native.get("location") or region
        return Cluster(
            id=gke_cluster_path(native, location),
            name=native["name"],
            provider=Provider.GCP,
            region=location,
            version=native.get("current_master_version") or native.get(
                "initial_cluster_version", "",
            ),
            status=map_status(GKE_STATUS, native.get("status"), ClusterStatus.CREATING),
            endpoint=native.get("endpoint") or None,
            tags=dict(native.get("resource_labels") or {}),
            created_at=_as_datetime(native.get("create_time")),
            node_pool_count=len(native.get("node_pools") or []),
        )


def gke_cluster_path(native: dict[str, Any], location: str) -> str:
    """Return ``projects/{p}/locations/{l}/clusters/{name}`` when derivable."""
    self_link = native.get("self_link") or ""
    marker = "/projects/"
    if marker in self_link:
        return "projects/" + self_link.split(marker, 1)[1]
    project = native.get("project_id")
    if project:
        return f"projects/{project}/locations/{location}/clusters/{native['name']}"
    return native["name"]


# --- Azure AKS ---


class AksClusterTranslator:
    provider = Provider.AZURE

    def tags_to_native(self, tags: dict[str, str]) -> dict[str, str]:
        return dict(tags)

    def to_native(self, request: CreateClusterRequest, region: str, **scope: Any) -> dict[str, Any]:
        native: dict[str, Any] = {
            "name": request.name,
            "location": region,
            "dns_prefix": request.dns_prefix or request.name,
            "identity": {"type": "SystemAssigned"},
            "tags": dict(request.tags),
        }
        if request.version:
            native["kubernetes_version"] = request.version
        if request.node_pool is not None:
            pool = NODE_POOL_TRANSLATORS[Provider.AZURE].to_native(request.node_pool)
            pool["mode"] = "System"
            native["agent_pool_profiles"] = [pool]
        return native

    def to_unified(self, native: dict[str, Any], region: str) -> Cluster:
        return Cluster(
            id=native.get("id") or native["name"],
            name=native["name"],
            provider=Provider.AZURE,
            region=native.get("location") or region,
            version=(
                native.get("current_kubernetes_version")
                or native.get("kubernetes_version")
                or ""
            ),
            status=map_status(
                AKS_STATUS, native.get("provisioning_state"), ClusterStatus.CREATING,
            ),
            endpoint=native.get("fqdn") or None,
            tags=dict(native.get("tags") or {}),
            node_pool_count=len(native.get("agent_pool_profiles") or []),
        )


CLUSTER_TRANSLATORS: dict[Provider, ClusterTranslator] = {
    Provider.AWS: EksClusterTranslator(),
    Provider.GCP: GkeClusterTranslator(),
    Provider.AZURE: AksClusterTranslator(),
}


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        logger.debug("Unparseable timestamp %r", value)
        return None
