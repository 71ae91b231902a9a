"""GcpClient: GKE and Compute Engine networking through google-cloud-*.

Requires: ``pip install cloudfleet[gcp]``
"""

from __future__ import annotations

import logging
from typing import Any

from cloudfleet.errors import NotFoundError, ValidationError
from cloudfleet.models import Provider
from cloudfleet.providers.base import SdkClient, to_native_dict
from cloudfleet.translate.networks import resource_name

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def _check_gcp_available() -> None:
    """Raise ImportError with helpful message if the GCP SDKs are not installed."""
    try:
        import google.oauth2.service_account  # noqa: F401
        from google.cloud import compute_v1, container_v1  # noqa: F401
    except ImportError:
        raise ImportError(
            "The 'google-cloud-container' and 'google-cloud-compute' packages are "
            "required for GCP clients. Install them with: pip install cloudfleet[gcp]"
        ) from None


def build_credentials(info: dict[str, Any]) -> Any:
    """Service-account credentials from a decrypted key file."""
    from google.oauth2 import service_account

    return service_account.Credentials.from_service_account_info(
        info, scopes=[CLOUD_PLATFORM_SCOPE],
    )


class GcpClient(SdkClient):
    """Project- and region-bound GKE + compute client.

    GKE clusters may be regional or zonal. Lookups by name go through the
    project-wide ``locations/-`` listing, keeping the region and any of
    its zones.
    """

    provider = Provider.GCP

    NOT_FOUND = frozenset({"NotFound"})
    FORBIDDEN = frozenset({"Forbidden", "PermissionDenied"})
    UNAUTHENTICATED = frozenset({"Unauthenticated", "Unauthorized", "RefreshError"})
    THROTTLED = frozenset({"TooManyRequests", "ResourceExhausted"})
    INVALID = frozenset({"BadRequest", "InvalidArgument", "FailedPrecondition"})

    def __init__(self, credentials: Any, project_id: str, region: str) -> None:
        self._credentials = credentials
        self.project_id = project_id
        self.region = region
        self._services: dict[str, Any] = {}

    # --- Clusters ---

    def in_region(self, location: str | None) -> bool:
        """True if *location* is the client's region or one of its zones."""
        if not location:
            return False
        return location == self.region or location.startswith(f"{self.region}-")

    def create_cluster(self, request: dict[str, Any]) -> dict[str, Any]:
        cluster = request["cluster"]
        self._invoke(
            "create_cluster", self._service("gke").create_cluster,
            kind="cluster", name=cluster["name"], request=request,
        )
        return {
            **cluster,
            "location": resource_name(request["parent"]),
            "project_id": self.project_id,
            "status": "PROVISIONING",
        }

    def get_cluster(self, name: str) -> dict[str, Any]:
        matches = [c for c in self.list_clusters() if c.get("name") == name]
        if not matches:
            raise NotFoundError("cluster", name, f"not found in {self.region}")
        # A regional cluster wins over a zonal one of the same name.
        matches.sort(key=lambda c: c.get("location") != self.region)
        return matches[0]

    def list_clusters(self) -> list[dict[str, Any]]:
        response = self._invoke(
            "list_clusters", self._service("gke").list_clusters,
            parent=f"projects/{self.project_id}/locations/-",
        )
        clusters = []
        for item in response.clusters:
            cluster = to_native_dict(item)
            if self.in_region(cluster.get("location")):
                cluster.setdefault("project_id", self.project_id)
                clusters.append(cluster)
        return clusters

    def delete_cluster(self, name: str) -> None:
        cluster = self.get_cluster(name)
        self._invoke(
            "delete_cluster", self._service("gke").delete_cluster,
            kind="cluster", name=name, name_=self._cluster_path(cluster["location"], name),
        )

    def update_cluster_tags(self, name: str, tags: dict[str, str]) -> dict[str, Any]:
        cluster = self.get_cluster(name)
        self._invoke(
            "update_cluster_tags", self._service("gke").set_labels,
            kind="cluster", name=name,
            request={
                "name": self._cluster_path(cluster["location"], name),
                "resource_labels": dict(tags),
                "label_fingerprint": cluster.get("label_fingerprint", ""),
            },
        )
        return {**cluster, "resource_labels": dict(tags)}

    def get_kubeconfig_source(self, name: str) -> dict[str, Any]:
        cluster = self.get_cluster(name)
        endpoint = cluster.get("endpoint")
        ca_data = (cluster.get("master_auth") or {}).get("cluster_ca_certificate")
        if not endpoint or not ca_data:
            raise ValidationError(f"GKE cluster {name} has no endpoint yet")
        return {
            "endpoint": endpoint,
            "ca_data": ca_data,
            "context_name": f"gke_{self.project_id}_{cluster['location']}_{name}",
        }

    # --- Node pools ---

    def create_node_pool(self, cluster_name: str, request: dict[str, Any]) -> dict[str, Any]:
        parent = self._locate(cluster_name)
        self._invoke(
            "create_node_pool", self._service("gke").create_node_pool,
            kind="node pool", name=request["name"],
            request={"parent": parent, "node_pool": request},
        )
        return {**request, "status": "PROVISIONING"}

    def get_node_pool(self, cluster_name: str, name: str) -> dict[str, Any]:
        path = f"{self._locate(cluster_name)}/nodePools/{name}"
        native = self._invoke(
            "get_node_pool", self._service("gke").get_node_pool,
            kind="node pool", name=name, name_=path,
        )
        return to_native_dict(native)

    def list_node_pools(self, cluster_name: str) -> list[dict[str, Any]]:
        response = self._invoke(
            "list_node_pools", self._service("gke").list_node_pools,
            kind="cluster", name=cluster_name, parent=self._locate(cluster_name),
        )
        return [to_native_dict(p) for p in response.node_pools]

    def scale_node_pool(
        self, cluster_name: str, name: str, min_size: int, desired_size: int, max_size: int,
    ) -> dict[str, Any]:
        """Scale with one GKE call.

        Autoscaled pools get new bounds (the autoscaler owns the node
        count); fixed-size pools get a new node count.
        """
        pool = self.get_node_pool(cluster_name, name)
        path = f"{self._locate(cluster_name)}/nodePools/{name}"
        gke = self._service("gke")
        if (pool.get("autoscaling") or {}).get("enabled"):
            self._invoke(
                "scale_node_pool", gke.set_node_pool_autoscaling,
                kind="node pool", name=name,
                request={
                    "name": path,
                    "autoscaling": {
                        "enabled": True,
                        "min_node_count": min_size,
                        "max_node_count": max_size,
                    },
                },
            )
            pool["autoscaling"] = {
                "enabled": True, "min_node_count": min_size, "max_node_count": max_size,
            }
        else:
            self._invoke(
                "scale_node_pool", gke.set_node_pool_size,
                kind="node pool", name=name,
                request={"name": path, "node_count": desired_size},
            )
            pool["initial_node_count"] = desired_size
        pool["status"] = "RECONCILING"
        return pool

    def delete_node_pool(self, cluster_name: str, name: str) -> None:
        path = f"{self._locate(cluster_name)}/nodePools/{name}"
        self._invoke(
            "delete_node_pool", self._service("gke").delete_node_pool,
            kind="node pool", name=name, name_=path,
        )

    # --- Networks ---

    def list_vpcs(self) -> list[dict[str, Any]]:
        items = self._invoke("list_vpcs", self._service("networks").list, project=self.project_id)
        return [to_native_dict(n) for n in items]

    def get_vpc(self, vpc_id: str) -> dict[str, Any]:
        name = resource_name(vpc_id)
        native = self._invoke(
            "get_vpc", self._service("networks").get,
            kind="vpc", name=name, project=self.project_id, network=name,
        )
        return to_native_dict(native)

    def create_vpc(self, request: dict[str, Any]) -> dict[str, Any]:
        self._invoke(
            "create_vpc", self._service("networks").insert,
            kind="vpc", name=request["name"], project=self.project_id, network_resource=request,
        )
        return dict(request)

    def delete_vpc(self, vpc_id: str) -> None:
        name = resource_name(vpc_id)
        self._invoke(
            "delete_vpc", self._service("networks").delete,
            kind="vpc", name=name, project=self.project_id, network=name,
        )

    def list_subnets(self, vpc_id: str | None = None) -> list[dict[str, Any]]:
        items = self._invoke(
            "list_subnets", self._service("subnetworks").list,
            project=self.project_id, region=self.region,
        )
        subnets = [to_native_dict(s) for s in items]
        if vpc_id:
            wanted = resource_name(vpc_id)
            subnets = [s for s in subnets if resource_name(s.get("network") or "") == wanted]
        return subnets

    def get_subnet(self, subnet_id: str) -> dict[str, Any]:
        name = resource_name(subnet_id)
        native = self._invoke(
            "get_subnet", self._service("subnetworks").get,
            kind="subnet", name=name,
            project=self.project_id, region=self.region, subnetwork=name,
        )
        return to_native_dict(native)

    def create_subnet(self, request: dict[str, Any]) -> dict[str, Any]:
        self._invoke(
            "create_subnet", self._service("subnetworks").insert,
            kind="subnet", name=request["name"],
            project=self.project_id, region=self.region, subnetwork_resource=request,
        )
        return dict(request)

    def delete_subnet(self, subnet_id: str) -> None:
        name = resource_name(subnet_id)
        self._invoke(
            "delete_subnet", self._service("subnetworks").delete,
            kind="subnet", name=name,
            project=self.project_id, region=self.region, subnetwork=name,
        )

    # --- Firewalls (security groups) ---

    def list_security_groups(self, vpc_id: str | None = None) -> list[dict[str, Any]]:
        items = self._invoke(
            "list_security_groups", self._service("firewalls").list, project=self.project_id,
        )
        firewalls = [to_native_dict(f) for f in items]
        if vpc_id:
            wanted = resource_name(vpc_id)
            firewalls = [f for f in firewalls if resource_name(f.get("network") or "") == wanted]
        return firewalls

    def get_security_group(self, group_id: str) -> dict[str, Any]:
        name = resource_name(group_id)
        native = self._invoke(
            "get_security_group", self._service("firewalls").get,
            kind="security group", name=name, project=self.project_id, firewall=name,
        )
        return to_native_dict(native)

    def create_security_group(self, request: dict[str, Any]) -> dict[str, Any]:
        self._invoke(
            "create_security_group", self._service("firewalls").insert,
            kind="security group", name=request["name"],
            project=self.project_id, firewall_resource=request,
        )
        return dict(request)

    def delete_security_group(self, group_id: str) -> None:
        name = resource_name(group_id)
        self._invoke(
            "delete_security_group", self._service("firewalls").delete,
            kind="security group", name=name, project=self.project_id, firewall=name,
        )

    def update_firewall(self, firewall: dict[str, Any], operation: str) -> dict[str, Any]:
        """Replace a firewall in a single call; returns the sent resource."""
        name = firewall["name"]
        self._invoke(
            operation, self._service("firewalls").update,
            kind="security group", name=name,
            project=self.project_id, firewall=name, firewall_resource=firewall,
        )
        return dict(firewall)

    # --- Private ---

    def _cluster_path(self, location: str, name: str) -> str:
        return f"projects/{self.project_id}/locations/{location}/clusters/{name}"

    def _locate(self, cluster_name: str) -> str:
        cluster = self.get_cluster(cluster_name)
        return self._cluster_path(cluster["location"], cluster_name)

    def _service(self, name: str) -> Any:
        if name not in self._services:
            from google.cloud import compute_v1, container_v1

            factories = {
                "gke": container_v1.ClusterManagerClient,
                "networks": compute_v1.NetworksClient,
                "subnetworks": compute_v1.SubnetworksClient,
                "firewalls": compute_v1.FirewallsClient,
            }
            self._services[name] = factories[name](credentials=self._credentials)
        return self._services[name]
