"""AzureClient: AKS managed clusters and agent pools.

Requires: ``pip install cloudfleet[azure]``

Long-running operations are started (``begin_*``) but never awaited; the
returned records reflect the requested state and callers poll ``get``.
"""

from __future__ import annotations

import logging
from typing import Any

from cloudfleet.errors import ValidationError
from cloudfleet.models import Provider
from cloudfleet.providers.base import SdkClient, to_native_dict

logger = logging.getLogger(__name__)

_HTTP_CODES = {400: "BadRequest", 401: "Unauthorized", 403: "Forbidden", 404: "NotFound",
               409: "Conflict", 429: "TooManyRequests"}


def _check_azure_available() -> None:
    """Raise ImportError with helpful message if the Azure SDKs are not installed."""
    try:
        import azure.identity  # noqa: F401
        import azure.mgmt.containerservice  # noqa: F401
    except ImportError:
        raise ImportError(
            "The 'azure-identity' and 'azure-mgmt-containerservice' packages are "
            "required for Azure clients. Install them with: pip install cloudfleet[azure]"
        ) from None


def build_credential(data: dict[str, Any]) -> Any:
    from azure.identity import ClientSecretCredential

    return ClientSecretCredential(
        tenant_id=data["tenant_id"],
        client_id=data["client_id"],
        client_secret=data["client_secret"],
    )


class AzureClient(SdkClient):
    """Subscription-, resource-group- and region-bound AKS client."""

    provider = Provider.AZURE

    NOT_FOUND = frozenset({"ResourceNotFoundError", "NotFound"})
    FORBIDDEN = frozenset({"Forbidden", "AuthorizationFailed"})
    UNAUTHENTICATED = frozenset({"ClientAuthenticationError", "Unauthorized"})
    THROTTLED = frozenset({"TooManyRequests"})
    INVALID = frozenset({"BadRequest"})

    def __init__(
        self,
        credential: Any,
        subscription_id: str,
        region: str,
        resource_group: str | None = None,
    ) -> None:
        self._credential = credential
        self.subscription_id = subscription_id
        self.region = region
        self.resource_group = resource_group
        self._aks: Any = None

    def _error_code(self, exc: Exception) -> str:
        name = type(exc).__name__
        if name == "HttpResponseError":
            return _HTTP_CODES.get(getattr(exc, "status_code", None) or 0, name)
        return name

    # --- Managed clusters ---

    def create_cluster(self, request: dict[str, Any]) -> dict[str, Any]:
        body = dict(request)
        name = body.pop("name")
        self._invoke(
            "create_cluster", self._client().managed_clusters.begin_create_or_update,
            self._rg(), name, body, kind="cluster", name=name,
        )
        return {**body, "name": name, "id": self._cluster_id(name), "provisioning_state": "Creating"}

    def get_cluster(self, name: str) -> dict[str, Any]:
        native = self._invoke(
            "get_cluster", self._client().managed_clusters.get,
            self._rg(), name, kind="cluster", name=name,
        )
        return to_native_dict(native)

    def list_clusters(self) -> list[dict[str, Any]]:
        clusters = self._client().managed_clusters
        if self.resource_group:
            items = self._invoke(
                "list_clusters", clusters.list_by_resource_group, self.resource_group,
            )
        else:
            items = self._invoke("list_clusters", clusters.list)
        natives = [to_native_dict(c) for c in items]
        return [c for c in natives if c.get("location") == self.region]

    def delete_cluster(self, name: str) -> None:
        self._invoke(
            "delete_cluster", self._client().managed_clusters.begin_delete,
            self._rg(), name, kind="cluster", name=name,
        )

    def update_cluster_tags(self, name: str, tags: dict[str, str]) -> dict[str, Any]:
        cluster = self.get_cluster(name)
        self._invoke(
            "update_cluster_tags", self._client().managed_clusters.begin_update_tags,
            self._rg(), name, {"tags": dict(tags)}, kind="cluster", name=name,
        )
        return {**cluster, "tags": dict(tags)}

    def get_kubeconfig_source(self, name: str) -> dict[str, Any]:
        result = self._invoke(
            "get_kubeconfig", self._client().managed_clusters.list_cluster_user_credentials,
            self._rg(), name, kind="cluster", name=name,
        )
        if not result.kubeconfigs:
            raise ValidationError(f"AKS cluster {name} returned no kubeconfig")
        value = result.kubeconfigs[0].value
        if isinstance(value, (bytes, bytearray)):
            value = value.decode("utf-8")
        return {"kubeconfig": value}

    # --- Agent pools ---

    def create_node_pool(self, cluster_name: str, request: dict[str, Any]) -> dict[str, Any]:
        body = dict(request)
        name = body.pop("name")
        self._invoke(
            "create_node_pool", self._client().agent_pools.begin_create_or_update,
            self._rg(), cluster_name, name, body, kind="node pool", name=name,
        )
        return {**body, "name": name, "provisioning_state": "Creating"}

    def get_node_pool(self, cluster_name: str, name: str) -> dict[str, Any]:
        native = self._invoke(
            "get_node_pool", self._client().agent_pools.get,
            self._rg(), cluster_name, name, kind="node pool", name=name,
        )
        return to_native_dict(native)

    def list_node_pools(self, cluster_name: str) -> list[dict[str, Any]]:
        items = self._invoke(
            "list_node_pools", self._client().agent_pools.list,
            self._rg(), cluster_name, kind="cluster", name=cluster_name,
        )
        return [to_native_dict(p) for p in items]

    def scale_node_pool(
        self, cluster_name: str, name: str, min_size: int, desired_size: int, max_size: int,
    ) -> dict[str, Any]:
        """Rewrite the pool with new bounds (autoscaled) or a new count (fixed)."""
        pool = self.get_node_pool(cluster_name, name)
        body = {k: v for k, v in pool.items() if k not in ("id", "name", "type", "provisioning_state")}
        if body.get("enable_auto_scaling"):
            body["min_count"] = min_size
            body["max_count"] = max_size
        else:
            body["count"] = desired_size
        self._invoke(
            "scale_node_pool", self._client().agent_pools.begin_create_or_update,
            self._rg(), cluster_name, name, body, kind="node pool", name=name,
        )
        return {**body, "name": name, "provisioning_state": "Scaling"}

    def delete_node_pool(self, cluster_name: str, name: str) -> None:
        self._invoke(
            "delete_node_pool", self._client().agent_pools.begin_delete,
            self._rg(), cluster_name, name, kind="node pool", name=name,
        )

    # --- Private ---

    def _rg(self) -> str:
        if not self.resource_group:
            raise ValidationError(
                "Azure operations require a resource group "
                "(pass one or set 'resource_group' on the credential)"
            )
        return self.resource_group

    def _cluster_id(self, name: str) -> str:
        return (
            f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"
            f"/providers/Microsoft.ContainerService/managedClusters/{name}"
        )

    def _client(self) -> Any:
        if self._aks is None:
            from azure.mgmt.containerservice import ContainerServiceClient

            self._aks = ContainerServiceClient(self._credential, self.subscription_id)
        return self._aks
