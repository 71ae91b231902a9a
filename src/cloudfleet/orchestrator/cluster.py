"""ClusterOrchestrator: provider-agnostic cluster and node pool lifecycle.

Every operation follows the same shape:

1. Validate the request (no provider call on failure)
2. Resolve the credential for the context and build a fresh client
3. Translate, issue the provider call(s), translate the result back
4. Publish a lifecycle event for successful mutations

Create and delete calls return as soon as the provider accepts them; the
returned records carry the transitional status (``CREATING``,
``DELETING``) and callers poll ``get_*`` for progress.
"""

from __future__ import annotations

import logging

from cloudfleet.errors import (
    NotFoundError,
    UnsupportedProviderError,
    ValidationError,
)
from cloudfleet.events.notifier import DOMAIN_KUBERNETES
from cloudfleet.models import (
    AWSNodeGroup,
    Cluster,
    ClusterMode,
    ClusterStatus,
    CreateClusterRequest,
    KubeconfigDocument,
    NodePool,
    Provider,
    RequestContext,
    ScalingConfig,
    can_transition,
)
from cloudfleet.orchestrator.base import Orchestrator
from cloudfleet.translate.clusters import CLUSTER_TRANSLATORS
from cloudfleet.translate.kubeconfig import build_document
from cloudfleet.translate.node_pools import NODE_POOL_TRANSLATORS

logger = logging.getLogger(__name__)


def validate_scaling(min_size: int, desired_size: int, max_size: int) -> ScalingConfig:
    """Return a ScalingConfig, raising ValidationError unless min <= desired <= max."""
    if min(min_size, desired_size, max_size) < 0:
        raise ValidationError("Node counts must be non-negative")
    if not min_size <= desired_size <= max_size:
        raise ValidationError(
            f"Invalid scaling: need min <= desired <= max, "
            f"got min={min_size} desired={desired_size} max={max_size}"
        )
    return ScalingConfig(min_size=min_size, desired_size=desired_size, max_size=max_size)


def validate_node_pool(provider: Provider, pool: NodePool) -> None:
    if pool.provider != provider:
        raise ValidationError(
            f"Node pool {pool.name} is a {pool.provider} pool, request is for {provider}"
        )
    if not pool.name:
        raise ValidationError("Node pool name is required")
    if not pool.instance_types or not all(pool.instance_types):
        raise ValidationError(f"Node pool {pool.name} needs an instance type")
    validate_scaling(pool.scaling.min_size, pool.scaling.desired_size, pool.scaling.max_size)
    if isinstance(pool, AWSNodeGroup):
        if not pool.node_role_arn:
            raise ValidationError(f"EKS node group {pool.name} needs node_role_arn")
        if not pool.subnet_ids:
            raise ValidationError(f"EKS node group {pool.name} needs subnet_ids")


def validate_create_cluster(context: RequestContext, request: CreateClusterRequest) -> None:
    """Check provider-specific required fields and mode rules."""
    provider = context.provider
    if request.mode == ClusterMode.AUTOPILOT:
        if provider != Provider.GCP:
            raise UnsupportedProviderError(provider, "autopilot mode")
        if request.node_pool is not None:
            raise ValidationError("Autopilot clusters do not take a node pool config")
    elif request.node_pool is None and provider != Provider.AWS:
        raise ValidationError("Standard clusters need a node pool config")

    if request.node_pool is not None:
        validate_node_pool(provider, request.node_pool)

    if provider == Provider.AWS:
        if not request.role_arn:
            raise ValidationError("EKS clusters need role_arn")
        if not request.subnet_ids:
            raise ValidationError("EKS clusters need at least one subnet id")
    elif provider == Provider.GCP:
        if not request.network:
            raise ValidationError("GKE clusters need a network")


class ClusterOrchestrator(Orchestrator):
    """Cluster and node pool operations across AWS EKS, GCP GKE and Azure AKS."""

    # --- Clusters ---

    def create_cluster(self, context: RequestContext, request: CreateClusterRequest) -> Cluster:
        self._check_context(context)
        validate_create_cluster(context, request)
        if context.provider == Provider.AWS and request.node_pool is not None:
            logger.warning(
                "EKS node group %s is not part of cluster creation; "
                "create it with create_node_pool once %s is ACTIVE",
                request.node_pool.name, request.name,
            )

        client = self._client(context)
        if context.provider == Provider.AZURE and not getattr(client, "resource_group", None):
            raise ValidationError("AKS clusters need a resource group")

        translator = CLUSTER_TRANSLATORS[context.provider]
        native = translator.to_native(
            request, context.region, project_id=getattr(client, "project_id", None),
        )
        created = client.create_cluster(native)
        cluster = translator.to_unified(created, context.region).model_copy(
            update={"status": ClusterStatus.CREATING},
        )
        logger.info("Creating %s cluster %s in %s", context.provider, cluster.name, context.region)
        self._publish_cluster(context, cluster, "created")
        return cluster

    def get_cluster(self, context: RequestContext, name: str) -> Cluster:
        self._check_context(context)
        native = self._client(context).get_cluster(name)
        return CLUSTER_TRANSLATORS[context.provider].to_unified(native, context.region)

    def list_clusters(self, context: RequestContext) -> list[Cluster]:
        self._check_context(context)
        translator = CLUSTER_TRANSLATORS[context.provider]
        natives = self._client(context).list_clusters()
        return [translator.to_unified(n, context.region) for n in natives]

    def delete_cluster(self, context: RequestContext, name: str) -> bool:
        """Delete a cluster. Returns False (and publishes nothing) if it was already gone."""
        self._check_context(context)
        client = self._client(context)
        try:
            client.delete_cluster(name)
        except NotFoundError:
            logger.info("Cluster %s already absent; delete is a no-op", name)
            return False
        logger.info("Deleting %s cluster %s in %s", context.provider, name, context.region)
        self._publish(
            context,
            domain=DOMAIN_KUBERNETES,
            resource="clusters",
            resource_kind="cluster",
            resource_id=name,
            action="deleted",
            status=ClusterStatus.DELETING,
        )
        return True

    def update_cluster_tags(
        self, context: RequestContext, name: str, tags: dict[str, str],
    ) -> Cluster:
        """Replace the cluster's tags (labels on GKE).

        Only an ``ACTIVE`` cluster may move to ``UPDATING``; anything else is
        rejected before the provider is asked to change it.
        """
        self._check_context(context)
        translator = CLUSTER_TRANSLATORS[context.provider]
        client = self._client(context)
        current = translator.to_unified(client.get_cluster(name), context.region)
        if not can_transition(current.status, ClusterStatus.UPDATING):
            raise ValidationError(
                f"Cluster {name} is {current.status}; tags can only change on an ACTIVE cluster"
            )
        native = client.update_cluster_tags(name, translator.tags_to_native(tags))
        cluster = translator.to_unified(native, context.region)
        logger.info("Updated tags on %s cluster %s", context.provider, name)
        self._publish_cluster(context, cluster, "updated")
        return cluster

    def get_kubeconfig(self, context: RequestContext, name: str) -> KubeconfigDocument:
        self._check_context(context)
        source = self._client(context).get_kubeconfig_source(name)
        return build_document(context.provider, name, context.region, source)

    # --- Node pools ---

    def create_node_pool(self, context: RequestContext, request: NodePool) -> NodePool:
        self._check_context(context)
        validate_node_pool(context.provider, request)
        if not request.cluster_name:
            raise ValidationError(f"Node pool {request.name} needs a cluster_name")

        translator = NODE_POOL_TRANSLATORS[context.provider]
        native = translator.to_native(request)
        created = self._client(context).create_node_pool(request.cluster_name, native)
        pool = translator.to_unified(created, request.cluster_name, context.region)
        pool = pool.model_copy(update={"status": ClusterStatus.CREATING})
        logger.info(
            "Creating %s node pool %s on cluster %s",
            context.provider, pool.name, request.cluster_name,
        )
        self._publish_node_pool(context, pool, "created")
        return pool

    def get_node_pool(self, context: RequestContext, cluster_name: str, name: str) -> NodePool:
        self._check_context(context)
        native = self._client(context).get_node_pool(cluster_name, name)
        return NODE_POOL_TRANSLATORS[context.provider].to_unified(
            native, cluster_name, context.region,
        )

    def list_node_pools(self, context: RequestContext, cluster_name: str) -> list[NodePool]:
        self._check_context(context)
        translator = NODE_POOL_TRANSLATORS[context.provider]
        natives = self._client(context).list_node_pools(cluster_name)
        return [translator.to_unified(n, cluster_name, context.region) for n in natives]

    def scale_node_pool(
        self,
        context: RequestContext,
        cluster_name: str,
        name: str,
        min_size: int,
        desired_size: int,
        max_size: int,
    ) -> NodePool:
        self._check_context(context)
        scaling = validate_scaling(min_size, desired_size, max_size)
        native = self._client(context).scale_node_pool(
            cluster_name, name, scaling.min_size, scaling.desired_size, scaling.max_size,
        )
        pool = NODE_POOL_TRANSLATORS[context.provider].to_unified(
            native, cluster_name, context.region,
        )
        logger.info(
            "Scaling %s node pool %s/%s to %d (min %d, max %d)",
            context.provider, cluster_name, name, desired_size, min_size, max_size,
        )
        self._publish_node_pool(context, pool, "scaled", data=scaling.model_dump())
        return pool

    def delete_node_pool(self, context: RequestContext, cluster_name: str, name: str) -> bool:
        """Delete a node pool. Returns False if it was already gone."""
        self._check_context(context)
        try:
            self._client(context).delete_node_pool(cluster_name, name)
        except NotFoundError:
            logger.info("Node pool %s/%s already absent; delete is a no-op", cluster_name, name)
            return False
        logger.info("Deleting %s node pool %s/%s", context.provider, cluster_name, name)
        self._publish(
            context,
            domain=DOMAIN_KUBERNETES,
            resource="nodepools",
            resource_kind="node_pool",
            resource_id=f"{cluster_name}/{name}",
            action="deleted",
            status=ClusterStatus.DELETING,
        )
        return True

    # --- Private ---

    def _publish_cluster(self, context: RequestContext, cluster: Cluster, action: str) -> None:
        self._publish(
            context,
            domain=DOMAIN_KUBERNETES,
            resource="clusters",
            resource_kind="cluster",
            resource_id=cluster.name,
            action=action,
            status=cluster.status,
            data=cluster.model_dump(mode="json"),
        )

    def _publish_node_pool(
        self,
        context: RequestContext,
        pool: NodePool,
        action: str,
        data: dict | None = None,
    ) -> None:
        self._publish(
            context,
            domain=DOMAIN_KUBERNETES,
            resource="nodepools",
            resource_kind="node_pool",
            resource_id=f"{pool.cluster_name}/{pool.name}",
            action=action,
            status=pool.status,
            data=data or pool.model_dump(mode="json"),
        )
