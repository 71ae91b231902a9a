"""AwsClient: EKS and EC2 through boto3.

Requires: ``pip install cloudfleet[aws]``
"""

from __future__ import annotations

import logging
from typing import Any

from cloudfleet.errors import NotFoundError, ValidationError
from cloudfleet.models import Provider, RuleDirection
from cloudfleet.providers.base import SdkClient

logger = logging.getLogger(__name__)


def _check_boto3_available() -> None:
    """Raise ImportError with helpful message if boto3 is not installed."""
    try:
        import boto3  # noqa: F401
    except ImportError:
        raise ImportError(
            "The 'boto3' package is required for AWS clients. "
            "Install it with: pip install cloudfleet[aws]"
        ) from None


class AwsClient(SdkClient):
    """Region-bound EKS + EC2 client built from a boto3 session."""

    provider = Provider.AWS

    NOT_FOUND = frozenset({
        "ResourceNotFoundException",
        "NoSuchEntity",
        "InvalidVpcID.NotFound",
        "InvalidSubnetID.NotFound",
        "InvalidGroup.NotFound",
        "InvalidPermission.NotFound",
    })
    FORBIDDEN = frozenset({"AccessDenied", "AccessDeniedException", "UnauthorizedOperation"})
    UNAUTHENTICATED = frozenset({
        "UnrecognizedClientException",
        "InvalidClientTokenId",
        "AuthFailure",
        "ExpiredToken",
        "NoCredentialsError",
    })
    THROTTLED = frozenset({"ThrottlingException", "Throttling", "RequestLimitExceeded"})
    INVALID = frozenset({
        "InvalidParameterValue",
        "InvalidParameterException",
        "InvalidParameterCombination",
        "InvalidRequestException",
    })

    def __init__(
        self,
        session: Any,
        region: str,
        endpoint_url: str | None = None,
    ) -> None:
        self._session = session
        self.region = region
        self._endpoint_url = endpoint_url
        self._clients: dict[str, Any] = {}

    def _error_code(self, exc: Exception) -> str:
        # Detect boto3 ClientError without importing botocore
        if type(exc).__name__ == "ClientError":
            return exc.response.get("Error", {}).get("Code", "")  # type: ignore[attr-defined]
        return type(exc).__name__

    # --- Clusters ---

    def create_cluster(self, request: dict[str, Any]) -> dict[str, Any]:
        body = dict(request)
        name = body.pop("name")
        response = self._call(
            "eks", "create_cluster", "create_cluster",
            kind="cluster", name=name, name_=name, **body,
        )
        return response["cluster"]

    def get_cluster(self, name: str) -> dict[str, Any]:
        response = self._call(
            "eks", "describe_cluster", "get_cluster", kind="cluster", name=name, name_=name,
        )
        return response["cluster"]

    def list_clusters(self) -> list[dict[str, Any]]:
        clusters: list[dict[str, Any]] = []
        for name in self._paginate("eks", "list_clusters", "list_clusters", "clusters"):
            try:
                clusters.append(self.get_cluster(name))
            except NotFoundError:
                logger.debug("Cluster %s vanished while listing", name)
        return clusters

    def delete_cluster(self, name: str) -> None:
        self._call("eks", "delete_cluster", "delete_cluster", kind="cluster", name=name, name_=name)

    def update_cluster_tags(self, name: str, tags: dict[str, str]) -> dict[str, Any]:
        cluster = self.get_cluster(name)
        arn = cluster["arn"]
        removed = [k for k in cluster.get("tags") or {} if k not in tags]
        if removed:
            self._call(
                "eks", "untag_resource", "update_cluster_tags",
                kind="cluster", name=name, resourceArn=arn, tagKeys=removed,
            )
        if tags:
            self._call(
                "eks", "tag_resource", "update_cluster_tags",
                kind="cluster", name=name, resourceArn=arn, tags=dict(tags),
            )
        return {**cluster, "tags": dict(tags)}

    def get_kubeconfig_source(self, name: str) -> dict[str, Any]:
        cluster = self.get_cluster(name)
        endpoint = cluster.get("endpoint")
        ca_data = (cluster.get("certificateAuthority") or {}).get("data")
        if not endpoint or not ca_data:
            raise ValidationError(f"EKS cluster {name} has no endpoint yet")
        return {"endpoint": endpoint, "ca_data": ca_data}

    # --- Node groups ---

    def create_node_pool(self, cluster_name: str, request: dict[str, Any]) -> dict[str, Any]:
        body = {**request, "clusterName": cluster_name}
        response = self._call(
            "eks", "create_nodegroup", "create_node_pool",
            kind="node group", name=request["nodegroupName"], **body,
        )
        return response["nodegroup"]

    def get_node_pool(self, cluster_name: str, name: str) -> dict[str, Any]:
        response = self._call(
            "eks", "describe_nodegroup", "get_node_pool",
            kind="node group", name=name, clusterName=cluster_name, nodegroupName=name,
        )
        return response["nodegroup"]

    def list_node_pools(self, cluster_name: str) -> list[dict[str, Any]]:
        names = self._paginate(
            "eks", "list_nodegroups", "list_node_pools", "nodegroups", clusterName=cluster_name,
        )
        return [self.get_node_pool(cluster_name, n) for n in names]

    def scale_node_pool(
        self, cluster_name: str, name: str, min_size: int, desired_size: int, max_size: int,
    ) -> dict[str, Any]:
        self._call(
            "eks", "update_nodegroup_config", "scale_node_pool",
            kind="node group", name=name,
            clusterName=cluster_name,
            nodegroupName=name,
            scalingConfig={"minSize": min_size, "maxSize": max_size, "desiredSize": desired_size},
        )
        return self.get_node_pool(cluster_name, name)

    def delete_node_pool(self, cluster_name: str, name: str) -> None:
        self._call(
            "eks", "delete_nodegroup", "delete_node_pool",
            kind="node group", name=name, clusterName=cluster_name, nodegroupName=name,
        )

    # --- VPCs & subnets ---

    def list_vpcs(self) -> list[dict[str, Any]]:
        return self._call("ec2", "describe_vpcs", "list_vpcs")["Vpcs"]

    def get_vpc(self, vpc_id: str) -> dict[str, Any]:
        vpcs = self._call(
            "ec2", "describe_vpcs", "get_vpc", kind="vpc", name=vpc_id, VpcIds=[vpc_id],
        )["Vpcs"]
        if not vpcs:
            raise NotFoundError("vpc", vpc_id)
        return vpcs[0]

    def create_vpc(self, request: dict[str, Any]) -> dict[str, Any]:
        return self._call("ec2", "create_vpc", "create_vpc", kind="vpc", **request)["Vpc"]

    def delete_vpc(self, vpc_id: str) -> None:
        self._call("ec2", "delete_vpc", "delete_vpc", kind="vpc", name=vpc_id, VpcId=vpc_id)

    def list_subnets(self, vpc_id: str | None = None) -> list[dict[str, Any]]:
        return self._call(
            "ec2", "describe_subnets", "list_subnets", **self._vpc_filter(vpc_id),
        )["Subnets"]

    def get_subnet(self, subnet_id: str) -> dict[str, Any]:
        subnets = self._call(
            "ec2", "describe_subnets", "get_subnet",
            kind="subnet", name=subnet_id, SubnetIds=[subnet_id],
        )["Subnets"]
        if not subnets:
            raise NotFoundError("subnet", subnet_id)
        return subnets[0]

    def create_subnet(self, request: dict[str, Any]) -> dict[str, Any]:
        return self._call(
            "ec2", "create_subnet", "create_subnet", kind="subnet", **request,
        )["Subnet"]

    def delete_subnet(self, subnet_id: str) -> None:
        self._call(
            "ec2", "delete_subnet", "delete_subnet",
            kind="subnet", name=subnet_id, SubnetId=subnet_id,
        )

    # --- Security groups ---

    def list_security_groups(self, vpc_id: str | None = None) -> list[dict[str, Any]]:
        return self._call(
            "ec2", "describe_security_groups", "list_security_groups",
            **self._vpc_filter(vpc_id),
        )["SecurityGroups"]

    def get_security_group(self, group_id: str) -> dict[str, Any]:
        groups = self._call(
            "ec2", "describe_security_groups", "get_security_group",
            kind="security group", name=group_id, GroupIds=[group_id],
        )["SecurityGroups"]
        if not groups:
            raise NotFoundError("security group", group_id)
        return groups[0]

    def create_security_group(self, request: dict[str, Any]) -> dict[str, Any]:
        response = self._call(
            "ec2", "create_security_group", "create_security_group",
            kind="security group", name=request.get("GroupName", ""), **request,
        )
        return self.get_security_group(response["GroupId"])

    def delete_security_group(self, group_id: str) -> None:
        self._call(
            "ec2", "delete_security_group", "delete_security_group",
            kind="security group", name=group_id, GroupId=group_id,
        )

    def authorize_rule(
        self, group_id: str, direction: RuleDirection, permission: dict[str, Any],
    ) -> None:
        method = (
            "authorize_security_group_ingress"
            if direction == RuleDirection.INGRESS
            else "authorize_security_group_egress"
        )
        self._call(
            "ec2", method, "add_rule",
            kind="security group", name=group_id, GroupId=group_id, IpPermissions=[permission],
        )

    def revoke_rule(
        self, group_id: str, direction: RuleDirection, permission: dict[str, Any],
    ) -> None:
        method = (
            "revoke_security_group_ingress"
            if direction == RuleDirection.INGRESS
            else "revoke_security_group_egress"
        )
        self._call(
            "ec2", method, "remove_rule",
            kind="rule", name=group_id, GroupId=group_id, IpPermissions=[permission],
        )

    # --- Private: session/client setup ---

    def _client(self, service: str) -> Any:
        if service not in self._clients:
            kwargs: dict[str, Any] = {}
            if self._endpoint_url:
                kwargs["endpoint_url"] = self._endpoint_url
            self._clients[service] = self._session.client(service, **kwargs)
        return self._clients[service]

    def _call(
        self,
        service: str,
        method: str,
        operation: str,
        *,
        kind: str = "",
        name: str = "",
        **params: Any,
    ) -> Any:
        # EKS uses ``name`` as a request parameter; callers pass it as ``name_``
        if "name_" in params:
            params["name"] = params.pop("name_")
        return self._invoke(
            operation,
            lambda: getattr(self._client(service), method)(**params),
            kind=kind,
            name=name,
        )

    def _paginate(
        self, service: str, method: str, operation: str, key: str, **params: Any,
    ) -> list[str]:
        items: list[str] = []
        token: str | None = None
        while True:
            kwargs = dict(params)
            if token:
                kwargs["nextToken"] = token
            response = self._call(service, method, operation, **kwargs)
            items.extend(response.get(key) or [])
            token = response.get("nextToken")
            if not token:
                return items

    @staticmethod
    def _vpc_filter(vpc_id: str | None) -> dict[str, Any]:
        if not vpc_id:
            return {}
        return {"Filters": [{"Name": "vpc-id", "Values": [vpc_id]}]}
