"""VPC, subnet and security group translation.

AWS shapes are the ``describe_*`` dicts returned by boto3 EC2. GCP shapes
are compute networks, subnetworks and firewalls as snake_case dicts; a GCP
"security group" is one firewall resource.
"""

from __future__ import annotations

import logging
from typing import Any

from cloudfleet.errors import ValidationError
from cloudfleet.models import (
    VPC,
    CreateSecurityGroupRequest,
    CreateSubnetRequest,
    CreateVPCRequest,
    NetworkState,
    SecurityGroup,
    Subnet,
)
from cloudfleet.translate.rules import (
    rules_from_aws_security_group,
    rules_from_gcp_firewall,
    rules_to_gcp_firewall,
)

logger = logging.getLogger(__name__)

GCP_COMPUTE_PREFIX = "https://www.googleapis.com/compute/v1/"

AWS_NETWORK_STATE: dict[str, NetworkState] = {
    "pending": NetworkState.CREATING,
    "available": NetworkState.ACTIVE,
    "deleting": NetworkState.DELETING,
    "failed": NetworkState.ERROR,
}


def _drop(provider: str, kind: str, field: str, value: Any) -> None:
    if value:
        logger.warning("%s %s has no %s; dropping %r", provider, kind, field, value)


# --- AWS helpers ---


def aws_tags_to_dict(tags: list[dict[str, str]] | None) -> dict[str, str]:
    return {t["Key"]: t.get("Value", "") for t in tags or []}


def aws_tag_specification(resource_type: str, name: str, tags: dict[str, str]) -> list[dict]:
    pairs = [{"Key": "Name", "Value": name}]
    pairs += [{"Key": k, "Value": v} for k, v in tags.items() if k != "Name"]
    return [{"ResourceType": resource_type, "Tags": pairs}]


def vpc_from_aws(native: dict[str, Any], region: str) -> VPC:
    tags = aws_tags_to_dict(native.get("Tags"))
    return VPC(
        id=native["VpcId"],
        name=tags.get("Name", ""),
        state=AWS_NETWORK_STATE.get(native.get("State", ""), NetworkState.ACTIVE),
        cidr_block=native.get("CidrBlock"),
        region=region,
        is_default=bool(native.get("IsDefault", False)),
        tags=tags,
    )


def vpc_to_aws(request: CreateVPCRequest) -> dict[str, Any]:
    if not request.cidr_block:
        raise ValidationError("AWS VPCs require a CIDR block")
    if request.routing_mode != "REGIONAL":
        _drop("AWS", "VPC", "routing mode", request.routing_mode)
    _drop("AWS", "VPC", "auto subnets", request.auto_subnets)
    _drop("AWS", "VPC", "MTU", request.mtu)
    return {
        "CidrBlock": request.cidr_block,
        "TagSpecifications": aws_tag_specification("vpc", request.name, request.tags),
    }


def subnet_from_aws(native: dict[str, Any], region: str) -> Subnet:
    tags = aws_tags_to_dict(native.get("Tags"))
    return Subnet(
        id=native["SubnetId"],
        name=tags.get("Name", ""),
        vpc_id=native["VpcId"],
        cidr_block=native.get("CidrBlock", ""),
        availability_zone=native.get("AvailabilityZone"),
        region=region,
        state=AWS_NETWORK_STATE.get(native.get("State", ""), NetworkState.ACTIVE),
        is_public=bool(native.get("MapPublicIpOnLaunch", False)),
        tags=tags,
    )


def subnet_to_aws(request: CreateSubnetRequest) -> dict[str, Any]:
    _drop("AWS", "subnet", "private Google access", request.private_ip_google_access)
    native: dict[str, Any] = {
        "VpcId": request.vpc_id,
        "CidrBlock": request.cidr_block,
        "TagSpecifications": aws_tag_specification("subnet", request.name, request.tags),
    }
    if request.availability_zone:
        native["AvailabilityZone"] = request.availability_zone
    return native


def security_group_from_aws(native: dict[str, Any], region: str) -> SecurityGroup:
    return SecurityGroup(
        id=native["GroupId"],
        name=native.get("GroupName", ""),
        description=native.get("Description", ""),
        vpc_id=native.get("VpcId", ""),
        region=region,
        rules=rules_from_aws_security_group(native),
        tags=aws_tags_to_dict(native.get("Tags")),
    )


def security_group_to_aws(request: CreateSecurityGroupRequest) -> dict[str, Any]:
    _drop("AWS", "security group", "target tags", request.target_tags)
    return {
        "GroupName": request.name,
        "Description": request.description or request.name,
        "VpcId": request.vpc_id,
        "TagSpecifications": aws_tag_specification(
            "security-group", request.name, request.tags,
        ),
    }


# --- GCP helpers ---


def resource_name(value: str) -> str:
    """Return the last path segment of a GCP id or URL."""
    return value.rstrip("/").rsplit("/", 1)[-1]


def resource_path(value: str) -> str:
    """Strip the compute API prefix from a GCP self link."""
    return value[len(GCP_COMPUTE_PREFIX):] if value.startswith(GCP_COMPUTE_PREFIX) else value


def gcp_network_path(project_id: str, vpc: str) -> str:
    return f"projects/{project_id}/global/networks/{resource_name(vpc)}"


def vpc_from_gcp(native: dict[str, Any], project_id: str) -> VPC:
    routing = native.get("routing_config") or {}
    return VPC(
        id=gcp_network_path(project_id, native["name"]),
        name=native["name"],
        state=NetworkState.ACTIVE,
        cidr_block=native.get("I_pv4_range") or None,
        region="global",
        description=native.get("description") or "",
        routing_mode=routing.get("routing_mode"),
        mtu=native.get("mtu") or None,
        auto_subnets=native.get("auto_create_subnetworks"),
    )


def vpc_to_gcp(request: CreateVPCRequest) -> dict[str, Any]:
    _drop("GCP", "VPC", "CIDR block", request.cidr_block)
    _drop("GCP", "VPC", "tags", request.tags)
    native: dict[str, Any] = {
        "name": request.name,
        "auto_create_subnetworks": request.auto_subnets,
        "routing_config": {"routing_mode": request.routing_mode},
    }
    if request.description:
        native["description"] = request.description
    if request.mtu:
        native["mtu"] = request.mtu
    return native


def subnet_from_gcp(native: dict[str, Any], project_id: str) -> Subnet:
    region = resource_name(native.get("region") or "")
    return Subnet(
        id=f"projects/{project_id}/regions/{region}/subnetworks/{native['name']}",
        name=native["name"],
        vpc_id=resource_path(native.get("network") or ""),
        cidr_block=native.get("ip_cidr_range") or "",
        region=region,
        state=NetworkState.ACTIVE,
        gateway_address=native.get("gateway_address") or None,
        private_ip_google_access=native.get("private_ip_google_access"),
    )


def subnet_to_gcp(request: CreateSubnetRequest, project_id: str, region: str) -> dict[str, Any]:
    _drop("GCP", "subnet", "availability zone", request.availability_zone)
    _drop("GCP", "subnet", "tags", request.tags)
    return {
        "name": request.name,
        "network": gcp_network_path(project_id, request.vpc_id),
        "ip_cidr_range": request.cidr_block,
        "region": region,
        "private_ip_google_access": request.private_ip_google_access,
    }


def security_group_from_gcp(native: dict[str, Any], project_id: str) -> SecurityGroup:
    return SecurityGroup(
        id=f"projects/{project_id}/global/firewalls/{native['name']}",
        name=native["name"],
        description=native.get("description") or "",
        vpc_id=resource_path(native.get("network") or ""),
        region="global",
        rules=rules_from_gcp_firewall(native),
        target_tags=list(native.get("target_tags") or []),
    )


def security_group_to_gcp(request: CreateSecurityGroupRequest, project_id: str) -> dict[str, Any]:
    _drop("GCP", "firewall", "tags", request.tags)
    return rules_to_gcp_firewall(
        request.rules,
        name=request.name,
        network=gcp_network_path(project_id, request.vpc_id),
        target_tags=request.target_tags,
        description=request.description,
    )
