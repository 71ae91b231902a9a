"""NetworkOrchestrator: VPCs, subnets, security groups and their rules.

Supported on AWS (EC2) and GCP (Compute Engine). Azure networking raises
``UnsupportedProviderError``.

Rule changes differ per provider:

- AWS: each rule is authorised/revoked individually on the security group.
  ``replace_all_rules`` is a non-atomic revoke-all then authorise-all; a
  failure halfway leaves the group with a partial rule set and is
  reported with ``PartialFailureError``.
- GCP: a "security group" is one firewall resource, so every rule change
  is a single update of that firewall.
"""

from __future__ import annotations

import logging
from typing import Any

from cloudfleet.errors import (
    CloudFleetError,
    NotFoundError,
    PartialFailureError,
    UnsupportedProviderError,
)
from cloudfleet.events.notifier import DOMAIN_NETWORK
from cloudfleet.models import (
    VPC,
    CreateSecurityGroupRequest,
    CreateSubnetRequest,
    CreateVPCRequest,
    NetworkState,
    Provider,
    RequestContext,
    RuleDirection,
    SecurityGroup,
    SecurityGroupRule,
    Subnet,
)
from cloudfleet.orchestrator.base import Orchestrator
from cloudfleet.providers.base import NetworkClient
from cloudfleet.translate.networks import (
    security_group_from_aws,
    security_group_from_gcp,
    security_group_to_aws,
    security_group_to_gcp,
    subnet_from_aws,
    subnet_from_gcp,
    subnet_to_aws,
    subnet_to_gcp,
    vpc_from_aws,
    vpc_from_gcp,
    vpc_to_aws,
    vpc_to_gcp,
)
from cloudfleet.translate.rules import (
    add_rule_to_gcp_firewall,
    remove_rule_from_gcp_firewall,
    replace_gcp_firewall_rules,
    rule_to_aws_permission,
)

logger = logging.getLogger(__name__)

NETWORK_PROVIDERS = frozenset({Provider.AWS, Provider.GCP})


def describe_rule(rule: SecurityGroupRule) -> str:
    """Short human-readable rule key, e.g. ``ingress tcp 22 0.0.0.0/0``."""
    if rule.from_port is None:
        ports = "all"
    elif rule.from_port == rule.to_port:
        ports = str(rule.from_port)
    else:
        ports = f"{rule.from_port}-{rule.to_port}"
    peers = ",".join(rule.cidr_blocks + rule.source_groups) or "-"
    return f"{rule.direction} {rule.protocol} {ports} {peers}"


class NetworkOrchestrator(Orchestrator):
    """VPC / subnet / security group lifecycle on AWS and GCP."""

    # --- VPCs ---

    def list_vpcs(self, context: RequestContext) -> list[VPC]:
        client = self._network_client(context)
        return [self._vpc(context, client, n) for n in client.list_vpcs()]

    def get_vpc(self, context: RequestContext, vpc_id: str) -> VPC:
        client = self._network_client(context)
        return self._vpc(context, client, client.get_vpc(vpc_id))

    def create_vpc(self, context: RequestContext, request: CreateVPCRequest) -> VPC:
        self._check_provider(context)
        native = vpc_to_aws(request) if context.provider == Provider.AWS else vpc_to_gcp(request)
        client = self._network_client(context)
        vpc = self._vpc(context, client, client.create_vpc(native))
        vpc = vpc.model_copy(update={"state": NetworkState.CREATING})
        if not vpc.name:
            vpc = vpc.model_copy(update={"name": request.name})
        logger.info("Creating %s VPC %s", context.provider, vpc.name)
        self._publish_network(context, "vpcs", "vpc", vpc.id, "created", vpc.state, vpc)
        return vpc

    def delete_vpc(self, context: RequestContext, vpc_id: str) -> bool:
        client = self._network_client(context)
        return self._delete(context, "vpcs", "vpc", vpc_id, client.delete_vpc)

    # --- Subnets ---

    def list_subnets(self, context: RequestContext, vpc_id: str | None = None) -> list[Subnet]:
        client = self._network_client(context)
        return [self._subnet(context, client, n) for n in client.list_subnets(vpc_id)]

    def get_subnet(self, context: RequestContext, subnet_id: str) -> Subnet:
        client = self._network_client(context)
        return self._subnet(context, client, client.get_subnet(subnet_id))

    def create_subnet(self, context: RequestContext, request: CreateSubnetRequest) -> Subnet:
        self._check_provider(context)
        client = self._network_client(context)
        if context.provider == Provider.AWS:
            native = subnet_to_aws(request)
        else:
            native = subnet_to_gcp(request, client.project_id, context.region)
        subnet = self._subnet(context, client, client.create_subnet(native))
        subnet = subnet.model_copy(update={"state": NetworkState.CREATING})
        logger.info("Creating %s subnet %s in %s", context.provider, request.name, request.vpc_id)
        self._publish_network(
            context, "subnets", "subnet", subnet.id, "created", subnet.state, subnet,
        )
        return subnet

    def delete_subnet(self, context: RequestContext, subnet_id: str) -> bool:
        client = self._network_client(context)
        return self._delete(context, "subnets", "subnet", subnet_id, client.delete_subnet)

    # --- Security groups ---

    def list_security_groups(
        self, context: RequestContext, vpc_id: str | None = None,
    ) -> list[SecurityGroup]:
        client = self._network_client(context)
        return [self._group(context, client, n) for n in client.list_security_groups(vpc_id)]

    def get_security_group(self, context: RequestContext, group_id: str) -> SecurityGroup:
        client = self._network_client(context)
        return self._group(context, client, client.get_security_group(group_id))

    def create_security_group(
        self, context: RequestContext, request: CreateSecurityGroupRequest,
    ) -> SecurityGroup:
        """Create a security group (AWS) or firewall (GCP) with its initial rules.

        On AWS the group is created first and the rules are authorised one
        by one; any rule that fails is reported with ``PartialFailureError``
        after the rest have been applied.
        """
        self._check_provider(context)
        client = self._network_client(context)
        if context.provider == Provider.GCP:
            native = security_group_to_gcp(request, client.project_id)
            group = self._group(context, client, client.create_security_group(native))
        else:
            permissions = [(r, rule_to_aws_permission(r)) for r in request.rules]
            created = client.create_security_group(security_group_to_aws(request))
            group_id = created["GroupId"]
            failures = self._authorize_all(client, group_id, permissions)
            group = self._group(context, client, client.get_security_group(group_id))
            if failures:
                self._publish_group(context, group, "created")
                raise PartialFailureError(
                    "create_security_group", failures, succeeded=len(permissions) - len(failures),
                )
        logger.info("Created %s security group %s", context.provider, group.name)
        self._publish_group(context, group, "created")
        return group

    def delete_security_group(self, context: RequestContext, group_id: str) -> bool:
        client = self._network_client(context)
        return self._delete(
            context, "securitygroups", "security_group", group_id, client.delete_security_group,
        )

    # --- Rules ---

    def add_rule(
        self, context: RequestContext, group_id: str, rule: SecurityGroupRule,
    ) -> SecurityGroup:
        client = self._network_client(context)
        if context.provider == Provider.AWS:
            permission = rule_to_aws_permission(rule)
            client.authorize_rule(group_id, rule.direction, permission)
            group = self._group(context, client, client.get_security_group(group_id))
        else:
            firewall = client.get_security_group(group_id)
            updated = add_rule_to_gcp_firewall(firewall, rule)
            group = self._group(context, client, client.update_firewall(updated, "add_rule"))
        logger.info("Added rule %s to %s", describe_rule(rule), group_id)
        self._publish_group(context, group, "updated")
        return group

    def remove_rule(
        self, context: RequestContext, group_id: str, rule: SecurityGroupRule,
    ) -> SecurityGroup:
        client = self._network_client(context)
        if context.provider == Provider.AWS:
            permission = rule_to_aws_permission(rule)
            client.revoke_rule(group_id, rule.direction, permission)
            group = self._group(context, client, client.get_security_group(group_id))
        else:
            firewall = client.get_security_group(group_id)
            updated = remove_rule_from_gcp_firewall(firewall, rule)
            group = self._group(context, client, client.update_firewall(updated, "remove_rule"))
        logger.info("Removed rule %s from %s", describe_rule(rule), group_id)
        self._publish_group(context, group, "updated")
        return group

    def replace_all_rules(
        self, context: RequestContext, group_id: str, rules: list[SecurityGroupRule],
    ) -> SecurityGroup:
        """Replace every rule of a security group.

        Not atomic on AWS: existing rules are revoked (failures are logged
        and skipped), then the new rules are authorised best-effort. If any
        new rule fails, ``PartialFailureError`` lists them; the group is
        left with whatever was applied.
        """
        client = self._network_client(context)
        if context.provider == Provider.GCP:
            firewall = client.get_security_group(group_id)
            updated = replace_gcp_firewall_rules(firewall, rules)
            group = self._group(
                context, client, client.update_firewall(updated, "replace_all_rules"),
            )
            logger.info("Replaced rules of firewall %s (%d rules)", group_id, len(rules))
            self._publish_group(context, group, "updated")
            return group

        # Translate up front so an unrepresentable rule fails before any change
        permissions = [(r, rule_to_aws_permission(r)) for r in rules]
        current = client.get_security_group(group_id)
        self._revoke_all(client, group_id, current)
        failures = self._authorize_all(client, group_id, permissions)

        group = self._group(context, client, client.get_security_group(group_id))
        self._publish_group(context, group, "updated")
        if failures:
            raise PartialFailureError(
                "replace_all_rules", failures, succeeded=len(permissions) - len(failures),
            )
        logger.info("Replaced rules of security group %s (%d rules)", group_id, len(rules))
        return group

    # --- Private: AWS rule application ---

    def _revoke_all(self, client: Any, group_id: str, group: dict[str, Any]) -> None:
        for direction, key in (
            (RuleDirection.INGRESS, "IpPermissions"),
            (RuleDirection.EGRESS, "IpPermissionsEgress"),
        ):
            for permission in group.get(key) or []:
                try:
                    client.revoke_rule(group_id, direction, permission)
                except CloudFleetError as exc:
                    logger.warning(
                        "Failed to revoke %s rule %s on %s: %s",
                        direction, permission.get("IpProtocol"), group_id, exc,
                    )

    def _authorize_all(
        self,
        client: Any,
        group_id: str,
        permissions: list[tuple[SecurityGroupRule, dict[str, Any]]],
    ) -> dict[str, str]:
        failures: dict[str, str] = {}
        for rule, permission in permissions:
            try:
                client.authorize_rule(group_id, rule.direction, permission)
            except CloudFleetError as exc:
                logger.warning("Failed to add rule %s to %s: %s", describe_rule(rule), group_id, exc)
                failures[describe_rule(rule)] = str(exc)
        return failures

    # --- Private: plumbing ---

    def _check_provider(self, context: RequestContext) -> None:
        if context.provider not in NETWORK_PROVIDERS:
            raise UnsupportedProviderError(context.provider, "networking")
        self._check_context(context)

    def _network_client(self, context: RequestContext) -> Any:
        self._check_provider(context)
        client = self._client(context)
        if not isinstance(client, NetworkClient):
            raise UnsupportedProviderError(context.provider, "networking")
        return client

    def _delete(
        self,
        context: RequestContext,
        resource: str,
        kind: str,
        resource_id: str,
        delete,
    ) -> bool:
        try:
            delete(resource_id)
        except NotFoundError:
            logger.info("%s %s already absent; delete is a no-op", kind, resource_id)
            return False
        logger.info("Deleting %s %s %s", context.provider, kind, resource_id)
        self._publish(
            context,
            domain=DOMAIN_NETWORK,
            resource=resource,
            resource_kind=kind,
            resource_id=resource_id,
            action="deleted",
            status=NetworkState.DELETING,
        )
        return True

    def _vpc(self, context: RequestContext, client: Any, native: dict[str, Any]) -> VPC:
        if context.provider == Provider.AWS:
            return vpc_from_aws(native, context.region)
        return vpc_from_gcp(native, client.project_id)

    def _subnet(self, context: RequestContext, client: Any, native: dict[str, Any]) -> Subnet:
        if context.provider == Provider.AWS:
            return subnet_from_aws(native, context.region)
        return subnet_from_gcp(native, client.project_id)

    def _group(
        self, context: RequestContext, client: Any, native: dict[str, Any],
    ) -> SecurityGroup:
        if context.provider == Provider.AWS:
            return security_group_from_aws(native, context.region)
        return security_group_from_gcp(native, client.project_id)

    def _publish_group(self, context: RequestContext, group: SecurityGroup, action: str) -> None:
        self._publish_network(
            context, "securitygroups", "security_group", group.id, action,
            NetworkState.ACTIVE, group,
        )

    def _publish_network(
        self,
        context: RequestContext,
        resource: str,
        kind: str,
        resource_id: str,
        action: str,
        status: str,
        record: Any,
    ) -> None:
        self._publish(
            context,
            domain=DOMAIN_NETWORK,
            resource=resource,
            resource_kind=kind,
            resource_id=resource_id,
            action=action,
            status=status,
            data=record.model_dump(mode="json"),
        )
