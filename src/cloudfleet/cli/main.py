"""cloudfleet CLI: command-line interface for multi-cloud cluster and network orchestration.

Commands:
    clusters list|get|create|delete|kubeconfig|tag
    nodepools list|get|create|scale|delete
    networks vpcs|subnets|security-groups list|get|create|delete
    rules add|remove|replace
    bulk delete|tag
    credentials check|generate-key|encrypt

Every resource command takes the request context options
(--tenant, --credential, --provider, --region, --resource-group).
"""

from __future__ import annotations

import contextlib
import json
import logging
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import ValidationError as PydanticValidationError

from cloudfleet import __version__
from cloudfleet.config import CloudFleetConfig, load_config
from cloudfleet.errors import CloudFleetError, PartialFailureError
from cloudfleet.models import (
    ClusterMode,
    CreateClusterRequest,
    CreateSecurityGroupRequest,
    CreateSubnetRequest,
    CreateVPCRequest,
    Provider,
    RequestContext,
    RuleAction,
    RuleDirection,
    RuleProtocol,
    SecurityGroupRule,
)
from cloudfleet.sdk.client import CloudFleet
from cloudfleet.translate.node_pools import node_pool_from_payload

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

_STATUS_COLORS = {
    "CREATING": "yellow",
    "ACTIVE": "green",
    "UPDATING": "cyan",
    "DELETING": "magenta",
    "FAILED": "red",
}


def _resolve_cfg(path: str | None = None) -> CloudFleetConfig:
    """Load config from cloudfleet.yaml (auto-discover, never error)."""
    try:
        return load_config(path)
    except Exception:
        return CloudFleetConfig()


def _build_fleet(cfg: CloudFleetConfig) -> CloudFleet:
    return CloudFleet.from_config(cfg)


def _fleet() -> CloudFleet:
    ctx = click.get_current_context()
    obj = ctx.ensure_object(dict)
    if "fleet" not in obj:
        try:
            obj["fleet"] = _build_fleet(obj.get("config") or _resolve_cfg())
        except CloudFleetError as e:
            click.echo(f"Error loading config: {e}", err=True)
            sys.exit(1)
        ctx.call_on_close(obj["fleet"].close)
    return obj["fleet"]


@contextlib.contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except PartialFailureError as e:
        click.echo(click.style("PARTIAL FAILURE", fg="red", bold=True) + f" — {e.operation}", err=True)
        for target, message in sorted(e.failures.items()):
            click.echo(f"  {target}: {message}", err=True)
        sys.exit(1)
    except (CloudFleetError, PydanticValidationError) as e:
        click.echo(click.style("Error", fg="red") + f": {e}", err=True)
        sys.exit(1)


def _parse_pairs(values: tuple[str, ...], what: str = "tag") -> dict[str, str]:
    """Parse KEY=VALUE options into a dict."""
    result: dict[str, str] = {}
    for item in values:
        if "=" not in item:
            click.echo(f"Invalid {what} (expected KEY=VALUE): {item}", err=True)
            sys.exit(1)
        key, value = item.split("=", 1)
        result[key.strip()] = value.strip()
    return result


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def context_options(fn: Callable) -> Callable:
    """Add the request context options to a command."""
    options = [
        click.option("--tenant", "tenant_id", required=True, help="Tenant (workspace) id"),
        click.option("--credential", "credential_id", required=True, help="Credential id"),
        click.option(
            "--provider", required=True,
            type=click.Choice([p.value for p in Provider]),
            help="Cloud provider",
        ),
        click.option("--region", required=True, help="Provider region"),
        click.option(
            "--resource-group", default=None,
            help="Azure resource group (overrides the credential's)",
        ),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _context(
    tenant_id: str,
    credential_id: str,
    provider: str,
    region: str,
    resource_group: str | None,
) -> RequestContext:
    return CloudFleet.context(tenant_id, credential_id, provider, region, resource_group)


def _ctx_from(kwargs: dict[str, Any]) -> RequestContext:
    return _context(
        kwargs.pop("tenant_id"),
        kwargs.pop("credential_id"),
        kwargs.pop("provider"),
        kwargs.pop("region"),
        kwargs.pop("resource_group"),
    )


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="Path to cloudfleet.yaml")
@click.option(
    "--log-level", default=None,
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging level (default from config, else WARNING)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """cloudfleet: multi-cloud Kubernetes and network orchestration."""
    cfg = _resolve_cfg(config_path)
    logging.basicConfig(
        level=(log_level or cfg.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)["config"] = cfg


# --- clusters ---


@cli.group()
def clusters() -> None:
    """Kubernetes cluster commands."""


@clusters.command("list")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def clusters_list(json_output: bool, **kwargs: Any) -> None:
    """List clusters in the region."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        items = _fleet().clusters.list_clusters(context)

    if json_output:
        _echo_json([c.model_dump(mode="json") for c in items])
        return
    if not items:
        click.echo("No clusters found.")
        return
    for c in items:
        click.echo(
            f"  {c.name:<30} "
            + click.style(f"{c.status:<9}", fg=_STATUS_COLORS.get(c.status, "white"))
            + f"  v{c.version or '?':<8} {c.region}"
        )
    click.echo(f"\n{len(items)} cluster(s).")


@clusters.command("get")
@click.argument("name")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def clusters_get(name: str, json_output: bool, **kwargs: Any) -> None:
    """Show one cluster."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        c = _fleet().clusters.get_cluster(context, name)

    if json_output:
        _echo_json(c.model_dump(mode="json"))
        return
    click.echo(
        click.style(c.status, fg=_STATUS_COLORS.get(c.status, "white"), bold=True)
        + f" — {c.name}"
    )
    click.echo(f"  id:       {c.id}")
    click.echo(f"  provider: {c.provider}")
    click.echo(f"  region:   {c.region}")
    click.echo(f"  version:  {c.version}")
    click.echo(f"  endpoint: {c.endpoint or '-'}")
    if c.created_at:
        click.echo(f"  created:  {c.created_at.isoformat()[:19]}")
    for key, value in sorted(c.tags.items()):
        click.echo(f"  tag:      {key}={value}")


@clusters.command("create")
@click.argument("name")
@context_options
@click.option("--version", "k8s_version", default="", help="Kubernetes version")
@click.option(
    "--mode", type=click.Choice([m.value for m in ClusterMode]),
    default=ClusterMode.STANDARD.value, help="Cluster mode (autopilot is GCP only)",
)
@click.option("--tag", multiple=True, help="Tag KEY=VALUE (repeatable)")
@click.option("--node-pool", "node_pool_file", default=None, help="YAML/JSON file with the node pool")
@click.option("--role-arn", default=None, help="EKS cluster IAM role ARN")
@click.option("--subnet-id", multiple=True, help="EKS subnet id (repeatable)")
@click.option("--security-group-id", multiple=True, help="EKS security group id (repeatable)")
@click.option("--network", default=None, help="GKE VPC network")
@click.option("--subnetwork", default=None, help="GKE subnetwork")
@click.option("--zone", default=None, help="GKE zone for zonal clusters")
@click.option("--dns-prefix", default=None, help="AKS DNS prefix")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def clusters_create(
    name: str,
    k8s_version: str,
    mode: str,
    tag: tuple[str, ...],
    node_pool_file: str | None,
    role_arn: str | None,
    subnet_id: tuple[str, ...],
    security_group_id: tuple[str, ...],
    network: str | None,
    subnetwork: str | None,
    zone: str | None,
    dns_prefix: str | None,
    json_output: bool,
    **kwargs: Any,
) -> None:
    """Create a cluster. Returns immediately with status CREATING."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        node_pool = None
        if node_pool_file:
            node_pool = node_pool_from_payload(context.provider, _load_document(node_pool_file))
        request = CreateClusterRequest(
            name=name,
            version=k8s_version,
            mode=mode,
            tags=_parse_pairs(tag),
            node_pool=node_pool,
            role_arn=role_arn,
            subnet_ids=list(subnet_id),
            security_group_ids=list(security_group_id),
            network=network,
            subnetwork=subnetwork,
            zone=zone,
            dns_prefix=dns_prefix,
        )
        cluster = _fleet().clusters.create_cluster(context, request)

    if json_output:
        _echo_json(cluster.model_dump(mode="json"))
    else:
        click.echo(
            click.style("CREATING", fg="yellow", bold=True)
            + f" — {cluster.name} ({cluster.provider} {cluster.region})"
        )


@clusters.command("delete")
@click.argument("name")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def clusters_delete(name: str, json_output: bool, **kwargs: Any) -> None:
    """Delete a cluster (no-op if it does not exist)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        deleted = _fleet().clusters.delete_cluster(context, name)

    if json_output:
        _echo_json({"name": name, "deleted": deleted})
    elif deleted:
        click.echo(click.style("DELETING", fg="magenta", bold=True) + f" — {name}")
    else:
        click.echo(f"Cluster {name} does not exist; nothing to delete.")


@clusters.command("kubeconfig")
@click.argument("name")
@context_options
@click.option("--output", "-o", default=None, help="Write to this file instead of stdout")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def clusters_kubeconfig(name: str, output: str | None, json_output: bool, **kwargs: Any) -> None:
    """Download a cluster's kubeconfig."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        doc = _fleet().clusters.get_kubeconfig(context, name)

    if output:
        Path(output).write_text(doc.content, encoding="utf-8")
    if json_output:
        data = doc.model_dump(mode="json")
        if output:
            data["path"] = str(Path(output).resolve())
        _echo_json(data)
    elif output:
        click.echo(f"Wrote {doc.filename} to {output}")
    else:
        click.echo(doc.content, nl=False)


@clusters.command("tag")
@click.argument("name")
@context_options
@click.option("--tag", multiple=True, required=True, help="Tag KEY=VALUE (repeatable)")
@click.option("--replace", is_flag=True, help="Replace all tags instead of merging")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def clusters_tag(
    name: str, tag: tuple[str, ...], replace: bool, json_output: bool, **kwargs: Any,
) -> None:
    """Set tags (labels on GKE) on a cluster."""
    context = _ctx_from(kwargs)
    tags = _parse_pairs(tag)
    with _handle_errors():
        fleet = _fleet()
        if not replace:
            tags = {**fleet.clusters.get_cluster(context, name).tags, **tags}
        cluster = fleet.clusters.update_cluster_tags(context, name, tags)

    if json_output:
        _echo_json(cluster.model_dump(mode="json"))
    else:
        click.echo(f"Tagged {cluster.name}: " + ", ".join(f"{k}={v}" for k, v in sorted(cluster.tags.items())))


# --- nodepools ---


@cli.group()
def nodepools() -> None:
    """Node pool / node group commands."""


def _echo_pool(pool: Any) -> None:
    s = pool.scaling
    click.echo(
        f"  {pool.name:<24} "
        + click.style(f"{pool.status:<9}", fg=_STATUS_COLORS.get(pool.status, "white"))
        + f"  {','.join(pool.instance_types) or '-':<16}"
        + f"  min={s.min_size} desired={s.desired_size} max={s.max_size}"
    )


@nodepools.command("list")
@click.argument("cluster")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def nodepools_list(cluster: str, json_output: bool, **kwargs: Any) -> None:
    """List the node pools of a cluster."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        pools = _fleet().clusters.list_node_pools(context, cluster)

    if json_output:
        _echo_json([p.model_dump(mode="json") for p in pools])
        return
    if not pools:
        click.echo(f"No node pools on {cluster}.")
        return
    for pool in pools:
        _echo_pool(pool)


@nodepools.command("get")
@click.argument("cluster")
@click.argument("name")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def nodepools_get(cluster: str, name: str, json_output: bool, **kwargs: Any) -> None:
    """Show one node pool."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        pool = _fleet().clusters.get_node_pool(context, cluster, name)

    if json_output:
        _echo_json(pool.model_dump(mode="json"))
    else:
        _echo_pool(pool)


@nodepools.command("create")
@click.argument("cluster")
@click.argument("name")
@context_options
@click.option("--instance-type", multiple=True, required=True, help="Instance / machine type")
@click.option("--min", "min_size", type=int, default=1, show_default=True)
@click.option("--desired", "desired_size", type=int, default=1, show_default=True)
@click.option("--max", "max_size", type=int, default=1, show_default=True)
@click.option("--disk-size", type=int, default=None, help="Disk size in GB")
@click.option("--spot", is_flag=True, help="Use spot capacity")
@click.option("--label", multiple=True, help="Node label KEY=VALUE (repeatable)")
@click.option("--node-role-arn", default=None, help="EKS node IAM role ARN")
@click.option("--subnet-id", multiple=True, help="EKS subnet id (repeatable)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def nodepools_create(
    cluster: str,
    name: str,
    instance_type: tuple[str, ...],
    min_size: int,
    desired_size: int,
    max_size: int,
    disk_size: int | None,
    spot: bool,
    label: tuple[str, ...],
    node_role_arn: str | None,
    subnet_id: tuple[str, ...],
    json_output: bool,
    **kwargs: Any,
) -> None:
    """Create a node pool on a cluster."""
    context = _ctx_from(kwargs)
    payload: dict[str, Any] = {
        "name": name,
        "cluster_name": cluster,
        "instance_types": list(instance_type),
        "scaling": {"min_size": min_size, "desired_size": desired_size, "max_size": max_size},
        "disk_size_gb": disk_size,
        "capacity_type": "SPOT" if spot else "ON_DEMAND",
        "labels": _parse_pairs(label, "label"),
    }
    if context.provider == Provider.AWS:
        payload["node_role_arn"] = node_role_arn or ""
        payload["subnet_ids"] = list(subnet_id)
    with _handle_errors():
        request = node_pool_from_payload(context.provider, payload)
        pool = _fleet().clusters.create_node_pool(context, request)

    if json_output:
        _echo_json(pool.model_dump(mode="json"))
    else:
        click.echo(click.style("CREATING", fg="yellow", bold=True) + f" — {cluster}/{pool.name}")


@nodepools.command("scale")
@click.argument("cluster")
@click.argument("name")
@context_options
@click.option("--min", "min_size", type=int, required=True)
@click.option("--desired", "desired_size", type=int, required=True)
@click.option("--max", "max_size", type=int, required=True)
@click.option("--json-output", is_flag=True, help="Output as JSON")
def nodepools_scale(
    cluster: str,
    name: str,
    min_size: int,
    desired_size: int,
    max_size: int,
    json_output: bool,
    **kwargs: Any,
) -> None:
    """Scale a node pool (min <= desired <= max)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        pool = _fleet().clusters.scale_node_pool(
            context, cluster, name, min_size, desired_size, max_size,
        )

    if json_output:
        _echo_json(pool.model_dump(mode="json"))
    else:
        _echo_pool(pool)


@nodepools.command("delete")
@click.argument("cluster")
@click.argument("name")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def nodepools_delete(cluster: str, name: str, json_output: bool, **kwargs: Any) -> None:
    """Delete a node pool (no-op if it does not exist)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        deleted = _fleet().clusters.delete_node_pool(context, cluster, name)

    if json_output:
        _echo_json({"cluster": cluster, "name": name, "deleted": deleted})
    elif deleted:
        click.echo(click.style("DELETING", fg="magenta", bold=True) + f" — {cluster}/{name}")
    else:
        click.echo(f"Node pool {cluster}/{name} does not exist; nothing to delete.")


# --- networks ---


@cli.group()
def networks() -> None:
    """VPC, subnet and security group commands (AWS and GCP)."""


@networks.group()
def vpcs() -> None:
    """VPC / network commands."""


@vpcs.command("list")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def vpcs_list(json_output: bool, **kwargs: Any) -> None:
    """List VPCs."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        items = _fleet().networks.list_vpcs(context)

    if json_output:
        _echo_json([v.model_dump(mode="json") for v in items])
        return
    for v in items:
        default = " (default)" if v.is_default else ""
        click.echo(f"  {v.id:<40} {v.name or '-':<24} {v.cidr_block or '-':<18} {v.state}{default}")
    click.echo(f"\n{len(items)} VPC(s).")


@vpcs.command("get")
@click.argument("vpc_id")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def vpcs_get(vpc_id: str, json_output: bool, **kwargs: Any) -> None:
    """Show one VPC."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        vpc = _fleet().networks.get_vpc(context, vpc_id)
    _echo_record(vpc, json_output)


@vpcs.command("create")
@click.argument("name")
@context_options
@click.option("--cidr", default=None, help="CIDR block (AWS)")
@click.option("--description", default="", help="Description (GCP)")
@click.option("--auto-subnets", is_flag=True, help="Auto-create subnetworks (GCP)")
@click.option(
    "--routing-mode", type=click.Choice(["REGIONAL", "GLOBAL"]), default="REGIONAL",
    help="Dynamic routing mode (GCP)",
)
@click.option("--mtu", type=int, default=None, help="MTU (GCP)")
@click.option("--tag", multiple=True, help="Tag KEY=VALUE (AWS, repeatable)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def vpcs_create(
    name: str,
    cidr: str | None,
    description: str,
    auto_subnets: bool,
    routing_mode: str,
    mtu: int | None,
    tag: tuple[str, ...],
    json_output: bool,
    **kwargs: Any,
) -> None:
    """Create a VPC."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        request = CreateVPCRequest(
            name=name,
            cidr_block=cidr,
            description=description,
            auto_subnets=auto_subnets,
            routing_mode=routing_mode,
            mtu=mtu,
            tags=_parse_pairs(tag),
        )
        vpc = _fleet().networks.create_vpc(context, request)
    _echo_record(vpc, json_output)


@vpcs.command("delete")
@click.argument("vpc_id")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def vpcs_delete(vpc_id: str, json_output: bool, **kwargs: Any) -> None:
    """Delete a VPC (no-op if it does not exist)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        deleted = _fleet().networks.delete_vpc(context, vpc_id)
    _echo_deleted("VPC", vpc_id, deleted, json_output)


@networks.group()
def subnets() -> None:
    """Subnet commands."""


@subnets.command("list")
@context_options
@click.option("--vpc", "vpc_id", default=None, help="Only subnets of this VPC")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def subnets_list(vpc_id: str | None, json_output: bool, **kwargs: Any) -> None:
    """List subnets."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        items = _fleet().networks.list_subnets(context, vpc_id)

    if json_output:
        _echo_json([s.model_dump(mode="json") for s in items])
        return
    for s in items:
        public = " public" if s.is_public else ""
        click.echo(f"  {s.id:<40} {s.name or '-':<24} {s.cidr_block:<18} {s.state}{public}")
    click.echo(f"\n{len(items)} subnet(s).")


@subnets.command("get")
@click.argument("subnet_id")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def subnets_get(subnet_id: str, json_output: bool, **kwargs: Any) -> None:
    """Show one subnet."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        subnet = _fleet().networks.get_subnet(context, subnet_id)
    _echo_record(subnet, json_output)


@subnets.command("create")
@click.argument("name")
@context_options
@click.option("--vpc", "vpc_id", required=True, help="VPC id / network name")
@click.option("--cidr", required=True, help="CIDR block")
@click.option("--zone", default=None, help="Availability zone (AWS)")
@click.option("--private-google-access", is_flag=True, help="Private Google access (GCP)")
@click.option("--tag", multiple=True, help="Tag KEY=VALUE (AWS, repeatable)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def subnets_create(
    name: str,
    vpc_id: str,
    cidr: str,
    zone: str | None,
    private_google_access: bool,
    tag: tuple[str, ...],
    json_output: bool,
    **kwargs: Any,
) -> None:
    """Create a subnet."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        request = CreateSubnetRequest(
            name=name,
            vpc_id=vpc_id,
            cidr_block=cidr,
            availability_zone=zone,
            private_ip_google_access=private_google_access,
            tags=_parse_pairs(tag),
        )
        subnet = _fleet().networks.create_subnet(context, request)
    _echo_record(subnet, json_output)


@subnets.command("delete")
@click.argument("subnet_id")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def subnets_delete(subnet_id: str, json_output: bool, **kwargs: Any) -> None:
    """Delete a subnet (no-op if it does not exist)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        deleted = _fleet().networks.delete_subnet(context, subnet_id)
    _echo_deleted("Subnet", subnet_id, deleted, json_output)


@networks.group("security-groups")
def security_groups() -> None:
    """Security group / firewall commands."""


@security_groups.command("list")
@context_options
@click.option("--vpc", "vpc_id", default=None, help="Only groups of this VPC")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def security_groups_list(vpc_id: str | None, json_output: bool, **kwargs: Any) -> None:
    """List security groups (firewalls on GCP)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        items = _fleet().networks.list_security_groups(context, vpc_id)

    if json_output:
        _echo_json([g.model_dump(mode="json") for g in items])
        return
    for g in items:
        click.echo(f"  {g.id:<40} {g.name:<28} {len(g.rules)} rule(s)")
    click.echo(f"\n{len(items)} security group(s).")


@security_groups.command("get")
@click.argument("group_id")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def security_groups_get(group_id: str, json_output: bool, **kwargs: Any) -> None:
    """Show one security group and its rules."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        group = _fleet().networks.get_security_group(context, group_id)
    _echo_group(group, json_output)


@security_groups.command("create")
@click.argument("name")
@context_options
@click.option("--vpc", "vpc_id", required=True, help="VPC id / network name")
@click.option("--description", default="", help="Description")
@click.option("--rules-file", default=None, help="YAML/JSON list of rules")
@click.option("--target-tag", multiple=True, help="Target network tag (GCP, repeatable)")
@click.option("--tag", multiple=True, help="Tag KEY=VALUE (AWS, repeatable)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def security_groups_create(
    name: str,
    vpc_id: str,
    description: str,
    rules_file: str | None,
    target_tag: tuple[str, ...],
    tag: tuple[str, ...],
    json_output: bool,
    **kwargs: Any,
) -> None:
    """Create a security group (AWS) or firewall (GCP)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        request = CreateSecurityGroupRequest(
            name=name,
            description=description,
            vpc_id=vpc_id,
            rules=_load_rules(rules_file) if rules_file else [],
            target_tags=list(target_tag),
            tags=_parse_pairs(tag),
        )
        group = _fleet().networks.create_security_group(context, request)
    _echo_group(group, json_output)


@security_groups.command("delete")
@click.argument("group_id")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def security_groups_delete(group_id: str, json_output: bool, **kwargs: Any) -> None:
    """Delete a security group (no-op if it does not exist)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        deleted = _fleet().networks.delete_security_group(context, group_id)
    _echo_deleted("Security group", group_id, deleted, json_output)


# --- rules ---


def rule_options(fn: Callable) -> Callable:
    """Add the single-rule options to a command."""
    options = [
        click.option(
            "--direction", type=click.Choice([d.value for d in RuleDirection]),
            default=RuleDirection.INGRESS.value, show_default=True,
        ),
        click.option(
            "--protocol", type=click.Choice([p.value for p in RuleProtocol]),
            default=RuleProtocol.TCP.value, show_default=True,
        ),
        click.option("--from-port", type=int, default=None),
        click.option("--to-port", type=int, default=None),
        click.option("--cidr", multiple=True, help="Peer CIDR block (repeatable)"),
        click.option(
            "--source-group", multiple=True,
            help="Peer security group id (AWS) or source tag (GCP)",
        ),
        click.option("--priority", type=int, default=1000, show_default=True, help="GCP only"),
        click.option(
            "--action", type=click.Choice([a.value for a in RuleAction]),
            default=RuleAction.ALLOW.value, show_default=True, help="deny is GCP only",
        ),
        click.option("--description", default="", help="Rule description"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _rule_from_options(kwargs: dict[str, Any]) -> SecurityGroupRule:
    return SecurityGroupRule(
        direction=kwargs.pop("direction"),
        protocol=kwargs.pop("protocol"),
        from_port=kwargs.pop("from_port"),
        to_port=kwargs.pop("to_port"),
        cidr_blocks=list(kwargs.pop("cidr")),
        source_groups=list(kwargs.pop("source_group")),
        priority=kwargs.pop("priority"),
        action=kwargs.pop("action"),
        description=kwargs.pop("description"),
    )


@cli.group()
def rules() -> None:
    """Security group rule commands."""


@rules.command("add")
@click.argument("group_id")
@context_options
@rule_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def rules_add(group_id: str, json_output: bool, **kwargs: Any) -> None:
    """Add one rule to a security group."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        rule = _rule_from_options(kwargs)
        group = _fleet().networks.add_rule(context, group_id, rule)
    _echo_group(group, json_output)


@rules.command("remove")
@click.argument("group_id")
@context_options
@rule_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def rules_remove(group_id: str, json_output: bool, **kwargs: Any) -> None:
    """Remove one rule from a security group."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        rule = _rule_from_options(kwargs)
        group = _fleet().networks.remove_rule(context, group_id, rule)
    _echo_group(group, json_output)


@rules.command("replace")
@click.argument("group_id")
@context_options
@click.option("--rules-file", required=True, help="YAML/JSON list of rules")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def rules_replace(group_id: str, rules_file: str, json_output: bool, **kwargs: Any) -> None:
    """Replace every rule of a security group (not atomic on AWS)."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        new_rules = _load_rules(rules_file)
        group = _fleet().networks.replace_all_rules(context, group_id, new_rules)
    _echo_group(group, json_output)


# --- bulk ---


@cli.group()
def bulk() -> None:
    """Bulk cluster operations."""


def _finish_bulk(op: Any, json_output: bool, timeout: float | None) -> None:
    if not op.wait(timeout):
        click.echo(f"Timed out waiting for {op.operation_id}; cancelling.", err=True)
        op.cancel()
        op.wait()

    progress = op.progress()
    if json_output:
        _echo_json(progress.model_dump(mode="json"))
    else:
        color = "red" if progress.failed else ("yellow" if progress.is_cancelled else "green")
        click.echo(click.style(op.summary(), fg=color, bold=True))
        for target, message in sorted(progress.errors.items()):
            click.echo(f"  {target}: {message}")
    if progress.failed:
        sys.exit(1)


@bulk.command("delete")
@click.argument("names", nargs=-1, required=True)
@context_options
@click.option("--timeout", type=float, default=None, help="Seconds to wait before cancelling")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def bulk_delete(names: tuple[str, ...], timeout: float | None, json_output: bool, **kwargs: Any) -> None:
    """Delete several clusters concurrently."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        op = _fleet().delete_clusters(context, list(names))
    _finish_bulk(op, json_output, timeout)


@bulk.command("tag")
@click.argument("names", nargs=-1, required=True)
@context_options
@click.option("--key", required=True, help="Tag key")
@click.option("--value", required=True, help="Tag value")
@click.option("--timeout", type=float, default=None, help="Seconds to wait before cancelling")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def bulk_tag(
    names: tuple[str, ...],
    key: str,
    value: str,
    timeout: float | None,
    json_output: bool,
    **kwargs: Any,
) -> None:
    """Set KEY=VALUE on several clusters concurrently."""
    context = _ctx_from(kwargs)
    with _handle_errors():
        op = _fleet().tag_clusters(context, list(names), key, value)
    _finish_bulk(op, json_output, timeout)


# --- credentials ---


@cli.group()
def credentials() -> None:
    """Credential commands."""


@credentials.command("check")
@context_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def credentials_check(json_output: bool, **kwargs: Any) -> None:
    """Resolve a credential and build a provider client for it."""
    context = _ctx_from(kwargs)
    fleet = _fleet()
    try:
        credential = fleet.check_credential(context)
    except (CloudFleetError, ImportError) as e:
        if json_output:
            _echo_json({"valid": False, "credential_id": context.credential_id, "error": str(e)})
        else:
            click.echo(click.style("INVALID", fg="red", bold=True) + f" — {e}")
        sys.exit(1)

    if json_output:
        _echo_json({
            "valid": True,
            "credential_id": credential.credential_id,
            "provider": credential.provider.value,
            "keys": sorted(credential.data),
        })
    else:
        click.echo(
            click.style("OK", fg="green", bold=True)
            + f" — {credential.credential_id} ({credential.provider}, {context.region})"
        )


@credentials.command("generate-key")
def credentials_generate_key() -> None:
    """Print a new Fernet encryption key."""
    from cloudfleet.credentials.decryptor import generate_key

    click.echo(generate_key())


@credentials.command("encrypt")
@click.argument("data_file")
@click.option("--key", default=None, help="Fernet key (default: configured key)")
def credentials_encrypt(data_file: str, key: str | None) -> None:
    """Encrypt a JSON/YAML credential document for the credential store."""
    from cloudfleet.credentials.decryptor import FernetDecryptor, build_decryptor

    cfg = click.get_current_context().find_object(dict).get("config") or CloudFleetConfig()
    with _handle_errors():
        decryptor = FernetDecryptor(key) if key else build_decryptor(cfg.decryptor)
        document = _load_document(data_file)
        click.echo(decryptor.encrypt(json.dumps(document).encode("utf-8")))


# --- Private helpers ---


def _load_document(path: str) -> Any:
    """Load a YAML (or JSON) file."""
    try:
        return yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        click.echo(f"Error reading {path}: {e}", err=True)
        sys.exit(1)


def _load_rules(path: str) -> list[SecurityGroupRule]:
    data = _load_document(path) or []
    if isinstance(data, dict):
        data = data.get("rules") or []
    if not isinstance(data, list):
        click.echo(f"Expected a list of rules in {path}", err=True)
        sys.exit(1)
    return [SecurityGroupRule(**item) for item in data]


def _echo_record(record: Any, json_output: bool) -> None:
    data = record.model_dump(mode="json")
    if json_output:
        _echo_json(data)
        return
    for key, value in data.items():
        if value in (None, "", [], {}):
            continue
        click.echo(f"  {key + ':':<26} {value}")


def _echo_group(group: Any, json_output: bool) -> None:
    if json_output:
        _echo_json(group.model_dump(mode="json"))
        return
    click.echo(click.style(group.name, bold=True) + f" — {group.id}")
    if group.description:
        click.echo(f"  {group.description}")
    if not group.rules:
        click.echo("  (no rules)")
    for rule in group.rules:
        if rule.from_port is None:
            ports = "all"
        elif rule.from_port == rule.to_port:
            ports = str(rule.from_port)
        else:
            ports = f"{rule.from_port}-{rule.to_port}"
        peers = ", ".join(rule.cidr_blocks + rule.source_groups) or "-"
        click.echo(f"  {rule.direction:<8} {rule.action:<6} {rule.protocol:<5} {ports:<12} {peers}")


def _echo_deleted(kind: str, resource_id: str, deleted: bool, json_output: bool) -> None:
    if json_output:
        _echo_json({"id": resource_id, "deleted": deleted})
    elif deleted:
        click.echo(click.style("DELETING", fg="magenta", bold=True) + f" — {resource_id}")
    else:
        click.echo(f"{kind} {resource_id} does not exist; nothing to delete.")
