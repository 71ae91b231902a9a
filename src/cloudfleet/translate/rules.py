"""Security group / firewall rule translation.

AWS and GCP disagree on almost every aspect of a rule:

- AWS: ``IpPermission`` dicts, implicit-allow, ``-1`` for "all protocols",
  ICMP type/code carried in ``FromPort``/``ToPort``, peers as security
  group ids or prefix lists.
- GCP: firewall resources holding ``allowed``/``denied`` entries with
  string port ranges (``"22"``, ``"1000-2000"``), a firewall-wide
  direction, priority and range/tag lists.

Conventions applied in both directions:

- A full port range (``0-65535``) and "no ports" both normalise to
  ``None`` on the unified side.
- GCP's priority/action have no AWS equivalent. Unified rules default to
  priority 1000 and action ``allow``; a ``deny`` rule cannot be expressed
  on AWS and is rejected.
- IPv4 CIDRs are listed before IPv6 CIDRs, and peer group ids before
  prefix list ids.
"""

from __future__ import annotations

import logging
from typing import Any

from cloudfleet.errors import NotFoundError, ValidationError
from cloudfleet.models import RuleAction, RuleDirection, RuleProtocol, SecurityGroupRule

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 1000
FULL_PORT_RANGE = (0, 65535)

_AWS_PROTOCOLS: dict[str, RuleProtocol] = {
    "-1": RuleProtocol.ALL,
    "all": RuleProtocol.ALL,
    "tcp": RuleProtocol.TCP,
    "6": RuleProtocol.TCP,
    "udp": RuleProtocol.UDP,
    "17": RuleProtocol.UDP,
    "icmp": RuleProtocol.ICMP,
    "1": RuleProtocol.ICMP,
}

_GCP_WRITABLE_FIELDS = (
    "name",
    "network",
    "description",
    "direction",
    "priority",
    "allowed",
    "denied",
    "source_ranges",
    "destination_ranges",
    "source_tags",
    "target_tags",
    "disabled",
)


def _ports(rule: SecurityGroupRule) -> tuple[int, int] | None:
    if rule.from_port is None or rule.to_port is None:
        return None
    return (rule.from_port, rule.to_port)


def _normalise_range(start: Any, end: Any) -> tuple[int | None, int | None]:
    if start is None or end is None:
        return None, None
    start, end = int(start), int(end)
    if (start, end) == FULL_PORT_RANGE or start < 0:
        return None, None
    return start, end


# --- AWS ---


def rule_to_aws_permission(rule: SecurityGroupRule) -> dict[str, Any]:
    """Build an EC2 ``IpPermission`` for *rule*."""
    if rule.action != RuleAction.ALLOW:
        raise ValidationError("AWS security groups only support allow rules")
    if rule.priority != DEFAULT_PRIORITY:
        logger.warning("AWS rules have no priority; dropping priority %d", rule.priority)

    perm: dict[str, Any] = {
        "IpProtocol": "-1" if rule.protocol == RuleProtocol.ALL else rule.protocol.value,
    }
    if rule.protocol in (RuleProtocol.TCP, RuleProtocol.UDP):
        perm["FromPort"], perm["ToPort"] = _ports(rule) or FULL_PORT_RANGE
    elif rule.protocol == RuleProtocol.ICMP:
        perm["FromPort"], perm["ToPort"] = -1, -1

    desc = {"Description": rule.description} if rule.description else {}
    ipv4 = [c for c in rule.cidr_blocks if ":" not in c]
    ipv6 = [c for c in rule.cidr_blocks if ":" in c]
    groups = [g for g in rule.source_groups if not g.startswith("pl-")]
    prefix_lists = [g for g in rule.source_groups if g.startswith("pl-")]

    if ipv4:
        perm["IpRanges"] = [{"CidrIp": c, **desc} for c in ipv4]
    if ipv6:
        perm["Ipv6Ranges"] = [{"CidrIpv6": c, **desc} for c in ipv6]
    if groups:
        perm["UserIdGroupPairs"] = [{"GroupId": g, **desc} for g in groups]
    if prefix_lists:
        perm["PrefixListIds"] = [{"PrefixListId": p, **desc} for p in prefix_lists]
    return perm


def rule_from_aws_permission(
    permission: dict[str, Any],
    direction: RuleDirection | str,
) -> SecurityGroupRule:
    """Normalise an EC2 ``IpPermission`` into a unified rule."""
    raw_protocol = str(permission.get("IpProtocol", "-1")).lower()
    protocol = _AWS_PROTOCOLS.get(raw_protocol)
    if protocol is None:
        raise ValidationError(f"Unsupported AWS rule protocol: {raw_protocol}")

    from_port: int | None = None
    to_port: int | None = None
    if protocol in (RuleProtocol.TCP, RuleProtocol.UDP):
        from_port, to_port = _normalise_range(
            permission.get("FromPort"), permission.get("ToPort"),
        )

    ranges = permission.get("IpRanges") or []
    ranges6 = permission.get("Ipv6Ranges") or []
    pairs = permission.get("UserIdGroupPairs") or []
    prefix_lists = permission.get("PrefixListIds") or []

    description = next(
        (e["Description"] for e in [*ranges, *ranges6, *pairs, *prefix_lists]
         if e.get("Description")),
        "",
    )

    return SecurityGroupRule(
        direction=RuleDirection(direction),
        protocol=protocol,
        from_port=from_port,
        to_port=to_port,
        cidr_blocks=[r["CidrIp"] for r in ranges] + [r["CidrIpv6"] for r in ranges6],
        source_groups=[p["GroupId"] for p in pairs] + [p["PrefixListId"] for p in prefix_lists],
        description=description,
    )


def rules_from_aws_security_group(group: dict[str, Any]) -> list[SecurityGroupRule]:
    """Flatten a ``describe_security_groups`` entry into unified rules.

    Permissions with protocols the unified model cannot express are
    skipped with a warning.
    """
    rules: list[SecurityGroupRule] = []
    for key, direction in (
        ("IpPermissions", RuleDirection.INGRESS),
        ("IpPermissionsEgress", RuleDirection.EGRESS),
    ):
        for permission in group.get(key) or []:
            try:
                rules.append(rule_from_aws_permission(permission, direction))
            except (ValidationError, ValueError) as exc:
                logger.warning(
                    "Skipping rule in %s: %s", group.get("GroupId", "?"), exc,
                )
    return rules


# --- GCP ---


def format_port_range(start: int, end: int) -> str:
    return str(start) if start == end else f"{start}-{end}"


def parse_port_range(value: str) -> tuple[int, int]:
    """Parse ``"22"`` or ``"1000-2000"`` into an inclusive range."""
    text = str(value).strip()
    try:
        if "-" in text:
            start, end = text.split("-", 1)
            return int(start), int(end)
        port = int(text)
    except ValueError:
        raise ValidationError(f"Invalid GCP port specification: {value!r}") from None
    return port, port


def _gcp_entry(rule: SecurityGroupRule) -> dict[str, Any]:
    entry: dict[str, Any] = {"I_p_protocol": rule.protocol.value}
    ports = _ports(rule)
    if ports is not None and ports != FULL_PORT_RANGE:
        entry["ports"] = [format_port_range(*ports)]
    return entry


def rule_to_gcp_firewall(
    rule: SecurityGroupRule,
    name: str | None = None,
    network: str | None = None,
) -> dict[str, Any]:
    """Build a single-rule GCP firewall resource for *rule*."""
    return rules_to_gcp_firewall([rule], name=name, network=network)


def rules_to_gcp_firewall(
    rules: list[SecurityGroupRule],
    name: str | None = None,
    network: str | None = None,
    target_tags: list[str] | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    """Build one GCP firewall carrying every rule in *rules*.

    A GCP firewall has a single direction, action and priority, and one
    set of ranges and tags, so all rules must agree on the first three.
    """
    if not rules:
        raise ValidationError("A GCP firewall needs at least one rule")
    first = rules[0]
    for rule in rules[1:]:
        _check_compatible(first.direction, first.action, first.priority, rule)

    firewall: dict[str, Any] = {
        "direction": first.direction.value.upper(),
        "priority": first.priority,
    }
    if name:
        firewall["name"] = name
    if network:
        firewall["network"] = network

    entries: list[dict[str, Any]] = []
    cidrs: list[str] = []
    tags: list[str] = []
    for rule in rules:
        entries = _merge_entry(entries, _gcp_entry(rule))
        cidrs += [c for c in rule.cidr_blocks if c not in cidrs]
        tags += [t for t in rule.source_groups if t not in tags]
    firewall["allowed" if first.action == RuleAction.ALLOW else "denied"] = entries

    _set_peers(firewall, first.direction, cidrs, tags)

    desc = description if description is not None else first.description
    if desc:
        firewall["description"] = desc
    if target_tags:
        firewall["target_tags"] = list(target_tags)
    return firewall


def rules_from_gcp_firewall(firewall: dict[str, Any]) -> list[SecurityGroupRule]:
    """Flatten a GCP firewall into unified rules, one per protocol/port range."""
    direction = RuleDirection(str(firewall.get("direction") or "INGRESS").lower())
    if direction == RuleDirection.INGRESS:
        cidrs = list(firewall.get("source_ranges") or [])
    else:
        cidrs = list(firewall.get("destination_ranges") or [])
    tags = list(firewall.get("source_tags") or [])
    if not cidrs and not tags:
        # GCP applies a firewall with no peers to every address.
        cidrs = ["0.0.0.0/0"]
    priority = firewall.get("priority")
    priority = DEFAULT_PRIORITY if priority is None else int(priority)

    rules: list[SecurityGroupRule] = []
    for key, action in (("allowed", RuleAction.ALLOW), ("denied", RuleAction.DENY)):
        for entry in firewall.get(key) or []:
            protocol = RuleProtocol(str(entry.get("I_p_protocol", "all")).lower())
            port_specs = entry.get("ports") or [None]
            for spec in port_specs:
                from_port, to_port = (
                    _normalise_range(*parse_port_range(spec)) if spec else (None, None)
                )
                if protocol in (RuleProtocol.ICMP, RuleProtocol.ALL):
                    from_port = to_port = None
                rules.append(SecurityGroupRule(
                    direction=direction,
                    protocol=protocol,
                    from_port=from_port,
                    to_port=to_port,
                    cidr_blocks=cidrs,
                    source_groups=tags,
                    description=firewall.get("description") or "",
                    priority=priority,
                    action=action,
                ))
    return rules


def rule_from_gcp_firewall(firewall: dict[str, Any]) -> SecurityGroupRule:
    """Inverse of ``rule_to_gcp_firewall`` for single-rule firewalls."""
    rules = rules_from_gcp_firewall(firewall)
    if not rules:
        raise ValidationError(f"Firewall {firewall.get('name', '?')} has no rules")
    return rules[0]


def add_rule_to_gcp_firewall(
    firewall: dict[str, Any],
    rule: SecurityGroupRule,
) -> dict[str, Any]:
    """Return an updated copy of *firewall* that also carries *rule*."""
    updated = writable_firewall(firewall)
    _check_compatible(
        RuleDirection(str(updated.get("direction") or "INGRESS").lower()),
        RuleAction.DENY if updated.get("denied") else RuleAction.ALLOW,
        int(updated.get("priority") if updated.get("priority") is not None else DEFAULT_PRIORITY),
        rule,
    )
    key = "allowed" if rule.action == RuleAction.ALLOW else "denied"
    updated[key] = _merge_entry(list(updated.get(key) or []), _gcp_entry(rule))

    ranges_key = _ranges_key(rule.direction)
    cidrs = list(updated.get(ranges_key) or [])
    tags = list(updated.get("source_tags") or [])
    cidrs += [c for c in rule.cidr_blocks if c not in cidrs]
    tags += [t for t in rule.source_groups if t not in tags]
    _set_peers(updated, rule.direction, cidrs, tags)
    return updated


def remove_rule_from_gcp_firewall(
    firewall: dict[str, Any],
    rule: SecurityGroupRule,
) -> dict[str, Any]:
    """Return an updated copy of *firewall* without *rule*'s protocol/ports.

    Ranges and tags are shared by every rule of the firewall and are left
    untouched.
    """
    updated = writable_firewall(firewall)
    key = "allowed" if rule.action == RuleAction.ALLOW else "denied"
    entries = [dict(e) for e in updated.get(key) or []]
    target = _gcp_entry(rule)

    for entry in entries:
        if str(entry.get("I_p_protocol", "")).lower() != target["I_p_protocol"]:
            continue
        ports = list(entry.get("ports") or [])
        if "ports" not in target:
            if ports:
                continue
            entries.remove(entry)
            break
        if target["ports"][0] in ports:
            ports.remove(target["ports"][0])
            if ports:
                entry["ports"] = ports
            else:
                entries.remove(entry)
            break
    else:
        raise NotFoundError(
            "rule", f"{rule.protocol}/{_describe_ports(rule)}", firewall.get("name", ""),
        )

    if not entries and not updated.get("denied" if key == "allowed" else "allowed"):
        raise ValidationError(
            f"Cannot remove the last rule of firewall {firewall.get('name', '?')}; "
            "delete the security group instead"
        )
    updated[key] = entries
    return updated


def replace_gcp_firewall_rules(
    firewall: dict[str, Any],
    rules: list[SecurityGroupRule],
) -> dict[str, Any]:
    """Return *firewall* with its whole rule set replaced by *rules*."""
    base = writable_firewall(firewall)
    rebuilt = rules_to_gcp_firewall(
        rules,
        name=base.get("name"),
        network=base.get("network"),
        target_tags=base.get("target_tags"),
        description=base.get("description") or "",
    )
    for key in ("disabled",):
        if key in base:
            rebuilt[key] = base[key]
    return rebuilt


def writable_firewall(firewall: dict[str, Any]) -> dict[str, Any]:
    """Drop output-only fields so the firewall can be sent back on update."""
    return {k: firewall[k] for k in _GCP_WRITABLE_FIELDS if k in firewall}


# --- Private helpers ---


def _check_compatible(
    direction: RuleDirection,
    action: RuleAction,
    priority: int,
    rule: SecurityGroupRule,
) -> None:
    if rule.direction != direction:
        raise ValidationError(
            f"GCP firewall is {direction}; cannot hold a {rule.direction} rule"
        )
    if rule.action != action:
        raise ValidationError(f"GCP firewall is {action}; cannot hold a {rule.action} rule")
    if rule.priority != priority:
        raise ValidationError(
            f"GCP firewall has priority {priority}; rule has priority {rule.priority}"
        )


def _ranges_key(direction: RuleDirection) -> str:
    return "source_ranges" if direction == RuleDirection.INGRESS else "destination_ranges"


def _set_peers(
    firewall: dict[str, Any],
    direction: RuleDirection,
    cidrs: list[str],
    tags: list[str],
) -> None:
    if tags and direction == RuleDirection.EGRESS:
        raise ValidationError("GCP egress rules cannot match source tags")
    if cidrs:
        firewall[_ranges_key(direction)] = cidrs
    if tags:
        firewall["source_tags"] = tags


def _merge_entry(entries: list[dict[str, Any]], new: dict[str, Any]) -> list[dict[str, Any]]:
    merged = [dict(e) for e in entries]
    for entry in merged:
        if str(entry.get("I_p_protocol", "")).lower() != new["I_p_protocol"]:
            continue
        if not entry.get("ports"):
            return merged
        if "ports" not in new:
            entry.pop("ports", None)
            return merged
        entry["ports"] = list(entry["ports"]) + [
            p for p in new["ports"] if p not in entry["ports"]
        ]
        return merged
    merged.append(dict(new))
    return merged


def _describe_ports(rule: SecurityGroupRule) -> str:
    ports = _ports(rule)
    return "all" if ports is None else format_port_range(*ports)
