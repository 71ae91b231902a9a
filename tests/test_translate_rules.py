"""Tests for rule and network translation between AWS, GCP and the unified model."""

from __future__ import annotations

import pytest

from cloudfleet.errors import NotFoundError, ValidationError
from cloudfleet.models import (
    CreateSecurityGroupRequest,
    CreateSubnetRequest,
    CreateVPCRequest,
    NetworkState,
    RuleAction,
    RuleDirection,
    RuleProtocol,
    SecurityGroupRule,
)
from cloudfleet.translate.networks import (
    aws_tag_specification,
    resource_name,
    resource_path,
    security_group_from_aws,
    security_group_from_gcp,
    security_group_to_gcp,
    subnet_from_aws,
    subnet_from_gcp,
    subnet_to_gcp,
    vpc_from_aws,
    vpc_from_gcp,
    vpc_to_aws,
    vpc_to_gcp,
)
from cloudfleet.translate.rules import (
    add_rule_to_gcp_firewall,
    parse_port_range,
    remove_rule_from_gcp_firewall,
    replace_gcp_firewall_rules,
    rule_from_aws_permission,
    rule_to_aws_permission,
    rules_from_gcp_firewall,
    rules_to_gcp_firewall,
    writable_firewall,
)

# --- Helpers ---


def _ssh(**overrides) -> SecurityGroupRule:
    data = {
        "direction": "ingress",
        "protocol": "tcp",
        "from_port": 22,
        "to_port": 22,
        "cidr_blocks": ["0.0.0.0/0"],
    }
    data.update(overrides)
    return SecurityGroupRule(**data)


def _firewall(**overrides) -> dict:
    data = {
        "name": "fw-web",
        "network": "projects/p/global/networks/vpc-a",
        "direction": "INGRESS",
        "priority": 1000,
        "allowed": [{"I_p_protocol": "tcp", "ports": ["22", "443"]}],
        "source_ranges": ["0.0.0.0/0"],
        "self_link": "https://www.googleapis.com/compute/v1/projects/p/global/firewalls/fw-web",
        "creation_timestamp": "2024-01-01T00:00:00Z",
    }
    data.update(overrides)
    return data


# --- Round trips ---


class TestRoundTrip:
    def test_aws_ssh(self):
        rule = _ssh()
        permission = rule_to_aws_permission(rule)
        assert permission == {
            "IpProtocol": "tcp", "FromPort": 22, "ToPort": 22,
            "IpRanges": [{"CidrIp": "0.0.0.0/0"}],
        }
        assert rule_from_aws_permission(permission, "ingress") == rule

    def test_gcp_ssh(self):
        rule = _ssh()
        firewall = rules_to_gcp_firewall([rule], name="fw")
        assert firewall["allowed"] == [{"I_p_protocol": "tcp", "ports": ["22"]}]
        assert firewall["source_ranges"] == ["0.0.0.0/0"]
        assert rules_from_gcp_firewall(firewall) == [rule]

    @pytest.mark.parametrize("rule", [
        _ssh(protocol="udp", from_port=1000, to_port=2000),
        _ssh(protocol="icmp", from_port=None, to_port=None),
        _ssh(protocol="all", from_port=None, to_port=None),
        _ssh(direction="egress", from_port=443, to_port=443, cidr_blocks=["10.0.0.0/8"]),
        _ssh(cidr_blocks=[], source_groups=["sg-123", "pl-456"]),
        _ssh(cidr_blocks=["::/0", "0.0.0.0/0"]),
        _ssh(from_port=0, to_port=65535),
        _ssh(description="admin access"),
    ], ids=["udp-range", "icmp", "all", "egress", "groups", "ipv6", "full-range", "desc"])
    def test_aws_round_trip(self, rule):
        back = rule_from_aws_permission(rule_to_aws_permission(rule), rule.direction)
        assert back == rule

    @pytest.mark.parametrize("rule", [
        _ssh(protocol="udp", from_port=1000, to_port=2000),
        _ssh(protocol="icmp", from_port=None, to_port=None),
        _ssh(protocol="all", from_port=None, to_port=None),
        _ssh(direction="egress", from_port=443, to_port=443, cidr_blocks=["10.0.0.0/8"]),
        _ssh(cidr_blocks=[], source_groups=["web", "db"]),
        _ssh(cidr_blocks=["::/0", "0.0.0.0/0"]),
        _ssh(from_port=0, to_port=65535),
        _ssh(action="deny", priority=900),
    ], ids=["udp-range", "icmp", "all", "egress", "tags", "ipv6", "full-range", "deny"])
    def test_gcp_round_trip(self, rule):
        assert rules_from_gcp_firewall(rules_to_gcp_firewall([rule], name="fw")) == [rule]


class TestCanonicalRule:
    def test_full_range_is_every_port(self):
        rule = _ssh(from_port=0, to_port=65535)
        assert (rule.from_port, rule.to_port) == (None, None)
        assert rule == _ssh(from_port=None, to_port=None)

    def test_ipv4_before_ipv6(self):
        rule = _ssh(cidr_blocks=["::/0", "10.0.0.0/8", "2001:db8::/32", "0.0.0.0/0"])
        assert rule.cidr_blocks == ["10.0.0.0/8", "0.0.0.0/0", "::/0", "2001:db8::/32"]

    def test_groups_before_prefix_lists(self):
        rule = _ssh(cidr_blocks=[], source_groups=["pl-1", "sg-2", "sg-1"])
        assert rule.source_groups == ["sg-2", "sg-1", "pl-1"]


# --- AWS ---


class TestAwsRules:
    def test_all_protocol(self):
        rule = SecurityGroupRule(direction="egress", protocol="all", cidr_blocks=["0.0.0.0/0"])
        permission = rule_to_aws_permission(rule)
        assert permission["IpProtocol"] == "-1"
        assert "FromPort" not in permission

    def test_icmp_uses_minus_one(self):
        rule = SecurityGroupRule(direction="ingress", protocol="icmp", cidr_blocks=["10.0.0.0/8"])
        permission = rule_to_aws_permission(rule)
        assert (permission["FromPort"], permission["ToPort"]) == (-1, -1)

    def test_tcp_without_ports_is_full_range(self):
        rule = SecurityGroupRule(direction="ingress", protocol="tcp", cidr_blocks=["10.0.0.0/8"])
        permission = rule_to_aws_permission(rule)
        assert (permission["FromPort"], permission["ToPort"]) == (0, 65535)
        assert rule_from_aws_permission(permission, "ingress").from_port is None

    def test_peers_split(self):
        rule = _ssh(
            cidr_blocks=["10.0.0.0/8", "::/0"],
            source_groups=["sg-123", "pl-456"],
            description="ssh",
        )
        permission = rule_to_aws_permission(rule)
        assert permission["IpRanges"] == [{"CidrIp": "10.0.0.0/8", "Description": "ssh"}]
        assert permission["Ipv6Ranges"] == [{"CidrIpv6": "::/0", "Description": "ssh"}]
        assert permission["UserIdGroupPairs"] == [{"GroupId": "sg-123", "Description": "ssh"}]
        assert permission["PrefixListIds"] == [{"PrefixListId": "pl-456", "Description": "ssh"}]
        back = rule_from_aws_permission(permission, "ingress")
        assert back.cidr_blocks == ["10.0.0.0/8", "::/0"]
        assert back.source_groups == ["sg-123", "pl-456"]
        assert back.description == "ssh"

    def test_deny_rejected(self):
        with pytest.raises(ValidationError, match="only support allow"):
            rule_to_aws_permission(_ssh(action="deny"))

    def test_numeric_protocol(self):
        rule = rule_from_aws_permission(
            {"IpProtocol": "6", "FromPort": 80, "ToPort": 80, "IpRanges": [{"CidrIp": "1.2.3.4/32"}]},
            RuleDirection.INGRESS,
        )
        assert rule.protocol == RuleProtocol.TCP

    def test_unsupported_protocol(self):
        with pytest.raises(ValidationError, match="Unsupported AWS rule protocol"):
            rule_from_aws_permission({"IpProtocol": "50"}, "ingress")

    def test_group_flattening_skips_unsupported(self):
        group = security_group_from_aws({
            "GroupId": "sg-1",
            "GroupName": "web",
            "VpcId": "vpc-1",
            "IpPermissions": [
                {"IpProtocol": "tcp", "FromPort": 443, "ToPort": 443,
                 "IpRanges": [{"CidrIp": "0.0.0.0/0"}]},
                {"IpProtocol": "50", "IpRanges": [{"CidrIp": "0.0.0.0/0"}]},
            ],
            "IpPermissionsEgress": [{"IpProtocol": "-1", "IpRanges": [{"CidrIp": "0.0.0.0/0"}]}],
            "Tags": [{"Key": "Name", "Value": "web"}],
        }, "us-east-1")
        assert [(r.direction, r.protocol) for r in group.rules] == [
            (RuleDirection.INGRESS, RuleProtocol.TCP),
            (RuleDirection.EGRESS, RuleProtocol.ALL),
        ]
        assert group.tags == {"Name": "web"}


# --- GCP ---


class TestGcpRules:
    def test_ports_parse(self):
        assert parse_port_range("22") == (22, 22)
        assert parse_port_range("1000-2000") == (1000, 2000)
        with pytest.raises(ValidationError):
            parse_port_range("ssh")

    def test_flatten_multiple_ports(self):
        rules = rules_from_gcp_firewall(_firewall())
        assert [(r.from_port, r.to_port) for r in rules] == [(22, 22), (443, 443)]
        assert all(r.action == RuleAction.ALLOW for r in rules)

    def test_deny_firewall(self):
        rules = rules_from_gcp_firewall(_firewall(
            allowed=[], denied=[{"I_p_protocol": "all"}], priority=100,
        ))
        assert rules[0].action == RuleAction.DENY
        assert rules[0].priority == 100
        assert rules[0].protocol == RuleProtocol.ALL

    def test_no_peers_means_everything(self):
        rules = rules_from_gcp_firewall(_firewall(source_ranges=[]))
        assert rules[0].cidr_blocks == ["0.0.0.0/0"]

    def test_egress_uses_destination_ranges(self):
        rule = _ssh(direction="egress", cidr_blocks=["10.0.0.0/8"])
        firewall = rules_to_gcp_firewall([rule])
        assert firewall["direction"] == "EGRESS"
        assert firewall["destination_ranges"] == ["10.0.0.0/8"]
        assert "source_ranges" not in firewall

    def test_egress_rejects_tags(self):
        rule = _ssh(direction="egress", cidr_blocks=[], source_groups=["web"])
        with pytest.raises(ValidationError, match="source tags"):
            rules_to_gcp_firewall([rule])

    def test_mixed_direction_rejected(self):
        with pytest.raises(ValidationError, match="cannot hold"):
            rules_to_gcp_firewall([_ssh(), _ssh(direction="egress")])

    def test_mixed_priority_rejected(self):
        with pytest.raises(ValidationError, match="priority"):
            rules_to_gcp_firewall([_ssh(), _ssh(priority=10)])

    def test_empty_rule_set_rejected(self):
        with pytest.raises(ValidationError, match="at least one rule"):
            rules_to_gcp_firewall([])

    def test_merges_ports_of_same_protocol(self):
        firewall = rules_to_gcp_firewall([_ssh(), _ssh(from_port=443, to_port=443)])
        assert firewall["allowed"] == [{"I_p_protocol": "tcp", "ports": ["22", "443"]}]

    def test_add_rule(self):
        updated = add_rule_to_gcp_firewall(
            _firewall(), _ssh(protocol="udp", from_port=53, to_port=53, cidr_blocks=["10.0.0.0/8"]),
        )
        assert {"I_p_protocol": "udp", "ports": ["53"]} in updated["allowed"]
        assert updated["source_ranges"] == ["0.0.0.0/0", "10.0.0.0/8"]
        assert "self_link" not in updated

    def test_add_incompatible_rule(self):
        with pytest.raises(ValidationError):
            add_rule_to_gcp_firewall(_firewall(), _ssh(action="deny"))

    def test_remove_one_port(self):
        updated = remove_rule_from_gcp_firewall(_firewall(), _ssh())
        assert updated["allowed"] == [{"I_p_protocol": "tcp", "ports": ["443"]}]

    def test_remove_missing_rule(self):
        with pytest.raises(NotFoundError):
            remove_rule_from_gcp_firewall(_firewall(), _ssh(from_port=8080, to_port=8080))

    def test_remove_all_ports_leaves_specific_ports(self):
        firewall = _firewall(allowed=[
            {"I_p_protocol": "tcp", "ports": ["22"]},
            {"I_p_protocol": "udp"},
        ])
        with pytest.raises(NotFoundError):
            remove_rule_from_gcp_firewall(firewall, _ssh(from_port=None, to_port=None))

    def test_remove_all_ports_entry(self):
        firewall = _firewall(allowed=[
            {"I_p_protocol": "tcp", "ports": ["22"]},
            {"I_p_protocol": "tcp"},
        ])
        updated = remove_rule_from_gcp_firewall(firewall, _ssh(from_port=None, to_port=None))
        assert updated["allowed"] == [{"I_p_protocol": "tcp", "ports": ["22"]}]

    def test_remove_port_skips_all_ports_entry(self):
        firewall = _firewall(allowed=[
            {"I_p_protocol": "tcp"},
            {"I_p_protocol": "tcp", "ports": ["22", "443"]},
        ])
        updated = remove_rule_from_gcp_firewall(firewall, _ssh())
        assert updated["allowed"] == [
            {"I_p_protocol": "tcp"},
            {"I_p_protocol": "tcp", "ports": ["443"]},
        ]

    def test_remove_last_rule_rejected(self):
        firewall = _firewall(allowed=[{"I_p_protocol": "tcp", "ports": ["22"]}])
        with pytest.raises(ValidationError, match="last rule"):
            remove_rule_from_gcp_firewall(firewall, _ssh())

    def test_replace_keeps_identity(self):
        firewall = _firewall(target_tags=["web"], disabled=False)
        rebuilt = replace_gcp_firewall_rules(firewall, [_ssh(from_port=80, to_port=80)])
        assert rebuilt["name"] == "fw-web"
        assert rebuilt["network"] == "projects/p/global/networks/vpc-a"
        assert rebuilt["target_tags"] == ["web"]
        assert rebuilt["allowed"] == [{"I_p_protocol": "tcp", "ports": ["80"]}]
        assert rebuilt["disabled"] is False

    def test_writable_firewall_drops_output_fields(self):
        assert "creation_timestamp" not in writable_firewall(_firewall())


# --- Networks ---


class TestAwsNetworks:
    def test_vpc_from_aws(self):
        vpc = vpc_from_aws({
            "VpcId": "vpc-1", "CidrBlock": "10.0.0.0/16", "State": "pending",
            "IsDefault": True, "Tags": [{"Key": "Name", "Value": "main"}],
        }, "us-east-1")
        assert vpc.name == "main"
        assert vpc.state == NetworkState.CREATING
        assert vpc.is_default

    def test_vpc_to_aws_requires_cidr(self):
        with pytest.raises(ValidationError, match="CIDR"):
            vpc_to_aws(CreateVPCRequest(name="main"))

    def test_vpc_to_aws(self):
        native = vpc_to_aws(CreateVPCRequest(name="main", cidr_block="10.0.0.0/16", tags={"a": "b"}))
        assert native["CidrBlock"] == "10.0.0.0/16"
        assert native["TagSpecifications"][0]["Tags"] == [
            {"Key": "Name", "Value": "main"}, {"Key": "a", "Value": "b"},
        ]

    def test_tag_specification_name_wins(self):
        spec = aws_tag_specification("subnet", "s", {"Name": "other"})
        assert spec[0]["Tags"] == [{"Key": "Name", "Value": "s"}]

    def test_subnet_from_aws(self):
        subnet = subnet_from_aws({
            "SubnetId": "subnet-1", "VpcId": "vpc-1", "CidrBlock": "10.0.1.0/24",
            "AvailabilityZone": "us-east-1a", "State": "available", "MapPublicIpOnLaunch": True,
        }, "us-east-1")
        assert subnet.is_public
        assert subnet.availability_zone == "us-east-1a"


class TestGcpNetworks:
    def test_resource_helpers(self):
        link = "https://www.googleapis.com/compute/v1/projects/p/global/networks/vpc-a"
        assert resource_name(link) == "vpc-a"
        assert resource_path(link) == "projects/p/global/networks/vpc-a"

    def test_vpc_roundtrip_fields(self):
        native = vpc_to_gcp(CreateVPCRequest(name="vpc-a", routing_mode="GLOBAL", mtu=1460))
        assert native == {
            "name": "vpc-a",
            "auto_create_subnetworks": False,
            "routing_config": {"routing_mode": "GLOBAL"},
            "mtu": 1460,
        }
        vpc = vpc_from_gcp(native, "p")
        assert vpc.id == "projects/p/global/networks/vpc-a"
        assert vpc.routing_mode == "GLOBAL"
        assert vpc.region == "global"

    def test_subnet(self):
        native = subnet_to_gcp(
            CreateSubnetRequest(name="s1", vpc_id="vpc-a", cidr_block="10.0.0.0/24"),
            "p", "us-central1",
        )
        assert native["network"] == "projects/p/global/networks/vpc-a"
        native["region"] = "https://www.googleapis.com/compute/v1/projects/p/regions/us-central1"
        subnet = subnet_from_gcp(native, "p")
        assert subnet.id == "projects/p/regions/us-central1/subnetworks/s1"
        assert subnet.vpc_id == "projects/p/global/networks/vpc-a"
        assert subnet.region == "us-central1"

    def test_security_group(self):
        native = security_group_to_gcp(
            CreateSecurityGroupRequest(
                name="fw-ssh", vpc_id="vpc-a", rules=[_ssh()], target_tags=["bastion"],
            ),
            "p",
        )
        assert native["network"] == "projects/p/global/networks/vpc-a"
        assert native["target_tags"] == ["bastion"]
        group = security_group_from_gcp(native, "p")
        assert group.id == "projects/p/global/firewalls/fw-ssh"
        assert group.rules == [_ssh()]
