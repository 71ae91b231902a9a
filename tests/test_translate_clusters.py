"""Tests for cluster, node pool and kubeconfig translation."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
import yaml

from cloudfleet.errors import ValidationError
from cloudfleet.models import (
    AWSNodeGroup,
    AzureNodePool,
    CapacityType,
    ClusterStatus,
    CreateClusterRequest,
    GCPNodePool,
    Provider,
    ScalingConfig,
)
from cloudfleet.translate.clusters import (
    AKS_STATUS,
    CLUSTER_TRANSLATORS,
    EKS_STATUS,
    GKE_STATUS,
    map_status,
    sanitize_gcp_label_key,
    sanitize_gcp_label_value,
    to_gcp_labels,
)
from cloudfleet.translate.kubeconfig import build_document, render_kubeconfig
from cloudfleet.translate.node_pools import NODE_POOL_TRANSLATORS, node_pool_from_payload

# --- Status mapping ---


class TestStatusMapping:
    @pytest.mark.parametrize(("raw", "expected"), [
        ("CREATING", ClusterStatus.CREATING),
        ("ACTIVE", ClusterStatus.ACTIVE),
        ("UPDATING", ClusterStatus.UPDATING),
        ("DELETING", ClusterStatus.DELETING),
        ("FAILED", ClusterStatus.FAILED),
    ])
    def test_eks(self, raw, expected):
        assert map_status(EKS_STATUS, raw, ClusterStatus.CREATING) == expected

    @pytest.mark.parametrize(("raw", "expected"), [
        ("PROVISIONING", ClusterStatus.CREATING),
        ("RUNNING", ClusterStatus.ACTIVE),
        ("RECONCILING", ClusterStatus.UPDATING),
        ("STOPPING", ClusterStatus.DELETING),
        ("ERROR", ClusterStatus.FAILED),
    ])
    def test_gke(self, raw, expected):
        assert map_status(GKE_STATUS, raw, ClusterStatus.CREATING) == expected

    @pytest.mark.parametrize(("raw", "expected"), [
        ("Creating", ClusterStatus.CREATING),
        ("Succeeded", ClusterStatus.ACTIVE),
        ("Upgrading", ClusterStatus.UPDATING),
        ("Deleting", ClusterStatus.DELETING),
        ("Failed", ClusterStatus.FAILED),
    ])
    def test_aks(self, raw, expected):
        assert map_status(AKS_STATUS, raw, ClusterStatus.CREATING) == expected

    def test_unknown_falls_back(self):
        assert map_status(EKS_STATUS, "WEIRD", ClusterStatus.UPDATING) == ClusterStatus.UPDATING
        assert map_status(EKS_STATUS, None, ClusterStatus.CREATING) == ClusterStatus.CREATING


# --- GCP labels ---


class TestGcpLabels:
    def test_lowercases_and_replaces(self):
        assert sanitize_gcp_label_key("Team Name") == "team_name"

    def test_prefixes_non_letter_start(self):
        assert sanitize_gcp_label_key("1env") == "tag_1env"

    def test_collapses_and_trims_underscores(self):
        assert sanitize_gcp_label_key("cost..center_") == "cost_center"

    def test_empty_key(self):
        assert sanitize_gcp_label_key("!!!") == "tag"

    def test_truncates(self):
        assert len(sanitize_gcp_label_key("a" * 100)) == 63

    def test_value(self):
        assert sanitize_gcp_label_value("Prod/EU") == "prod_eu"

    def test_to_gcp_labels(self):
        assert to_gcp_labels({"Owner": "Data Team", "env": "prod"}) == {
            "owner": "data_team", "env": "prod",
        }


# --- Clusters ---


class TestEksCluster:
    translator = CLUSTER_TRANSLATORS[Provider.AWS]

    def test_to_native(self):
        req = CreateClusterRequest(
            name="c1", version="1.29", role_arn="arn:role",
            subnet_ids=["s-1", "s-2"], security_group_ids=["sg-1"], tags={"env": "dev"},
        )
        native = self.translator.to_native(req, "us-east-1")
        assert native["name"] == "c1"
        assert native["roleArn"] == "arn:role"
        assert native["resourcesVpcConfig"] == {
            "subnetIds": ["s-1", "s-2"], "securityGroupIds": ["sg-1"],
        }
        assert native["version"] == "1.29"
        assert native["tags"] == {"env": "dev"}
        assert native["accessConfig"]["authenticationMode"] == "API"

    def test_to_unified(self):
        created = datetime(2024, 5, 1, tzinfo=UTC)
        cluster = self.translator.to_unified({
            "name": "c1",
            "arn": "arn:aws:eks:us-east-1:123:cluster/c1",
            "version": "1.29",
            "status": "ACTIVE",
            "endpoint": "https://x.eks.amazonaws.com",
            "tags": {"env": "dev"},
            "createdAt": created,
        }, "us-east-1")
        assert cluster.id == "arn:aws:eks:us-east-1:123:cluster/c1"
        assert cluster.status == ClusterStatus.ACTIVE
        assert cluster.created_at == created
        assert cluster.tags == {"env": "dev"}

    def test_tags_unchanged(self):
        assert self.translator.tags_to_native({"Team Name": "X"}) == {"Team Name": "X"}


class TestGkeCluster:
    translator = CLUSTER_TRANSLATORS[Provider.GCP]

    def test_standard_with_pool(self):
        req = CreateClusterRequest(
            name="c1", network="vpc-a", tags={"Env": "Prod"},
            node_pool=GCPNodePool(name="default-pool", instance_types=["e2-standard-4"]),
        )
        native = self.translator.to_native(req, "us-central1", project_id="proj-1")
        assert native["parent"] == "projects/proj-1/locations/us-central1"
        cluster = native["cluster"]
        assert cluster["resource_labels"] == {"env": "prod"}
        assert cluster["node_pools"][0]["config"]["machine_type"] == "e2-standard-4"
        assert "autopilot" not in cluster

    def test_autopilot_has_no_pools(self):
        req = CreateClusterRequest(name="c1", network="vpc-a", mode="autopilot")
        cluster = self.translator.to_native(req, "us-central1", project_id="p")["cluster"]
        assert cluster["autopilot"] == {"enabled": True}
        assert "node_pools" not in cluster

    def test_zonal(self):
        req = CreateClusterRequest(name="c1", network="vpc-a", zone="us-central1-b")
        native = self.translator.to_native(req, "us-central1", project_id="p")
        assert native["parent"] == "projects/p/locations/us-central1-b"

    def test_to_unified(self):
        cluster = self.translator.to_unified({
            "name": "c1",
            "location": "us-central1-a",
            "project_id": "proj-1",
            "status": "RUNNING",
            "current_master_version": "1.29.1-gke.100",
            "endpoint": "34.1.2.3",
            "resource_labels": {"env": "prod"},
            "create_time": "2024-05-01T10:00:00+00:00",
            "node_pools": [{"name": "a"}, {"name": "b"}],
        }, "us-central1")
        assert cluster.id == "projects/proj-1/locations/us-central1-a/clusters/c1"
        assert cluster.region == "us-central1-a"
        assert cluster.status == ClusterStatus.ACTIVE
        assert cluster.node_pool_count == 2
        assert cluster.created_at.year == 2024

    def test_id_from_self_link(self):
        cluster = self.translator.to_unified({
            "name": "c1",
            "self_link": "https://container.googleapis.com/v1/projects/p/locations/l/clusters/c1",
        }, "us-central1")
        assert cluster.id == "projects/p/locations/l/clusters/c1"

    def test_tags_sanitised(self):
        assert self.translator.tags_to_native({"Cost Center": "R&D"}) == {"cost_center": "r_d"}


class TestAksCluster:
    translator = CLUSTER_TRANSLATORS[Provider.AZURE]

    def test_to_native_pool_becomes_system(self):
        req = CreateClusterRequest(
            name="c1", version="1.29.2",
            node_pool=AzureNodePool(name="sys", instance_types=["Standard_D2s_v3"]),
        )
        native = self.translator.to_native(req, "eastus")
        assert native["name"] == "c1"
        assert native["location"] == "eastus"
        assert native["dns_prefix"] == "c1"
        assert native["kubernetes_version"] == "1.29.2"
        assert native["agent_pool_profiles"][0]["mode"] == "System"
        assert native["agent_pool_profiles"][0]["name"] == "sys"

    def test_to_unified(self):
        cluster = self.translator.to_unified({
            "id": "/subscriptions/s/resourceGroups/rg/providers/x/managedClusters/c1",
            "name": "c1",
            "location": "eastus",
            "provisioning_state": "Succeeded",
            "current_kubernetes_version": "1.29.2",
            "fqdn": "c1-abc.hcp.eastus.azmk8s.io",
        }, "eastus")
        assert cluster.status == ClusterStatus.ACTIVE
        assert cluster.endpoint == "c1-abc.hcp.eastus.azmk8s.io"
        assert cluster.version == "1.29.2"


# --- Node pools ---


class TestNodePools:
    def test_eks_to_native(self):
        pool = AWSNodeGroup(
            name="ng", cluster_name="c1", node_role_arn="arn:node",
            subnet_ids=["s-1"], instance_types=["t3.large", "t3a.large"],
            scaling=ScalingConfig(min_size=1, desired_size=2, max_size=4),
            capacity_type=CapacityType.SPOT,
        )
        native = NODE_POOL_TRANSLATORS[Provider.AWS].to_native(pool)
        assert native["instanceTypes"] == ["t3.large", "t3a.large"]
        assert native["scalingConfig"] == {"minSize": 1, "maxSize": 4, "desiredSize": 2}
        assert native["capacityType"] == "SPOT"
        assert native["nodeRole"] == "arn:node"

    def test_eks_to_unified(self):
        pool = NODE_POOL_TRANSLATORS[Provider.AWS].to_unified({
            "nodegroupName": "ng",
            "clusterName": "c1",
            "status": "CREATE_FAILED",
            "scalingConfig": {"minSize": 0, "desiredSize": 0, "maxSize": 3},
        })
        assert pool.status == ClusterStatus.FAILED
        assert pool.scaling.min_size == 0
        assert pool.cluster_name == "c1"

    def test_gke_single_machine_type(self):
        pool = GCPNodePool(name="np", instance_types=["e2-medium", "e2-small"])
        native = NODE_POOL_TRANSLATORS[Provider.GCP].to_native(pool)
        assert native["config"]["machine_type"] == "e2-medium"

    def test_gke_requires_machine_type(self):
        with pytest.raises(ValidationError, match="needs an instance type"):
            NODE_POOL_TRANSLATORS[Provider.GCP].to_native(GCPNodePool(name="np"))

    def test_gke_to_unified_autoscaling(self):
        pool = NODE_POOL_TRANSLATORS[Provider.GCP].to_unified({
            "name": "np",
            "initial_node_count": 3,
            "config": {"machine_type": "e2-medium", "spot": True},
            "autoscaling": {"enabled": True, "min_node_count": 1, "max_node_count": 5},
            "status": "RUNNING",
        }, cluster_name="c1")
        assert pool.scaling == ScalingConfig(min_size=1, desired_size=3, max_size=5)
        assert pool.capacity_type == CapacityType.SPOT
        assert pool.autoscaling_enabled is True

    def test_aks_zero_bounds_preserved(self):
        pool = NODE_POOL_TRANSLATORS[Provider.AZURE].to_unified({
            "name": "ap", "count": 2, "min_count": 0, "max_count": 4, "vm_size": "Standard_B2s",
        })
        assert pool.scaling.min_size == 0
        assert pool.scaling.max_size == 4

    def test_aks_spot(self):
        pool = AzureNodePool(
            name="ap", instance_types=["Standard_B2s"], capacity_type=CapacityType.SPOT,
        )
        assert NODE_POOL_TRANSLATORS[Provider.AZURE].to_native(pool)["scale_set_priority"] == "Spot"

    def test_payload_drops_foreign_fields(self):
        pool = node_pool_from_payload("gcp", {
            "name": "np", "instance_types": ["e2-medium"], "node_role_arn": "arn:x",
        })
        assert isinstance(pool, GCPNodePool)
        assert not hasattr(pool, "node_role_arn")

    def test_payload_ignores_provider_key(self):
        pool = node_pool_from_payload(Provider.AWS, {"name": "ng", "provider": "gcp"})
        assert isinstance(pool, AWSNodeGroup)


# --- Kubeconfig ---


class TestKubeconfig:
    def test_eks_uses_aws_exec(self):
        content = render_kubeconfig(Provider.AWS, "c1", "us-east-1", "https://x", "Q0E=")
        doc = yaml.safe_load(content)
        assert doc["current-context"] == "c1"
        assert doc["clusters"][0]["cluster"]["server"] == "https://x"
        exec_cfg = doc["users"][0]["user"]["exec"]
        assert exec_cfg["command"] == "aws"
        assert exec_cfg["args"] == [
            "eks", "get-token", "--cluster-name", "c1", "--region", "us-east-1",
        ]

    def test_gke_uses_auth_plugin_and_https(self):
        content = render_kubeconfig(
            Provider.GCP, "c1", "us-central1", "34.1.2.3", "Q0E=", context_name="gke_p_l_c1",
        )
        doc = yaml.safe_load(content)
        assert doc["clusters"][0]["cluster"]["server"] == "https://34.1.2.3"
        assert doc["current-context"] == "gke_p_l_c1"
        assert doc["users"][0]["user"]["exec"]["command"] == "gke-gcloud-auth-plugin"

    def test_no_embedded_secrets(self):
        doc = yaml.safe_load(render_kubeconfig(Provider.AWS, "c1", "us-east-1", "https://x", "Q0E="))
        user = doc["users"][0]["user"]
        assert "token" not in user
        assert "client-key-data" not in user

    def test_aks_proxied_unchanged(self):
        raw = "apiVersion: v1\nkind: Config\n"
        doc = build_document(Provider.AZURE, "c1", "eastus", {"kubeconfig": raw})
        assert doc.content == raw
        assert doc.filename == "c1-kubeconfig.yaml"
        assert doc.content_type == "application/yaml"

    def test_build_rendered(self):
        doc = build_document(
            Provider.AWS, "c1", "us-east-1", {"endpoint": "https://x", "ca_data": "Q0E="},
        )
        assert "get-token" in doc.content
        assert "Q0E=" not in repr(doc)
