"""Tests for the cluster bulk actions (delete, tag)."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from cloudfleet.bulk.actions import delete_clusters, tag_clusters
from cloudfleet.bulk.engine import BulkOperationEngine
from cloudfleet.errors import NotFoundError, ValidationError
from cloudfleet.models import (
    BulkOperationKind,
    Cluster,
    ClusterStatus,
    Provider,
    RequestContext,
    TargetOutcome,
)

CONTEXT = RequestContext(
    tenant_id="team-a", credential_id="cred-1", provider=Provider.GCP, region="us-central1",
)


@pytest.fixture()
def engine():
    eng = BulkOperationEngine(max_workers=2)
    yield eng
    eng.shutdown()


def _cluster(name: str, tags: dict[str, str]) -> Cluster:
    return Cluster(
        id=name, name=name, provider=Provider.GCP, region="us-central1",
        status=ClusterStatus.ACTIVE, tags=tags,
    )


class TestDeleteClusters:
    def test_absent_cluster_counts_as_completed(self, engine):
        orchestrator = MagicMock()
        orchestrator.delete_cluster.side_effect = lambda ctx, name: name != "gone"

        op = delete_clusters(engine, orchestrator, CONTEXT, ["a", "gone"])

        assert op.wait(timeout=10)
        assert op.kind == BulkOperationKind.DELETE
        assert op.completed == 2
        assert op.context is CONTEXT

    def test_provider_failure_is_recorded(self, engine):
        orchestrator = MagicMock()

        def delete(ctx, name):
            if name == "b":
                raise NotFoundError("credential", "cred-1")
            return True

        orchestrator.delete_cluster.side_effect = delete
        op = delete_clusters(engine, orchestrator, CONTEXT, ["a", "b"])

        assert op.wait(timeout=10)
        assert op.outcome("b") == TargetOutcome.FAILED
        assert op.outcome("a") == TargetOutcome.COMPLETED


class TestTagClusters:
    def test_merges_with_existing_tags(self, engine):
        orchestrator = MagicMock()
        orchestrator.get_cluster.side_effect = lambda ctx, name: _cluster(name, {"team": "web"})

        op = tag_clusters(engine, orchestrator, CONTEXT, ["a"], "env", "prod")

        assert op.wait(timeout=10)
        orchestrator.update_cluster_tags.assert_called_once_with(
            CONTEXT, "a", {"team": "web", "env": "prod"},
        )
        assert op.kind == BulkOperationKind.TAG

    def test_key_required(self, engine):
        with pytest.raises(ValidationError, match="Tag key"):
            tag_clusters(engine, MagicMock(), CONTEXT, ["a"], "", "x")
