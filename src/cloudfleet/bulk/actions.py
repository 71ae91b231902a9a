"""Cluster bulk actions built on BulkOperationEngine."""

from __future__ import annotations

import logging

from cloudfleet.bulk.engine import BulkOperation, BulkOperationEngine, CompletionCallback
from cloudfleet.errors import ValidationError
from cloudfleet.models import BulkOperationKind, RequestContext
from cloudfleet.orchestrator.cluster import ClusterOrchestrator

logger = logging.getLogger(__name__)


def delete_clusters(
    engine: BulkOperationEngine,
    orchestrator: ClusterOrchestrator,
    context: RequestContext,
    names: list[str],
    on_complete: CompletionCallback | None = None,
) -> BulkOperation:
    """Delete every cluster in *names*. Already-absent clusters count as completed."""

    def delete_one(name: str) -> None:
        orchestrator.delete_cluster(context, name)

    return engine.submit(
        BulkOperationKind.DELETE, names, delete_one, context=context, on_complete=on_complete,
    )


def tag_clusters(
    engine: BulkOperationEngine,
    orchestrator: ClusterOrchestrator,
    context: RequestContext,
    names: list[str],
    key: str,
    value: str,
    on_complete: CompletionCallback | None = None,
) -> BulkOperation:
    """Set ``key=value`` on every cluster in *names*, keeping their other tags."""
    if not key:
        raise ValidationError("Tag key is required")

    def tag_one(name: str) -> None:
        current = orchestrator.get_cluster(context, name)
        orchestrator.update_cluster_tags(context, name, {**current.tags, key: value})

    return engine.submit(
        BulkOperationKind.TAG, names, tag_one, context=context, on_complete=on_complete,
    )
