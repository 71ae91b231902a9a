"""CloudFleet SDK: the single public entry point.

Wires the credential store, decryptor, provider client factory, event
notifiers, orchestrators and bulk engine behind one object.

Usage::

    from cloudfleet import CloudFleet

    fleet = CloudFleet(
        credential_store={"path": "./credentials.yaml"},
        decryptor={"key_env": "CLOUDFLEET_ENCRYPTION_KEY"},
    )
    ctx = fleet.context("team-a", "cred-aws-prod", "aws", "us-east-1")
    for cluster in fleet.clusters.list_clusters(ctx):
        print(cluster.name, cluster.status)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from cloudfleet.bulk.actions import delete_clusters, tag_clusters
from cloudfleet.bulk.engine import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_RETENTION_SECONDS,
    BulkOperation,
    BulkOperationEngine,
)
from cloudfleet.config import CloudFleetConfig, load_config
from cloudfleet.credentials.decryptor import Decryptor, build_decryptor
from cloudfleet.credentials.resolver import CredentialResolver
from cloudfleet.credentials.store import CredentialStore, build_store
from cloudfleet.errors import CloudFleetError
from cloudfleet.events.notifier import EventDispatcher, EventNotifier, build_notifiers
from cloudfleet.models import DecryptedCredential, Provider, RequestContext
from cloudfleet.orchestrator.cluster import ClusterOrchestrator
from cloudfleet.orchestrator.network import NetworkOrchestrator
from cloudfleet.providers.factory import ProviderClientFactory


class ConfigurationError(CloudFleetError):
    """Raised for configuration or initialization errors."""


class CloudFleet:
    """Public API for cloudfleet.

    Each dependency may be passed as a ready instance or as a config dict
    that is turned into one by the matching ``build_*`` factory.
    """

    def __init__(
        self,
        credential_store: CredentialStore | dict | None = None,
        decryptor: Decryptor | dict | None = None,
        notifiers: list[EventNotifier] | dict | None = None,
        bulk: dict[str, Any] | None = None,
        aws_endpoint_url: str | None = None,
        factory: ProviderClientFactory | None = None,
    ) -> None:
        """Initialize CloudFleet.

        Args:
            credential_store: A CredentialStore, or a dict for ``build_store()``.
            decryptor: A Decryptor, or a dict for ``build_decryptor()``.
            notifiers: Event notifiers, or a dict for ``build_notifiers()``.
            bulk: Bulk engine settings: ``max_workers`` (1..10, default 5)
                and ``retention_seconds`` (default 5).
            aws_endpoint_url: Optional AWS endpoint override (e.g. LocalStack).
            factory: Custom provider client factory (tests).
        """
        if credential_store is None:
            raise ConfigurationError("A credential store is required")
        if isinstance(credential_store, dict):
            credential_store = build_store(credential_store)

        if isinstance(decryptor, dict) or decryptor is None:
            decryptor = build_decryptor(decryptor or {})

        if isinstance(notifiers, dict):
            notifiers = build_notifiers(notifiers)
        self._events = EventDispatcher(notifiers or [])

        self._resolver = CredentialResolver(store=credential_store, decryptor=decryptor)
        self._factory = factory or ProviderClientFactory(aws_endpoint_url=aws_endpoint_url)

        self._clusters = ClusterOrchestrator(self._resolver, self._factory, self._events)
        self._networks = NetworkOrchestrator(self._resolver, self._factory, self._events)

        bulk = bulk or {}
        self._engine = BulkOperationEngine(
            max_workers=int(bulk.get("max_workers", DEFAULT_MAX_WORKERS)),
            retention_seconds=float(bulk.get("retention_seconds", DEFAULT_RETENTION_SECONDS)),
            notifier=self._events,
        )

    @classmethod
    def from_config(
        cls,
        config: CloudFleetConfig | str | Path | None = None,
        **overrides: Any,
    ) -> CloudFleet:
        """Build from a ``CloudFleetConfig`` or a path to ``cloudfleet.yaml``."""
        if not isinstance(config, CloudFleetConfig):
            config = load_config(config)
        if not config.credentials:
            raise ConfigurationError(
                "No credential store configured (set 'credentials' in cloudfleet.yaml)"
            )
        kwargs: dict[str, Any] = {
            "credential_store": config.credentials,
            "decryptor": config.decryptor,
            "notifiers": config.events,
            "bulk": config.bulk,
            "aws_endpoint_url": config.aws_endpoint_url,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    # --- Components ---

    @property
    def clusters(self) -> ClusterOrchestrator:
        return self._clusters

    @property
    def networks(self) -> NetworkOrchestrator:
        return self._networks

    @property
    def engine(self) -> BulkOperationEngine:
        return self._engine

    @property
    def resolver(self) -> CredentialResolver:
        return self._resolver

    @property
    def events(self) -> EventDispatcher:
        return self._events

    @property
    def factory(self) -> ProviderClientFactory:
        return self._factory

    # --- Helpers ---

    @staticmethod
    def context(
        tenant_id: str,
        credential_id: str,
        provider: Provider | str,
        region: str,
        resource_group: str | None = None,
    ) -> RequestContext:
        return RequestContext(
            tenant_id=tenant_id,
            credential_id=credential_id,
            provider=Provider(provider),
            region=region,
            resource_group=resource_group,
        )

    def check_credential(self, context: RequestContext) -> DecryptedCredential:
        """Resolve the context's credential and build a provider client from it.

        Raises the same errors an orchestrator call would (NotFoundError,
        AuthorizationError, DecryptionError, AuthError, ImportError) without
        calling the provider.
        """
        credential = self._resolver.resolve_for(context)
        self._factory.build_client(
            context.provider, credential, context.region,
            resource_group=context.resource_group,
        )
        return credential

    def delete_clusters(self, context: RequestContext, names: list[str]) -> BulkOperation:
        return delete_clusters(self._engine, self._clusters, context, names)

    def tag_clusters(
        self, context: RequestContext, names: list[str], key: str, value: str,
    ) -> BulkOperation:
        return tag_clusters(self._engine, self._clusters, context, names, key, value)

    def close(self, wait: bool = True) -> None:
        self._engine.shutdown(wait=wait)

    def __enter__(self) -> CloudFleet:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
