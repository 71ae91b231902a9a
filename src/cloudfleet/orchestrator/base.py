"""Shared plumbing for the cluster and network orchestrators."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from cloudfleet.credentials.resolver import CredentialResolver
from cloudfleet.events.notifier import EventNotifier, dispatch_event, make_event
from cloudfleet.models import RequestContext
from cloudfleet.providers.base import ProviderClient
from cloudfleet.providers.factory import ProviderClientFactory, validate_region

logger = logging.getLogger(__name__)


class Orchestrator:
    """Resolves credentials, builds a client per call and publishes events.

    Orchestrators hold no per-request state; every operation receives an
    explicit ``RequestContext``.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        factory: ProviderClientFactory | None = None,
        notifier: EventNotifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._resolver = resolver
        self._factory = factory or ProviderClientFactory()
        self._notifier = notifier
        self._clock = clock

    def _check_context(self, context: RequestContext) -> None:
        validate_region(context.provider, context.region)

    def _client(self, context: RequestContext) -> ProviderClient:
        credential = self._resolver.resolve_for(context)
        return self._factory.build_client(
            context.provider,
            credential,
            context.region,
            resource_group=context.resource_group,
        )

    def _publish(
        self,
        context: RequestContext,
        *,
        domain: str,
        resource: str,
        resource_kind: str,
        resource_id: str,
        action: str,
        status: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        if self._notifier is None:
            return
        event = make_event(
            domain=domain,
            resource=resource,
            resource_kind=resource_kind,
            resource_id=resource_id,
            action=action,
            status=status,
            provider=context.provider,
            credential_id=context.credential_id,
            region=context.region,
            data=data,
            clock=self._clock,
        )
        dispatch_event([self._notifier], event)
