"""Lifecycle event publishing.

Publishes resource changes and bulk-operation completions to external
subscribers. Fire-and-forget -- failures are warned and logged but never
fail the operation that produced the event.

Built-in backends:
- InMemoryEventNotifier: collects events in a list (tests, embedding)
- LoggingEventNotifier: writes one log line per event
- WebhookEventNotifier: POST JSON to a URL (stdlib only)

Custom notifiers just need a ``publish(event: LifecycleEvent) -> None`` method.
"""

from __future__ import annotations

import json
import logging
import threading
import urllib.request
import warnings
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from cloudfleet.errors import EventWarning
from cloudfleet.models import LifecycleEvent, Provider

logger = logging.getLogger(__name__)

DOMAIN_KUBERNETES = "kubernetes"
DOMAIN_NETWORK = "network"
DOMAIN_BULK = "bulk"


def build_event_topic(
    domain: str,
    provider: Provider | str,
    credential_id: str,
    region: str,
    resource: str,
    action: str,
) -> str:
    """Return ``{domain}.{provider}.{credential_id}.{region}.{resource}.{action}``."""
    return ".".join([domain, str(provider), credential_id, region, resource, action])


def make_event(
    *,
    domain: str,
    resource: str,
    resource_kind: str,
    resource_id: str,
    action: str,
    status: str,
    provider: Provider | str,
    credential_id: str,
    region: str,
    data: dict[str, Any] | None = None,
    clock: Callable[[], datetime] | None = None,
) -> LifecycleEvent:
    now = clock() if clock else datetime.now(tz=UTC)
    return LifecycleEvent(
        event_type=build_event_topic(domain, provider, credential_id, region, resource, action),
        resource_kind=resource_kind,
        resource_id=resource_id,
        action=action,
        status=status,
        timestamp=now,
        provider=Provider(provider),
        credential_id=credential_id,
        region=region,
        data=data or {},
    )


@runtime_checkable
class EventNotifier(Protocol):
    """Protocol for lifecycle event publishers."""

    def publish(self, event: LifecycleEvent) -> None:
        """Publish a single event."""
        ...


class InMemoryEventNotifier:
    """Collects published events. Thread-safe."""

    def __init__(self) -> None:
        self._events: list[LifecycleEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: LifecycleEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[LifecycleEvent]:
        with self._lock:
            return list(self._events)

    def filter(
        self, credential_id: str | None = None, region: str | None = None,
    ) -> list[LifecycleEvent]:
        return [e for e in self.events if e.matches(credential_id, region)]


class LoggingEventNotifier:
    """Write each event as an info log line on the ``cloudfleet.events`` logger."""

    def __init__(self, logger_name: str = "cloudfleet.events") -> None:
        self._logger = logging.getLogger(logger_name)

    def publish(self, event: LifecycleEvent) -> None:
        self._logger.info(
            "%s %s %s", event.event_type, event.resource_id, event.status,
        )


class WebhookEventNotifier:
    """POST events as JSON to a webhook URL.

    Uses stdlib urllib.request -- no extra dependencies required.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

    def publish(self, event: LifecycleEvent) -> None:
        envelope = {
            "type": "lifecycle_event",
            "event": event.model_dump(mode="json"),
            "published_at": datetime.now(tz=UTC).isoformat(),
        }
        body = json.dumps(envelope, sort_keys=True).encode("utf-8")

        req = urllib.request.Request(
            self._url,
            data=body,
            headers={
                "Content-Type": "application/json",
                **self._headers,
            },
            method="POST",
        )
        urllib.request.urlopen(req, timeout=self._timeout)  # noqa: S310


def dispatch_event(notifiers: list[EventNotifier], event: LifecycleEvent) -> None:
    """Fire-and-forget event dispatch to every notifier."""
    for notifier in notifiers:
        try:
            notifier.publish(event)
        except Exception as exc:
            logger.warning(
                "Event publisher %s failed for %s: %s",
                type(notifier).__name__, event.event_type, exc,
            )
            warnings.warn(
                f"Event publisher {type(notifier).__name__} failed: {exc}",
                EventWarning,
                stacklevel=2,
            )


class EventDispatcher:
    """Fan-out publisher handed to orchestrators and the bulk engine."""

    def __init__(self, notifiers: list[EventNotifier] | None = None) -> None:
        self._notifiers = list(notifiers or [])

    @property
    def notifiers(self) -> list[EventNotifier]:
        return list(self._notifiers)

    def publish(self, event: LifecycleEvent) -> None:
        dispatch_event(self._notifiers, event)


def build_notifiers(config: dict[str, Any]) -> list[EventNotifier]:
    """Build notifier instances from the ``events`` config section.

    Supported keys:
    - log: true to enable LoggingEventNotifier
    - webhook_url: URL for WebhookEventNotifier
    - webhook_headers: optional headers dict
    - webhook_timeout: optional timeout (default 10.0)
    """
    notifiers: list[EventNotifier] = []

    if config.get("log"):
        notifiers.append(LoggingEventNotifier())

    if config.get("webhook_url") is not None:
        notifiers.append(
            WebhookEventNotifier(
                url=config["webhook_url"],
                headers=config.get("webhook_headers"),
                timeout=config.get("webhook_timeout", 10.0),
            ),
        )

    return notifiers
