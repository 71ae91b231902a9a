"""Tests for lifecycle event construction and the notifier backends."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from cloudfleet.errors import EventWarning
from cloudfleet.events.notifier import (
    DOMAIN_KUBERNETES,
    EventDispatcher,
    EventNotifier,
    InMemoryEventNotifier,
    LoggingEventNotifier,
    WebhookEventNotifier,
    build_event_topic,
    build_notifiers,
    dispatch_event,
    make_event,
)
from cloudfleet.models import Provider

# --- Helpers ---

NOW = datetime(2026, 1, 15, 9, 30, tzinfo=UTC)


def _event(credential_id: str = "cred-1", region: str = "us-east-1", **kwargs):
    fields = {
        "domain": DOMAIN_KUBERNETES,
        "resource": "clusters",
        "resource_kind": "cluster",
        "resource_id": "prod",
        "action": "created",
        "status": "CREATING",
        "provider": Provider.AWS,
        "credential_id": credential_id,
        "region": region,
        "clock": lambda: NOW,
    }
    fields.update(kwargs)
    return make_event(**fields)


class TestTopic:
    def test_topic_format(self):
        topic = build_event_topic("kubernetes", Provider.GCP, "cred-9", "us-central1",
                                  "nodepools", "scaled")
        assert topic == "kubernetes.gcp.cred-9.us-central1.nodepools.scaled"

    def test_make_event(self):
        event = _event(data={"k": "v"})
        assert event.event_type == "kubernetes.aws.cred-1.us-east-1.clusters.created"
        assert event.timestamp == NOW
        assert event.provider == Provider.AWS
        assert event.data == {"k": "v"}

    def test_make_event_default_clock(self):
        event = _event(clock=None)
        assert event.timestamp.tzinfo is not None


class TestInMemory:
    def test_collects_and_filters(self):
        notifier = InMemoryEventNotifier()
        notifier.publish(_event())
        notifier.publish(_event(credential_id="cred-2"))
        notifier.publish(_event(region="eu-west-1"))

        assert len(notifier.events) == 3
        assert len(notifier.filter(credential_id="cred-1")) == 2
        assert len(notifier.filter(credential_id="cred-1", region="us-east-1")) == 1
        assert len(notifier.filter()) == 3

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryEventNotifier(), EventNotifier)
        assert isinstance(LoggingEventNotifier(), EventNotifier)


class TestLogging:
    def test_logs_one_line(self, caplog):
        with caplog.at_level(logging.INFO, logger="cloudfleet.events"):
            LoggingEventNotifier().publish(_event())
        assert "kubernetes.aws.cred-1.us-east-1.clusters.created prod CREATING" in caplog.text


class TestWebhook:
    def test_posts_json_envelope(self):
        notifier = WebhookEventNotifier(
            "https://hooks.example.com/cf", headers={"X-Token": "abc"}, timeout=3.0,
        )
        with patch("cloudfleet.events.notifier.urllib.request.urlopen") as urlopen:
            notifier.publish(_event())

        request = urlopen.call_args.args[0]
        assert urlopen.call_args.kwargs["timeout"] == 3.0
        assert request.full_url == "https://hooks.example.com/cf"
        assert request.get_method() == "POST"
        assert request.get_header("X-token") == "abc"
        body = json.loads(request.data)
        assert body["type"] == "lifecycle_event"
        assert body["event"]["resource_id"] == "prod"


class TestDispatch:
    def test_failure_warns_and_continues(self):
        broken = MagicMock()
        broken.publish.side_effect = ConnectionError("down")
        good = InMemoryEventNotifier()

        with pytest.warns(EventWarning, match="down"):
            dispatch_event([broken, good], _event())

        assert len(good.events) == 1

    def test_dispatcher_fans_out(self):
        first, second = InMemoryEventNotifier(), InMemoryEventNotifier()
        dispatcher = EventDispatcher([first, second])
        dispatcher.publish(_event())
        assert len(first.events) == len(second.events) == 1
        assert dispatcher.notifiers == [first, second]


class TestBuildNotifiers:
    def test_empty_config(self):
        assert build_notifiers({}) == []

    def test_log_and_webhook(self):
        notifiers = build_notifiers({
            "log": True,
            "webhook_url": "https://hooks.example.com/cf",
            "webhook_timeout": 2.5,
        })
        assert [type(n) for n in notifiers] == [LoggingEventNotifier, WebhookEventNotifier]
        assert notifiers[1]._timeout == 2.5
