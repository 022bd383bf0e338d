"""Notification dispatcher and community counter tests."""

import httpx
import pytest

from safetrails.core.config import Settings
from safetrails.services import community, notifications
from safetrails.services.community import (
    CommunityServiceError,
    HttpCommunityCounter,
    NullCommunityCounter,
    build_community_counter,
)
from safetrails.services.notifications import LoggingDispatcher, WebhookDispatcher, build_dispatcher


def _response(status_code, payload, url="http://svc.test"):
    return httpx.Response(status_code, json=payload, request=httpx.Request("POST", url))


def test_webhook_dispatcher_posts_ticket_with_contacts(sos, monkeypatch):
    ticket = sos.trigger(
        "alice",
        location="Pier",
        latitude=1.0,
        longitude=2.0,
        contacts=[{"name": "Sam", "phone": "+1 202 555 0101", "relation": "friend"}],
    )
    sent = {}

    def fake_post(url, json, timeout):
        sent.update(url=url, json=json, timeout=timeout)
        return _response(202, {}, url)

    monkeypatch.setattr(notifications.httpx, "post", fake_post)

    WebhookDispatcher("http://dispatch.test/sos", timeout=2.0).dispatch(ticket)

    assert sent["url"] == "http://dispatch.test/sos"
    assert sent["json"]["ticket_id"] == ticket.id
    assert sent["json"]["contacts"][0]["name"] == "Sam"
    assert sent["timeout"] == 2.0


def test_webhook_failure_is_logged_not_raised(sos, monkeypatch, caplog):
    ticket = sos.trigger("alice", location="Pier", latitude=1.0, longitude=2.0)

    def fake_post(url, json, timeout):
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(notifications.httpx, "post", fake_post)

    WebhookDispatcher("http://dispatch.test/sos").dispatch(ticket)

    assert "dispatch failed" in caplog.text


def test_http_community_counter_reads_counts(monkeypatch):
    def fake_post(url, json, timeout):
        assert url == "http://community.test/post-counts"
        assert json == {"user_ids": ["alice", "bob"]}
        return _response(200, {"counts": {"alice": 15}}, url)

    monkeypatch.setattr(community.httpx, "post", fake_post)

    counts = HttpCommunityCounter("http://community.test/").count_posts(["alice", "bob"])

    assert counts == {"alice": 15, "bob": 0}


@pytest.mark.parametrize(
    "response",
    [
        _response(500, {"error": "boom"}),
        _response(200, {"unexpected": True}),
    ],
)
def test_http_community_counter_errors(monkeypatch, response):
    monkeypatch.setattr(community.httpx, "post", lambda url, json, timeout: response)

    with pytest.raises(CommunityServiceError):
        HttpCommunityCounter("http://community.test").count_posts(["alice"])


def test_builders_pick_implementation_from_settings():
    assert isinstance(build_dispatcher(Settings(notification_webhook_url="")), LoggingDispatcher)
    assert isinstance(build_dispatcher(Settings(notification_webhook_url="http://x")), WebhookDispatcher)
    assert isinstance(build_community_counter(Settings(community_service_url="")), NullCommunityCounter)
    assert isinstance(build_community_counter(Settings(community_service_url="http://x")), HttpCommunityCounter)
