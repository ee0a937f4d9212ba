"""Application-level endpoints, without running the startup lifespan."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from repairdesk.main import app
from repairdesk.tickets.application import BackgroundDispatcher

pytestmark = pytest.mark.integration


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(app.state, "dispatcher", BackgroundDispatcher(), raising=False)
    monkeypatch.setattr(app.state, "policy_provider", object(), raising=False)
    return TestClient(app)


def test_health_degraded_without_database(client, monkeypatch):
    monkeypatch.setattr(app.state, "database_ready", False, raising=False)

    body = client.get("/health").json()

    assert body["status"] == "degraded"
    assert body["checks"]["database"] == "unavailable"
    assert body["checks"]["lifecycle_policy"] == "loaded"
    assert body["checks"]["pending_notifications"] == 0


def test_health_checks_live_connection(client, monkeypatch):
    monkeypatch.setattr(app.state, "database_ready", True, raising=False)

    with patch("repairdesk.main.ping_database", AsyncMock(return_value=True)) as ping:
        assert client.get("/health").json()["status"] == "healthy"
    ping.assert_awaited_once()

    with patch("repairdesk.main.ping_database", AsyncMock(return_value=False)):
        assert client.get("/health").json()["status"] == "degraded"


def test_root_lists_ticket_endpoints(client):
    body = client.get("/").json()
    assert body["modules"]["tickets"]["prefix"] == "/tickets"
