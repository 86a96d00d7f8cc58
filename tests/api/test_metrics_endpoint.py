"""
Tests for the /metrics endpoint.
"""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from src.api.main import app
from src.utils.metrics import metrics


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


class TestPrometheusMetricsEndpoint:
    """Tests for /metrics Prometheus endpoint."""

    def test_returns_prometheus_format(self, client):
        metrics.dispatch_total.inc(provider="skebby", channel="sms", result="sent")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "# TYPE ecf_dispatch_total counter" in response.text
        assert 'ecf_dispatch_total{channel="sms",provider="skebby",result="sent"} 1.0' in response.text

    def test_webhook_counts_are_exported(self, client):
        app.state.pipeline = MagicMock()
        client.post("/webhooks/skebby/sms", content=b"[]", headers={"content-type": "application/json"})

        response = client.get("/metrics")

        assert 'ecf_webhooks_total{outcome="malformed",provider="skebby"} 1.0' in response.text
