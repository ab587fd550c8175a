"""Integration tests for the HTTP surface."""

from unittest.mock import AsyncMock, patch

import pytest
from temporalio.exceptions import WorkflowAlreadyStartedError

from faxbridge.api.dependencies import get_audit_service, get_workflow_client
from faxbridge.config import settings
from faxbridge.main import app

INBOUND = {
    "fax_id": "tx-9001",
    "from_number": "+819012345678",
    "media_url": "https://media.example.com/tx-9001.pdf",
}


@pytest.fixture
def workflow_client():
    client = AsyncMock()
    app.dependency_overrides[get_workflow_client] = lambda: client
    return client


@pytest.fixture
def override_audit(audit_service):
    app.dependency_overrides[get_audit_service] = lambda: audit_service
    return audit_service


class TestHealth:
    def test_health_healthy(self, test_client):
        with patch("faxbridge.main.db_client.health_check", AsyncMock(return_value={"status": "healthy"})):
            response = test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == settings.app_version
        assert body["delivery_mode"] == settings.delivery_mode

    def test_health_degraded_without_database(self, test_client):
        with patch("faxbridge.main.db_client.health_check", AsyncMock(return_value={"status": "unhealthy"})):
            response = test_client.get("/health")

        assert response.json()["status"] == "degraded"

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"


class TestInboundWebhook:
    def test_inbound_fax_starts_workflow(self, test_client, workflow_client):
        response = test_client.post("/webhooks/fax/inbound", json=INBOUND)

        assert response.status_code == 202
        assert response.json() == {
            "accepted": True,
            "fax_id": "tx-9001",
            "workflow_id": "fax-tx-9001",
            "duplicate": False,
        }
        workflow_client.start_workflow.assert_awaited_once()
        call = workflow_client.start_workflow.await_args
        job = call.args[1]
        assert job["fax_id"] == "tx-9001"
        assert job["from_number"] == "+819012345678"
        assert call.kwargs["id"] == "fax-tx-9001"
        assert call.kwargs["task_queue"] == settings.temporal_task_queue

    def test_repeated_delivery_is_accepted_once(self, test_client, workflow_client):
        workflow_client.start_workflow.side_effect = WorkflowAlreadyStartedError(
            "fax-tx-9001", "ProcessFaxWorkflow", run_id="run-1"
        )

        response = test_client.post("/webhooks/fax/inbound", json=INBOUND)

        assert response.status_code == 202
        assert response.json()["duplicate"] is True

    def test_unavailable_queue_returns_503(self, test_client, workflow_client):
        workflow_client.start_workflow.side_effect = RuntimeError("connection refused")

        response = test_client.post("/webhooks/fax/inbound", json=INBOUND)

        assert response.status_code == 503

    def test_invalid_sender_number_is_rejected(self, test_client, workflow_client):
        response = test_client.post("/webhooks/fax/inbound", json={**INBOUND, "from_number": "090-1234-5678"})

        assert response.status_code == 422
        workflow_client.start_workflow.assert_not_awaited()


class TestStatusWebhook:
    def test_status_is_audited(self, test_client, override_audit, audit_store):
        response = test_client.post(
            "/webhooks/fax/status",
            json={"delivery_id": "mock_fax_1", "status": "DELIVERED", "reference_id": "FX-2025-000123", "page_count": 2},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "recorded": True}
        event = audit_store.events[0]
        assert event.entity_type == "fax_delivery"
        assert event.entity_id == "FX-2025-000123"
        assert event.operation == "status_delivered"
        assert event.details["page_count"] == 2

    def test_status_without_reference_uses_delivery_id(self, test_client, override_audit, audit_store):
        response = test_client.post(
            "/webhooks/fax/status",
            json={"delivery_id": "mock_fax_2", "status": "failed", "failure_reason": "busy"},
        )

        assert response.status_code == 200
        assert audit_store.events[0].entity_id == "mock_fax_2"
        assert audit_store.events[0].operation == "status_failed"

    def test_audit_outage_is_reported_not_raised(self, test_client, audit_store):
        from faxbridge.services.audit_service import AuditService

        audit_store.append = AsyncMock(side_effect=RuntimeError("db down"))
        app.dependency_overrides[get_audit_service] = lambda: AuditService(audit_store, timeout_seconds=1.0)

        response = test_client.post("/webhooks/fax/status", json={"delivery_id": "mock_fax_3", "status": "delivered"})

        assert response.status_code == 200
        assert response.json()["recorded"] is False
