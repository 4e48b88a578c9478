"""Tests for the FastAPI routes.

Covers:
- POST/GET/PATCH /notifications — create, list, edit
- POST /notifications/{id}/send — immediate dispatch through the orchestrator
- POST /notifications/{id}/read-receipt — first read only, emailed token required
- GET /notifications/{id}/certificate — evidence bundle
- GET /audit, GET /audit/notifications/{id}/history — append-ordered trail
- GET /alerts, POST /alerts/{id}/read — owner alerts
- GET /certification-levels — price listing
- Error mapping — 401, 403, 404, 409, 422, 503
"""
from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_clock, get_orchestrator, get_sessionmaker
from app.core.errors import AuditWriteError
from app.db.models import Notification
from app.delivery.channels import Bounced
from app.delivery.orchestrator import DeliveryOrchestrator
from tests.helpers import FakeChannel, FakeTimestampAuthority

OWNER_HEADERS = {"X-User-Id": "user-1"}
OTHER_HEADERS = {"X-User-Id": "user-2"}

PAYLOAD = {
    "recipient_name": "Maria Souza",
    "recipient_email": "Maria.Souza@Example.com",
    "recipient_phone": "(11) 98765-4321",
    "subject": "Notificação extrajudicial",
    "content": "Fica V.Sa. notificada do vencimento do contrato.",
    "certification_level": "advanced",
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def email_channel() -> FakeChannel:
    return FakeChannel("email")


@pytest.fixture()
def api(client: TestClient, session_factory, clock, email_channel) -> TestClient:
    """TestClient wired to the in-memory database, a fixed clock and fake collaborators."""
    from app.main import app

    orchestrator = DeliveryOrchestrator(
        session_factory,
        FakeTimestampAuthority(),
        email_channel,
        FakeChannel("AR Online"),
        certificate_base_url="https://certs.example/c",
        clock=clock,
        sleep=lambda _: None,
    )
    app.dependency_overrides[get_sessionmaker] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield client
    app.dependency_overrides.clear()


def _create(api: TestClient, **overrides) -> int:
    response = api.post("/notifications", json={**PAYLOAD, **overrides}, headers=OWNER_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _send(api: TestClient, notification_id: int) -> None:
    response = api.post(f"/notifications/{notification_id}/send", headers=OWNER_HEADERS)
    assert response.status_code == 202, response.text


# ===========================================================================
# Create / read / edit
# ===========================================================================

class TestNotifications:
    def test_create_returns_draft_with_hash(self, api):
        response = api.post("/notifications", json=PAYLOAD, headers=OWNER_HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "draft"
        assert len(body["document_hash"]) == 64

    def test_create_with_future_schedule(self, api, clock):
        scheduled_for = (clock.now() + timedelta(hours=2)).isoformat()
        response = api.post(
            "/notifications", json={**PAYLOAD, "scheduled_for": scheduled_for}, headers=OWNER_HEADERS
        )
        assert response.status_code == 201
        assert response.json()["status"] == "scheduled"

    def test_create_with_past_schedule_is_422(self, api, clock):
        scheduled_for = (clock.now() - timedelta(minutes=1)).isoformat()
        response = api.post(
            "/notifications", json={**PAYLOAD, "scheduled_for": scheduled_for}, headers=OWNER_HEADERS
        )
        assert response.status_code == 422

    @pytest.mark.parametrize(
        "overrides",
        [{"recipient_email": "nope"}, {"certification_level": "premium"}, {"status": "sent"}],
    )
    def test_invalid_create_is_422(self, api, overrides):
        response = api.post("/notifications", json={**PAYLOAD, **overrides}, headers=OWNER_HEADERS)
        assert response.status_code == 422

    def test_missing_identity_is_401(self, api):
        assert api.post("/notifications", json=PAYLOAD).status_code == 401

    def test_get_own_notification(self, api):
        notification_id = _create(api)
        response = api.get(f"/notifications/{notification_id}", headers=OWNER_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["recipient_email"] == "maria.souza@example.com"
        assert body["recipient_phone"] == "+5511987654321"
        assert body["certification_level"] == "advanced"

    def test_foreign_notification_is_403(self, api):
        notification_id = _create(api)
        assert api.get(f"/notifications/{notification_id}", headers=OTHER_HEADERS).status_code == 403

    def test_unknown_notification_is_404(self, api):
        assert api.get("/notifications/9999", headers=OWNER_HEADERS).status_code == 404

    def test_list_and_stats_scoped_to_owner(self, api):
        _create(api)
        _create(api)
        api.post("/notifications", json=PAYLOAD, headers=OTHER_HEADERS)

        listed = api.get("/notifications", headers=OWNER_HEADERS).json()
        stats = api.get("/notifications/stats", headers=OWNER_HEADERS).json()

        assert len(listed) == 2
        assert stats["draft"] == 2
        assert stats["total"] == 2
        assert stats["sent"] == 0

    @pytest.mark.parametrize("path", ["/notifications", "/audit"])
    @pytest.mark.parametrize("limit", [-1, 0, 100000])
    def test_out_of_range_limit_is_422(self, api, path, limit):
        _create(api)
        response = api.get(path, params={"limit": limit}, headers=OWNER_HEADERS)
        assert response.status_code == 422

    def test_limit_bounds_listing(self, api):
        for _ in range(3):
            _create(api)
        assert len(api.get("/notifications", params={"limit": 2}, headers=OWNER_HEADERS).json()) == 2
        assert len(api.get("/audit", params={"limit": 1}, headers=OWNER_HEADERS).json()) == 1

    def test_edit_draft_content(self, api):
        notification_id = _create(api)
        before = api.get(f"/notifications/{notification_id}", headers=OWNER_HEADERS).json()

        response = api.patch(
            f"/notifications/{notification_id}", json={"content": "Texto revisado"}, headers=OWNER_HEADERS
        )

        assert response.status_code == 200
        assert response.json()["document_hash"] != before["document_hash"]

    @pytest.mark.parametrize("body", [{}, {"document_hash": "0" * 64}, {"certification_level": "simple"}])
    def test_invalid_edit_is_422(self, api, body):
        notification_id = _create(api)
        response = api.patch(f"/notifications/{notification_id}", json=body, headers=OWNER_HEADERS)
        assert response.status_code == 422

    def test_edit_by_other_user_is_403(self, api):
        notification_id = _create(api)
        response = api.patch(
            f"/notifications/{notification_id}", json={"subject": "x"}, headers=OTHER_HEADERS
        )
        assert response.status_code == 403

    def test_audit_write_failure_is_503_and_rolls_back(self, api):
        notification_id = _create(api)

        with patch("app.lifecycle.state_machine.record_event", side_effect=AuditWriteError("audit down")):
            response = api.patch(
                f"/notifications/{notification_id}", json={"subject": "Alterado"}, headers=OWNER_HEADERS
            )

        assert response.status_code == 503
        body = api.get(f"/notifications/{notification_id}", headers=OWNER_HEADERS).json()
        assert body["subject"] == PAYLOAD["subject"]


# ===========================================================================
# Send / read / certificate
# ===========================================================================

class TestDelivery:
    def test_immediate_send_dispatches(self, api, email_channel):
        notification_id = _create(api)

        response = api.post(f"/notifications/{notification_id}/send", headers=OWNER_HEADERS)

        assert response.status_code == 202
        assert response.json()["status"] == "sending"
        body = api.get(f"/notifications/{notification_id}", headers=OWNER_HEADERS).json()
        assert body["status"] == "sent"
        assert body["timestamp_token"] == "tsa-token-1"
        assert body["certificate_url"] == f"https://certs.example/c/{notification_id}/{body['document_hash']}"
        assert len(email_channel.requests) == 1

    def test_send_twice_is_409(self, api):
        notification_id = _create(api)
        _send(api, notification_id)
        response = api.post(f"/notifications/{notification_id}/send", headers=OWNER_HEADERS)
        assert response.status_code == 409

    def test_edit_after_send_is_409(self, api):
        notification_id = _create(api)
        _send(api, notification_id)
        response = api.patch(
            f"/notifications/{notification_id}", json={"content": "tarde"}, headers=OWNER_HEADERS
        )
        assert response.status_code == 409

    def test_permanent_failure_recorded(self, api, email_channel):
        email_channel.outcomes.append(Bounced("mailbox unavailable", collaborator="email"))
        notification_id = _create(api)
        _send(api, notification_id)

        body = api.get(f"/notifications/{notification_id}", headers=OWNER_HEADERS).json()
        assert body["status"] == "failed"
        assert "mailbox unavailable" in body["failure_reason"]

    def test_read_receipt_once(self, api, email_channel):
        notification_id = _create(api)
        _send(api, notification_id)
        link = urlsplit(email_channel.requests[-1].read_receipt_url)
        token = parse_qs(link.query)["token"][0]
        assert link.path == f"/notifications/{notification_id}/read-receipt"

        first = api.post(
            link.path,
            params={"token": token},
            headers={"User-Agent": "Mozilla/5.0", "X-Client-Location": "Sao Paulo"},
        )
        second = api.post(link.path, params={"token": token})

        assert first.status_code == 200
        assert first.json()["status"] == "read"
        assert second.status_code == 409

    def test_read_receipt_needs_the_emailed_token(self, api):
        notification_id = _create(api)
        _send(api, notification_id)
        path = f"/notifications/{notification_id}/read-receipt"

        assert api.post(path).status_code == 422
        assert api.post(path, params={"token": "guessed"}).status_code == 403
        body = api.get(f"/notifications/{notification_id}", headers=OWNER_HEADERS).json()
        assert body["status"] == "sent"
        assert "read_token" not in body

    def test_read_receipt_before_send_is_409(self, api, session_factory):
        notification_id = _create(api)
        with session_factory() as db:
            token = db.get(Notification, notification_id).read_token
        response = api.post(f"/notifications/{notification_id}/read-receipt", params={"token": token})
        assert response.status_code == 409

    def test_certificate_after_send(self, api):
        notification_id = _create(api)
        _send(api, notification_id)

        response = api.get(f"/notifications/{notification_id}/certificate", headers=OWNER_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["hash_verified"] is True
        assert body["hash_algorithm"] == "sha256"
        assert body["evidence_steps"] == ["fingerprint", "timestamp"]
        assert body["sent_at"] is not None

    def test_certificate_for_draft_is_409(self, api):
        notification_id = _create(api)
        response = api.get(f"/notifications/{notification_id}/certificate", headers=OWNER_HEADERS)
        assert response.status_code == 409


# ===========================================================================
# Audit / alerts / pricing
# ===========================================================================

class TestAuditAndAlerts:
    def test_history_in_append_order(self, api):
        notification_id = _create(api)
        _send(api, notification_id)

        response = api.get(f"/audit/notifications/{notification_id}/history", headers=OWNER_HEADERS)

        assert response.status_code == 200
        entries = response.json()
        assert [e["action"] for e in entries] == [
            "notification.create",
            "notification.send",
            "notification.timestamp",
            "notification.deliver",
            "notification.sent",
        ]
        assert [e["sequence"] for e in entries] == sorted(e["sequence"] for e in entries)
        assert entries[0]["actor"] == "user-1"
        assert entries[-1]["actor"] == "system"

    def test_history_of_foreign_notification_is_403(self, api):
        notification_id = _create(api)
        response = api.get(f"/audit/notifications/{notification_id}/history", headers=OTHER_HEADERS)
        assert response.status_code == 403

    def test_audit_query_defaults_to_own_actions(self, api):
        _create(api)
        api.post("/notifications", json=PAYLOAD, headers=OTHER_HEADERS)

        entries = api.get("/audit", headers=OWNER_HEADERS).json()

        assert len(entries) == 1
        assert entries[0]["actor"] == "user-1"

    def test_audit_query_by_notification(self, api):
        notification_id = _create(api)
        _send(api, notification_id)

        entries = api.get("/audit", params={"notification_id": notification_id}, headers=OWNER_HEADERS).json()

        assert entries[0]["action"] == "notification.create"
        assert entries[-1]["action"] == "notification.sent"

    def test_alerts_listed_and_marked_read(self, api):
        notification_id = _create(api)
        _send(api, notification_id)

        alerts = api.get("/alerts", headers=OWNER_HEADERS).json()
        assert [a["alert_type"] for a in alerts] == ["notification_sent"]
        alert_id = alerts[0]["id"]

        assert api.post(f"/alerts/{alert_id}/read", headers=OTHER_HEADERS).status_code == 403
        marked = api.post(f"/alerts/{alert_id}/read", headers=OWNER_HEADERS)
        assert marked.status_code == 200
        assert marked.json()["is_read"] is True
        assert api.get("/alerts", params={"unread_only": True}, headers=OWNER_HEADERS).json() == []

    def test_unknown_alert_is_404(self, api):
        assert api.post("/alerts/999/read", headers=OWNER_HEADERS).status_code == 404

    def test_certification_levels(self, api):
        levels = api.get("/certification-levels").json()
        assert [(lvl["level"], lvl["price_cents"]) for lvl in levels] == [
            ("simple", 290),
            ("advanced", 790),
            ("qualified", 1990),
        ]
        assert levels[2]["evidence_steps"] == ["external_delivery", "fingerprint", "timestamp"]
