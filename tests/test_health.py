from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from app.api.deps import get_db


def test_health_endpoint_returns_ok(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["scheduler_enabled"] is False
    assert "service" in body
    assert "version" in body
    assert "environment" in body


def test_health_reports_unreachable_database(client):
    from app.main import app

    broken = MagicMock()
    broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    app.dependency_overrides[get_db] = lambda: broken
    try:
        response = client.get("/health")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["database"] == "unavailable"
