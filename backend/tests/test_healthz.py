from __future__ import annotations

from fastapi.testclient import TestClient

from worldhub.main import app


def test_health_reports_store_backend() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "store_backend": "database"}


def test_database_health_endpoint_success() -> None:
    client = TestClient(app)
    response = client.get("/healthz/database")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert "version_conflicts" in payload["pool"]
    assert payload["store_backend"] == "database"


def test_database_health_endpoint_failure(monkeypatch) -> None:
    client = TestClient(app)

    def raise_runtime_error():
        raise RuntimeError("HUB_DATABASE_URL must be configured before using the database.")

    monkeypatch.setattr("worldhub.main.get_engine", raise_runtime_error)
    response = client.get("/healthz/database")
    assert response.status_code == 503
    assert "HUB_DATABASE_URL" in response.json()["detail"]
