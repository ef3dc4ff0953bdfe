from fastapi.testclient import TestClient

import src.api.main as api_main
from src.storage.db import DatabaseProbe


def test_health_reports_database_latency(monkeypatch) -> None:
    monkeypatch.setattr(api_main, "probe_database", lambda: DatabaseProbe(ok=True, latency_ms=1.5))

    response = TestClient(api_main.app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["services"]["database"] == {"ok": True, "latency_ms": 1.5, "error": None}


def test_health_is_degraded_when_database_is_down(monkeypatch) -> None:
    monkeypatch.setattr(api_main, "probe_database", lambda: DatabaseProbe(ok=False, error="db unavailable"))

    response = TestClient(api_main.app).get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"
    assert response.json()["services"]["database"]["error"] == "db unavailable"


def test_version_endpoint_echoes_request_id() -> None:
    response = TestClient(api_main.app).get("/version", headers={"x-request-id": "req-42"})

    assert response.status_code == 200
    assert response.json()["name"] == "content_queue"
    assert response.json()["version"]
    assert response.headers["x-request-id"] == "req-42"
