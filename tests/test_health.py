import asyncio

import pytest
from fastapi.testclient import TestClient

from app.api.routes import health as health_routes
from app.main import app


async def _ok_check() -> dict[str, str]:
    return {"status": "ok"}


def _ok_celery() -> dict[str, object]:
    return {"status": "ok", "workers": 1}


@pytest.fixture
def healthy_dependencies(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_database", _ok_check)
    monkeypatch.setattr(health_routes, "_check_redis", _ok_check)
    monkeypatch.setattr(health_routes, "_ping_celery_workers", _ok_celery)


def test_health_is_liveness_only() -> None:
    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["checks"]["sweeper"] == {"status": "ok", "running": False}


def test_ready_ok(healthy_dependencies) -> None:
    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["checks"]["database"] == {"status": "ok"}
    assert payload["checks"]["redis"] == {"status": "ok"}
    assert payload["checks"]["celery"] == {"status": "ok", "workers": 1}


def test_ready_returns_503_when_dependency_failed(monkeypatch, healthy_dependencies) -> None:
    async def _failed_redis() -> dict[str, str]:
        return {"status": "failed", "error": "redis down"}

    monkeypatch.setattr(health_routes, "_check_redis", _failed_redis)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "not_ready"
    assert payload["checks"]["redis"]["error"] == "redis down"


def test_ready_reports_timed_out_check(monkeypatch, healthy_dependencies) -> None:
    async def _hanging_database() -> dict[str, str]:
        await asyncio.sleep(10)
        return {"status": "ok"}

    monkeypatch.setattr(health_routes, "CHECK_TIMEOUT_SECONDS", 0.05)
    monkeypatch.setattr(health_routes, "_check_database", _hanging_database)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["database"] == {
        "status": "failed",
        "error": "database check timed out",
    }
