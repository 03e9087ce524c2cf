from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient


def _unreachable_client(tmp_path: Path, **overrides) -> TestClient:
    from peakhabit_api.core.config import Settings
    from peakhabit_api.main import create_app

    settings = Settings(db_url=f"sqlite:///{tmp_path}/missing/dir/peakhabit.db", **overrides)
    return TestClient(create_app(settings=settings))


def test_profile_serves_default_snapshot_when_storage_down(tmp_path, auth_headers) -> None:
    with _unreachable_client(tmp_path) as client:
        resp = client.get("/api/profile", headers=auth_headers("u_offline"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["degraded"] is True
    assert body["level"] == 1
    assert body["hp"] == 100
    assert body["xp_to_next"] == 100


def test_completion_is_not_accepted_when_storage_down(tmp_path, auth_headers) -> None:
    with _unreachable_client(tmp_path) as client:
        resp = client.post("/api/tasks/task_any/complete", headers=auth_headers("u_offline"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["accepted"] is False
    assert body["degraded"] is True
    assert body["reward"] is None


def test_writes_surface_storage_unavailable(tmp_path, auth_headers) -> None:
    with _unreachable_client(tmp_path) as client:
        resp = client.post("/api/guilds", headers=auth_headers("u_offline"), json={"name": "Ghosts"})
        ready = client.get("/api/ready").json()
    assert resp.status_code == 503
    assert resp.json()["detail"] == "storage_unavailable"
    assert ready["status"] == "fail"
    assert ready["db"]["ok"] is False


def test_fallback_can_be_disabled(tmp_path, auth_headers) -> None:
    with _unreachable_client(tmp_path, storage_fallback_enabled=False) as client:
        resp = client.get("/api/profile", headers=auth_headers("u_offline"))
    assert resp.status_code == 503
    assert resp.json()["detail"] == "storage_unavailable"
