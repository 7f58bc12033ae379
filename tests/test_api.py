from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from listingmirror.app.api import create_app
from listingmirror.services import CycleState
from listingmirror.services.sync import SyncConfig, SyncEngine, UpstreamSettings
from listingmirror.services.sync_service import SyncService

UPSTREAM = UpstreamSettings(base_url="https://api.example.com", api_key="secret")


@pytest.fixture
def service(tmp_path: Path, fake_upstream_cls) -> SyncService:
    engine = SyncEngine(
        tmp_path / "api.db",
        UPSTREAM,
        SyncConfig(delay_between_requests_seconds=0),
        client=fake_upstream_cls([[1, 2]]),
        sleep=lambda _d: None,
    )
    return SyncService(engine=engine)


@pytest.fixture
def client(service: SyncService):
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_status_before_any_cycle(client: TestClient) -> None:
    data = client.get("/sync/status").json()

    assert data["running"] is False
    assert data["cycle_state"] == "idle"
    assert data["has_base_url"] is True
    assert data["has_api_key"] is True
    assert data["config"]["batch_size"] == 10
    assert data["last_cycle_info"]["last_success_at"] is None
    assert data["last_cycle_info"]["active_records"] == 0


def test_trigger_runs_cycle(client: TestClient) -> None:
    response = client.post("/sync/trigger")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["new_records"] == 2
    assert body["sweep_performed"] is True

    info = client.get("/sync/status").json()["last_cycle_info"]
    assert info["active_records"] == 2
    assert info["last_stats"]["run_id"] == body["run_id"]
    assert info["last_success_at"] == body["finished_at"]


def test_trigger_conflict_while_running(client: TestClient, service: SyncService) -> None:
    service.state.cycle_state = CycleState.RUNNING

    response = client.post("/sync/trigger")

    assert response.status_code == 409


def test_trigger_without_credentials_is_bad_request(tmp_path: Path) -> None:
    service = SyncService(db_path=tmp_path / "none.db", upstream=UpstreamSettings())
    with TestClient(create_app(service=service)) as client:
        response = client.post("/sync/trigger")

    assert response.status_code == 400
    assert "not configured" in response.json()["detail"]


def test_start_rejected_when_disabled(tmp_path: Path) -> None:
    service = SyncService(
        db_path=tmp_path / "off.db", upstream=UPSTREAM, config=SyncConfig(enabled=False)
    )
    with TestClient(create_app(service=service)) as client:
        response = client.post("/sync/start")

    assert response.status_code == 400


def test_stop_when_idle(client: TestClient) -> None:
    response = client.post("/sync/stop")

    assert response.status_code == 200
    assert response.json()["running"] is False


def test_update_config(client: TestClient, service: SyncService) -> None:
    response = client.put("/sync/config", json={"batch_size": 25, "premium_locations": ["DIFC"]})

    assert response.status_code == 200
    assert response.json()["batch_size"] == 25
    assert service.config.batch_size == 25
    assert service.config.premium_locations == ("DIFC",)


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"unknown": 1},
        {"batch_size": 0},
        {"recent_threshold_percent": 120},
    ],
)
def test_update_config_rejects_invalid_payload(
    client: TestClient, service: SyncService, payload
) -> None:
    response = client.put("/sync/config", json=payload)

    assert response.status_code == 400
    assert service.config == SyncConfig(delay_between_requests_seconds=0)


def test_cleanup_endpoint(client: TestClient) -> None:
    response = client.post("/sync/cleanup")

    assert response.status_code == 200
    assert response.json() == {"expired_marked": 0, "hard_deleted": 0}


def test_metrics_after_cycle(client: TestClient) -> None:
    client.post("/sync/trigger")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert 'sync_cycles_total{status="success"} 1.0' in response.text
    assert "sync_records_processed_total 2.0" in response.text
