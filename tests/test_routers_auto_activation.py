"""Tests for auto-activation endpoints."""
import pytest
from httpx import AsyncClient

from grid_command_center import crud


def overload(grid, feeder_id="F-1234", target_load=90.0):
    grid.load_model.get(feeder_id).target_load = target_load
    grid.flag_pending(feeder_id)


@pytest.mark.asyncio
async def test_list_requests_empty(client: AsyncClient):
    response = await client.get("/api/auto-activation-requests")
    assert response.status_code == 200
    assert response.json()["data"] == []


@pytest.mark.asyncio
async def test_list_requests(client: AsyncClient, grid):
    overload(grid)

    response = await client.get("/api/auto-activation-requests")

    data = response.json()["data"]
    assert data == [{
        "feederId": "F-1234",
        "feederName": "Feeder F-1234",
        "currentLoad": 90.0,
        "capacity": 95.0,
        "loadPercent": 94.7,
    }]


@pytest.mark.asyncio
async def test_confirm_activates_ders(client: AsyncClient, grid, test_session):
    overload(grid)

    response = await client.post("/api/auto-activation/F-1234/confirm")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["feederId"] == "F-1234"
    assert [a["derId"] for a in data["activations"]] == ["DER-BATT-001", "DER-EV-002"]
    assert data["failed"] == 0
    assert not grid.is_pending("F-1234")
    assert len(grid.active_ders("F-1234")) == 2

    logs = await crud.list_audit_logs(test_session, target="F-1234")
    assert logs[0].action == "Auto-Activation Confirmed"
    assert logs[0].status == "success"


@pytest.mark.asyncio
async def test_confirm_all_failed(client: AsyncClient, grid, gateway):
    overload(grid)
    gateway.fail_on.add("confirm")

    response = await client.post("/api/auto-activation/F-1234/confirm")

    assert response.status_code == 502
    assert response.json()["success"] is False
    assert grid.active_ders() == []


@pytest.mark.asyncio
async def test_confirm_unknown_feeder(client: AsyncClient):
    response = await client.post("/api/auto-activation/F-404/confirm")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_dismiss(client: AsyncClient, grid, test_session):
    overload(grid)

    response = await client.post("/api/auto-activation/F-1234/dismiss")

    assert response.status_code == 200
    assert grid.pending() == []
    logs = await crud.list_audit_logs(test_session, target="F-1234")
    assert logs[0].action == "Auto-Activation Dismissed"


@pytest.mark.asyncio
async def test_dismiss_unknown_feeder(client: AsyncClient):
    response = await client.post("/api/auto-activation/F-404/dismiss")
    assert response.status_code == 404
