"""Tests for the mock and sandbox Beckn gateways."""
import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from grid_command_center.beckn.gateway import (
    MockGateway,
    SandboxGateway,
    build_gateway,
    create_context,
)
from grid_command_center.core.config import Settings
from grid_command_center.schemas.beckn import (
    Initialized,
    OrderState,
    Quantity,
    SearchFound,
    SearchNotFound,
    StageFailed,
    StatusReport,
)


def test_create_context_defaults(test_settings):
    context = create_context("search", test_settings)
    assert context.domain == "energy:deg"
    assert context.version == "1.1.0"
    assert context.action == "search"
    assert context.bap_id == test_settings.bap_id

    again = create_context("select", test_settings, transaction_id=context.transaction_id)
    assert again.transaction_id == context.transaction_id
    assert again.message_id != context.message_id


@pytest.mark.asyncio
async def test_mock_search_filters_by_fulfillment_type(gateway):
    result = await gateway.search(create_context("search"), "energy-demand-reduction")
    assert isinstance(result, SearchFound)
    assert {der.type for der in result.providers} == {"demand_response"}


@pytest.mark.asyncio
async def test_mock_search_prefers_providers_with_enough_capacity(gateway):
    result = await gateway.search(
        create_context("search"), "energy-storage", Quantity(amount="100", unit="kW")
    )
    assert [der.id for der in result.providers] == ["DER-EV-002", "DER-BATT-005"]

    # Falls back to every match when nothing is large enough
    result = await gateway.search(
        create_context("search"), "energy-storage", Quantity(amount="10000", unit="kW")
    )
    assert [der.id for der in result.providers] == ["DER-BATT-001", "DER-EV-002", "DER-BATT-005"]


@pytest.mark.asyncio
async def test_mock_search_not_found():
    gateway = MockGateway(catalog=[])
    result = await gateway.search(create_context("search"), "energy-dispatch")
    assert isinstance(result, SearchNotFound)


@pytest.mark.asyncio
async def test_mock_select_unknown_provider(gateway):
    result = await gateway.select(create_context("select"), "DER-404", Quantity(amount="5"))
    assert isinstance(result, StageFailed)


@pytest.mark.asyncio
async def test_mock_order_lifecycle(gateway):
    start = datetime.now(UTC)
    init = await gateway.init(create_context("init"), "DER-EV-002", start, start + timedelta(hours=1))
    assert isinstance(init, Initialized)
    assert gateway.order_state(init.order_id) is OrderState.DRAFT

    await gateway.confirm(create_context("confirm"), init.order_id, "DER-EV-002")
    status = await gateway.status(create_context("status"), init.order_id)
    assert isinstance(status, StatusReport)
    assert status.state is OrderState.ACTIVE

    # Confirming twice is rejected
    again = await gateway.confirm(create_context("confirm"), init.order_id, "DER-EV-002")
    assert isinstance(again, StageFailed)

    cancelled = await gateway.cancel(create_context("cancel"), init.order_id)
    assert cancelled.state is OrderState.CANCELLED
    again = await gateway.cancel(create_context("cancel"), init.order_id)
    assert isinstance(again, StageFailed)


@pytest.mark.asyncio
async def test_mock_status_completes_after_window(gateway):
    start = datetime.now(UTC) - timedelta(hours=2)
    init = await gateway.init(create_context("init"), "DER-EV-002", start, start + timedelta(hours=1))
    await gateway.confirm(create_context("confirm"), init.order_id, "DER-EV-002")

    status = await gateway.status(create_context("status"), init.order_id)

    assert status.state is OrderState.COMPLETED


@pytest.mark.asyncio
async def test_mock_unknown_order(gateway):
    assert isinstance(await gateway.status(create_context("status"), "ORD-404"), StageFailed)
    assert isinstance(await gateway.cancel(create_context("cancel"), "ORD-404"), StageFailed)
    assert gateway.order_state("ORD-404") is None


@pytest.mark.asyncio
async def test_mock_fail_on():
    gateway = MockGateway(fail_on=["search"])
    result = await gateway.search(create_context("search"), "energy-dispatch")
    assert isinstance(result, StageFailed)
    assert result.error == "Simulated search failure"


def sandbox(handler, test_settings):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://sandbox")
    return SandboxGateway(config=test_settings, client=client)


@pytest.mark.asyncio
async def test_sandbox_search_parses_providers(test_settings):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={
            "outcome": "found",
            "providers": [{
                "id": "DER-X",
                "name": "Remote Battery",
                "type": "battery",
                "capacity": 40,
                "currentOutput": 0,
            }],
        })

    gateway = sandbox(handler, test_settings)
    try:
        result = await gateway.search(
            create_context("search", test_settings), "energy-storage", Quantity(amount="20")
        )
    finally:
        await gateway.aclose()

    assert isinstance(result, SearchFound)
    assert result.providers[0].id == "DER-X"
    assert result.context.action == "search"
    assert requests[0].url.path == "/api/sandbox/search"
    body = json.loads(requests[0].content)
    assert body["context"]["domain"] == "energy:deg"
    assert body["message"]["intent"]["fulfillment"]["type"] == "energy-storage"


@pytest.mark.asyncio
async def test_sandbox_http_error_becomes_stage_failure(test_settings):
    gateway = sandbox(lambda request: httpx.Response(503, text="down"), test_settings)
    result = await gateway.status(create_context("status", test_settings), "ORD-1")
    assert isinstance(result, StageFailed)


@pytest.mark.asyncio
async def test_sandbox_timeout_becomes_stage_failure(test_settings):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    gateway = sandbox(handler, test_settings)
    result = await gateway.confirm(create_context("confirm", test_settings), "ORD-1", "DER-X")
    assert isinstance(result, StageFailed)
    assert result.error == "confirm timed out"


@pytest.mark.asyncio
async def test_sandbox_malformed_response(test_settings):
    gateway = sandbox(lambda request: httpx.Response(200, json={"outcome": "selected"}), test_settings)
    result = await gateway.select(create_context("select", test_settings), "DER-X", Quantity(amount="5"))
    assert isinstance(result, StageFailed)
    assert result.error == "Malformed select response"


@pytest.mark.asyncio
async def test_sandbox_invalid_json(test_settings):
    gateway = sandbox(lambda request: httpx.Response(200, text="<html>"), test_settings)
    result = await gateway.cancel(create_context("cancel", test_settings), "ORD-1")
    assert isinstance(result, StageFailed)
    assert result.error.startswith("Invalid JSON")


def test_build_gateway_selects_implementation():
    assert isinstance(build_gateway(Settings(beckn_gateway="mock")), MockGateway)
    assert isinstance(build_gateway(Settings(beckn_gateway="sandbox")), SandboxGateway)
