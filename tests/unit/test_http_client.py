"""Unit tests for dashcal.http_client shared client pool."""

import httpx
import pytest

from dashcal import http_client
from dashcal.http_client import (
    HEALTH_ERROR_THRESHOLD,
    close_all_clients,
    get_shared_client,
    record_client_error,
    record_client_success,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]


@pytest.mark.asyncio
async def test_get_shared_client_when_called_twice_then_same_instance() -> None:
    """The pool hands out one client per id."""
    first = await get_shared_client("pool-test")
    second = await get_shared_client("pool-test")

    assert isinstance(first, httpx.AsyncClient)
    assert first is second
    assert first.headers["Accept"].startswith("text/calendar")


@pytest.mark.asyncio
async def test_get_shared_client_when_different_ids_then_distinct_clients() -> None:
    """Separate ids get separate clients."""
    assert await get_shared_client("a") is not await get_shared_client("b")


@pytest.mark.asyncio
async def test_get_shared_client_when_error_threshold_reached_then_recreated() -> None:
    """A client with repeated errors is closed and replaced."""
    original = await get_shared_client("flaky")
    for _ in range(HEALTH_ERROR_THRESHOLD):
        await record_client_error("flaky")

    replacement = await get_shared_client("flaky")

    assert replacement is not original
    assert original.is_closed


@pytest.mark.asyncio
async def test_record_client_success_when_errors_recorded_then_count_reset() -> None:
    """A success clears the error count so the client is kept."""
    original = await get_shared_client("recovering")
    for _ in range(HEALTH_ERROR_THRESHOLD - 1):
        await record_client_error("recovering")
    await record_client_success("recovering")
    await record_client_error("recovering")

    assert await get_shared_client("recovering") is original


@pytest.mark.asyncio
async def test_close_all_clients_when_clients_open_then_closed_and_forgotten() -> None:
    """Shutdown closes every pooled client."""
    client = await get_shared_client("shutdown")

    await close_all_clients()

    assert client.is_closed
    assert "shutdown" not in http_client._shared_clients
    assert await get_shared_client("shutdown") is not client
