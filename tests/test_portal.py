"""Tests for DevicePortal and the performance fetch operations."""

import base64

import httpx
import pytest

from devperf.config import DeviceSettings
from devperf.errors import DeserializationError, TransportError
from devperf.models import ProcessSnapshot, SystemPerformanceSnapshot
from devperf.performance import (
    RUNNING_PROCESS_API,
    SYSTEM_PERF_API,
    fetch_processes,
    fetch_system_performance,
)
from devperf.portal import DevicePortal


def test_resource_paths():
    """Resource paths match the device firmware."""
    assert RUNNING_PROCESS_API == "api/resourcemanager/processes"
    assert SYSTEM_PERF_API == "api/resourcemanager/systemperf"


@pytest.mark.asyncio
async def test_connect_and_close(device_settings, fake_device):
    """Test connect() opens the client and close() is idempotent."""
    portal = DevicePortal(device_settings, transport=fake_device())
    assert portal.is_connected is False

    await portal.connect()
    assert portal.is_connected is True

    await portal.close()
    assert portal.is_connected is False
    await portal.close()
    assert portal.is_connected is False


@pytest.mark.asyncio
async def test_get_requires_connection(device_settings):
    """Test requests before connect() fail with a transport error."""
    portal = DevicePortal(device_settings)

    with pytest.raises(TransportError, match="not connected"):
        await fetch_processes(portal)


@pytest.mark.asyncio
async def test_fetch_processes(device_settings, fake_device):
    """Test fetch_processes requests the process resource and parses it."""
    transport = fake_device()
    async with DevicePortal(device_settings, transport=transport) as portal:
        snapshot = await fetch_processes(portal)

    assert isinstance(snapshot, ProcessSnapshot)
    assert snapshot.contains_process_id(42)
    assert len(transport.requests) == 1
    request = transport.requests[0]
    assert request.method == "GET"
    assert str(request.url) == "https://device.test/api/resourcemanager/processes"


@pytest.mark.asyncio
async def test_fetch_system_performance(device_settings, fake_device):
    """Test fetch_system_performance requests the systemperf resource and parses it."""
    transport = fake_device()
    async with DevicePortal(device_settings, transport=transport) as portal:
        system = await fetch_system_performance(portal)

    assert isinstance(system, SystemPerformanceSnapshot)
    assert system.cpu_load == 17
    assert transport.requests[0].url.path == "/api/resourcemanager/systemperf"


@pytest.mark.asyncio
async def test_portal_methods_delegate(device_settings, fake_device):
    """Test the portal's convenience methods issue the same requests."""
    transport = fake_device()
    async with DevicePortal(device_settings, transport=transport) as portal:
        processes = await portal.get_running_processes()
        system = await portal.get_system_perf()

    assert len(processes) == 3
    assert system.total_pages == 1000000
    assert [r.url.path for r in transport.requests] == [
        "/api/resourcemanager/processes",
        "/api/resourcemanager/systemperf",
    ]


@pytest.mark.asyncio
async def test_each_fetch_is_a_fresh_snapshot(device_settings, fake_device):
    """Test no state is kept between fetches."""
    transport = fake_device()
    async with DevicePortal(device_settings, transport=transport) as portal:
        first = await fetch_processes(portal)
        second = await fetch_processes(portal)

    assert first == second
    assert first is not second
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_basic_auth_header(device_settings, fake_device):
    """Test credentials are sent with HTTP basic auth."""
    transport = fake_device()
    async with DevicePortal(device_settings, transport=transport) as portal:
        await fetch_processes(portal)

    expected = "Basic " + base64.b64encode(b"admin:hunter2").decode()
    assert transport.requests[0].headers["Authorization"] == expected


@pytest.mark.asyncio
async def test_no_auth_without_username(fake_device):
    """Test no Authorization header is sent when no user is configured."""
    transport = fake_device()
    async with DevicePortal(DeviceSettings(address="https://device.test"), transport=transport) as portal:
        await fetch_processes(portal)

    assert "Authorization" not in transport.requests[0].headers


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 403])
async def test_authentication_failure(device_settings, fake_device, status_code):
    """Test rejected credentials raise a transport error carrying the status."""
    async with DevicePortal(device_settings, transport=fake_device(status_code=status_code)) as portal:
        with pytest.raises(TransportError, match="Authentication failed") as exc_info:
            await fetch_processes(portal)

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_server_error(device_settings, fake_device):
    """Test HTTP errors are propagated as transport errors."""
    transport = fake_device(processes="Internal failure", status_code=500)
    async with DevicePortal(device_settings, transport=transport) as portal:
        with pytest.raises(TransportError) as exc_info:
            await fetch_processes(portal)

    assert exc_info.value.status_code == 500
    assert exc_info.value.detail == "Internal failure"
    assert len(transport.requests) == 1  # No retry


@pytest.mark.asyncio
async def test_connect_error(device_settings):
    """Test connectivity failures are propagated as transport errors."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    async with DevicePortal(device_settings, transport=httpx.MockTransport(handler)) as portal:
        with pytest.raises(TransportError, match="Cannot reach device") as exc_info:
            await fetch_system_performance(portal)

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_timeout(device_settings):
    """Test timeouts are propagated as transport errors."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with DevicePortal(device_settings, transport=httpx.MockTransport(handler)) as portal:
        with pytest.raises(TransportError, match="timed out"):
            await fetch_processes(portal)


@pytest.mark.asyncio
async def test_malformed_body(device_settings, fake_device):
    """Test a body of the wrong shape raises a deserialization error."""
    transport = fake_device(processes='{"Processes": "none"}')
    async with DevicePortal(device_settings, transport=transport) as portal:
        with pytest.raises(DeserializationError):
            await fetch_processes(portal)


@pytest.mark.asyncio
async def test_missing_processes_key(device_settings, fake_device):
    """Test a body without the Processes key yields an empty snapshot."""
    async with DevicePortal(device_settings, transport=fake_device(processes={})) as portal:
        snapshot = await fetch_processes(portal)

    assert len(snapshot) == 0
    assert not snapshot.contains_process_id(42)
    assert not snapshot.contains_package("Contoso.App_1.0.0.0_x64", case_sensitive=False)


def test_verify_flag_passthrough(device_settings):
    """Test boolean TLS verification settings are handed to httpx as is."""
    portal = DevicePortal(device_settings.model_copy(update={"verify_tls": False}))
    assert portal._ssl_verify() is False

    portal = DevicePortal(device_settings)
    assert portal._ssl_verify() is True
