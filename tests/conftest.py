"""Shared fixtures: canned device responses and a fake device transport."""

import json
from collections.abc import Callable

import httpx
import pytest

from devperf.config import DeviceSettings

PROCESSES_BODY = {
    "Processes": [
        {
            "AppName": "Contoso App",
            "CPUUsage": 12.5,
            "ImageName": "ContosoApp.exe",
            "ProcessId": 42,
            "UserName": "DefaultAccount",
            "PackageFullName": "Contoso.App_1.0.0.0_x64__8wekyb3d8bbwe",
            "PageFileUsage": 4096000,
            "WorkingSetSize": 24576000,
        },
        {
            "AppName": "",
            "CPUUsage": 0.0,
            "ImageName": "svchost.exe",
            "ProcessId": 880,
            "UserName": "NETWORK SERVICE",
            "PackageFullName": "",
            "PageFileUsage": 1024,
            "WorkingSetSize": 2048,
        },
        {
            "ImageName": "System",
            "ProcessId": 4,
            "UserName": "SYSTEM",
            "CPUUsage": 1.25,
        },
    ]
}

SYSTEMPERF_BODY = {
    "AvailablePages": 300000,
    "CommitLimit": 900000,
    "CommittedPages": 450000,
    "CpuLoad": 17,
    "IOOtherSpeed": 1200,
    "IOReadSpeed": 5400,
    "IOWriteSpeed": 800,
    "NonPagedPoolPages": 12000,
    "PageSize": 4096,
    "PagedPoolPages": 35000,
    "TotalInstalledInKb": 4194304,
    "TotalPages": 1000000,
    "GPUData": {
        "AvailableAdapters": [
            {
                "DedicatedMemory": 268435456,
                "DedicatedMemoryUsed": 67108864,
                "Description": "Contoso Graphics",
                "SystemMemory": 1073741824,
                "SystemMemoryUsed": 1048576,
                "EnginesUtilization": [0.25, 0.0, 0.5],
            }
        ]
    },
    "NetworkingData": {"NetworkInBytes": 51200, "NetworkOutBytes": -7},
}


@pytest.fixture
def device_settings() -> DeviceSettings:
    """Settings for a fake device."""
    return DeviceSettings(address="https://device.test", username="admin", password="hunter2")


@pytest.fixture
def fake_device() -> Callable[..., httpx.MockTransport]:
    """
    Build a transport that answers like a device portal.

    Keyword arguments override the body (dict or raw string) or status of
    each resource. Every request is recorded on ``transport.requests``.
    """

    def build(
        processes: dict | str = PROCESSES_BODY,
        systemperf: dict | str = SYSTEMPERF_BODY,
        status_code: int = 200,
    ) -> httpx.MockTransport:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/api/resourcemanager/processes":
                body = processes
            elif request.url.path == "/api/resourcemanager/systemperf":
                body = systemperf
            else:
                return httpx.Response(404, text="Not Found")
            content = body if isinstance(body, str) else json.dumps(body)
            return httpx.Response(status_code, content=content.encode())

        transport = httpx.MockTransport(handler)
        transport.requests = requests
        return transport

    return build


@pytest.fixture
def processes_body() -> dict:
    """A process list as the device reports it."""
    return PROCESSES_BODY


@pytest.fixture
def systemperf_body() -> dict:
    """System performance counters as the device reports them."""
    return SYSTEMPERF_BODY
