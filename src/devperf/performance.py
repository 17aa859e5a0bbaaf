"""Performance data fetch operations."""

from typing import TYPE_CHECKING

from devperf.models import (
    ProcessSnapshot,
    SystemPerformanceSnapshot,
    parse_processes,
    parse_system_performance,
)

if TYPE_CHECKING:
    from devperf.portal import DevicePortal

# Resource paths are fixed by the device firmware
RUNNING_PROCESS_API = "api/resourcemanager/processes"
SYSTEM_PERF_API = "api/resourcemanager/systemperf"


async def fetch_processes(portal: "DevicePortal") -> ProcessSnapshot:
    """
    Fetch the processes currently running on the device.

    Raises:
        TransportError: If the request fails.
        DeserializationError: If the body is not a process list.
    """
    return await portal.get(RUNNING_PROCESS_API, parse_processes)


async def fetch_system_performance(portal: "DevicePortal") -> SystemPerformanceSnapshot:
    """
    Fetch aggregate system counters (memory, CPU, IO, GPU, network).

    Raises:
        TransportError: If the request fails.
        DeserializationError: If the body is not a system performance document.
    """
    return await portal.get(SYSTEM_PERF_API, parse_system_performance)
