"""Device polling engine for devperf."""

import asyncio
import logging
from dataclasses import dataclass

from devperf.errors import DevicePortalError
from devperf.models import ProcessSnapshot, SystemPerformanceSnapshot
from devperf.performance import fetch_processes, fetch_system_performance
from devperf.portal import DevicePortal

logger = logging.getLogger(__name__)

MIN_POLL_RATE = 0.5


@dataclass(slots=True, frozen=True)
class DeviceSample:
    """One pull of both performance resources."""

    processes: ProcessSnapshot
    system: SystemPerformanceSnapshot


class DeviceMonitor:
    """
    Device monitor that pulls performance data from a device portal.

    Runs as an asyncio task on the caller's event loop and pushes each sample
    onto a queue. Failed pulls are logged and skipped.
    """

    def __init__(
        self,
        portal: DevicePortal,
        update_queue: "asyncio.Queue[DeviceSample]",
        poll_rate: float = 2.0,
    ) -> None:
        """
        Initialize the DeviceMonitor.

        Args:
            portal: Connection to the device.
            update_queue: Queue to push samples to.
            poll_rate: How often to poll the device (in seconds). Default 2.0s.
        """
        self._portal = portal
        self._queue = update_queue
        self._poll_rate = max(MIN_POLL_RATE, poll_rate)
        self._task: asyncio.Task[None] | None = None
        self._last_error: DevicePortalError | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(MIN_POLL_RATE, value)

    @property
    def is_running(self) -> bool:
        """Check if the polling task is running."""
        return self._task is not None and not self._task.done()

    @property
    def last_error(self) -> DevicePortalError | None:
        """Error from the most recent poll, or None if it succeeded."""
        return self._last_error

    def start(self) -> None:
        """Start the polling task. Must be called from a running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._poll_loop(), name="DeviceMonitor")

    async def stop(self) -> None:
        """Cancel the polling task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        while True:
            try:
                sample = await self.collect_sample()
            except DevicePortalError as e:
                self._last_error = e
                logger.warning("Poll of %s failed: %s", self._portal.address, e)
            else:
                self._last_error = None
                await self._queue.put(sample)

            await asyncio.sleep(self._poll_rate)

    async def collect_sample(self) -> DeviceSample:
        """Fetch both resources concurrently; no ordering between the two is implied."""
        processes, system = await asyncio.gather(
            fetch_processes(self._portal),
            fetch_system_performance(self._portal),
        )
        return DeviceSample(processes=processes, system=system)
