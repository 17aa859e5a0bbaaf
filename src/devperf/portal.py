"""HTTP transport for the Windows Device Portal REST API."""

import logging
import ssl
from collections.abc import Callable
from types import TracebackType
from typing import TypeVar

import httpx

from devperf.config import DeviceSettings
from devperf.errors import TransportError
from devperf.models import ProcessSnapshot, SystemPerformanceSnapshot
from devperf.performance import fetch_processes, fetch_system_performance

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = ["DevicePortal"]


class DevicePortal:
    """Authenticated async connection to one device."""

    def __init__(
        self,
        settings: DeviceSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the portal.

        Args:
            settings: Address, credentials and TLS options of the device.
            transport: Optional httpx transport, used to fake the device in tests.
        """
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def address(self) -> str:
        return self.settings.address

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is open."""
        return self._client is not None

    async def connect(self) -> None:
        """Open the HTTP client. Calling it twice is a no-op."""
        if self._client is not None:
            return

        auth = None
        if self.settings.username is not None:
            password = self.settings.password.get_secret_value() if self.settings.password else ""
            auth = httpx.BasicAuth(self.settings.username, password)

        self._client = httpx.AsyncClient(
            base_url=self.settings.address,
            auth=auth,
            verify=self._ssl_verify(),
            timeout=self.settings.timeout,
            transport=self._transport,
        )
        logger.debug("Connected to device portal at %s", self.address)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "DevicePortal":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _ssl_verify(self) -> ssl.SSLContext | bool:
        verify = self.settings.verify_tls
        if isinstance(verify, str):
            return ssl.create_default_context(cafile=verify)
        return verify

    async def get(self, path: str, parse: Callable[[bytes], T]) -> T:
        """
        Issue a GET to a resource path and parse the response body.

        Args:
            path: Resource path relative to the device address.
            parse: Turns the raw body into the target type.

        Raises:
            TransportError: On connectivity, authentication or HTTP failures.
            DeserializationError: If ``parse`` rejects the body.
        """
        if not self._client:
            raise TransportError("Portal not connected. Call connect() first.")

        logger.debug("GET %s%s", self.address, path)
        try:
            resp = await self._client.get(path)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code in (401, 403):
                message = f"Authentication failed for {self.address}: {status_code}"
            else:
                message = f"Request to {path} failed: {status_code} {e.response.reason_phrase}"
            logger.warning(message)
            raise TransportError(message, status_code=status_code, detail=e.response.text) from e
        except httpx.TimeoutException as e:
            logger.warning("Request to %s timed out", path)
            raise TransportError(f"Request to {path} timed out") from e
        except httpx.HTTPError as e:
            logger.warning("Request to %s failed: %s", path, e)
            raise TransportError(f"Cannot reach device at {self.address}: {e}") from e

        return parse(resp.content)

    async def get_running_processes(self) -> ProcessSnapshot:
        """Get the collection of processes running on the device."""
        return await fetch_processes(self)

    async def get_system_perf(self) -> SystemPerformanceSnapshot:
        """Get system performance information such as memory usage."""
        return await fetch_system_performance(self)
