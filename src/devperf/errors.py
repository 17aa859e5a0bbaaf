"""Exceptions raised by devperf."""


class DevicePortalError(Exception):
    """Base class for device portal failures."""


class TransportError(DevicePortalError):
    """Request failed: connectivity, authentication or HTTP status."""

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail or message


class DeserializationError(DevicePortalError):
    """Response body does not match the expected shape."""


class ConfigError(Exception):
    """Configuration file is missing or invalid."""
