"""Configuration loading for devperf."""

import logging
from pathlib import Path

import tomli
from pydantic import BaseModel, Field, SecretStr, ValidationError

from devperf.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("devperf.toml")


class DeviceSettings(BaseModel):
    address: str = "https://127.0.0.1"
    username: str | None = None
    password: SecretStr | None = None
    verify_tls: bool | str = True  # False, True or a CA bundle path
    timeout: float = Field(default=10.0, gt=0)


class MonitorSettings(BaseModel):
    poll_rate: float = Field(default=2.0, gt=0)


class Settings(BaseModel):
    device: DeviceSettings = Field(default_factory=DeviceSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)

    def with_overrides(
        self,
        *,
        address: str | None = None,
        username: str | None = None,
        password: str | None = None,
        insecure: bool = False,
        poll_rate: float | None = None,
    ) -> "Settings":
        """Return a copy with command line values applied over the file values."""
        device_update: dict[str, object] = {}
        if address is not None:
            device_update["address"] = address
        if username is not None:
            device_update["username"] = username
        if password is not None:
            device_update["password"] = SecretStr(password)
        if insecure:
            device_update["verify_tls"] = False

        monitor = self.monitor
        if poll_rate is not None:
            monitor = monitor.model_copy(update={"poll_rate": poll_rate})

        return self.model_copy(
            update={
                "device": self.device.model_copy(update=device_update),
                "monitor": monitor,
            }
        )


def load_config(path: Path | None = None) -> Settings:
    """
    Load settings from a TOML file.

    With no path, ``devperf.toml`` in the working directory is used when it
    exists and built-in defaults otherwise.

    Raises:
        ConfigError: If an explicit path is missing, or the file is not valid
            TOML or does not match the settings schema.
    """
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.debug("No %s found, using defaults", DEFAULT_CONFIG_PATH)
            return Settings()
        path = DEFAULT_CONFIG_PATH

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path.resolve()}")

    try:
        with open(path, "rb") as f:
            data = tomli.load(f)
        return Settings.model_validate(data)
    except tomli.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e
