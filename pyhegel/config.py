"""Connection settings for one amplifier."""

from dataclasses import asdict, dataclass
from typing import Any, Dict

import voluptuous as vol

from pyhegel.dispatcher import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_DELAY
from pyhegel.protocol import BANNER_PREFIX, DEFAULT_MODEL, DEFAULT_PORT, DEFAULT_TIMEOUT

CONF_HOST = "host"
CONF_PORT = "port"
CONF_MODEL = "model"
CONF_NAME = "name"
CONF_SERIAL_NUMBER = "serial_number"
CONF_TIMEOUT = "timeout"
CONF_MAX_ATTEMPTS = "max_attempts"
CONF_RETRY_DELAY = "retry_delay"
CONF_ENABLE_HEARTBEAT = "enable_heartbeat"
CONF_HEARTBEAT_INTERVAL = "heartbeat_interval"

DEFAULT_NAME = "Hegel"
DEFAULT_SERIAL_NUMBER = "unknown"
DEFAULT_HEARTBEAT_INTERVAL = 10.0

_positive_float = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

CONFIG_SCHEMA = vol.Schema({
    vol.Required(CONF_HOST): vol.All(str, vol.Length(min=1)),
    vol.Optional(CONF_PORT, default=DEFAULT_PORT): vol.All(vol.Coerce(int), vol.Range(min=1, max=65535)),
    vol.Optional(CONF_MODEL, default=DEFAULT_MODEL): vol.All(str, vol.Length(min=1)),
    vol.Optional(CONF_NAME, default=DEFAULT_NAME): str,
    vol.Optional(CONF_SERIAL_NUMBER, default=DEFAULT_SERIAL_NUMBER): str,
    vol.Optional(CONF_TIMEOUT, default=DEFAULT_TIMEOUT): _positive_float,
    vol.Optional(CONF_MAX_ATTEMPTS, default=DEFAULT_MAX_ATTEMPTS): vol.All(vol.Coerce(int), vol.Range(min=1)),
    vol.Optional(CONF_RETRY_DELAY, default=DEFAULT_RETRY_DELAY): vol.All(vol.Coerce(float), vol.Range(min=0)),
    vol.Optional(CONF_ENABLE_HEARTBEAT, default=False): vol.Boolean(),
    vol.Optional(CONF_HEARTBEAT_INTERVAL, default=DEFAULT_HEARTBEAT_INTERVAL): _positive_float,
})


@dataclass(frozen=True)
class AmplifierConfig:
    host: str
    port: int = DEFAULT_PORT
    model: str = DEFAULT_MODEL
    name: str = DEFAULT_NAME
    serial_number: str = DEFAULT_SERIAL_NUMBER
    timeout: float = DEFAULT_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    enable_heartbeat: bool = False
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL

    def __post_init__(self):
        if not self.host:
            raise ValueError("host is required")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AmplifierConfig":
        """Validate a raw mapping (e.g. parsed JSON/YAML) and build a config.

        Raises voluptuous.Invalid on bad or missing values.
        """
        return cls(**CONFIG_SCHEMA(dict(data)))

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def readiness_banner(self) -> str:
        """Text the amplifier prints once it accepts commands."""
        return f"{BANNER_PREFIX}{self.model}"
