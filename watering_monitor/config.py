from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

# scheme -> (transporte paho, TLS, puerto por defecto)
_BROKER_SCHEMES = {
    "mqtt": ("tcp", False, 1883),
    "tcp": ("tcp", False, 1883),
    "mqtts": ("tcp", True, 8883),
    "ssl": ("tcp", True, 8883),
    "ws": ("websockets", False, 80),
    "wss": ("websockets", True, 443),
}


@dataclass(frozen=True)
class BrokerSettings:
    url: str = "mqtt://localhost:1883"
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    topic_data: str = "watering/data"
    topic_command: str = "watering/manual"
    client_id: str = "watering-monitor"
    connect_timeout: float = 5.0
    command_connect_timeout: float = 4.0
    reconnect_min_delay: int = 1
    reconnect_max_delay: int = 60
    keepalive: int = 60

    def __post_init__(self) -> None:
        # Falla al construir, no al primer connect
        BrokerEndpoint.parse(self.url)

    @property
    def endpoint(self) -> "BrokerEndpoint":
        return BrokerEndpoint.parse(self.url)


@dataclass(frozen=True)
class BrokerEndpoint:
    """URL del broker descompuesta en lo que necesita paho."""

    host: str
    port: int
    transport: str
    tls: bool
    path: str = "/mqtt"

    @classmethod
    def parse(cls, url: str) -> "BrokerEndpoint":
        parsed = urlparse(url)
        scheme = (parsed.scheme or "").lower()
        if scheme not in _BROKER_SCHEMES:
            raise ConfigError(f"Unsupported broker URL scheme '{scheme}' in {url!r}")
        if not parsed.hostname:
            raise ConfigError(f"Broker URL without host: {url!r}")

        transport, tls, default_port = _BROKER_SCHEMES[scheme]
        try:
            port = parsed.port or default_port
        except ValueError as e:
            raise ConfigError(f"Invalid broker port in {url!r}: {e}") from e

        return cls(
            host=parsed.hostname,
            port=port,
            transport=transport,
            tls=tls,
            path=parsed.path or "/mqtt",
        )


@dataclass(frozen=True)
class ArchiveSettings:
    base_url: str = "https://api.thingspeak.com"
    channel_id: int = 0
    read_key: Optional[str] = field(default=None, repr=False)
    results: int = 40
    poll_seconds: float = 60.0
    timeout: float = 10.0
    field_moisture: str = "field1"
    field_temperature: str = "field2"
    field_humidity: str = "field3"

    @property
    def enabled(self) -> bool:
        # Las lecturas del archivo son opt-in: canal 0 = deshabilitado
        return bool(self.channel_id)

    def require_channel(self) -> int:
        if not self.enabled:
            raise ConfigError("ARCHIVE_CHANNEL_ID is not set; history disabled")
        return self.channel_id

    def feeds_url(self, channel_id: Optional[int] = None) -> str:
        channel = channel_id if channel_id is not None else self.channel_id
        return f"{self.base_url.rstrip('/')}/channels/{channel}/feeds.json"


@dataclass(frozen=True)
class Settings:
    broker: BrokerSettings
    archive: ArchiveSettings


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _env_int(name: str, default: int, positive: bool = False) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if positive and value <= 0:
        raise ConfigError(f"{name} must be greater than 0, got {raw!r}")
    return value


def _env_float(name: str, default: float, positive: bool = False) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if positive and not value > 0:
        raise ConfigError(f"{name} must be greater than 0, got {raw!r}")
    return value


def get_settings(env_file: Optional[str] = None) -> Settings:
    # Carga el .env (si existe) sin pisar variables reales del entorno.
    env_file = env_file or os.getenv("WATERING_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    # Credenciales solo desde entorno / secret store, nunca en código.
    broker = BrokerSettings(
        url=os.getenv("MQTT_URL", "mqtt://localhost:1883"),
        username=os.getenv("MQTT_USERNAME") or None,
        password=os.getenv("MQTT_PASSWORD") or None,
        topic_data=os.getenv("MQTT_TOPIC_DATA", "watering/data"),
        topic_command=os.getenv("MQTT_TOPIC_COMMAND", "watering/manual"),
        client_id=os.getenv("MQTT_CLIENT_ID", "watering-monitor"),
        connect_timeout=_env_float("MQTT_CONNECT_TIMEOUT", 5.0, positive=True),
        command_connect_timeout=_env_float("MQTT_COMMAND_CONNECT_TIMEOUT", 4.0, positive=True),
        reconnect_min_delay=_env_int("MQTT_RECONNECT_MIN_DELAY", 1),
        reconnect_max_delay=_env_int("MQTT_RECONNECT_MAX_DELAY", 60),
        keepalive=_env_int("MQTT_KEEPALIVE", 60),
    )

    archive = ArchiveSettings(
        base_url=os.getenv("ARCHIVE_BASE_URL", "https://api.thingspeak.com"),
        channel_id=_env_int("ARCHIVE_CHANNEL_ID", 0),
        read_key=os.getenv("ARCHIVE_READ_KEY") or None,
        results=_env_int("ARCHIVE_RESULTS", 40, positive=True),
        poll_seconds=_env_float("ARCHIVE_POLL_SECONDS", 60.0, positive=True),
        timeout=_env_float("ARCHIVE_TIMEOUT", 10.0, positive=True),
        field_moisture=os.getenv("ARCHIVE_FIELD_MOISTURE", "field1"),
        field_temperature=os.getenv("ARCHIVE_FIELD_TEMPERATURE", "field2"),
        field_humidity=os.getenv("ARCHIVE_FIELD_HUMIDITY", "field3"),
    )

    return Settings(broker=broker, archive=archive)
