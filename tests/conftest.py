"""Fixtures compartidas: settings, modelo y clientes paho / requests falsos."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from watering_monitor.config import ArchiveSettings, BrokerSettings
from watering_monitor.model import TelemetryModel

ENV_KEYS = (
    "WATERING_ENV_FILE",
    "MQTT_URL",
    "MQTT_USERNAME",
    "MQTT_PASSWORD",
    "MQTT_TOPIC_DATA",
    "MQTT_TOPIC_COMMAND",
    "MQTT_CLIENT_ID",
    "MQTT_CONNECT_TIMEOUT",
    "MQTT_COMMAND_CONNECT_TIMEOUT",
    "MQTT_RECONNECT_MIN_DELAY",
    "MQTT_RECONNECT_MAX_DELAY",
    "MQTT_KEEPALIVE",
    "ARCHIVE_BASE_URL",
    "ARCHIVE_CHANNEL_ID",
    "ARCHIVE_READ_KEY",
    "ARCHIVE_RESULTS",
    "ARCHIVE_POLL_SECONDS",
    "ARCHIVE_TIMEOUT",
    "ARCHIVE_FIELD_MOISTURE",
    "ARCHIVE_FIELD_TEMPERATURE",
    "ARCHIVE_FIELD_HUMIDITY",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Entorno sin variables del monitor (restauradas al terminar)."""
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "placeholder")
        monkeypatch.delenv(key)
    monkeypatch.setenv("WATERING_ENV_FILE", str(tmp_path / "missing.env"))
    return monkeypatch


@pytest.fixture
def broker_settings() -> BrokerSettings:
    # Timeouts largos: los tests disparan los callbacks a mano
    return BrokerSettings(
        url="mqtt://broker.test:1883",
        username="grower",
        password="secret",
        connect_timeout=30.0,
        command_connect_timeout=0.2,
    )


@pytest.fixture
def archive_settings() -> ArchiveSettings:
    return ArchiveSettings(
        base_url="https://archive.test",
        channel_id=2989896,
        results=40,
        poll_seconds=3600.0,
    )


@pytest.fixture
def model() -> TelemetryModel:
    return TelemetryModel()


def make_fake_client() -> MagicMock:
    """Cliente paho falso que acepta connect/publish localmente."""
    client = MagicMock(name="paho_client")
    client.loop_start.return_value = mqtt.MQTT_ERR_SUCCESS
    client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
    return client


@pytest.fixture
def fake_client() -> MagicMock:
    return make_fake_client()


@pytest.fixture
def client_factory(fake_client):
    factory = MagicMock(name="client_factory", return_value=fake_client)
    return factory


def make_feeds(
    count: int,
    overrides: Optional[Dict[int, Dict[str, Any]]] = None,
    start: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Respuesta feeds.json con `count` muestras, una por minuto."""
    start = start or datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
    feeds: List[Dict[str, Any]] = []
    for i in range(count):
        entry = {
            "created_at": (start + timedelta(minutes=i)).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "entry_id": i + 1,
            "field1": str(40 + i),
            "field2": f"{20 + i * 0.1:.1f}",
            "field3": str(60 + i),
        }
        entry.update((overrides or {}).get(i, {}))
        feeds.append(entry)
    return {"channel": {"id": 2989896}, "feeds": feeds}


def make_response(data: Any = None, status_code: int = 200, json_error: Optional[Exception] = None) -> MagicMock:
    response = MagicMock(name="response")
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = data
    return response


@pytest.fixture
def http_session() -> MagicMock:
    session = MagicMock(name="requests_session")
    session.get.return_value = make_response(make_feeds(40))
    return session
