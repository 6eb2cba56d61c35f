"""Construcción de clientes paho-mqtt a partir de BrokerSettings.

Usado por el StreamClient (conexión persistente) y por el
ActuatorCommander (conexión efímera por comando).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

from ..config import BrokerSettings

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]


def build_client_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}"


def create_client(
    settings: BrokerSettings,
    client_id: Optional[str] = None,
    connect_timeout: Optional[float] = None,
) -> mqtt.Client:
    """Crea un cliente paho configurado (sin conectar).

    - clean session
    - transporte tcp o websockets según el esquema de la URL
    - TLS para mqtts:// y wss://
    - backoff exponencial de reconexión
    """
    endpoint = settings.endpoint
    client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id or build_client_id(settings.client_id),
        clean_session=True,
        protocol=mqtt.MQTTv311,
        transport=endpoint.transport,
    )

    if endpoint.transport == "websockets":
        client.ws_set_options(path=endpoint.path)

    if endpoint.tls:
        client.tls_set()

    if settings.username:
        client.username_pw_set(settings.username, settings.password)

    client.reconnect_delay_set(
        min_delay=settings.reconnect_min_delay,
        max_delay=settings.reconnect_max_delay,
    )
    client.connect_timeout = connect_timeout or settings.connect_timeout

    logger.debug(
        "[MQTT] Client created for %s:%d transport=%s tls=%s",
        endpoint.host,
        endpoint.port,
        endpoint.transport,
        endpoint.tls,
    )
    return client


def is_failure(reason_code: Any) -> bool:
    """True si el reason code de paho (ReasonCode o int) indica fallo."""
    flag = getattr(reason_code, "is_failure", None)
    if flag is not None:
        return bool(flag)
    return reason_code != 0
