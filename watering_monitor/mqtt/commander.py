"""Comandos manuales de riego (bomba) vía MQTT.

Fire-and-forget: el comando se considera SENT cuando el transporte local
lo acepta. No se espera confirmación del actuador.

Payload: texto plano "RUN:<segundos>" al topic de comandos (watering/manual).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import paho.mqtt.client as mqtt

from ..config import BrokerSettings
from ..errors import CommandRejected, TransportError
from .connection import ClientFactory, build_client_id, create_client, is_failure
from .stream_client import StreamClient

logger = logging.getLogger(__name__)

ALLOWED_DURATIONS = (5, 10, 20, 30, 60)


class CommandStatus(str, Enum):
    SENT = "sent"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CommandResult:
    """Resultado local de un comando (no confirma ejecución del actuador)."""

    status: CommandStatus
    topic: str
    payload: str
    reason: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status == CommandStatus.SENT


def build_run_payload(duration_seconds: int) -> str:
    return f"RUN:{int(duration_seconds)}"


class ActuatorCommander:
    """Traduce una duración elegida por el usuario a un comando de bomba.

    Con un StreamClient reutiliza la conexión viva; sin él abre una
    conexión efímera (connect timeout corto) que se cierra tras publicar.
    """

    def __init__(
        self,
        settings: BrokerSettings,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._settings = settings
        self._client_factory = client_factory or create_client
        self._sent = 0
        self._rejected = 0

    def run_for(
        self,
        duration_seconds: int,
        connection: Optional[StreamClient] = None,
    ) -> CommandResult:
        """Publica RUN:<segundos> en el topic de comandos.

        Args:
            duration_seconds: Uno de ALLOWED_DURATIONS
            connection: StreamClient vivo a reutilizar; None abre una
                conexión efímera

        Returns:
            CommandResult SENT o REJECTED (nunca lanza por desconexión)

        Raises:
            ValueError: si la duración no está en ALLOWED_DURATIONS
        """
        if isinstance(duration_seconds, bool) or duration_seconds not in ALLOWED_DURATIONS:
            raise ValueError(
                f"duration_seconds must be one of {ALLOWED_DURATIONS}, got {duration_seconds!r}"
            )

        topic = self._settings.topic_command
        payload = build_run_payload(duration_seconds)

        try:
            if connection is not None:
                connection.publish(topic, payload)
            else:
                self._publish_ephemeral(topic, payload)
        except (CommandRejected, TransportError) as e:
            self._rejected += 1
            logger.warning("[COMMAND] %s not sent: %s", payload, e)
            return CommandResult(CommandStatus.REJECTED, topic, payload, reason=str(e))

        self._sent += 1
        logger.info("[COMMAND] %s published to %s", payload, topic)
        return CommandResult(CommandStatus.SENT, topic, payload)

    def _publish_ephemeral(self, topic: str, payload: str) -> None:
        """Conexión de un solo uso: connect, publish, disconnect.

        Raises:
            CommandRejected: si no se conecta dentro del timeout
            TransportError: si paho no acepta el mensaje
        """
        timeout = self._settings.command_connect_timeout
        endpoint = self._settings.endpoint
        connected = threading.Event()
        refused: dict[str, Any] = {}

        def on_connect(client, userdata, flags, reason_code, properties=None):
            if is_failure(reason_code):
                refused["rc"] = reason_code
            connected.set()

        client = self._client_factory(
            self._settings,
            client_id=build_client_id(f"{self._settings.client_id}-cmd"),
            connect_timeout=timeout,
        )
        client.on_connect = on_connect
        # Sin reintentos: un fallo de conexión rechaza el comando
        client.reconnect_delay_set(min_delay=timeout, max_delay=timeout)

        try:
            client.connect_async(endpoint.host, endpoint.port, keepalive=self._settings.keepalive)
            client.loop_start()

            if not connected.wait(timeout) or refused:
                state = f"refused rc={refused['rc']}" if refused else "connect_timeout"
                raise CommandRejected(topic, state)

            info = client.publish(topic, payload, qos=0, retain=False)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                raise TransportError(f"Publish to '{topic}' failed (rc={info.rc})")
            # Esperar a que el paquete salga del socket antes de cerrar
            info.wait_for_publish(timeout)
        except (OSError, ValueError, RuntimeError) as e:
            raise TransportError(f"Ephemeral command connection failed: {e}") from e
        finally:
            try:
                client.disconnect()
                client.loop_stop()
            except Exception as e:
                logger.warning("[COMMAND] Error closing command connection: %s", e)

    @property
    def stats(self) -> dict:
        return {
            "sent": self._sent,
            "rejected": self._rejected,
            "topic": self._settings.topic_command,
            "allowed_durations": list(ALLOWED_DURATIONS),
        }
