"""Cliente MQTT persistente para el stream de lecturas en vivo.

Usa paho-mqtt con su hilo de red (loop_start) y reconexión automática
con backoff exponencial. El estado de conexión vive en una
ConnectionStateMachine; el TelemetryModel (u otro observador) se
suscribe a sus transiciones.

Flujo:
  start() -> CONNECTING -> CONNACK -> CONNECTED + subscribe(watering/data)
  caída / error -> ERRORED -> reintento de paho -> CONNECTING -> ...
  stop() -> DISCONNECTED (en cualquier estado)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, List, Optional

import paho.mqtt.client as mqtt

from ..config import BrokerSettings
from ..domain.connection_state import ConnectionState, ConnectionStateMachine, StateListener
from ..domain.reading import Reading
from ..errors import CommandRejected, DecodeError, TransportError
from ..model import TelemetryModel
from .connection import ClientFactory, create_client, is_failure
from .stats import StreamStats
from .validators import decode_live_message

logger = logging.getLogger(__name__)

ReadingHandler = Callable[[Reading], None]


class StreamClient:
    """Suscripción única a un topic del broker con estado observable.

    Uso:
        client = StreamClient(settings.broker, model)
        client.on_message(lambda reading: print(reading))
        client.start()
        ...
        client.stop()
    """

    def __init__(
        self,
        settings: BrokerSettings,
        model: Optional[TelemetryModel] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._settings = settings
        self._client_factory = client_factory or create_client
        self._client: Optional[Any] = None
        self._stopping = False
        self._lock = threading.Lock()
        self._watchdog: Optional[threading.Timer] = None

        self._fsm = ConnectionStateMachine("stream")
        self._handlers: List[ReadingHandler] = []
        self._stats = StreamStats()

        if model is not None:
            self._fsm.add_listener(model.on_state_change)
            self._handlers.append(model.apply_live_reading)

    # ------------------------------------------------------------------
    # Registro de observadores
    # ------------------------------------------------------------------

    def on_message(self, handler: ReadingHandler) -> None:
        """Registra un callback llamado una vez por lectura decodificada."""
        self._handlers.append(handler)

    def on_state_change(self, listener: StateListener) -> None:
        self._fsm.add_listener(listener)

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Abre la conexión de forma asíncrona; no bloquea al llamador.

        Raises:
            TransportError: si el hilo de red de paho no pudo arrancar
        """
        with self._lock:
            if self._client is not None:
                return

            endpoint = self._settings.endpoint
            self._stopping = False
            self._client = self._client_factory(
                self._settings,
                connect_timeout=self._settings.connect_timeout,
            )
            self._client.on_pre_connect = self._on_pre_connect
            self._client.on_connect = self._on_connect
            self._client.on_connect_fail = self._on_connect_fail
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            self._fsm.begin_connect()
            self._arm_watchdog()

            logger.info("[MQTT] Connecting to %s:%d", endpoint.host, endpoint.port)
            try:
                self._client.connect_async(
                    endpoint.host,
                    endpoint.port,
                    keepalive=self._settings.keepalive,
                )
                rc = self._client.loop_start()
            except (OSError, ValueError) as e:
                self._abort_start()
                logger.error("[MQTT] Start failed: %s", e)
                raise TransportError(f"MQTT start failed: {e}") from e

            if rc not in (None, mqtt.MQTT_ERR_SUCCESS):
                self._abort_start()
                raise TransportError(f"MQTT network loop did not start (rc={rc})")

    def _abort_start(self) -> None:
        # Sin cliente vivo: un start() posterior vuelve a intentarlo
        self._cancel_watchdog()
        self._client = None
        self._fsm.transition_if(ConnectionState.CONNECTING, ConnectionState.ERRORED)

    def stop(self) -> None:
        """Cierra la conexión en cualquier estado. Idempotente."""
        with self._lock:
            self._stopping = True
            self._cancel_watchdog()
            client, self._client = self._client, None

        try:
            if client is not None:
                try:
                    client.disconnect()
                    client.loop_stop()
                except Exception as e:
                    logger.warning("[MQTT] Error stopping: %s", e)
        finally:
            self._fsm.teardown()

        if client is not None:
            logger.info("[MQTT] Stopped. %s", self._stats)

    def __enter__(self) -> "StreamClient":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Publicación
    # ------------------------------------------------------------------

    def publish(self, topic: str, payload: str, qos: int = 0) -> Any:
        """Envío fire-and-forget sobre la conexión viva.

        Solo válido en CONNECTED; no hay cola de comandos pendientes.

        Raises:
            CommandRejected: si la conexión no está en CONNECTED
            TransportError: si paho no aceptó el mensaje localmente
        """
        client = self._client
        state = self._fsm.state
        if client is None or state != ConnectionState.CONNECTED:
            raise CommandRejected(topic, state.value)

        info = client.publish(topic, payload, qos=qos, retain=False)
        if info.rc == mqtt.MQTT_ERR_NO_CONN:
            raise CommandRejected(topic, "no_connection")
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Publish to '{topic}' failed (rc={info.rc})")

        logger.debug("[MQTT] Published %r to %s", payload, topic)
        return info

    # ------------------------------------------------------------------
    # Callbacks de paho (hilo de red)
    # ------------------------------------------------------------------

    def _on_pre_connect(self, client, userdata):
        """Cada reintento automático de paho pasa por aquí."""
        if self._stopping:
            return
        if self._fsm.transition_if(ConnectionState.ERRORED, ConnectionState.CONNECTING):
            self._stats.reconnects += 1
            logger.info("[MQTT] Reconnecting (attempt %d)", self._stats.reconnects)
            self._arm_watchdog()

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if self._stopping:
            return

        if is_failure(reason_code):
            logger.error("[MQTT] Connection refused: rc=%s", reason_code)
            self._fsm.transition_if(ConnectionState.CONNECTING, ConnectionState.ERRORED)
            return

        self._cancel_watchdog()
        if not self._fsm.accept_ack():
            return

        logger.info("[MQTT] Connected to broker")
        client.subscribe(self._settings.topic_data, qos=0)
        logger.info("[MQTT] Subscribed to %s", self._settings.topic_data)

    def _on_connect_fail(self, client, userdata):
        if self._stopping:
            return
        logger.warning("[MQTT] Connection attempt failed")
        self._fsm.transition_if(ConnectionState.CONNECTING, ConnectionState.ERRORED)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        if self._stopping:
            return
        logger.warning("[MQTT] Disconnected (rc=%s)", reason_code)
        self._cancel_watchdog()
        state = self._fsm.state
        if state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            self._fsm.mark_errored()

    def _on_message(self, client, userdata, msg):
        self._stats.received += 1
        self._stats.last_message_at = time.time()

        try:
            reading = decode_live_message(msg.payload)
        except DecodeError as e:
            self._stats.failed += 1
            logger.warning("[MQTT] Dropped message on %s: %s", msg.topic, e)
            return

        self._stats.decoded += 1
        for handler in list(self._handlers):
            try:
                handler(reading)
            except Exception as e:
                self._stats.handler_errors += 1
                logger.exception("[MQTT] Message handler error: %s", e)

    # ------------------------------------------------------------------
    # Timeout de conexión
    # ------------------------------------------------------------------

    def _arm_watchdog(self) -> None:
        self._cancel_watchdog()
        timer = threading.Timer(self._settings.connect_timeout, self._on_connect_timeout)
        timer.daemon = True
        self._watchdog = timer
        timer.start()

    def _cancel_watchdog(self) -> None:
        timer, self._watchdog = self._watchdog, None
        if timer is not None:
            timer.cancel()

    def _on_connect_timeout(self) -> None:
        if self._stopping:
            return
        if self._fsm.transition_if(ConnectionState.CONNECTING, ConnectionState.ERRORED):
            logger.error(
                "[MQTT] Connection timeout after %.1fs",
                self._settings.connect_timeout,
            )

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._fsm.state

    @property
    def is_connected(self) -> bool:
        return self._fsm.is_connected

    @property
    def is_running(self) -> bool:
        return self._client is not None

    @property
    def stats(self) -> dict:
        endpoint = self._settings.endpoint
        return {
            "running": self.is_running,
            "state": self.state.value,
            "broker": f"{endpoint.host}:{endpoint.port}",
            "topic": self._settings.topic_data,
            **self._stats.to_dict(),
        }

    def health_check(self) -> dict:
        last = self._stats.last_message_at
        return {
            "healthy": self.is_running and self.is_connected,
            "running": self.is_running,
            "connected": self.is_connected,
            "state": self.state.value,
            "messages_decoded": self._stats.decoded,
            "messages_failed": self._stats.failed,
            "reconnects": self._stats.reconnects,
            "last_message_age_seconds": time.time() - last if last > 0 else None,
        }
