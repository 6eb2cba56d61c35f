"""Sesión de monitoreo: dueña del stream, del poller y del modelo.

La sesión es la única dueña de la conexión; la presentación solo ve
`snapshot()` y `run_pump()`. Al salir del bloque `with` se cancelan
stream y poller como una unidad, en cualquier camino de salida.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .archive.poller import HistoryPoller
from .config import Settings, get_settings
from .errors import TransportError
from .model import TelemetryModel, TelemetrySnapshot
from .mqtt.commander import ActuatorCommander, CommandResult
from .mqtt.connection import ClientFactory
from .mqtt.stream_client import StreamClient

logger = logging.getLogger(__name__)


class MonitorSession:
    """Agrupa los componentes del núcleo para una sesión.

    Uso:
        with MonitorSession(get_settings()) as session:
            snap = session.snapshot()
            session.run_pump(20)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        http_session: Optional[requests.Session] = None,
    ):
        self.settings = settings or get_settings()
        self.model = TelemetryModel()
        self.stream = StreamClient(self.settings.broker, self.model, client_factory=client_factory)
        self.poller = HistoryPoller(self.settings.archive, self.model, session=http_session)
        self.commander = ActuatorCommander(self.settings.broker, client_factory=client_factory)
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info("[SESSION] Starting")

        try:
            self.stream.start()
        except TransportError as e:
            # El monitoreo sigue en modo historial
            logger.error("[SESSION] Live stream unavailable: %s", e)

        if not self.poller.schedule():
            logger.info("[SESSION] History disabled (no archive channel configured)")

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        try:
            self.poller.stop()
        finally:
            self.stream.stop()
        logger.info("[SESSION] Stopped")

    def __enter__(self) -> "MonitorSession":
        try:
            self.start()
        except BaseException:
            self.stop()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def snapshot(self) -> TelemetrySnapshot:
        return self.model.snapshot()

    def run_pump(self, duration_seconds: int, reuse_connection: bool = True) -> CommandResult:
        """Envía RUN:<segundos>; por defecto sobre la conexión viva."""
        connection = self.stream if reuse_connection else None
        return self.commander.run_for(duration_seconds, connection)

    def health_check(self) -> dict:
        stream = self.stream.health_check()
        return {
            "healthy": stream["healthy"],
            "stream": stream,
            "archive": self.poller.stats,
            "commands": self.commander.stats,
        }
