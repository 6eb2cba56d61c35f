"""Lector periódico del archivo histórico (ThingSpeak).

Cada ciclo:
1. GET /channels/{id}/feeds.json?results=40[&api_key=...]
2. Decodifica a etiquetas + tres series alineadas (zero-fill)
3. Reemplaza el historial del TelemetryModel de forma atómica

Los fallos de transporte o de parseo se loguean y conservan el
historial anterior; nunca se propagan al llamador.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional

import requests

from ..config import ArchiveSettings
from ..domain.reading import HistoryBatch
from ..errors import ConfigError, DecodeError, TransportError
from ..model import TelemetryModel
from .schemas import decode_feeds

logger = logging.getLogger(__name__)

# Un gráfico de un solo punto no muestra tendencia
MIN_SAMPLES = 2


class PollerStats:
    """Estadísticas del poller."""

    def __init__(self):
        self.fetches = 0
        self.applied = 0
        self.failed = 0
        self.skipped = 0
        self.last_success_at: float = 0

    def to_dict(self) -> dict:
        return {
            "fetches": self.fetches,
            "applied": self.applied,
            "failed": self.failed,
            "skipped": self.skipped,
            "last_success_at": self.last_success_at,
        }


class HistoryPoller:
    """Lectura periódica del archivo con reemplazo atómico del historial.

    Uso:
        poller = HistoryPoller(settings.archive, model)
        poller.schedule()          # fetch inmediato + cada 60 s
        ...
        poller.stop()
    """

    def __init__(
        self,
        settings: ArchiveSettings,
        model: TelemetryModel,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings
        self._model = model
        self._owns_session = session is None
        self._session = session or requests.Session()

        self._fetch_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._interval = settings.poll_seconds
        self._stats = PollerStats()

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------

    def fetch_once(
        self,
        channel_id: Optional[int] = None,
        api_key: Optional[str] = None,
        window_size: Optional[int] = None,
    ) -> Optional[HistoryBatch]:
        """Lee la ventana más reciente y la aplica al modelo.

        Returns:
            El HistoryBatch aplicado, o None si no se aplicó nada
            (canal sin configurar, fetch en curso, error o lote corto)
        """
        channel = channel_id if channel_id is not None else self._settings.channel_id
        if not channel:
            return None

        if not self._fetch_lock.acquire(blocking=False):
            self._stats.skipped += 1
            logger.info("[ARCHIVE] Fetch already in progress, skipping")
            return None

        try:
            self._stats.fetches += 1
            try:
                batch = self._fetch(
                    channel,
                    api_key if api_key is not None else self._settings.read_key,
                    window_size if window_size is not None else self._settings.results,
                )
            except (TransportError, DecodeError) as e:
                self._stats.failed += 1
                logger.warning("[ARCHIVE] Fetch failed for channel %s: %s", channel, e)
                return None

            if len(batch) < MIN_SAMPLES:
                self._stats.skipped += 1
                logger.info(
                    "[ARCHIVE] Only %d samples for channel %s, keeping previous history",
                    len(batch),
                    channel,
                )
                return None

            self._model.apply_history_batch(batch)
            self._stats.applied += 1
            self._stats.last_success_at = time.time()
            logger.debug("[ARCHIVE] Applied %d samples from channel %s", len(batch), channel)
            return batch
        finally:
            self._fetch_lock.release()

    def _fetch(self, channel_id: int, api_key: Optional[str], window_size: int) -> HistoryBatch:
        url = self._settings.feeds_url(channel_id)
        params = {"results": window_size}
        if api_key:
            params["api_key"] = api_key

        try:
            response = self._session.get(url, params=params, timeout=self._settings.timeout)
        except requests.RequestException as e:
            raise TransportError(f"GET {url} failed: {e}") from e

        if not response.ok:
            raise TransportError(f"GET {url} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from archive: {e}", source="archive") from e

        return decode_feeds(
            data,
            field_moisture=self._settings.field_moisture,
            field_temperature=self._settings.field_temperature,
            field_humidity=self._settings.field_humidity,
            window_size=window_size,
            fetched_at=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Programación periódica
    # ------------------------------------------------------------------

    def schedule(self, interval: Optional[float] = None) -> bool:
        """Lanza el fetch inmediato y luego a ritmo fijo.

        Returns:
            False si el historial está deshabilitado (sin canal)
        """
        try:
            self._settings.require_channel()
        except ConfigError as e:
            logger.warning("[ARCHIVE] %s", e)
            return False

        if self._thread is not None and self._thread.is_alive():
            return True

        if interval is not None:
            self._interval = interval

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="history-poller",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "[ARCHIVE] Polling channel %s every %.0fs",
            self._settings.channel_id,
            self._interval,
        )
        return True

    start = schedule

    def _run(self) -> None:
        next_run = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self.fetch_once()
            except Exception as e:
                logger.exception("[ARCHIVE] Poll cycle error: %s", e)

            # Ritmo fijo: el intervalo no depende de la duración del fetch
            next_run += self._interval
            delay = next_run - time.monotonic()
            if delay < 0:
                next_run = time.monotonic()
                delay = 0
            self._stop_event.wait(delay)

    def stop(self, timeout: float = 5.0) -> None:
        """Cancela el ciclo periódico y libera la sesión HTTP."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("[ARCHIVE] Poller thread did not stop within %.1fs", timeout)

        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "HistoryPoller":
        self.schedule()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "running": self.is_running,
            "channel_id": self._settings.channel_id,
            "interval_seconds": self._interval,
            **self._stats.to_dict(),
        }
