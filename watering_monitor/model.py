"""Modelo de telemetría compartido.

FUENTE ÚNICA DE VERDAD para la presentación. Lo mutan dos hilos:
- StreamClient (lectura en vivo y estado de conexión)
- HistoryPoller (historial)

Disciplina copy-on-write: cada mutación reemplaza un valor inmutable bajo
el lock y `snapshot()` devuelve esos mismos valores, sin copias mutables.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from .domain.connection_state import ConnectionState, is_allowed
from .domain.reading import HistoryBatch, Reading, SeriesPoint
from .errors import InvalidHistoryBatch, InvalidStateTransition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Vista inmutable del modelo para la capa de presentación."""

    live: Reading
    history: HistoryBatch
    connection_state: ConnectionState
    live_updated_at: Optional[datetime] = None
    history_updated_at: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        """True si el stream está conectado (banner "live" vs "history mode")."""
        return self.connection_state == ConnectionState.CONNECTED

    @property
    def has_history(self) -> bool:
        return len(self.history) > 0


class TelemetryModel:
    """Contenedor thread-safe del último estado reconciliado."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._live = Reading()
        self._history = HistoryBatch()
        self._state = ConnectionState.DISCONNECTED
        self._live_updated_at: Optional[datetime] = None
        self._history_updated_at: Optional[datetime] = None

    def apply_live_reading(self, reading: Reading) -> None:
        """Reemplaza la lectura en vivo completa."""
        with self._lock:
            self._live = reading
            self._live_updated_at = datetime.now(timezone.utc)

    def apply_history(
        self,
        labels: Sequence[str],
        moisture: Sequence[SeriesPoint],
        temperature: Sequence[SeriesPoint],
        humidity: Sequence[SeriesPoint],
    ) -> None:
        """Reemplaza el historial completo.

        Raises:
            InvalidHistoryBatch: si las cuatro secuencias no tienen la misma
                longitud; el historial previo queda intacto
        """
        batch = HistoryBatch.from_sequences(
            labels,
            moisture,
            temperature,
            humidity,
            fetched_at=datetime.now(timezone.utc),
        )
        self.apply_history_batch(batch)

    def apply_history_batch(self, batch: HistoryBatch) -> None:
        if not batch.is_aligned:
            logger.error("[MODEL] Rejected misaligned history batch: %s", batch.lengths)
            raise InvalidHistoryBatch(batch.lengths)

        with self._lock:
            self._history = batch
            self._history_updated_at = batch.fetched_at or datetime.now(timezone.utc)

        logger.debug("[MODEL] History replaced (%d points)", len(batch))

    def set_connection_state(self, state: ConnectionState) -> None:
        """Aplica una transición de estado de conexión.

        Raises:
            InvalidStateTransition: si la arista no existe en la máquina de
                estados del stream
        """
        with self._lock:
            current = self._state
            if current == state == ConnectionState.DISCONNECTED:
                return
            if not is_allowed(current, state):
                raise InvalidStateTransition(current.value, state.value)
            self._state = state

    def on_state_change(self, old: ConnectionState, new: ConnectionState) -> None:
        """Listener compatible con ConnectionStateMachine."""
        self.set_connection_state(new)

    @property
    def connection_state(self) -> ConnectionState:
        with self._lock:
            return self._state

    def snapshot(self) -> TelemetrySnapshot:
        with self._lock:
            return TelemetrySnapshot(
                live=self._live,
                history=self._history,
                connection_state=self._state,
                live_updated_at=self._live_updated_at,
                history_updated_at=self._history_updated_at,
            )
