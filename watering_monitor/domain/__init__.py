"""Modelos de dominio: lecturas, series y estado de conexión."""

from .connection_state import (
    ALLOWED_TRANSITIONS,
    ConnectionState,
    ConnectionStateMachine,
    is_allowed,
)
from .reading import (
    DEFAULT_WINDOW_SIZE,
    HistoryBatch,
    Metric,
    MetricSeries,
    Reading,
    SeriesPoint,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ConnectionState",
    "ConnectionStateMachine",
    "is_allowed",
    "DEFAULT_WINDOW_SIZE",
    "HistoryBatch",
    "Metric",
    "MetricSeries",
    "Reading",
    "SeriesPoint",
]
