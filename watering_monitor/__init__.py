"""Monitor de riego: núcleo de reconciliación de telemetría y actuación.

- StreamClient: lecturas en vivo vía MQTT
- HistoryPoller: ventana histórica del archivo HTTP
- TelemetryModel: estado reconciliado para la presentación
- ActuatorCommander: comandos de bomba fire-and-forget
"""

from .archive import HistoryPoller
from .config import ArchiveSettings, BrokerSettings, Settings, get_settings
from .domain import ConnectionState, HistoryBatch, Metric, MetricSeries, Reading, SeriesPoint
from .errors import (
    CommandRejected,
    ConfigError,
    DecodeError,
    InvalidHistoryBatch,
    InvalidStateTransition,
    TelemetryError,
    TransportError,
)
from .model import TelemetryModel, TelemetrySnapshot
from .mqtt import ActuatorCommander, CommandResult, CommandStatus, StreamClient
from .session import MonitorSession

__version__ = "0.1.0"

__all__ = [
    "HistoryPoller",
    "ArchiveSettings",
    "BrokerSettings",
    "Settings",
    "get_settings",
    "ConnectionState",
    "HistoryBatch",
    "Metric",
    "MetricSeries",
    "Reading",
    "SeriesPoint",
    "CommandRejected",
    "ConfigError",
    "DecodeError",
    "InvalidHistoryBatch",
    "InvalidStateTransition",
    "TelemetryError",
    "TransportError",
    "TelemetryModel",
    "TelemetrySnapshot",
    "ActuatorCommander",
    "CommandResult",
    "CommandStatus",
    "StreamClient",
    "MonitorSession",
]
