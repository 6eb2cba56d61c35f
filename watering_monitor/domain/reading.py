"""Modelos de dominio de telemetría.

Todos los valores son inmutables: el modelo compartido los reemplaza
completos en lugar de mutarlos, así un lector nunca ve un estado a medias.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence, Tuple

# Ventana deslizante de historial (últimas N muestras del archivo)
DEFAULT_WINDOW_SIZE = 40


class Metric(str, Enum):
    """Métricas agronómicas soportadas."""
    MOISTURE = "moisture"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"


@dataclass(frozen=True)
class Reading:
    """Lectura en vivo decodificada de un mensaje MQTT.

    Un campo None significa "sin lectura", distinto de una lectura real de 0.
    """

    moisture: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pump_status: Optional[str] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_empty(self) -> bool:
        return (
            self.moisture is None
            and self.temperature is None
            and self.humidity is None
            and self.pump_status is None
        )


@dataclass(frozen=True)
class SeriesPoint:
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class MetricSeries:
    """Serie temporal de una métrica, en orden cronológico del archivo."""

    metric: Metric
    points: Tuple[SeriesPoint, ...] = ()

    def __len__(self) -> int:
        return len(self.points)

    @property
    def values(self) -> Tuple[float, ...]:
        return tuple(p.value for p in self.points)

    @property
    def latest(self) -> Optional[SeriesPoint]:
        return self.points[-1] if self.points else None

    def window(self, size: int) -> "MetricSeries":
        """Retorna las últimas `size` muestras."""
        if size <= 0:
            return MetricSeries(self.metric)
        return MetricSeries(self.metric, self.points[-size:])


@dataclass(frozen=True)
class HistoryBatch:
    """Resultado completo de un ciclo de lectura del archivo.

    Las etiquetas y las tres series tienen siempre la misma longitud;
    las etiquetas son posicionales y compartidas por las tres métricas.
    """

    labels: Tuple[str, ...] = ()
    moisture: MetricSeries = field(default_factory=lambda: MetricSeries(Metric.MOISTURE))
    temperature: MetricSeries = field(default_factory=lambda: MetricSeries(Metric.TEMPERATURE))
    humidity: MetricSeries = field(default_factory=lambda: MetricSeries(Metric.HUMIDITY))
    fetched_at: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.labels)

    def window(self, size: int) -> "HistoryBatch":
        """Últimas `size` muestras, recortando etiquetas y series por igual."""
        labels = self.labels[-size:] if size > 0 else ()
        return HistoryBatch(
            labels=labels,
            moisture=self.moisture.window(size),
            temperature=self.temperature.window(size),
            humidity=self.humidity.window(size),
            fetched_at=self.fetched_at,
        )

    @property
    def lengths(self) -> dict[str, int]:
        return {
            "labels": len(self.labels),
            "moisture": len(self.moisture),
            "temperature": len(self.temperature),
            "humidity": len(self.humidity),
        }

    @property
    def is_aligned(self) -> bool:
        return len(set(self.lengths.values())) == 1

    @classmethod
    def from_sequences(
        cls,
        labels: Sequence[str],
        moisture: Sequence[SeriesPoint],
        temperature: Sequence[SeriesPoint],
        humidity: Sequence[SeriesPoint],
        fetched_at: Optional[datetime] = None,
    ) -> "HistoryBatch":
        return cls(
            labels=tuple(labels),
            moisture=MetricSeries(Metric.MOISTURE, tuple(moisture)),
            temperature=MetricSeries(Metric.TEMPERATURE, tuple(temperature)),
            humidity=MetricSeries(Metric.HUMIDITY, tuple(humidity)),
            fetched_at=fetched_at,
        )
