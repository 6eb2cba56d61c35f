"""Esquemas Pydantic y decodificación del feed del archivo histórico.

Respuesta esperada (ThingSpeak feeds.json):
{
    "channel": {...},
    "feeds": [
        {"created_at": "2026-05-01T10:00:00Z", "entry_id": 1,
         "field1": "41.5", "field2": "22.1", "field3": "63"},
        ...
    ]
}

REGLA DE ALINEACIÓN: un campo no numérico se rellena con 0 (zero-fill)
para que las tres series y las etiquetas tengan la misma longitud.
Una muestra sin timestamp válido se descarta completa.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..coercion import coerce_float
from ..domain.reading import DEFAULT_WINDOW_SIZE, HistoryBatch, SeriesPoint
from ..errors import DecodeError

logger = logging.getLogger(__name__)

ZERO_FILL = 0.0


class FeedEntry(BaseModel):
    """Una muestra del archivo. Los campos fieldN llegan como extras."""

    created_at: datetime
    entry_id: Optional[int] = None

    class Config:
        extra = "allow"

    def field_value(self, name: str) -> Any:
        return getattr(self, name, None)

    @property
    def timestamp(self) -> datetime:
        # Sin zona horaria = UTC
        if self.created_at.tzinfo is None:
            return self.created_at.replace(tzinfo=timezone.utc)
        return self.created_at


class FeedsResponse(BaseModel):
    channel: Optional[dict[str, Any]] = None
    feeds: List[Any] = Field(default_factory=list)


def format_label(timestamp: datetime) -> str:
    """Hora local corta (HH:MM) usada como etiqueta del eje."""
    return timestamp.astimezone().strftime("%H:%M")


def decode_feeds(
    data: Any,
    field_moisture: str = "field1",
    field_temperature: str = "field2",
    field_humidity: str = "field3",
    window_size: int = DEFAULT_WINDOW_SIZE,
    fetched_at: Optional[datetime] = None,
) -> HistoryBatch:
    """Convierte la respuesta JSON del archivo en un HistoryBatch alineado.

    Args:
        data: Respuesta JSON ya parseada
        field_*: Nombre del campo del feed para cada métrica
        window_size: Solo se conservan las últimas N muestras
        fetched_at: Momento de la lectura

    Returns:
        HistoryBatch con etiquetas y series de igual longitud

    Raises:
        DecodeError: si la respuesta no tiene la forma {"feeds": [...]}
    """
    if not isinstance(data, dict):
        raise DecodeError(f"Feed response must be an object, got {type(data).__name__}", source="archive")

    try:
        response = FeedsResponse(**data)
    except Exception as e:
        raise DecodeError(f"Invalid feed response: {e}", source="archive") from e

    labels: List[str] = []
    moisture: List[SeriesPoint] = []
    temperature: List[SeriesPoint] = []
    humidity: List[SeriesPoint] = []
    zero_filled = 0
    dropped = 0

    for raw in response.feeds:
        try:
            entry = FeedEntry(**raw) if isinstance(raw, dict) else None
        except Exception as e:
            logger.debug("[ARCHIVE] Invalid feed entry %r: %s", raw, e)
            entry = None
        if entry is None:
            dropped += 1
            continue

        ts = entry.timestamp
        labels.append(format_label(ts))
        for field_name, series in (
            (field_moisture, moisture),
            (field_temperature, temperature),
            (field_humidity, humidity),
        ):
            value = coerce_float(entry.field_value(field_name))
            if value is None:
                value = ZERO_FILL
                zero_filled += 1
            series.append(SeriesPoint(timestamp=ts, value=value))

    if dropped or zero_filled:
        logger.info(
            "[ARCHIVE] Decoded %d samples (dropped=%d zero_filled=%d)",
            len(labels),
            dropped,
            zero_filled,
        )

    batch = HistoryBatch.from_sequences(
        labels,
        moisture,
        temperature,
        humidity,
        fetched_at=fetched_at or datetime.now(timezone.utc),
    )
    if window_size > 0:
        batch = batch.window(window_size)
    return batch
