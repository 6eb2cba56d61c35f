"""Validadores de payloads MQTT de lecturas en vivo.

Formato esperado (topic watering/data):
{
    "moisture": 41.5,          # número o string numérico
    "temperature": "22.1",
    "humidity": 63,
    "pump_status": "OFF"       # versiones antiguas del firmware usan "pump"
}

Un campo que no se puede convertir a número queda ausente (None),
nunca en 0: la ausencia debe distinguirse de una lectura real de cero.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, root_validator, validator

from ..coercion import coerce_float, coerce_text
from ..domain.reading import Reading
from ..errors import DecodeError

logger = logging.getLogger(__name__)

KNOWN_FIELDS = ("moisture", "temperature", "humidity", "pump_status", "pump")


class LiveReadingPayload(BaseModel):
    """Schema de validación para lecturas en vivo."""

    moisture: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pump_status: Optional[str] = None

    @root_validator(pre=True)
    def accept_legacy_pump_field(cls, values):
        """Acepta `pump` cuando el firmware no envía `pump_status`."""
        if values.get("pump_status") is None and "pump" in values:
            values = dict(values)
            values["pump_status"] = values.get("pump")
        return values

    @validator("moisture", "temperature", "humidity", pre=True)
    def lenient_number(cls, v):
        return coerce_float(v)

    @validator("pump_status", pre=True)
    def pump_to_text(cls, v):
        return coerce_text(v)

    def to_reading(self) -> Reading:
        return Reading(
            moisture=self.moisture,
            temperature=self.temperature,
            humidity=self.humidity,
            pump_status=self.pump_status,
        )


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    payload: Optional[LiveReadingPayload] = None
    error: Optional[str] = None
    warnings: list[str] = None

    def __post_init__(self):
        if self.warnings is None:
            self.warnings = []


def validate_live_reading(data: Any) -> ValidationResult:
    """Valida un payload ya parseado de lectura en vivo.

    Args:
        data: Resultado de json.loads del mensaje MQTT

    Returns:
        ValidationResult con payload validado o error
    """
    if not isinstance(data, dict):
        return ValidationResult(
            valid=False,
            error=f"Payload must be a JSON object, got {type(data).__name__}",
        )

    if not any(k in data for k in KNOWN_FIELDS):
        return ValidationResult(
            valid=False,
            error="Payload has no telemetry fields",
        )

    warnings = []
    if "pump" in data and "pump_status" not in data:
        warnings.append("Used legacy 'pump' field instead of 'pump_status'")

    try:
        payload = LiveReadingPayload(**data)
    except Exception as e:
        logger.warning("[MQTT_VALIDATOR] Validation failed: %s", e)
        return ValidationResult(valid=False, error=str(e))

    for name in ("moisture", "temperature", "humidity"):
        if data.get(name) is not None and getattr(payload, name) is None:
            warnings.append(f"Non-numeric {name}: {data.get(name)!r}")

    return ValidationResult(valid=True, payload=payload, warnings=warnings)


def decode_live_message(raw: Union[bytes, str]) -> Reading:
    """Decodifica un mensaje MQTT completo a Reading.

    Raises:
        DecodeError: si el payload no es JSON o no tiene forma de lectura
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"Invalid JSON: {e}", source="mqtt") from e

    result = validate_live_reading(data)
    if not result.valid:
        raise DecodeError(result.error or "invalid payload", source="mqtt")

    for warn in result.warnings:
        logger.debug("[MQTT_VALIDATOR] Warning: %s", warn)

    return result.payload.to_reading()
