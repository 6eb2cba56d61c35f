"""Coerción numérica tolerante para payloads de sensores.

Los firmwares publican a veces números y a veces strings ("41.5").
"""

from __future__ import annotations

import math
from typing import Any, Optional


def coerce_float(value: Any) -> Optional[float]:
    """Convierte un valor numérico o string numérico a float.

    Returns:
        float finito, o None si el valor no es un número válido
        (None, bool, NaN, infinito, texto no numérico)
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, (int, float)):
        return None

    # Un entero JSON enorme no cabe en un float
    try:
        result = float(value)
    except (OverflowError, ValueError):
        return None

    if math.isnan(result) or math.isinf(result):
        return None
    return result


def coerce_text(value: Any) -> Optional[str]:
    """Convierte el estado de la bomba a string (acepta enums y números)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    enum_value = getattr(value, "value", None)
    if enum_value is not None:
        return str(enum_value)
    return str(value)
