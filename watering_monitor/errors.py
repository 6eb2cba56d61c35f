"""Taxonomía de errores del núcleo de telemetría.

- DecodeError: mensaje MQTT o respuesta de archivo mal formada (se descarta y se loguea)
- TransportError: caída de conexión, DNS, timeout (reintento, nunca crash)
- ConfigError: configuración ausente o inválida (funcionalidad deshabilitada)
- CommandRejected: publicación sin conexión activa (se informa al llamador)
- InvalidHistoryBatch: series de historial desalineadas (error de programación)
- InvalidStateTransition: transición fuera de la máquina de estados
"""

from __future__ import annotations


class TelemetryError(Exception):
    """Base de todos los errores del núcleo."""


class DecodeError(TelemetryError):
    """Payload que no se puede decodificar."""

    def __init__(self, message: str, source: str = "unknown"):
        self.source = source
        super().__init__(f"[{source}] {message}")


class TransportError(TelemetryError):
    """Fallo de red o de transporte."""


class ConfigError(TelemetryError):
    """Configuración ausente o inválida."""


class CommandRejected(TelemetryError):
    """Comando rechazado porque la conexión no está en CONNECTED."""

    def __init__(self, topic: str, state: str):
        self.topic = topic
        self.state = state
        super().__init__(f"Publish to '{topic}' rejected: connection is {state}")


class InvalidHistoryBatch(TelemetryError, ValueError):
    """Las secuencias del historial no tienen la misma longitud."""

    def __init__(self, lengths: dict[str, int]):
        self.lengths = dict(lengths)
        detail = ", ".join(f"{k}={v}" for k, v in lengths.items())
        super().__init__(f"History sequences must have equal length ({detail})")


class InvalidStateTransition(TelemetryError, AssertionError):
    """Transición de estado de conexión no permitida."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Illegal connection state transition {current} -> {target}")
