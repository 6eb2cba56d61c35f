"""Cliente MQTT del monitor de riego.

Estructura modular:
- connection.py: construcción de clientes paho (TLS, websockets, backoff)
- validators.py: validación y decodificación de lecturas en vivo
- stream_client.py: stream persistente con máquina de estados
- commander.py: comandos de bomba fire-and-forget
- stats.py: contadores del stream
"""

from .commander import (
    ALLOWED_DURATIONS,
    ActuatorCommander,
    CommandResult,
    CommandStatus,
    build_run_payload,
)
from .connection import create_client
from .stream_client import StreamClient
from .validators import LiveReadingPayload, decode_live_message, validate_live_reading

__all__ = [
    "ALLOWED_DURATIONS",
    "ActuatorCommander",
    "CommandResult",
    "CommandStatus",
    "build_run_payload",
    "create_client",
    "StreamClient",
    "LiveReadingPayload",
    "decode_live_message",
    "validate_live_reading",
]
