"""Estadísticas del stream MQTT."""

from __future__ import annotations


class StreamStats:
    """Contadores del StreamClient."""

    def __init__(self):
        self.received = 0
        self.decoded = 0
        self.failed = 0
        self.handler_errors = 0
        self.reconnects = 0
        self.last_message_at: float = 0

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} decoded={self.decoded} "
            f"failed={self.failed} reconnects={self.reconnects}"
        )

    def to_dict(self) -> dict:
        return {
            "received": self.received,
            "decoded": self.decoded,
            "failed": self.failed,
            "handler_errors": self.handler_errors,
            "reconnects": self.reconnects,
            "last_message_at": self.last_message_at,
        }
