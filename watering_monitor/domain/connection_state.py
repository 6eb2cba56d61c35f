"""Máquina de estados de la conexión MQTT.

Transiciones permitidas:

    DISCONNECTED --connect()--------> CONNECTING
    CONNECTING   --ack del broker---> CONNECTED
    CONNECTING   --fallo/timeout----> ERRORED
    CONNECTED    --caída/error------> ERRORED
    ERRORED      --reintento--------> CONNECTING
    cualquiera   --teardown---------> DISCONNECTED

No hay estado terminal mientras la sesión vive; el teardown fuerza la salida.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, List

from ..errors import InvalidStateTransition

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Estados de la conexión al broker."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERRORED = "errored"


ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.CONNECTED, ConnectionState.ERRORED}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.ERRORED}),
    ConnectionState.ERRORED: frozenset({ConnectionState.CONNECTING}),
}


def is_allowed(current: ConnectionState, target: ConnectionState) -> bool:
    """True si `current -> target` es una arista válida."""
    if target == ConnectionState.DISCONNECTED:
        return True
    return target in ALLOWED_TRANSITIONS[current]


StateListener = Callable[[ConnectionState, ConnectionState], None]


class ConnectionStateMachine:
    """Estado único de la conexión con métodos de transición explícitos.

    Los observadores se notifican dentro del lock para que reciban las
    transiciones en el mismo orden en que ocurren.

    Uso:
        fsm = ConnectionStateMachine("stream")
        fsm.add_listener(lambda old, new: print(old, "->", new))
        fsm.begin_connect()
        fsm.mark_connected()
    """

    def __init__(self, name: str = "mqtt"):
        self.name = name
        self._state = ConnectionState.DISCONNECTED
        self._lock = threading.RLock()
        self._listeners: List[StateListener] = []
        self._transitions = 0

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def transitions(self) -> int:
        return self._transitions

    def add_listener(self, listener: StateListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def begin_connect(self) -> None:
        self._transition(ConnectionState.CONNECTING)

    def mark_connected(self) -> None:
        self._transition(ConnectionState.CONNECTED)

    def mark_errored(self) -> None:
        self._transition(ConnectionState.ERRORED)

    def begin_retry(self) -> None:
        self._transition(ConnectionState.CONNECTING)

    def teardown(self) -> None:
        self._transition(ConnectionState.DISCONNECTED)

    def accept_ack(self) -> bool:
        """Aplica un CONNACK exitoso.

        Si el watchdog ya marcó ERRORED, el ack tardío cuenta como un
        reintento: ERRORED -> CONNECTING -> CONNECTED.

        Returns:
            False si el estado no admite el ack (p. ej. tras teardown)
        """
        with self._lock:
            if self._state == ConnectionState.ERRORED:
                self._transition(ConnectionState.CONNECTING)
            if self._state != ConnectionState.CONNECTING:
                return False
            self._transition(ConnectionState.CONNECTED)
            return True

    def transition_if(self, expected: ConnectionState, target: ConnectionState) -> bool:
        """Transiciona solo si el estado actual es `expected`.

        Returns:
            True si la transición se aplicó
        """
        with self._lock:
            if self._state != expected:
                return False
            self._transition(target)
            return True

    def _transition(self, target: ConnectionState) -> None:
        with self._lock:
            current = self._state
            if current == target == ConnectionState.DISCONNECTED:
                return
            if not is_allowed(current, target):
                raise InvalidStateTransition(current.value, target.value)

            self._state = target
            self._transitions += 1
            logger.info(
                "[STATE] '%s': %s -> %s",
                self.name,
                current.value.upper(),
                target.value.upper(),
            )

            for listener in list(self._listeners):
                listener(current, target)
