"""
Finite State Machines (FSM) for the connection and the call session.

Both machines are driven by engine events rather than by a fixed transition
table, so the machine itself only records and announces transitions:

Connection:
  DISCONNECTED → CONNECTING → CONNECTED → REGISTERED
                                  ↓
                         REGISTRATION_FAILED

Call:
  IDLE → CALLING → IN_CALL → TERMINATED
            ↓
          FAILED

Every write is a transition, including writes of the current state (an engine
may report ``progress`` several times), so observers and the history see each
one.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from ._types import CallState, ConnectionState
from ._utils import logger

S = TypeVar("S", bound=Enum)


@dataclass(frozen=True)
class Transition(Generic[S]):
    """A single recorded state change."""

    old_state: S
    new_state: S
    at: float = field(default_factory=time.time)


class StateMachine(Generic[S]):
    """
    Observable holder for one enumerated state.

    Observers registered with :meth:`subscribe` see every transition;
    observers registered with :meth:`on_state` only see transitions into a
    given state.
    """

    def __init__(self, initial: S, name: str = "fsm") -> None:
        """
        Initialize state machine.

        Args:
            initial: Initial state
            name: Label used in debug logs
        """
        self.name = name
        self._state = initial
        self._history: List[Transition[S]] = []
        self._observers: List[Callable[[S, S], None]] = []
        self._state_handlers: Dict[S, List[Callable[[S, S], None]]] = {}

    @property
    def state(self) -> S:
        """Get the current state."""
        return self._state

    @property
    def history(self) -> List[Transition[S]]:
        """Get a copy of all recorded transitions, oldest first."""
        return list(self._history)

    def states(self) -> List[S]:
        """Sequence of states written so far, oldest first."""
        return [t.new_state for t in self._history]

    def transition_to(self, new_state: S) -> None:
        """
        Transition to a new state.

        Args:
            new_state: The new state
        """
        old_state = self._state
        self._state = new_state
        self._history.append(Transition(old_state, new_state))
        logger.debug(f"{self.name}: {old_state.value} -> {new_state.value}")
        self._on_state_change(old_state, new_state)

    def is_in(self, *states: S) -> bool:
        """Check if the current state is one of ``states``."""
        return self._state in states

    # Event handlers

    def subscribe(self, handler: Callable[[S, S], None]) -> None:
        """
        Register a handler for every transition.

        Args:
            handler: Callback receiving ``(old_state, new_state)``
        """
        self._observers.append(handler)

    def unsubscribe(self, handler: Callable[[S, S], None]) -> None:
        """Remove a handler registered with :meth:`subscribe`."""
        if handler in self._observers:
            self._observers.remove(handler)

    def on_state(self, state: S, handler: Callable[[S, S], None]) -> None:
        """
        Register a handler for transitions into ``state``.

        Args:
            state: State to watch
            handler: Callback receiving ``(old_state, new_state)``
        """
        self._state_handlers.setdefault(state, []).append(handler)

    def _on_state_change(self, old_state: S, new_state: S) -> None:
        """Notify observers; a failing observer does not stop the others."""
        handlers = list(self._observers) + list(
            self._state_handlers.get(new_state, [])
        )
        for handler in handlers:
            try:
                handler(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in {self.name} observer {handler!r}: {e}")

    def __repr__(self) -> str:
        return f"<StateMachine({self.name}, {self._state.name}, {len(self._history)} transitions)>"


def connection_fsm() -> StateMachine[ConnectionState]:
    """Create the connection state machine, starting disconnected."""
    return StateMachine(ConnectionState.DISCONNECTED, name="connection")


def call_fsm() -> StateMachine[CallState]:
    """Create the call state machine, starting idle."""
    return StateMachine(CallState.IDLE, name="call")
