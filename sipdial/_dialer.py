"""
Dialer facade.

The single object a user interface talks to: it wires one signaling engine,
one event queue and one activity log to the connection and call controllers,
and exposes the commands and read-only state the interface needs.
"""

from __future__ import annotations

from typing import Any, Optional

from ._activity import ActivityLog, LogEntry
from ._call import CallSessionController
from ._connection import ConnectionController
from ._engine import SignalingEngine
from ._events import EventQueue
from ._types import (
    CallState,
    ConnectionState,
    Credentials,
    DialerConfig,
    PreconditionError,
)
from ._utils import logger


class Dialer:
    """
    Browser-style SIP dialer core.

    Example:
        >>> with Dialer(engine) as dialer:
        ...     dialer.connect(Credentials("wss://x", "sip:a@x", secret="p"))
        ...     # ... engine reports up / registered ...
        ...     dialer.dial("555")
        ...     dialer.send_digit("1")
        ...     dialer.hangup()
    """

    def __init__(
        self,
        engine: SignalingEngine,
        config: Optional[DialerConfig] = None,
    ) -> None:
        """
        Initialize dialer.

        Args:
            engine: Signaling engine doing the SIP/WebRTC work
            config: Dialer configuration (defaults if None)
        """
        self.config = config if config is not None else DialerConfig()
        self.engine = engine
        self.log = ActivityLog(capacity=self.config.log_capacity)
        self.queue = EventQueue()
        self.connection = ConnectionController(
            engine, self.log, queue=self.queue, config=self.config
        )
        self.calls = CallSessionController(
            engine, self.connection, self.log, queue=self.queue, config=self.config
        )
        self._closed = False

    # Commands

    def connect(self, credentials: Credentials) -> None:
        """Connect and register (see :meth:`ConnectionController.connect`)."""
        self._ensure_open()
        self.connection.connect(credentials)

    def disconnect(self) -> None:
        """Hang up and disconnect (see :meth:`ConnectionController.disconnect`)."""
        self.connection.disconnect()

    def dial(self, number: str) -> None:
        """Place a call (see :meth:`CallSessionController.dial`)."""
        self._ensure_open()
        self.calls.dial(number)

    def answer(self) -> None:
        """Answer the held incoming call."""
        self._ensure_open()
        self.calls.answer()

    def hangup(self) -> None:
        """Terminate the current call, if any."""
        self.calls.hangup()

    def send_digit(self, digit: str) -> None:
        """Send a DTMF digit on the current call, if any."""
        self.calls.send_digit(digit)

    def close(self) -> None:
        """
        Release everything the dialer holds.

        Terminates the call and stops the transport when either is held.
        Further connect/dial/answer commands raise ``PreconditionError``.
        """
        if self._closed:
            return
        if self.connection.transport is not None or self.calls.has_session:
            self.connection.disconnect()
        self._closed = True
        logger.debug("Dialer closed")

    # State

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    @property
    def call_state(self) -> CallState:
        return self.calls.state

    @property
    def is_usable(self) -> bool:
        """Check if the dialer is online (connected or registered)."""
        return self.connection.is_usable

    @property
    def in_call(self) -> bool:
        """Check if a session handle is currently held."""
        return self.calls.has_session

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        """Activity log entries, newest first."""
        return self.log.entries

    @property
    def is_closed(self) -> bool:
        return self._closed

    def snapshot(self) -> dict[str, Any]:
        """
        Plain-data view of the dialer for rendering.

        Returns:
            Dictionary with connection/call states, online flag and log
        """
        return {
            "connection": self.connection_state.value,
            "call": self.call_state.value,
            "online": self.is_usable,
            "in_call": self.in_call,
            "log": self.log.messages(),
        }

    def _ensure_open(self) -> None:
        if self._closed:
            raise PreconditionError("Dialer is closed")

    def __enter__(self) -> "Dialer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"<Dialer(connection={self.connection_state.value}, "
            f"call={self.call_state.value})>"
        )
