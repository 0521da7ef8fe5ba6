"""
Signaling engine interface.

The dialer core never speaks SIP itself. It drives an external engine (the
component doing the real SIP-over-WebSocket and media work) through the
narrow command interface below and listens to the events emitted by the
handles the engine returns.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from ._events import EventEmitter
from ._types import Credentials, MediaPolicy, TransportPolicy


@runtime_checkable
class EventSource(Protocol):
    """Anything that accepts ``on``/``off`` listener registration."""

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """Attach a listener."""

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        """Detach a listener."""


class TransportHandle(EventEmitter):
    """
    Base class for engine transport objects.

    Emits ``up``, ``down``, ``registered``, ``unregistered``,
    ``registration-failed(reason?)`` and ``incoming-session(session)``.
    """

    def __init__(self, uri: str) -> None:
        super().__init__()
        self.uri = uri

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.uri})>"


class SessionHandle(EventEmitter):
    """
    Base class for engine call-session objects.

    Emits ``progress``, ``confirmed``, ``ended`` and ``failed(reason?)``.
    """

    def __init__(self, remote: str = "") -> None:
        super().__init__()
        self.remote = remote

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.remote or '?'})>"


@runtime_checkable
class SignalingEngine(Protocol):
    """
    A protocol for signaling engines, duck-typed objects performing the actual
    SIP/WebRTC work on behalf of the controllers.

    Commands are asynchronous requests: they return right away and their
    outcome is reported later as events on the returned handles. An engine
    may also fire events synchronously from inside a command; the
    controllers defer such events until the command has finished.
    """

    def create_transport(
        self,
        uri: str,
        credentials: Credentials,
        *,
        session_timers: bool = False,
    ) -> EventSource:
        """
        Build a transport for ``uri`` registering ``credentials``.
        Raises if the URI is malformed.
        """

    def start(self, transport: EventSource) -> None:
        """Connect and register. Idempotent."""

    def stop(self, transport: EventSource) -> None:
        """Unregister and close. Idempotent."""

    def create_outbound_session(
        self,
        transport: EventSource,
        destination: str,
        media_policy: MediaPolicy,
        transport_policy: TransportPolicy,
    ) -> EventSource:
        """
        Prepare an outbound call to ``destination`` and return its session.

        No signaling happens and no event is fired until :meth:`invite`, so
        the caller can subscribe to the session first.
        """

    def invite(self, session: EventSource) -> None:
        """Send the call prepared by :meth:`create_outbound_session`."""

    def answer(
        self,
        session: EventSource,
        media_policy: MediaPolicy,
        transport_policy: TransportPolicy,
    ) -> None:
        """Accept an inbound session."""

    def terminate(self, session: EventSource) -> None:
        """Hang up, cancel or reject ``session``."""

    def send_digit(self, session: EventSource, digit: str) -> None:
        """Send one DTMF digit on ``session``."""


def describe(handle: Optional[Any]) -> str:
    """Short printable form of an opaque handle for debug logs."""
    if handle is None:
        return "<none>"
    return f"{type(handle).__name__}@{id(handle):x}"
