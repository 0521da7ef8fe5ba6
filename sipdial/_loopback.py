"""
In-process loopback signaling engine.

``LoopbackEngine`` pretends to be a SIP server reachable over WebSocket: it
accepts any well-formed ``ws://``/``wss://`` URI, registers (or refuses to),
answers outbound calls after a short ring, reports busy numbers and can
simulate an incoming call. Events are scheduled on an asyncio loop so they
arrive after the command returned, like a real engine's would. Without a
loop they are held until :meth:`LoopbackEngine.flush` is called.

It exists for demos and manual experimentation; no SIP is spoken.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Callable, Deque, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from ._engine import SessionHandle, TransportHandle
from ._types import (
    Credentials,
    MediaPolicy,
    SessionDirection,
    SessionEvent,
    TransportEvent,
    TransportPolicy,
)
from ._utils import logger


class LoopbackTransport(TransportHandle):
    """Transport handle produced by :class:`LoopbackEngine`."""

    def __init__(self, uri: str, credentials: Credentials, session_timers: bool) -> None:
        super().__init__(uri)
        self.identity = credentials.identity_uri
        self.display_name = credentials.display_name
        self.session_timers = session_timers
        self.started = False


class LoopbackSession(SessionHandle):
    """Session handle produced by :class:`LoopbackEngine`."""

    def __init__(self, remote: str, direction: SessionDirection) -> None:
        super().__init__(remote)
        self.direction = direction
        self.invited = False
        self.answered = False
        self.finished = False
        self.digits: List[str] = []
        self.media_policy: Optional[MediaPolicy] = None
        self.transport_policy: Optional[TransportPolicy] = None


class LoopbackEngine:
    """
    Scripted signaling engine.

    Args:
        loop: Event loop used to deliver events later (manual ``flush`` if None)
        delay: Seconds between consecutive scheduled events
        register: Whether registration succeeds
        registration_failure_reason: Reason reported when it does not
        auto_answer: Whether outbound calls get answered
        busy_numbers: Destinations that fail with ``Busy``
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        *,
        delay: float = 0.2,
        register: bool = True,
        registration_failure_reason: Optional[str] = None,
        auto_answer: bool = True,
        busy_numbers: Iterable[str] = (),
    ) -> None:
        self._loop = loop
        self.delay = delay
        self.register = register
        self.registration_failure_reason = registration_failure_reason
        self.auto_answer = auto_answer
        self.busy_numbers = set(busy_numbers)
        self._next_at = 0.0
        self._pending: Deque[Tuple[Callable[..., Any], Tuple[Any, ...]]] = deque()
        self.transports: List[LoopbackTransport] = []
        self.sessions: List[LoopbackSession] = []

    def _schedule(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run ``callback`` after the previously scheduled one."""
        if self._loop is None:
            self._pending.append((callback, args))
            return
        now = self._loop.time()
        self._next_at = max(now, self._next_at) + self.delay
        self._loop.call_at(self._next_at, callback, *args)

    # Transport commands

    def create_transport(
        self,
        uri: str,
        credentials: Credentials,
        *,
        session_timers: bool = False,
    ) -> LoopbackTransport:
        parsed = urlparse(uri)
        if parsed.scheme not in ("ws", "wss") or not parsed.hostname:
            raise ValueError(f"Invalid WebSocket URI: {uri}")
        transport = LoopbackTransport(uri, credentials, session_timers)
        self.transports.append(transport)
        logger.debug(f"[loopback] transport for {credentials.identity_uri} via {uri}")
        return transport

    def start(self, transport: LoopbackTransport) -> None:
        if transport.started:
            return
        transport.started = True
        self._schedule(transport.emit, TransportEvent.UP)
        if self.register:
            self._schedule(transport.emit, TransportEvent.REGISTERED)
        else:
            self._schedule(
                transport.emit,
                TransportEvent.REGISTRATION_FAILED,
                self.registration_failure_reason,
            )

    def stop(self, transport: LoopbackTransport) -> None:
        if not transport.started:
            return
        transport.started = False
        self._schedule(transport.emit, TransportEvent.DOWN)

    # Session commands

    def create_outbound_session(
        self,
        transport: LoopbackTransport,
        destination: str,
        media_policy: MediaPolicy,
        transport_policy: TransportPolicy,
    ) -> LoopbackSession:
        if not transport.started:
            raise RuntimeError("Transport is not started")
        session = LoopbackSession(destination, SessionDirection.OUTBOUND)
        session.media_policy = media_policy
        session.transport_policy = transport_policy
        self.sessions.append(session)
        return session

    def invite(self, session: LoopbackSession) -> None:
        if session.invited or session.finished:
            return
        session.invited = True
        self._schedule(self._emit_unless_finished, session, SessionEvent.PROGRESS)
        if session.remote in self.busy_numbers:
            self._schedule(self._finish, session, SessionEvent.FAILED, "Busy")
        elif self.auto_answer:
            self._schedule(self._confirm, session)

    def answer(
        self,
        session: LoopbackSession,
        media_policy: MediaPolicy,
        transport_policy: TransportPolicy,
    ) -> None:
        session.media_policy = media_policy
        session.transport_policy = transport_policy
        self._schedule(self._confirm, session)

    def terminate(self, session: LoopbackSession) -> None:
        if session.finished:
            return
        if session.direction is SessionDirection.INBOUND and not session.answered:
            self._schedule(self._finish, session, SessionEvent.FAILED, "Rejected")
        else:
            self._schedule(self._finish, session, SessionEvent.ENDED)

    def send_digit(self, session: LoopbackSession, digit: str) -> None:
        if session.finished:
            raise RuntimeError("Session already finished")
        session.digits.append(digit)

    # Simulation helpers

    def ring(
        self, transport: LoopbackTransport, remote: str = "sip:caller@loopback"
    ) -> LoopbackSession:
        """Offer an inbound call on ``transport``."""
        session = LoopbackSession(remote, SessionDirection.INBOUND)
        self.sessions.append(session)
        self._schedule(transport.emit, TransportEvent.INCOMING_SESSION, session)
        self._schedule(self._emit_unless_finished, session, SessionEvent.PROGRESS)
        return session

    def hangup_remote(self, session: LoopbackSession) -> None:
        """Simulate the remote party hanging up."""
        self._schedule(self._finish, session, SessionEvent.ENDED)

    def _emit_unless_finished(self, session: LoopbackSession, event: SessionEvent) -> None:
        if not session.finished:
            session.emit(event)

    def _confirm(self, session: LoopbackSession) -> None:
        if session.finished:
            return
        session.answered = True
        session.emit(SessionEvent.CONFIRMED)

    def _finish(self, session: LoopbackSession, event: SessionEvent, *args: Any) -> None:
        if session.finished:
            return
        session.finished = True
        session.emit(event, *args)

    # Manual delivery

    @property
    def pending(self) -> int:
        """Number of events waiting for :meth:`flush` (loop-less mode)."""
        return len(self._pending)

    def flush(self) -> int:
        """
        Deliver every held event, including ones scheduled while delivering.

        Returns:
            Number of events delivered
        """
        delivered = 0
        while self._pending:
            callback, args = self._pending.popleft()
            callback(*args)
            delivered += 1
        return delivered
