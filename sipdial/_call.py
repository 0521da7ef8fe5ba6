"""
Call session controller.

Owns at most one call session handle at a time and turns the engine's session
events into ``CallState`` transitions:

- progress   → CALLING
- confirmed  → IN_CALL
- ended      → TERMINATED (handle released)
- failed     → FAILED (handle released)

The handle is released in exactly one place (``_release``), which also
detaches the session's listeners, so events from a released or superseded
session never reach the state machine.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Optional

from ._activity import ActivityLog
from ._connection import ConnectionController
from ._engine import SignalingEngine, describe
from ._events import EventQueue, Subscription
from ._fsm import StateMachine, call_fsm
from ._types import (
    CallState,
    DialerConfig,
    DialerError,
    PreconditionError,
    SessionDirection,
    SessionEvent,
    SessionFailure,
    ValidationError,
)
from ._utils import DTMF_DIGITS, logger, normalize_reason


class CallSessionController:
    """
    Places, adopts, answers and terminates calls on a usable connection.

    Example:
        >>> calls = CallSessionController(engine, connection, log)
        >>> calls.dial("555")
        >>> calls.state
        <CallState.CALLING: 'calling'>
        >>> calls.send_digit("1")
        >>> calls.hangup()
    """

    def __init__(
        self,
        engine: SignalingEngine,
        connection: ConnectionController,
        log: ActivityLog,
        queue: Optional[EventQueue] = None,
        config: Optional[DialerConfig] = None,
    ) -> None:
        """
        Initialize call controller and bind it to ``connection``.

        Args:
            engine: Signaling engine doing the SIP work
            connection: Controller owning the transport calls go through
            log: Activity log shared with the connection controller
            queue: Inbound event queue (the connection's queue if None)
            config: Dialer configuration (the connection's if None)
        """
        self._engine = engine
        self._connection = connection
        self._log = log
        self._queue = queue if queue is not None else connection.queue
        self._config = config if config is not None else connection.config

        self._fsm = call_fsm()
        self._session: Optional[Any] = None
        self._direction: Optional[SessionDirection] = None
        self._subscription: Optional[Subscription] = None
        self._last_error: Optional[DialerError] = None

        connection.bind_calls(self)

    # State accessors

    @property
    def state(self) -> CallState:
        """Get the current call state."""
        return self._fsm.state

    @property
    def fsm(self) -> StateMachine[CallState]:
        """Get the call state machine (for observers)."""
        return self._fsm

    @property
    def session(self) -> Optional[Any]:
        """Get the held session handle, if any."""
        return self._session

    @property
    def direction(self) -> Optional[SessionDirection]:
        return self._direction

    @property
    def has_session(self) -> bool:
        return self._session is not None

    @property
    def can_dial(self) -> bool:
        """Check if ``dial`` would be accepted (number aside)."""
        return (
            self._connection.is_usable
            and self._session is None
            and not self._fsm.state.is_active
        )

    @property
    def last_error(self) -> Optional[DialerError]:
        return self._last_error

    # Commands

    def dial(self, number: str) -> None:
        """
        Place an outbound audio call to ``number``.

        Args:
            number: Destination number or SIP URI

        Raises:
            PreconditionError: If the connection is not usable, the number is
                empty or a call is already in progress (engine untouched)
        """
        with self._queue.hold():
            if not self._connection.is_usable:
                self._reject("Connect to the SIP server first.")

            destination = (number or "").strip()
            if not destination:
                self._reject("Enter a destination number.")

            if self._session is not None or self._fsm.state.is_active:
                self._reject("A call is already in progress.")

            try:
                session = self._engine.create_outbound_session(
                    self._connection.transport,
                    destination,
                    self._config.media_policy(),
                    self._config.transport_policy(),
                )
            except Exception as e:
                self._last_error = SessionFailure(str(e))
                logger.warning(f"Outbound session to {destination} failed: {e}")
                self._fsm.transition_to(CallState.FAILED)
                self._log.append(f"Call failed: {e}")
                return

            # must be subscribed before invite()
            self._acquire(session, SessionDirection.OUTBOUND)
            self._fsm.transition_to(CallState.CALLING)
            self._log.append(f"Dialing {destination}...")

            try:
                self._engine.invite(session)
            except Exception as e:
                logger.warning(f"Invite to {destination} failed: {e}")
                self._fail(session, str(e))

    def adopt(self, session: Any) -> None:
        """
        Take ownership of an inbound session offered by the engine.

        The call state is left alone; the session's own events move it.

        Raises:
            PreconditionError: If a session is already held; the new session
                is rejected through the engine first
        """
        with self._queue.hold():
            if self._session is not None:
                self._log.append("Rejected incoming call: busy.")
                try:
                    self._engine.terminate(session)
                except Exception as e:
                    logger.warning(f"Failed to reject session {describe(session)}: {e}")
                raise PreconditionError("A call is already in progress")

            self._acquire(session, SessionDirection.INBOUND)
            self._log.append("Incoming call.")

    def answer(self) -> None:
        """
        Accept the held inbound session with the audio-only policies.

        No-op when no session is held.

        Raises:
            PreconditionError: If the held session is outbound
        """
        with self._queue.hold():
            session = self._session
            if session is None:
                return
            if self._direction is not SessionDirection.INBOUND:
                self._reject("Only incoming calls can be answered.")

            try:
                self._engine.answer(
                    session,
                    self._config.media_policy(),
                    self._config.transport_policy(),
                )
            except Exception as e:
                self._fail(session, str(e))
                return

            self._log.append("Answering call...")

    def hangup(self) -> None:
        """Terminate the held session; no-op when none is held."""
        with self._queue.hold():
            session = self._session
            if session is None:
                return

            try:
                self._engine.terminate(session)
            except Exception as e:
                logger.warning(f"Failed to terminate session {describe(session)}: {e}")

            self._release(session)
            self._fsm.transition_to(CallState.TERMINATED)
            self._log.append("Call terminated.")

    def send_digit(self, digit: str) -> None:
        """
        Send one DTMF digit on the held session.

        No-op (no validation, no engine call) when no session is held. The
        call state is never changed.

        Raises:
            ValidationError: If ``digit`` is not a single DTMF symbol
        """
        with self._queue.hold():
            session = self._session
            if session is None:
                return

            symbol = digit.upper() if isinstance(digit, str) else ""
            if len(symbol) != 1 or symbol not in DTMF_DIGITS:
                self._log.append(f"Invalid DTMF digit: {digit!r}")
                raise ValidationError(f"Invalid DTMF digit: {digit!r}")

            try:
                self._engine.send_digit(session, symbol)
            except Exception as e:
                self._last_error = SessionFailure(str(e))
                logger.warning(f"DTMF {symbol} failed: {e}")
                self._log.append(f"Failed to send DTMF {symbol}: {e}")
                return

            logger.debug(f"Sent DTMF {symbol} on {describe(session)}")

    def drop(self) -> None:
        """
        Release any held session without contacting the engine and force
        TERMINATED. Used when the transport is gone or disconnected.
        """
        session = self._session
        if session is not None:
            self._release(session)
        self._fsm.transition_to(CallState.TERMINATED)

    # Ownership

    def _acquire(self, session: Any, direction: SessionDirection) -> None:
        """Take ownership of ``session`` and wire its events."""
        self._session = session
        self._direction = direction
        subscription = Subscription(session)
        bind = self._queue.bind
        subscription.on(SessionEvent.PROGRESS, bind(partial(self._on_progress, session)))
        subscription.on(SessionEvent.CONFIRMED, bind(partial(self._on_confirmed, session)))
        subscription.on(SessionEvent.ENDED, bind(partial(self._on_ended, session)))
        subscription.on(SessionEvent.FAILED, bind(partial(self._on_failed, session)))
        self._subscription = subscription
        logger.debug(f"Acquired {direction.value} session {describe(session)}")

    def _release(self, session: Any) -> bool:
        """Drop ownership of ``session``; returns False if it was not held."""
        if self._session is not session:
            return False
        if self._subscription is not None:
            self._subscription.close()
        self._subscription = None
        self._session = None
        self._direction = None
        logger.debug(f"Released session {describe(session)}")
        return True

    def _reject(self, message: str) -> None:
        """Log ``message`` and raise it as a PreconditionError."""
        self._log.append(message)
        raise PreconditionError(message)

    def _fail(self, session: Any, reason: str) -> None:
        self._release(session)
        self._last_error = SessionFailure(reason)
        self._fsm.transition_to(CallState.FAILED)
        self._log.append(f"Call failed: {reason}")

    def _owns(self, session: Any, event: str) -> bool:
        if session is self._session:
            return True
        logger.debug(f"Ignoring '{event}' from stale session {describe(session)}")
        return False

    # Session events

    def _on_progress(self, session: Any, *_: Any) -> None:
        if not self._owns(session, "progress"):
            return
        self._fsm.transition_to(CallState.CALLING)
        self._log.append("Call in progress...")

    def _on_confirmed(self, session: Any, *_: Any) -> None:
        if not self._owns(session, "confirmed"):
            return
        self._fsm.transition_to(CallState.IN_CALL)
        self._log.append("Call confirmed.")

    def _on_ended(self, session: Any, *_: Any) -> None:
        if not self._owns(session, "ended"):
            return
        self._release(session)
        self._fsm.transition_to(CallState.TERMINATED)
        self._log.append("Call ended.")

    def _on_failed(self, session: Any, reason: Any = None, *_: Any) -> None:
        if not self._owns(session, "failed"):
            return
        self._fail(session, normalize_reason(reason))

    def __repr__(self) -> str:
        return f"<CallSessionController({self.state.value}, session={describe(self._session)})>"
