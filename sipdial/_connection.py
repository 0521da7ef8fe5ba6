"""
Connection controller.

Owns the signaling transport handle and turns the engine's transport events
into ``ConnectionState`` transitions:

- up                   → CONNECTED
- down                 → DISCONNECTED (and the call is terminated)
- registered           → REGISTERED
- unregistered         → CONNECTED
- registration-failed  → REGISTRATION_FAILED
- incoming-session     → handed to the call controller

Events coming from a transport that is no longer the held one are ignored.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any, Optional

from ._activity import ActivityLog
from ._engine import SignalingEngine, describe
from ._events import EventQueue, Subscription
from ._fsm import StateMachine, connection_fsm
from ._types import (
    ConnectionState,
    Credentials,
    DialerConfig,
    DialerError,
    PreconditionError,
    RegistrationFailure,
    TransportError,
    TransportEvent,
    ValidationError,
)
from ._utils import logger, normalize_reason

if TYPE_CHECKING:
    from ._call import CallSessionController


class ConnectionController:
    """
    Drives one signaling transport through connect, register and disconnect.

    Commands (``connect``, ``disconnect``) return immediately; the engine
    reports progress later through events on the transport handle.

    Example:
        >>> connection = ConnectionController(engine, ActivityLog())
        >>> connection.connect(Credentials("wss://x", "sip:a@x", secret="p"))
        >>> connection.state
        <ConnectionState.CONNECTING: 'connecting'>
    """

    def __init__(
        self,
        engine: SignalingEngine,
        log: ActivityLog,
        queue: Optional[EventQueue] = None,
        config: Optional[DialerConfig] = None,
    ) -> None:
        """
        Initialize connection controller.

        Args:
            engine: Signaling engine doing the SIP work
            log: Activity log shared with the call controller
            queue: Inbound event queue (a private one is created if None)
            config: Dialer configuration (defaults if None)
        """
        self._engine = engine
        self._log = log
        self._queue = queue if queue is not None else EventQueue()
        self._config = config if config is not None else DialerConfig()

        self._fsm = connection_fsm()
        self._transport: Optional[Any] = None
        self._subscription: Optional[Subscription] = None
        self._calls: Optional[CallSessionController] = None
        self._last_error: Optional[DialerError] = None

    def bind_calls(self, calls: CallSessionController) -> None:
        """Attach the call controller that adopts inbound sessions."""
        self._calls = calls

    # State accessors

    @property
    def queue(self) -> EventQueue:
        """Get the inbound event queue shared with the call controller."""
        return self._queue

    @property
    def config(self) -> DialerConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        """Get the current connection state."""
        return self._fsm.state

    @property
    def fsm(self) -> StateMachine[ConnectionState]:
        """Get the connection state machine (for observers)."""
        return self._fsm

    @property
    def transport(self) -> Optional[Any]:
        """Get the held transport handle, if any."""
        return self._transport

    @property
    def is_usable(self) -> bool:
        """Check if calls can be placed: transport held and connected or registered."""
        return self._transport is not None and self._fsm.is_in(
            ConnectionState.CONNECTED, ConnectionState.REGISTERED
        )

    @property
    def last_error(self) -> Optional[DialerError]:
        """Get the most recent failure recorded by this controller."""
        return self._last_error

    # Commands

    def connect(self, credentials: Credentials) -> None:
        """
        Create, subscribe to and start a transport for ``credentials``.

        Args:
            credentials: Transport URI, identity URI, display name, secret

        Raises:
            ValidationError: If a required credential is empty (nothing else
                happens: no state change, no engine call)
        """
        with self._queue.hold():
            missing = credentials.missing_fields()
            if missing:
                self._log.append("Please provide WebSocket URL, SIP URI, and password.")
                raise ValidationError(f"Missing credentials: {', '.join(missing)}")

            if self._transport is not None:
                logger.debug("Replacing previous transport before reconnecting")
                self._teardown()

            try:
                transport = self._engine.create_transport(
                    credentials.transport_uri,
                    credentials,
                    session_timers=self._config.session_timers,
                )
            except Exception as e:
                self._fail_connect(e)
                return

            self._acquire(transport)

            try:
                self._engine.start(transport)
            except Exception as e:
                self._release(transport)
                self._stop(transport)
                self._fail_connect(e)
                return

            self._fsm.transition_to(ConnectionState.CONNECTING)
            self._log.append("Connecting...")

    def disconnect(self) -> None:
        """
        Terminate any call, stop the transport and reset to disconnected.

        Safe to call at any time, including with no transport held.
        """
        with self._queue.hold():
            self._teardown()
            self._fsm.transition_to(ConnectionState.DISCONNECTED)
            if self._calls is not None:
                self._calls.drop()
            self._log.append("Disconnected from server.")

    # Ownership

    def _acquire(self, transport: Any) -> None:
        """Take ownership of ``transport`` and wire its events."""
        self._transport = transport
        subscription = Subscription(transport)
        bind = self._queue.bind
        subscription.on(TransportEvent.UP, bind(partial(self._on_up, transport)))
        subscription.on(TransportEvent.DOWN, bind(partial(self._on_down, transport)))
        subscription.on(
            TransportEvent.REGISTERED, bind(partial(self._on_registered, transport))
        )
        subscription.on(
            TransportEvent.UNREGISTERED, bind(partial(self._on_unregistered, transport))
        )
        subscription.on(
            TransportEvent.REGISTRATION_FAILED,
            bind(partial(self._on_registration_failed, transport)),
        )
        subscription.on(
            TransportEvent.INCOMING_SESSION,
            bind(partial(self._on_incoming_session, transport)),
        )
        self._subscription = subscription
        logger.debug(f"Acquired transport {describe(transport)}")

    def _release(self, transport: Any) -> bool:
        """Drop ownership of ``transport``; returns False if it was not held."""
        if self._transport is not transport:
            return False
        if self._subscription is not None:
            self._subscription.close()
        self._subscription = None
        self._transport = None
        logger.debug(f"Released transport {describe(transport)}")
        return True

    def _teardown(self) -> None:
        """Hang up, detach and stop the held transport (if any)."""
        if self._calls is not None:
            self._calls.hangup()

        transport = self._transport
        if transport is None:
            return

        self._release(transport)
        self._stop(transport)

    def _stop(self, transport: Any) -> None:
        try:
            self._engine.stop(transport)
        except Exception as e:
            logger.warning(f"Failed to stop transport {describe(transport)}: {e}")

    def _fail_connect(self, error: Exception) -> None:
        self._last_error = TransportError(str(error))
        logger.warning(f"Transport setup failed: {error}")
        if self._fsm.state is not ConnectionState.DISCONNECTED:
            self._fsm.transition_to(ConnectionState.DISCONNECTED)
        self._log.append(f"Connection error: {error}")

    def _owns(self, transport: Any, event: str) -> bool:
        if transport is self._transport:
            return True
        logger.debug(f"Ignoring '{event}' from stale transport {describe(transport)}")
        return False

    # Transport events

    def _on_up(self, transport: Any, *_: Any) -> None:
        if not self._owns(transport, "up"):
            return
        self._fsm.transition_to(ConnectionState.CONNECTED)
        self._log.append("Socket connected.")

    def _on_down(self, transport: Any, *_: Any) -> None:
        if not self._owns(transport, "down"):
            return
        self._last_error = TransportError("Signaling transport lost")
        self._fsm.transition_to(ConnectionState.DISCONNECTED)
        if self._calls is not None:
            self._calls.drop()
        self._log.append("Socket disconnected.")

    def _on_registered(self, transport: Any, *_: Any) -> None:
        if not self._owns(transport, "registered"):
            return
        self._fsm.transition_to(ConnectionState.REGISTERED)
        self._log.append("Registered with SIP server.")

    def _on_unregistered(self, transport: Any, *_: Any) -> None:
        if not self._owns(transport, "unregistered"):
            return
        self._fsm.transition_to(ConnectionState.CONNECTED)
        self._log.append("Unregistered.")

    def _on_registration_failed(
        self, transport: Any, reason: Any = None, *_: Any
    ) -> None:
        if not self._owns(transport, "registration-failed"):
            return
        cause = normalize_reason(reason)
        self._last_error = RegistrationFailure(cause)
        self._fsm.transition_to(ConnectionState.REGISTRATION_FAILED)
        self._log.append(f"Registration failed: {cause}")

    def _on_incoming_session(self, transport: Any, session: Any = None, *_: Any) -> None:
        if not self._owns(transport, "incoming-session"):
            return
        if session is None:
            logger.warning("Incoming session event without a session")
            return
        if self._calls is None:
            logger.warning("No call controller bound; rejecting incoming session")
            self._engine.terminate(session)
            return
        try:
            self._calls.adopt(session)
        except PreconditionError as e:
            # already rejected through the engine and logged by adopt()
            logger.debug(f"Incoming session refused: {e}")

    def __repr__(self) -> str:
        return f"<ConnectionController({self.state.value}, transport={describe(self._transport)})>"
