"""sipdial - Connection and call lifecycle core for a SIP web dialer."""

from __future__ import annotations

# Facade
from ._dialer import Dialer

# Controllers
from ._connection import ConnectionController
from ._call import CallSessionController

# Activity log
from ._activity import ActivityLog, LogEntry

# Event delivery
from ._events import EventEmitter, EventQueue, Subscription

# FSM components
from ._fsm import StateMachine, Transition, call_fsm, connection_fsm

# Engine interface
from ._engine import EventSource, SessionHandle, SignalingEngine, TransportHandle

# Loopback engine (demos)
from ._loopback import LoopbackEngine, LoopbackSession, LoopbackTransport

# Types
from ._types import (
    CallState,
    ConnectionState,
    Credentials,
    DialerConfig,
    DialerError,
    MediaPolicy,
    PreconditionError,
    RegistrationFailure,
    SessionDirection,
    SessionEvent,
    SessionFailure,
    TransportError,
    TransportEvent,
    TransportPolicy,
    ValidationError,
)

# Utilities
from ._utils import (
    DEFAULT_STUN_SERVER,
    DTMF_DIGITS,
    LOG_CAPACITY,
    console,
    logger,
)

__version__ = "0.1.0"

__all__ = [
    # Facade
    "Dialer",
    # Controllers
    "ConnectionController",
    "CallSessionController",
    # Activity log
    "ActivityLog",
    "LogEntry",
    # Events
    "EventEmitter",
    "EventQueue",
    "Subscription",
    # FSM
    "StateMachine",
    "Transition",
    "connection_fsm",
    "call_fsm",
    "ConnectionState",
    "CallState",
    "SessionDirection",
    # Engine
    "SignalingEngine",
    "EventSource",
    "TransportHandle",
    "SessionHandle",
    "TransportEvent",
    "SessionEvent",
    "LoopbackEngine",
    "LoopbackTransport",
    "LoopbackSession",
    # Data types
    "Credentials",
    "MediaPolicy",
    "TransportPolicy",
    "DialerConfig",
    # Exceptions
    "DialerError",
    "ValidationError",
    "PreconditionError",
    "TransportError",
    "RegistrationFailure",
    "SessionFailure",
    # Utilities
    "console",
    "logger",
    "LOG_CAPACITY",
    "DEFAULT_STUN_SERVER",
    "DTMF_DIGITS",
    # Metadata
    "__version__",
]
