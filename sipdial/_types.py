"""
Type definitions for the dialer core.

This module centralizes the states, engine event names, exceptions, policies
and configuration shared by the connection and call controllers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ._utils import (
    DEFAULT_DISPLAY_NAME,
    DEFAULT_IDENTITY_URI,
    DEFAULT_STUN_SERVER,
    DEFAULT_TRANSPORT_URI,
    LOG_CAPACITY,
    RTCP_MUX_POLICY,
)


# =============================================================================
# FSM States
# =============================================================================


class ConnectionState(Enum):
    """
    States of the signaling connection.

    disconnected → connecting → connected → registered
                                    ↑            ↓
                                    └── unregistered
                   registration-failed (degraded, transport still up)
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    REGISTERED = "registered"
    REGISTRATION_FAILED = "registration-failed"

    def __str__(self) -> str:
        return self.value


class CallState(Enum):
    """
    States of the (single) call session.

    idle ──dial/adopt──→ calling ──confirmed──→ in-call ──ended──→ terminated
                            └──────────failed──────────────────→ failed

    A new call may only start from idle, terminated or failed.
    """

    IDLE = "idle"
    CALLING = "calling"
    IN_CALL = "in-call"
    TERMINATED = "terminated"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_active(self) -> bool:
        """Check if a call is being set up or is established."""
        return self in (CallState.CALLING, CallState.IN_CALL)


class SessionDirection(Enum):
    """Which side created the session."""

    OUTBOUND = "outbound"
    INBOUND = "inbound"


# =============================================================================
# Engine Events
# =============================================================================


class TransportEvent(str, Enum):
    """Events emitted by a transport handle."""

    UP = "up"
    DOWN = "down"
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"
    REGISTRATION_FAILED = "registration-failed"  # (reason?)
    INCOMING_SESSION = "incoming-session"  # (session)


class SessionEvent(str, Enum):
    """Events emitted by a session handle."""

    PROGRESS = "progress"
    CONFIRMED = "confirmed"
    ENDED = "ended"
    FAILED = "failed"  # (reason?)


# =============================================================================
# Exceptions
# =============================================================================


class DialerError(Exception):
    """Base exception for dialer errors."""

    pass


class ValidationError(DialerError):
    """Raised when a required input is missing or malformed."""

    pass


class PreconditionError(DialerError):
    """Raised when a command is issued in a state that does not allow it."""

    pass


class TransportError(DialerError):
    """Signaling transport could not be created or was lost."""

    pass


class RegistrationFailure(DialerError):
    """The server refused to register the identity."""

    pass


class SessionFailure(DialerError):
    """A call session failed to be created or was failed by the engine."""

    pass


# =============================================================================
# Credentials and Policies
# =============================================================================


@dataclass(frozen=True)
class Credentials:
    """
    Connection credentials supplied by the user interface.

    The secret is kept out of ``repr()`` so credentials can be logged safely.
    """

    transport_uri: str = ""
    identity_uri: str = ""
    display_name: str = ""
    secret: str = field(default="", repr=False)

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty."""
        required = {
            "transport_uri": self.transport_uri,
            "identity_uri": self.identity_uri,
            "secret": self.secret,
        }
        return [name for name, value in required.items() if not (value or "").strip()]

    def validate(self) -> None:
        """
        Ensure transport URI, identity URI and secret are present.

        Raises:
            ValidationError: If any required field is empty
        """
        missing = self.missing_fields()
        if missing:
            raise ValidationError(f"Missing credentials: {', '.join(missing)}")


@dataclass(frozen=True)
class MediaPolicy:
    """Media constraints for a call (audio only)."""

    audio: bool = True
    video: bool = False


@dataclass(frozen=True)
class TransportPolicy:
    """ICE and RTCP settings for a call's peer connection."""

    ice_servers: tuple[str, ...] = (DEFAULT_STUN_SERVER,)
    rtcp_mux_policy: str = RTCP_MUX_POLICY


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class DialerConfig:
    """Configuration for a dialer instance."""

    # Form defaults
    transport_uri: str = DEFAULT_TRANSPORT_URI
    identity_uri: str = DEFAULT_IDENTITY_URI
    display_name: str = DEFAULT_DISPLAY_NAME

    # Activity log
    log_capacity: int = LOG_CAPACITY

    # Call negotiation
    ice_servers: tuple[str, ...] = (DEFAULT_STUN_SERVER,)
    rtcp_mux_policy: str = RTCP_MUX_POLICY
    session_timers: bool = False

    def __post_init__(self) -> None:
        if self.log_capacity < 1:
            raise ValueError("log_capacity must be at least 1")

    def media_policy(self) -> MediaPolicy:
        """Build the fixed audio-only media policy."""
        return MediaPolicy(audio=True, video=False)

    def transport_policy(self) -> TransportPolicy:
        """Build the ICE/RTCP policy from configured servers."""
        return TransportPolicy(
            ice_servers=tuple(self.ice_servers),
            rtcp_mux_policy=self.rtcp_mux_policy,
        )

    def credentials(
        self,
        secret: str,
        *,
        transport_uri: Optional[str] = None,
        identity_uri: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Credentials:
        """
        Build credentials, filling unspecified fields from the defaults.

        Args:
            secret: Registration password
            transport_uri: WebSocket URI override
            identity_uri: SIP identity override
            display_name: Caller display name override

        Returns:
            Credentials (not validated)
        """
        return Credentials(
            transport_uri=self.transport_uri if transport_uri is None else transport_uri,
            identity_uri=self.identity_uri if identity_uri is None else identity_uri,
            display_name=self.display_name if display_name is None else display_name,
            secret=secret,
        )


__all__ = [
    # FSM enums
    "ConnectionState",
    "CallState",
    "SessionDirection",
    # Engine events
    "TransportEvent",
    "SessionEvent",
    # Exceptions
    "DialerError",
    "ValidationError",
    "PreconditionError",
    "TransportError",
    "RegistrationFailure",
    "SessionFailure",
    # Data types
    "Credentials",
    "MediaPolicy",
    "TransportPolicy",
    "DialerConfig",
]
