"""Utilities and constants for the dialer core."""

import logging
from rich.console import Console
from rich.logging import RichHandler

# Rich Console for pretty printing
console = Console()

# Configure logging with RichHandler
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
)

# Get logger for the package
logger = logging.getLogger("sipdial")

# Activity log capacity (most recent entries kept)
LOG_CAPACITY = 20

# Defaults offered to a fresh dialer form
DEFAULT_TRANSPORT_URI = "wss://sip.example.com:7443"
DEFAULT_IDENTITY_URI = "sip:1001@sip.example.com"
DEFAULT_DISPLAY_NAME = "Web Agent"

# ICE / media negotiation defaults
DEFAULT_STUN_SERVER = "stun:stun.l.google.com:19302"
RTCP_MUX_POLICY = "require"

# DTMF symbols (RFC 4733 events 0-15)
DTMF_DIGITS = frozenset("0123456789*#ABCD")

UNKNOWN_REASON = "unknown"


def normalize_reason(reason) -> str:
    """
    Normalize an engine-supplied failure reason.

    Engines may hand over nothing, an empty string or an object carrying a
    ``cause`` attribute. Anything falsy becomes ``"unknown"``.
    """
    if reason is None:
        return UNKNOWN_REASON
    cause = getattr(reason, "cause", reason)
    text = str(cause).strip() if cause is not None else ""
    return text or UNKNOWN_REASON
