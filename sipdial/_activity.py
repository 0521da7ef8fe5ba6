"""
Bounded, newest-first activity log.

The log is the human-readable trail the controllers leave for the user
interface. It only grows at the front and silently drops the oldest entries
once capacity is reached; entries themselves are immutable.
"""

from __future__ import annotations

import itertools
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional

from ._utils import LOG_CAPACITY, logger


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LogEntry:
    message: str
    sequence: int
    created_at: datetime = field(default_factory=_now)

    def __str__(self) -> str:
        return self.message


class ActivityLog:
    """
    Append-only activity log holding the most recent ``capacity`` entries.

    Example:
        >>> log = ActivityLog(capacity=2)
        >>> _ = log.append("Connecting...")
        >>> _ = log.append("Socket connected.")
        >>> _ = log.append("Registered with SIP server.")
        >>> log.messages()
        ['Registered with SIP server.', 'Socket connected.']
    """

    def __init__(self, capacity: int = LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._counter = itertools.count(1)
        self._listeners: List[Callable[[LogEntry], None]] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        """Snapshot of the stored entries, newest first."""
        return tuple(self._entries)

    @property
    def latest(self) -> Optional[LogEntry]:
        return self._entries[0] if self._entries else None

    def append(self, message: str) -> LogEntry:
        """
        Record a message at the front of the log.

        Args:
            message: Human-readable event description

        Returns:
            The stored entry
        """
        entry = LogEntry(message=message, sequence=next(self._counter))
        # appendleft on a bounded deque drops from the right (oldest)
        self._entries.appendleft(entry)
        logger.info(message)

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as e:
                logger.error(f"Error in activity log listener {listener!r}: {e}")

        return entry

    def messages(self) -> List[str]:
        """Stored messages, newest first."""
        return [entry.message for entry in self._entries]

    def subscribe(self, listener: Callable[[LogEntry], None]) -> None:
        """Register a callback invoked with every new entry."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[LogEntry], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"<ActivityLog({len(self._entries)}/{self._capacity} entries)>"
