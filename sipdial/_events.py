"""
Event delivery between the signaling engine and the controllers.

This module provides the pieces that carry engine callbacks into the
controllers:

- ``EventEmitter``: ``on``/``off``/``emit`` base for engine handles
- ``Subscription``: a scoped set of callbacks attached to one emitter
- ``EventQueue``: run-to-completion delivery, deferring events that an engine
  fires while a controller command is still executing
"""

from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Tuple, Union

from ._utils import logger


def _event_name(event: Union[str, Any]) -> str:
    """Normalize a str-valued enum member or plain string to its name."""
    return getattr(event, "value", event)


# ============================================================================
# Event Emitter
# ============================================================================


class EventEmitter:
    """
    Minimal event emitter used by engine handles.

    Engines subclass this (or provide the same ``on``/``off`` methods) for
    their transport and session objects.

    Example:
        >>> emitter = EventEmitter()
        >>> emitter.on("up", lambda: print("transport up"))
        >>> emitter.emit("up")
        transport up
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable[..., Any]]] = {}

    def on(self, event: Union[str, Any], callback: Callable[..., Any]) -> None:
        """Attach ``callback`` to ``event``."""
        self._listeners.setdefault(_event_name(event), []).append(callback)

    def off(self, event: Union[str, Any], callback: Callable[..., Any]) -> None:
        """Detach ``callback`` from ``event`` (no-op if not attached)."""
        listeners = self._listeners.get(_event_name(event), [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event: Union[str, Any], *args: Any) -> None:
        """Invoke every callback attached to ``event`` with ``args``."""
        for callback in list(self._listeners.get(_event_name(event), [])):
            callback(*args)

    def listener_count(self, event: Optional[Union[str, Any]] = None) -> int:
        """Number of callbacks attached to ``event`` (or to all events)."""
        if event is None:
            return sum(len(cbs) for cbs in self._listeners.values())
        return len(self._listeners.get(_event_name(event), []))


# ============================================================================
# Subscription
# ============================================================================


class Subscription:
    """
    Callbacks attached to one handle, detached together.

    A subscription is acquired when a handle is taken over and closed when the
    handle is released, so a released handle can no longer reach the
    controller.

    Example:
        >>> with Subscription(session) as sub:
        ...     sub.on("confirmed", on_confirmed)
    """

    def __init__(self, target: Any) -> None:
        """
        Initialize subscription.

        Args:
            target: Object exposing ``on(event, cb)`` and ``off(event, cb)``
        """
        self.target = target
        self._callbacks: List[Tuple[str, Callable[..., Any]]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, event: Union[str, Any], callback: Callable[..., Any]) -> "Subscription":
        """
        Attach ``callback`` to ``event`` on the target.

        Returns:
            The subscription, for chaining
        """
        if self._closed:
            raise RuntimeError("Subscription already closed")
        name = _event_name(event)
        self.target.on(name, callback)
        self._callbacks.append((name, callback))
        return self

    def close(self) -> None:
        """Detach every callback (idempotent)."""
        if self._closed:
            return
        self._closed = True
        for name, callback in self._callbacks:
            try:
                self.target.off(name, callback)
            except Exception as e:
                logger.warning(f"Failed to detach {name} listener: {e}")
        self._callbacks.clear()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._callbacks)

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"{len(self._callbacks)} callbacks"
        return f"<Subscription({type(self.target).__name__}, {state})>"


# ============================================================================
# Event Queue
# ============================================================================


class EventQueue:
    """
    Inbound event queue with run-to-completion semantics.

    Engine callbacks are routed through :meth:`post`. Outside of a command the
    event is processed right away; inside :meth:`hold` (a running controller
    command) it is deferred until the outermost command finishes, then all
    pending events are processed in arrival order.
    """

    def __init__(self) -> None:
        self._pending: Deque[Tuple[Callable[..., Any], Tuple[Any, ...]]] = deque()
        self._depth = 0

    @property
    def busy(self) -> bool:
        """Check if a command or a drain is in progress."""
        return self._depth > 0

    def __len__(self) -> int:
        return len(self._pending)

    def post(self, handler: Callable[..., Any], *args: Any) -> None:
        """
        Queue ``handler(*args)`` for delivery.

        Args:
            handler: Controller event handler
            *args: Event arguments
        """
        self._pending.append((handler, args))
        if not self.busy:
            self.drain()

    def bind(self, handler: Callable[..., Any]) -> Callable[..., None]:
        """Wrap ``handler`` so that engine calls go through :meth:`post`."""

        def deliver(*args: Any) -> None:
            self.post(handler, *args)

        deliver.__name__ = getattr(handler, "__name__", "deliver")
        return deliver

    @contextmanager
    def hold(self) -> Iterator["EventQueue"]:
        """Defer delivery while the block runs, then drain."""
        self._depth += 1
        try:
            yield self
        finally:
            self._depth -= 1
            if not self.busy:
                self.drain()

    def drain(self) -> int:
        """
        Process pending events until the queue is empty.

        Events posted by a handler are appended and processed in the same
        drain. A failing handler is logged and does not stop the others.

        Returns:
            Number of events processed
        """
        processed = 0
        self._depth += 1
        try:
            while self._pending:
                handler, args = self._pending.popleft()
                processed += 1
                try:
                    handler(*args)
                except Exception as e:
                    name = getattr(handler, "__name__", repr(handler))
                    logger.error(f"Error in event handler {name}: {e}")
        finally:
            self._depth -= 1
        return processed

    def __repr__(self) -> str:
        return f"<EventQueue({len(self._pending)} pending, depth={self._depth})>"
