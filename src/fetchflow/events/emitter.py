"""Named-topic publish/subscribe scoped to one client instance.

Plugins and controllers communicate through an :class:`EventEmitter` instead
of holding references to each other: the invalidation plugin emits
``invalidate``, mounted controllers listen for it and refetch. Each
:class:`~fetchflow.instance.FetchflowClient` owns exactly one emitter and
clears it on close; there is no process-wide registry.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]

EVENT_INVALIDATE = "invalidate"
"""Payload: the list of invalidated tags."""

EVENT_REFETCH = "refetch"
"""Payload: ``{"query_key": str}`` -- refetch the controller owning that key."""

EVENT_REFETCH_ALL = "refetch_all"
"""Payload: ``None`` -- every mounted read refetches."""

EVENT_REQUEST_COMPLETE = "request_complete"
"""Payload: ``{"query_key": str, "operation_type": OperationType, "response": Response}``."""

EVENT_FOCUS = "focus"
"""Payload: ``None`` -- the host application regained focus."""

EVENT_RECONNECT = "reconnect"
"""Payload: ``None`` -- the host application regained connectivity."""


class EventEmitter:
    """Synchronous pub/sub keyed by event name.

    Listeners run in subscription order. A listener that raises is logged and
    skipped so one faulty subscriber cannot stop delivery to the others.

    Example::

        emitter = EventEmitter()
        unsubscribe = emitter.on("invalidate", lambda tags: print(tags))
        emitter.emit("invalidate", ["posts"])
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Subscribe *listener* to *event*.

        Returns:
            A no-argument callable that removes the subscription. Calling it
            more than once is harmless.
        """
        self._listeners.setdefault(event, []).append(listener)

        def unsubscribe() -> None:
            self.off(event, listener)

        return unsubscribe

    def once(self, event: str, listener: Listener) -> Callable[[], None]:
        """Subscribe *listener* for a single delivery of *event*."""

        def wrapper(payload: Any) -> None:
            self.off(event, wrapper)
            listener(payload)

        return self.on(event, wrapper)

    def off(self, event: str, listener: Listener) -> None:
        """Remove *listener* from *event* if it is subscribed."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def emit(self, event: str, payload: Any = None) -> None:
        """Deliver *payload* to every listener of *event*.

        The listener list is copied first, so listeners may subscribe or
        unsubscribe while the event is being delivered.
        """
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(payload)
            except Exception as exc:
                logger.warning("Listener for '%s' failed: %s", event, exc, exc_info=True)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        """Drop every listener of every event."""
        self._listeners.clear()
