"""Client-scoped event bus.

See :class:`~fetchflow.events.emitter.EventEmitter` and the ``EVENT_*``
topic constants.
"""

from fetchflow.events.emitter import (
    EVENT_FOCUS,
    EVENT_INVALIDATE,
    EVENT_RECONNECT,
    EVENT_REFETCH,
    EVENT_REFETCH_ALL,
    EVENT_REQUEST_COMPLETE,
    EventEmitter,
)

__all__ = [
    "EventEmitter",
    "EVENT_FOCUS",
    "EVENT_INVALIDATE",
    "EVENT_RECONNECT",
    "EVENT_REFETCH",
    "EVENT_REFETCH_ALL",
    "EVENT_REQUEST_COMPLETE",
]
