"""Runtime value types shared by the state manager, plugins and controllers.

These are plain dataclasses rather than pydantic models: they are created on
every request and hold arbitrary payloads (response bodies, exception
instances) that never need validation or serialisation.

``None`` plays the role of "undefined" throughout: a :class:`Response` whose
``data`` is ``None`` carries no data, and an :class:`OperationState` whose
``data`` is ``None`` has never been populated.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class OperationType(str, enum.Enum):
    """The three kinds of operation a controller can drive."""

    READ = "read"
    WRITE = "write"
    INFINITE_READ = "infinite_read"


class OperationStatus(str, enum.Enum):
    """Observable status of a single read or write controller."""

    IDLE = "idle"
    LOADING = "loading"
    FETCHING = "fetching"
    SUCCESS = "success"
    ERROR = "error"
    OPTIMISTIC = "optimistic"


class PageStatus(str, enum.Enum):
    """Status of one page record in an infinite read."""

    PENDING = "pending"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    STALE = "stale"


@dataclass
class Response:
    """Normalized response envelope returned by every operation.

    ``data`` and ``error`` are never both populated. Transport failures,
    non-2xx statuses and cancellation are all reported here rather than
    raised.

    Attributes:
        status: HTTP status, or ``0`` when no response was received.
        data: Parsed body of a successful response.
        error: A :class:`~fetchflow.exceptions.FetchflowError` (or any
            value a plugin chooses) describing the failure.
        headers: Response headers.
        aborted: ``True`` when the request was cancelled via ``abort()``.
        cached: ``True`` when a plugin served ``data`` from the cache
            without reaching the transport.
    """

    status: int = 0
    data: Any = None
    error: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    aborted: bool = False
    cached: bool = False

    @property
    def ok(self) -> bool:
        """Whether the response carries no error and was not aborted."""
        return self.error is None and not self.aborted


@dataclass
class OperationState:
    """The cached state of one query key."""

    data: Any = None
    error: Any = None
    timestamp: float = 0.0
    is_optimistic: bool = False


@dataclass
class CacheEntry:
    """One entry in the :class:`~fetchflow.state.manager.StateManager` cache.

    Attributes:
        state: The cached data, error and write timestamp.
        tags: Invalidation labels attached to the entry.
        stale: Set by tag invalidation; a stale entry is treated as a miss.
    """

    state: OperationState = field(default_factory=OperationState)
    tags: list[str] = field(default_factory=list)
    stale: bool = False

    @property
    def self_tag(self) -> Optional[str]:
        """The most specific tag (the entry's own path), if any."""
        return self.tags[-1] if self.tags else None


@dataclass
class OperationSnapshot:
    """What a read or write controller exposes to calling code."""

    status: OperationStatus = OperationStatus.IDLE
    data: Any = None
    error: Any = None
    loading: bool = False
    fetching: bool = False
    stale: bool = False
    is_optimistic: bool = False
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransportResponse:
    """What a transport callable resolves to."""

    ok: bool
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None
