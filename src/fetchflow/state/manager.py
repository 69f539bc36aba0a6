"""In-memory state for one client: cache, in-flight tasks, metadata, subscribers.

:class:`StateManager` is the single writer for every query key. Controllers
and plugins hold only the key string and go through the manager for reads and
writes, so there is never a private copy of cached data to drift out of sync.

Four maps are kept, all keyed by query key:

* **cache** -- :class:`~fetchflow.types.CacheEntry` (data, error, timestamp,
  tags, stale flag).
* **pending** -- the :class:`asyncio.Task` of the request currently in flight.
* **meta** -- free-form plugin side data (``transformed_data``,
  ``is_initial_data``), with a lifecycle independent of the cache entry.
* **subscribers** -- callbacks fired on every mutation of a key.

Every method is synchronous. Under asyncio nothing can interleave with a
synchronous block, so the maps need no locks.

Query keys are canonical JSON (:func:`json.dumps` with ``sort_keys=True``)
of ``{"path", "method", "options"}``. They are not hashed, so plugins that
match on request options can parse them back with :func:`parse_query_key`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import time
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from fetchflow.events.emitter import EVENT_INVALIDATE, EventEmitter
from fetchflow.types import CacheEntry, OperationState

logger = logging.getLogger(__name__)

Subscriber = Callable[[], None]


def _strip_undefined(value: Any) -> Any:
    """Drop ``None``-valued dict items recursively and turn tuples into lists."""
    if isinstance(value, Mapping):
        return {str(k): _strip_undefined(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_strip_undefined(v) for v in value]
    return value


def parse_query_key(key: str) -> dict[str, Any]:
    """Return the request options encoded in *key* (``query``, ``params``, ``body``).

    Returns an empty dict when *key* was not produced by
    :meth:`StateManager.create_query_key`.
    """
    try:
        parsed = json.loads(key)
    except (json.JSONDecodeError, TypeError):
        return {}
    if not isinstance(parsed, dict):
        return {}
    options = parsed.get("options")
    return options if isinstance(options, dict) else {}


class StateManager:
    """Owns the cache, pending-task, metadata and subscriber maps of a client.

    Args:
        event_emitter: Emitter that receives ``invalidate`` events from
            :meth:`invalidate_by_tags`. When ``None`` invalidation only flips
            stale flags.
        clock: Returns the current time in seconds. Injected so tests can
            control staleness deterministically.
    """

    def __init__(
        self,
        event_emitter: Optional[EventEmitter] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._emitter = event_emitter
        self._clock = clock
        self._cache: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._meta: dict[str, dict[str, Any]] = {}
        self._subscribers: dict[str, list[Subscriber]] = {}

    def now(self) -> float:
        """Current time according to the injected clock."""
        return self._clock()

    # ------------------------------------------------------------------ #
    # Keys
    # ------------------------------------------------------------------ #

    @staticmethod
    def create_query_key(
        path: Sequence[Any], method: str, options: Optional[Mapping[str, Any]] = None
    ) -> str:
        """Build the canonical key for a logical request.

        Pure and deterministic: dict insertion order and ``None``-valued
        option fields do not affect the result.

        Args:
            path: Resolved path segments.
            method: HTTP method (case-insensitive).
            options: Request options, typically ``query``, ``params`` and
                ``body``.

        Returns:
            A compact JSON string.
        """
        payload = {
            "path": [str(segment) for segment in path],
            "method": method.upper(),
            "options": _strip_undefined(options or {}),
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)

    # ------------------------------------------------------------------ #
    # Cache
    # ------------------------------------------------------------------ #

    def get_cache(self, key: str) -> Optional[CacheEntry]:
        return self._cache.get(key)

    def set_cache(
        self,
        key: str,
        state: OperationState,
        tags: Optional[Iterable[str]] = None,
        stale: bool = False,
    ) -> None:
        """Replace the entry for *key* and notify its subscribers.

        The previous state and tags are discarded entirely and the stale flag
        is reset unless *stale* is passed explicitly.
        """
        self._cache[key] = CacheEntry(state=state, tags=list(tags or ()), stale=stale)
        self._notify(key)

    def update_cache(
        self,
        key: str,
        *,
        tags: Optional[Iterable[str]] = None,
        stale: Optional[bool] = None,
        **fields: Any,
    ) -> None:
        """Merge *fields* into the state of *key*, creating the entry if needed.

        Unlike :meth:`set_cache`, anything not passed is kept.

        Args:
            key: Query key to update.
            tags: New tags, or ``None`` to keep the current ones.
            stale: New stale flag, or ``None`` to keep the current one.
            **fields: :class:`~fetchflow.types.OperationState` fields.
        """
        entry = self._cache.get(key)
        if entry is None:
            entry = CacheEntry()
            self._cache[key] = entry
        if fields:
            entry.state = dataclasses.replace(entry.state, **fields)
        if tags is not None:
            entry.tags = list(tags)
        if stale is not None:
            entry.stale = stale
        self._notify(key)

    def delete_cache(self, key: str) -> None:
        """Remove the entry for *key*, if any, and notify its subscribers."""
        if self._cache.pop(key, None) is not None:
            self._notify(key)

    def get_all_cache_entries(self) -> list[tuple[str, CacheEntry]]:
        return list(self._cache.items())

    def get_cache_entries_by_tags(self, tags: Iterable[str]) -> list[tuple[str, CacheEntry]]:
        """Return every ``(key, entry)`` whose tags intersect *tags*."""
        wanted = set(tags)
        return [
            (key, entry)
            for key, entry in self._cache.items()
            if wanted.intersection(entry.tags)
        ]

    def get_cache_entries_by_self_tag(self, tag: str) -> list[tuple[str, CacheEntry]]:
        """Return every ``(key, entry)`` whose most specific tag equals *tag*."""
        return [(key, entry) for key, entry in self._cache.items() if entry.self_tag == tag]

    def get_cache_by_tags(self, tags: Iterable[str]) -> Optional[CacheEntry]:
        """Return the first entry with data whose tags intersect *tags*."""
        for _, entry in self.get_cache_entries_by_tags(tags):
            if entry.state.data is not None:
                return entry
        return None

    def is_stale(self, key: str, stale_time: float) -> bool:
        """Whether *key* is missing, flagged stale, or older than *stale_time* seconds."""
        entry = self._cache.get(key)
        if entry is None or entry.stale:
            return True
        return self.now() - entry.state.timestamp > stale_time

    def mark_stale(self, tags: Iterable[str]) -> list[str]:
        """Flag every entry whose tags intersect *tags* as stale.

        Returns:
            The keys that were flagged.
        """
        matched = [key for key, _ in self.get_cache_entries_by_tags(tags)]
        for key in matched:
            self._cache[key].stale = True
            self._notify(key)
        return matched

    def invalidate_by_tags(self, tags: Iterable[str]) -> list[str]:
        """Mark matching entries stale, then emit ``invalidate`` with *tags*.

        Refetching is left to whoever listens for the event.

        Returns:
            The keys that were flagged.
        """
        tag_list = list(dict.fromkeys(tags))
        matched = self.mark_stale(tag_list)
        logger.debug("Invalidated %d entries for tags %s", len(matched), tag_list)
        if self._emitter is not None and tag_list:
            self._emitter.emit(EVENT_INVALIDATE, tag_list)
        return matched

    # ------------------------------------------------------------------ #
    # Pending requests
    # ------------------------------------------------------------------ #

    def get_pending_promise(self, key: str) -> Optional[asyncio.Future]:
        return self._pending.get(key)

    def set_pending_promise(self, key: str, task: Optional[asyncio.Future]) -> None:
        """Record *task* as the in-flight request for *key*; ``None`` clears it."""
        if task is None:
            self._pending.pop(key, None)
        else:
            self._pending[key] = task

    # ------------------------------------------------------------------ #
    # Metadata
    # ------------------------------------------------------------------ #

    def get_meta(self, key: str) -> dict[str, Any]:
        """Return a copy of the metadata stored for *key* (empty if none)."""
        return dict(self._meta.get(key, {}))

    def set_meta(self, key: str, values: Mapping[str, Any]) -> None:
        """Merge *values* into the metadata of *key* and notify subscribers."""
        self._meta.setdefault(key, {}).update(values)
        self._notify(key)

    def delete_meta(self, key: str) -> None:
        self._meta.pop(key, None)

    # ------------------------------------------------------------------ #
    # Subscribers
    # ------------------------------------------------------------------ #

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """Call *callback* on every mutation of *key*.

        Returns:
            A callable that removes the subscription.
        """
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[key]

        return unsubscribe

    def get_subscribers_count(self, key: str) -> int:
        return len(self._subscribers.get(key, ()))

    def _notify(self, key: str) -> None:
        for callback in list(self._subscribers.get(key, ())):
            try:
                callback()
            except Exception as exc:
                logger.warning("Subscriber for %s failed: %s", key, exc, exc_info=True)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def clear(self) -> None:
        """Empty the cache, pending and meta maps, then notify every subscriber.

        Used on logout or user switch. Subscriptions survive so mounted
        controllers observe the reset.
        """
        self._cache.clear()
        self._pending.clear()
        self._meta.clear()
        for key in list(self._subscribers):
            self._notify(key)

    def __len__(self) -> int:
        return len(self._cache)
