"""Debounce plugin -- hold a read back until its input stops changing.

The ``debounce`` option is a number of seconds or a function
``fn(previous)`` returning one. ``previous`` is a dict with the
``prev_query``, ``prev_params`` and ``prev_body`` of the controller's
previous request (keys absent when there was none), so a search box can
debounce only while the search term changes::

    search = client.read(
        client.api("search").get(),
        enabled=False,
        debounce=lambda previous: 0.3 if previous.get("prev_query") else 0,
    )
    await search.mount()
    await search.execute({"query": {"q": "ada"}})

A debounced execution returns at once: with the cached data of its key when
there is any, otherwise with an empty response. Each new query key restarts
the controller's timer; when the timer fires the plugin emits ``refetch``
for the latest key and the mounted controller fetches it for real. Forced
executions, including that refetch, are never debounced.

Timers are :meth:`asyncio.loop.call_later` handles keyed by controller
instance id. Unmounting cancels the timer and forgets the controller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fetchflow.events.emitter import EVENT_REFETCH, EventEmitter
from fetchflow.plugins.base import NextFn, Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)

_REMEMBERED = ("query", "params", "body")


def resolve_delay(option: Any, previous: dict[str, Any]) -> Optional[float]:
    """Evaluate a ``debounce`` option; ``None`` means fetch right away."""
    value = option(previous) if callable(option) else option
    if value is None or value is False or value is True:
        return None
    if value <= 0:
        return None
    return float(value)


class DebouncePlugin(Plugin):
    """Delay reads with the ``debounce`` option until input settles."""

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._latest: dict[str, str] = {}
        self._previous: dict[str, dict[str, Any]] = {}

    @property
    def name(self) -> str:
        return "debounce"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.READ,)

    @property
    def description(self) -> str:
        return "Waits for input to settle before fetching"

    def is_pending(self, instance_id: str) -> bool:
        return instance_id in self._handles

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        option = ctx.plugin_options.get("debounce")
        slot = ctx.instance_id
        if option is None or ctx.force_refetch or slot is None:
            return await call_next()

        previous = self._previous.get(slot, {})
        self._previous[slot] = {
            f"prev_{name}": ctx.request[name]
            for name in _REMEMBERED
            if ctx.request.get(name) is not None
        }
        delay = resolve_delay(option, previous)
        if delay is None:
            return await call_next()

        if not (self._latest.get(slot) == ctx.query_key and slot in self._handles):
            self._schedule(slot, ctx.query_key, delay, ctx.event_emitter)
            logger.debug("Debounced %s for %ss", ctx.self_tag, delay)

        entry = ctx.state_manager.get_cache(ctx.query_key)
        if entry is not None and entry.state.data is not None:
            return Response(status=200, data=entry.state.data, cached=True)
        return Response(status=0, cached=True)

    def on_unmount(self, ctx: PluginContext) -> None:
        if ctx.instance_id is None:
            return
        self._clear(ctx.instance_id)
        self._latest.pop(ctx.instance_id, None)
        self._previous.pop(ctx.instance_id, None)

    def cleanup(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._latest.clear()
        self._previous.clear()

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _schedule(self, slot: str, key: str, delay: float, emitter: EventEmitter) -> None:
        self._clear(slot)
        self._latest[slot] = key
        loop = asyncio.get_running_loop()
        self._handles[slot] = loop.call_later(delay, self._fire, slot, emitter)

    def _fire(self, slot: str, emitter: EventEmitter) -> None:
        self._handles.pop(slot, None)
        key = self._latest.get(slot)
        if key is not None:
            emitter.emit(EVENT_REFETCH, {"query_key": key, "reason": "debounce"})

    def _clear(self, slot: str) -> None:
        handle = self._handles.pop(slot, None)
        if handle is not None:
            handle.cancel()
