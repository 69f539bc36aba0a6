"""Polling plugin -- refetch a mounted read on an interval.

The ``polling_interval`` option is either a number of seconds or a function
``fn(data, error)`` returning one, evaluated after every response so the
interval can adapt (for example stop once a job reports completion).
``False``, ``None`` or a value ``<= 0`` stops polling.

Timers are :meth:`asyncio.loop.call_later` handles keyed by controller
instance id; the next poll is scheduled only after the previous response
arrived, so slow responses never overlap. Unmounting cancels the timer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from fetchflow.plugins.base import READ_OPERATIONS, Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)


def resolve_interval(option: Any, data: Any, error: Any) -> Optional[float]:
    """Evaluate a ``polling_interval`` option; ``None`` means do not poll."""
    value = option(data, error) if callable(option) else option
    if value is None or value is False or value is True:
        return None
    if value <= 0:
        return None
    return float(value)


class PollingPlugin(Plugin):
    """Schedule forced refetches from the ``polling_interval`` option."""

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._refetchers: dict[str, Callable[[], Awaitable[Response]]] = {}
        self._tasks: set[asyncio.Future] = set()

    @property
    def name(self) -> str:
        return "polling"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return READ_OPERATIONS

    def is_polling(self, instance_id: str) -> bool:
        return instance_id in self._handles

    def on_mount(self, ctx: PluginContext) -> None:
        if ctx.instance_id is not None and ctx.refetch is not None:
            self._refetchers[ctx.instance_id] = ctx.refetch

    def after_response(self, ctx: PluginContext, response: Response) -> None:
        if ctx.instance_id is None or response.aborted:
            return
        self._schedule(ctx, response.data, response.error)

    def on_update(self, ctx: PluginContext, previous: PluginContext) -> None:
        if ctx.instance_id is None or ctx.instance_id not in self._refetchers:
            return
        if not ctx.plugin_options.get("polling_interval"):
            self._clear(ctx.instance_id)
            return
        if ctx.instance_id not in self._handles:
            entry = ctx.state_manager.get_cache(ctx.query_key)
            state = entry.state if entry is not None else None
            self._schedule(
                ctx,
                state.data if state else None,
                state.error if state else None,
            )

    def on_unmount(self, ctx: PluginContext) -> None:
        if ctx.instance_id is None:
            return
        self._clear(ctx.instance_id)
        self._refetchers.pop(ctx.instance_id, None)

    def cleanup(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._refetchers.clear()

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _schedule(self, ctx: PluginContext, data: Any, error: Any) -> None:
        instance_id = ctx.instance_id
        option = ctx.plugin_options.get("polling_interval")
        if instance_id is None or not option or instance_id not in self._refetchers:
            return

        interval = resolve_interval(option, data, error)
        self._clear(instance_id)
        if interval is None:
            return

        loop = asyncio.get_running_loop()
        self._handles[instance_id] = loop.call_later(interval, self._fire, instance_id)
        logger.debug("Next poll of %s in %ss", ctx.self_tag, interval)

    def _fire(self, instance_id: str) -> None:
        self._handles.pop(instance_id, None)
        refetch = self._refetchers.get(instance_id)
        if refetch is None:
            return
        task = asyncio.ensure_future(refetch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _clear(self, instance_id: str) -> None:
        handle = self._handles.pop(instance_id, None)
        if handle is not None:
            handle.cancel()
