"""Throttle plugin -- at most one network read per key per ``throttle`` seconds.

Runs innermost (priority ``100``), right before the transport, so it also
gates forced refetches that bypass the cache plugin. A throttled request
returns the cached data when there is any, or an empty response otherwise.

Each recorded fetch remembers the window it opened; windows that have run
out are dropped whenever a new fetch is recorded.
"""

from __future__ import annotations

import logging

from fetchflow.plugins.base import READ_OPERATIONS, NextFn, Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)


class ThrottlePlugin(Plugin):
    """Gate transport calls with the per-request ``throttle`` option (seconds)."""

    def __init__(self) -> None:
        # query key -> (time of the last fetch, throttle it was sent with)
        self._last_fetch: dict[str, tuple[float, float]] = {}

    @property
    def name(self) -> str:
        return "throttle"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return READ_OPERATIONS

    @property
    def priority(self) -> float:
        return 100

    def tracked_keys(self) -> list[str]:
        return list(self._last_fetch)

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        throttle = ctx.plugin_options.get("throttle")
        if not throttle or throttle <= 0:
            return await call_next()

        now = ctx.state_manager.now()
        last = self._last_fetch.get(ctx.query_key)
        if last is not None and now - last[0] < throttle:
            logger.debug("Throttled %s (%.3fs since last fetch)", ctx.self_tag, now - last[0])
            entry = ctx.state_manager.get_cache(ctx.query_key)
            if entry is not None and entry.state.data is not None:
                return Response(status=200, data=entry.state.data, cached=True)
            return Response(status=0, cached=True)

        self._prune(now)
        self._last_fetch[ctx.query_key] = (now, throttle)
        return await call_next()

    def _prune(self, now: float) -> None:
        expired = [key for key, (at, window) in self._last_fetch.items() if now - at >= window]
        for key in expired:
            del self._last_fetch[key]

    def cleanup(self) -> None:
        self._last_fetch.clear()
