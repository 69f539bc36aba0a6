"""Cache plugin -- serve fresh entries without reaching the transport.

A read is answered from the :class:`~fetchflow.state.manager.StateManager`
cache when all of these hold:

* the execution is not forced (``ctx.force_refetch`` is false);
* an entry with data exists for the query key and is not flagged stale;
* the entry is at most ``stale_time`` seconds old.

``stale_time`` comes from the per-request ``stale_time`` option, falling back
to the plugin default (``CacheConfig.stale_time``, ``0`` by default, which
means every entry is stale as soon as it is written). Successful responses
are stored with ``timestamp = now`` and ``stale = False``; errors are never
cached.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fetchflow.events.emitter import EVENT_REFETCH_ALL
from fetchflow.models import ClientConfig
from fetchflow.plugins.base import READ_OPERATIONS, NextFn, Plugin
from fetchflow.plugins.context import InstanceContext, PluginContext
from fetchflow.types import OperationState, OperationType, Response

logger = logging.getLogger(__name__)


class CachePlugin(Plugin):
    """Serve and store read responses.

    Args:
        stale_time: Default freshness window in seconds. ``None`` reads it
            from the client configuration.
    """

    def __init__(self, stale_time: Optional[float] = None) -> None:
        self._stale_time = stale_time

    @property
    def name(self) -> str:
        return "cache"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return READ_OPERATIONS

    @property
    def priority(self) -> float:
        return -10

    @property
    def description(self) -> str:
        return "Serves fresh cache entries and stores successful reads"

    @property
    def stale_time(self) -> float:
        return self._stale_time or 0.0

    def on_init(self, config: ClientConfig) -> None:
        if self._stale_time is None:
            self._stale_time = config.cache.stale_time

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        cached = self._lookup(ctx)
        if cached is not None:
            return cached

        response = await call_next()
        if response.error is None and not response.aborted and response.data is not None:
            if not response.cached:
                ctx.state_manager.set_cache(
                    ctx.query_key,
                    OperationState(data=response.data, timestamp=ctx.state_manager.now()),
                    tags=ctx.tags,
                )
        return response

    def _lookup(self, ctx: PluginContext) -> Optional[Response]:
        if ctx.force_refetch:
            return None
        entry = ctx.state_manager.get_cache(ctx.query_key)
        if entry is None or entry.state.data is None or entry.stale:
            return None

        stale_time = ctx.option("stale_time", self.stale_time)
        age = ctx.state_manager.now() - entry.state.timestamp
        if age > stale_time:
            return None

        logger.debug("Cache hit for %s (age %.3fs)", ctx.self_tag, age)
        return Response(status=200, data=entry.state.data, cached=True)

    def instance_api(self, ctx: InstanceContext) -> dict[str, Any]:
        def clear_cache(refetch_all: bool = False) -> None:
            """Drop every cache entry; optionally ask mounted reads to refetch."""
            ctx.state_manager.clear()
            if refetch_all:
                ctx.event_emitter.emit(EVENT_REFETCH_ALL, None)

        return {"clear_cache": clear_cache}
