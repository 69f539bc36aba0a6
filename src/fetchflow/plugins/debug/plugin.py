"""Debug plugin -- log every request and its outcome.

Sits outermost in the chain (priority ``-100``) so the logged duration
covers every other plugin, including cache hits. Output goes to the
``fetchflow.plugins.debug.plugin`` logger; the CLI shows it with
``--verbose``. A request can opt out with ``debug=False``.
"""

from __future__ import annotations

import logging
import time

from fetchflow.plugins.base import ALL_OPERATIONS, NextFn, Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)


class DebugPlugin(Plugin):
    """Log requests and responses.

    Args:
        enabled: Master switch.
        log_cache: Also log the number of cache entries after each request.
        level: Logging level of the messages.
    """

    def __init__(self, enabled: bool = True, log_cache: bool = False, level: int = logging.DEBUG) -> None:
        self.enabled = enabled
        self.log_cache = log_cache
        self.level = level

    @property
    def name(self) -> str:
        return "debug"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return ALL_OPERATIONS

    @property
    def priority(self) -> float:
        return -100

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        if not self.enabled or ctx.plugin_options.get("debug") is False:
            return await call_next()

        logger.log(
            self.level,
            "%s %s %s force=%s tags=%s",
            ctx.operation_type.value,
            ctx.method,
            ctx.self_tag,
            ctx.force_refetch,
            ctx.tags,
        )
        started = time.perf_counter()
        response = await call_next()
        elapsed = (time.perf_counter() - started) * 1000

        if response.error is not None:
            outcome = f"error {type(response.error).__name__}: {response.error}"
        elif response.cached:
            outcome = "cached"
        else:
            outcome = "ok"
        logger.log(
            self.level,
            "%s %s -> %s (status %s, %.1fms)",
            ctx.method,
            ctx.self_tag,
            outcome,
            response.status,
            elapsed,
        )
        if self.log_cache:
            logger.log(self.level, "Cache holds %d entries", len(ctx.state_manager))
        return response
