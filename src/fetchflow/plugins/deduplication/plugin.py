"""Deduplication plugin -- share one in-flight request per query key.

Controllers record the task running their chain as the pending task of the
query key (see :meth:`~fetchflow.state.manager.StateManager.set_pending_promise`).
When another execution for the same key reaches this middleware while that
task is still running, it awaits the task's result instead of calling the
transport, so N concurrent executes cost one network call and all receive
the same :class:`~fetchflow.types.Response` object.

Reads deduplicate by default and writes do not. The per-request ``dedupe``
option overrides the default: ``True`` or ``"in_flight"`` enables,
``False`` or ``"off"`` disables.

If the shared task is cancelled (its owner called ``abort()``), waiting
executions fall through to their own transport call instead of reporting an
abort they did not ask for.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Union

from fetchflow.models import ClientConfig, DedupeMode
from fetchflow.plugins.base import ALL_OPERATIONS, NextFn, Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)

DedupeOption = Union[bool, str, DedupeMode, None]


def _coerce_mode(value: DedupeOption) -> Optional[DedupeMode]:
    if value is None:
        return None
    if value is True:
        return DedupeMode.IN_FLIGHT
    if value is False:
        return DedupeMode.OFF
    return DedupeMode(value)


class DeduplicationPlugin(Plugin):
    """Join concurrent executions of the same query key.

    Args:
        read: Mode for reads and infinite reads. ``None`` reads the client
            configuration (``in_flight`` by default).
        write: Mode for writes. ``None`` reads the client configuration
            (``off`` by default).
    """

    def __init__(self, read: DedupeOption = None, write: DedupeOption = None) -> None:
        self._read = _coerce_mode(read)
        self._write = _coerce_mode(write)

    @property
    def name(self) -> str:
        return "deduplication"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return ALL_OPERATIONS

    @property
    def description(self) -> str:
        return "Shares in-flight requests between executions of the same key"

    def on_init(self, config: ClientConfig) -> None:
        if self._read is None:
            self._read = config.deduplication.read
        if self._write is None:
            self._write = config.deduplication.write

    def get_config(self) -> dict[str, DedupeMode]:
        return {
            "read": self._read or DedupeMode.IN_FLIGHT,
            "write": self._write or DedupeMode.OFF,
        }

    def is_dedupe_enabled(
        self, operation: OperationType, plugin_options: Optional[Mapping[str, Any]] = None
    ) -> bool:
        """Whether *operation* with *plugin_options* shares in-flight requests."""
        override = _coerce_mode((plugin_options or {}).get("dedupe"))
        if override is not None:
            return override is DedupeMode.IN_FLIGHT
        config = self.get_config()
        mode = config["write"] if OperationType(operation) is OperationType.WRITE else config["read"]
        return mode is DedupeMode.IN_FLIGHT

    def exports(self, ctx: PluginContext) -> dict[str, Any]:
        return {
            "get_config": self.get_config,
            "is_dedupe_enabled": self.is_dedupe_enabled,
        }

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        if not self.is_dedupe_enabled(ctx.operation_type, ctx.plugin_options):
            return await call_next()

        pending = ctx.state_manager.get_pending_promise(ctx.query_key)
        current = asyncio.current_task()
        if pending is None or pending is current or pending.done():
            return await call_next()

        logger.debug("Joining in-flight request for %s", ctx.self_tag)
        try:
            # shield: this waiter being cancelled must not cancel the owner.
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if pending.cancelled() and not (current is not None and current.cancelling()):
                logger.debug("Shared request for %s was aborted, fetching again", ctx.self_tag)
                return await call_next()
            raise
