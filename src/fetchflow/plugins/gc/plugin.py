"""Garbage-collection plugin -- bound the size of the in-memory cache.

Entries are only removed while nothing observes them: a key with mounted
subscribers or a request in flight is never collected. Among the rest, an
entry goes when it is older than ``max_age`` seconds, and then the oldest
go until at most ``max_entries`` remain. Metadata is removed with the entry.

Collection runs on demand through ``client.run_gc()`` and, when ``interval``
is set, periodically once the first controller mounts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fetchflow.models import ClientConfig
from fetchflow.plugins.base import READ_OPERATIONS, Plugin
from fetchflow.plugins.context import InstanceContext, PluginContext
from fetchflow.state.manager import StateManager
from fetchflow.types import OperationType

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def collect_garbage(
    state_manager: StateManager,
    max_age: Optional[float] = None,
    max_entries: Optional[int] = None,
) -> list[str]:
    """Delete unobserved entries exceeding *max_age* or *max_entries*.

    Returns:
        The removed query keys, oldest first within each rule.
    """
    now = state_manager.now()
    candidates = [
        (key, entry)
        for key, entry in state_manager.get_all_cache_entries()
        if state_manager.get_subscribers_count(key) == 0
        and state_manager.get_pending_promise(key) is None
    ]
    candidates.sort(key=lambda item: item[1].state.timestamp)

    removed: list[str] = []
    if max_age is not None:
        removed.extend(key for key, entry in candidates if now - entry.state.timestamp > max_age)

    if max_entries is not None:
        excess = len(state_manager) - len(removed) - max_entries
        for key, _ in candidates:
            if excess <= 0:
                break
            if key not in removed:
                removed.append(key)
                excess -= 1

    for key in removed:
        state_manager.delete_cache(key)
        state_manager.delete_meta(key)
    if removed:
        logger.debug("Collected %d cache entries", len(removed))
    return removed


class GcPlugin(Plugin):
    """Expose ``run_gc`` and run it on a timer.

    Args:
        max_age: Seconds after which an unobserved entry is removed.
        max_entries: Upper bound on the number of entries.
        interval: Seconds between automatic runs; ``None`` disables the
            timer.

    Arguments left unset are read from ``ClientConfig.gc``.
    """

    def __init__(
        self,
        max_age: Optional[float] = _UNSET,
        max_entries: Optional[int] = _UNSET,
        interval: Optional[float] = _UNSET,
    ) -> None:
        self.max_age = max_age
        self.max_entries = max_entries
        self.interval = interval
        self._state_manager: Optional[StateManager] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def name(self) -> str:
        return "gc"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return READ_OPERATIONS

    def on_init(self, config: ClientConfig) -> None:
        if self.max_age is _UNSET:
            self.max_age = config.gc.max_age
        if self.max_entries is _UNSET:
            self.max_entries = config.gc.max_entries
        if self.interval is _UNSET:
            self.interval = config.gc.interval

    def on_mount(self, ctx: PluginContext) -> None:
        self._state_manager = ctx.state_manager
        if self._handle is None and self.interval:
            self._schedule()

    def instance_api(self, ctx: InstanceContext) -> dict[str, Any]:
        self._state_manager = ctx.state_manager

        def run_gc(
            max_age: Optional[float] = None, max_entries: Optional[int] = None
        ) -> list[str]:
            """Collect now; arguments override the configured limits."""
            return collect_garbage(
                ctx.state_manager,
                max_age=self.max_age if max_age is None else max_age,
                max_entries=self.max_entries if max_entries is None else max_entries,
            )

        return {"run_gc": run_gc}

    def cleanup(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.interval, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if self._state_manager is not None:
            collect_garbage(self._state_manager, self.max_age, self.max_entries)
        self._schedule()
