"""Refetch plugin -- revalidate mounted reads on focus or reconnect.

There is no window or network monitor in a Python process, so the host
application reports these signals itself through the instance API::

    client.notify_focus()
    client.notify_reconnect()

Both emit an event on the client's emitter; every mounted read whose
``refetch_on_focus`` / ``refetch_on_reconnect`` policy is on executes with
``force=True``. Policies come from the per-request options, falling back to
``RefetchConfig``. When options change, the listeners are rebuilt from the
new options: the last update wins.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from fetchflow.events.emitter import EVENT_FOCUS, EVENT_RECONNECT
from fetchflow.models import ClientConfig
from fetchflow.plugins.base import READ_OPERATIONS, Plugin
from fetchflow.plugins.context import InstanceContext, PluginContext
from fetchflow.types import OperationType

logger = logging.getLogger(__name__)


class RefetchPlugin(Plugin):
    """Subscribe mounted reads to focus and reconnect events.

    Args:
        refetch_on_focus: Default focus policy; ``None`` reads the config.
        refetch_on_reconnect: Default reconnect policy; ``None`` reads the
            config.
    """

    def __init__(
        self,
        refetch_on_focus: Optional[bool] = None,
        refetch_on_reconnect: Optional[bool] = None,
    ) -> None:
        self.refetch_on_focus = refetch_on_focus
        self.refetch_on_reconnect = refetch_on_reconnect
        self._unsubscribers: dict[str, list[Callable[[], None]]] = {}
        self._tasks: set[asyncio.Future] = set()

    @property
    def name(self) -> str:
        return "refetch"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return READ_OPERATIONS

    def on_init(self, config: ClientConfig) -> None:
        if self.refetch_on_focus is None:
            self.refetch_on_focus = config.refetch.refetch_on_focus
        if self.refetch_on_reconnect is None:
            self.refetch_on_reconnect = config.refetch.refetch_on_reconnect

    def on_mount(self, ctx: PluginContext) -> None:
        self._subscribe(ctx)

    def on_update(self, ctx: PluginContext, previous: PluginContext) -> None:
        self._unsubscribe(ctx.instance_id)
        self._subscribe(ctx)

    def on_unmount(self, ctx: PluginContext) -> None:
        self._unsubscribe(ctx.instance_id)

    def listening(self, instance_id: str) -> int:
        """Number of signals *instance_id* currently listens to."""
        return len(self._unsubscribers.get(instance_id, ()))

    def instance_api(self, ctx: InstanceContext) -> dict[str, Any]:
        def notify_focus() -> None:
            """Report that the application regained focus."""
            ctx.event_emitter.emit(EVENT_FOCUS, None)

        def notify_reconnect() -> None:
            """Report that network connectivity came back."""
            ctx.event_emitter.emit(EVENT_RECONNECT, None)

        return {"notify_focus": notify_focus, "notify_reconnect": notify_reconnect}

    def cleanup(self) -> None:
        for instance_id in list(self._unsubscribers):
            self._unsubscribe(instance_id)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def _subscribe(self, ctx: PluginContext) -> None:
        if ctx.instance_id is None or ctx.refetch is None:
            return
        refetch = ctx.refetch

        def on_signal(_payload: Any) -> None:
            logger.debug("Refetching %s on signal", ctx.self_tag)
            task = asyncio.ensure_future(refetch())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        unsubscribers = []
        if ctx.option("refetch_on_focus", self.refetch_on_focus):
            unsubscribers.append(ctx.event_emitter.on(EVENT_FOCUS, on_signal))
        if ctx.option("refetch_on_reconnect", self.refetch_on_reconnect):
            unsubscribers.append(ctx.event_emitter.on(EVENT_RECONNECT, on_signal))
        if unsubscribers:
            self._unsubscribers[ctx.instance_id] = unsubscribers

    def _unsubscribe(self, instance_id: Optional[str]) -> None:
        for unsubscribe in self._unsubscribers.pop(instance_id, []):
            unsubscribe()
