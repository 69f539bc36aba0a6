"""Invalidation plugin -- mark related reads stale after a successful write.

After a write succeeds the plugin works out which tags to invalidate and
hands them to :meth:`~fetchflow.state.manager.StateManager.invalidate_by_tags`,
which flags matching entries stale and emits ``invalidate``. Mounted
controllers whose tags intersect then refetch.

The ``invalidate`` write option accepts a single string or a list mixing:

* explicit tags, e.g. ``"posts"`` or ``"users/7"``;
* a mode -- ``"all"`` (every tag of the write), ``"self"`` (its exact path)
  or ``"none"`` -- which replaces the default mode for this write;
* ``"*"`` -- mark every entry stale and emit ``refetch_all``.

Without a mode in the option the default applies: the plugin's configured
``default_mode`` (``all``), unless another plugin overrode it for the
current execution through the ``set_default_mode`` export. The optimistic
plugin does this to switch the default to ``none``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Union

from fetchflow.events.emitter import EVENT_REFETCH_ALL
from fetchflow.models import ClientConfig, InvalidationMode
from fetchflow.plugins.base import Plugin
from fetchflow.plugins.context import InstanceContext, PluginContext
from fetchflow.state.manager import StateManager
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)

DEFAULT_MODE_KEY = "invalidation:default_mode"
"""``ctx.temp`` key holding a one-execution override of the default mode."""

WILDCARD = "*"
_MODES = {mode.value for mode in InvalidationMode}


def _mark_all_stale(state_manager: StateManager) -> None:
    for key, _ in state_manager.get_all_cache_entries():
        state_manager.update_cache(key, stale=True)


class InvalidationPlugin(Plugin):
    """Invalidate tags after successful writes.

    Args:
        default_mode: Mode used when a write names none. ``None`` reads
            ``InvalidationConfig.default_mode``.
    """

    def __init__(self, default_mode: Union[InvalidationMode, str, None] = None) -> None:
        self._default_mode = InvalidationMode(default_mode) if default_mode is not None else None

    @property
    def name(self) -> str:
        return "invalidation"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.WRITE,)

    @property
    def description(self) -> str:
        return "Marks related reads stale after successful writes"

    def on_init(self, config: ClientConfig) -> None:
        if self._default_mode is None:
            self._default_mode = config.invalidation.default_mode

    def exports(self, ctx: PluginContext) -> dict[str, Any]:
        def set_default_mode(mode: Union[InvalidationMode, str]) -> None:
            ctx.temp[DEFAULT_MODE_KEY] = InvalidationMode(mode)

        def clear_default_mode() -> None:
            ctx.temp.pop(DEFAULT_MODE_KEY, None)

        return {"set_default_mode": set_default_mode, "clear_default_mode": clear_default_mode}

    def resolve(self, ctx: PluginContext) -> tuple[list[str], bool]:
        """Return ``(tags, wildcard)`` for the write described by *ctx*."""
        mode: InvalidationMode = ctx.temp.pop(DEFAULT_MODE_KEY, None) or (
            self._default_mode or InvalidationMode.ALL
        )
        option = ctx.plugin_options.get("invalidate")
        items: Iterable[str] = [option] if isinstance(option, str) else (option or ())

        tags: list[str] = []
        wildcard = False
        for item in items:
            if item == WILDCARD:
                wildcard = True
            elif item in _MODES:
                mode = InvalidationMode(item)
            else:
                tags.append(item)

        if mode is InvalidationMode.ALL:
            tags.extend(ctx.tags)
        elif mode is InvalidationMode.SELF:
            tags.append(ctx.self_tag)
        return list(dict.fromkeys(tags)), wildcard

    def after_response(self, ctx: PluginContext, response: Response) -> Optional[Response]:
        tags, wildcard = self.resolve(ctx)
        if response.error is not None or response.aborted:
            return None

        if wildcard:
            logger.debug("Write %s invalidated every entry", ctx.self_tag)
            _mark_all_stale(ctx.state_manager)
            ctx.event_emitter.emit(EVENT_REFETCH_ALL, None)
        if tags:
            ctx.state_manager.invalidate_by_tags(tags)
        return None

    def instance_api(self, ctx: InstanceContext) -> dict[str, Any]:
        def invalidate(tags: Union[str, Iterable[str]]) -> list[str]:
            """Invalidate *tags* (``"*"`` for everything); return the keys marked stale."""
            tag_list = [tags] if isinstance(tags, str) else list(tags)
            if WILDCARD in tag_list:
                marked = [key for key, _ in ctx.state_manager.get_all_cache_entries()]
                _mark_all_stale(ctx.state_manager)
                ctx.event_emitter.emit(EVENT_REFETCH_ALL, None)
                return marked
            return ctx.state_manager.invalidate_by_tags(tag_list)

        return {"invalidate": invalidate}
