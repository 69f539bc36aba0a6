"""Initial-data plugin -- show placeholder data before the first fetch.

On the first execution of a controller that passes ``initial_data`` and
finds no cached data, the value is written to the cache and returned
without touching the transport; meta ``is_initial_data`` is set to ``True``.
With ``refetch_on_initial_data=True`` the request is sent anyway after
seeding. Every later successful response sets ``is_initial_data`` back to
``False``.

Seeding happens once per controller. The flag lives in the controller's
``temp`` dict, so it goes away with the controller and is reset on unmount.
"""

from __future__ import annotations

from fetchflow.plugins.base import READ_OPERATIONS, NextFn, Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.types import OperationState, OperationType, Response

IS_INITIAL_DATA = "is_initial_data"

_SEEDED_KEY = "initial_data:seeded"


class InitialDataPlugin(Plugin):
    """Seed the cache from the ``initial_data`` option."""

    @property
    def name(self) -> str:
        return "initial_data"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return READ_OPERATIONS

    @property
    def priority(self) -> float:
        return -30

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        initial = ctx.plugin_options.get("initial_data")
        if initial is None or ctx.instance_id is None or ctx.temp.get(_SEEDED_KEY):
            return await self._fetch(ctx, call_next)

        ctx.temp[_SEEDED_KEY] = True
        entry = ctx.state_manager.get_cache(ctx.query_key)
        if entry is not None and entry.state.data is not None:
            return await self._fetch(ctx, call_next)

        ctx.state_manager.set_cache(
            ctx.query_key,
            OperationState(data=initial, timestamp=ctx.state_manager.now()),
            tags=ctx.tags,
        )
        ctx.state_manager.set_meta(ctx.query_key, {IS_INITIAL_DATA: True})

        if ctx.plugin_options.get("refetch_on_initial_data"):
            # the seeded entry must not satisfy the cache lookup
            ctx.force_refetch = True
            return await self._fetch(ctx, call_next)
        return Response(status=200, data=initial, cached=True)

    @staticmethod
    async def _fetch(ctx: PluginContext, call_next: NextFn) -> Response:
        response = await call_next()
        if response.error is None and not response.aborted:
            ctx.state_manager.set_meta(ctx.query_key, {IS_INITIAL_DATA: False})
        return response

    def on_unmount(self, ctx: PluginContext) -> None:
        ctx.temp.pop(_SEEDED_KEY, None)
