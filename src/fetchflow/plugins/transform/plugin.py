"""Transform plugin -- store a derived view of response data in metadata.

The raw data stays in the cache untouched; ``transform(data)`` is stored
under the ``transformed_data`` meta key, which controllers expose through
``snapshot.meta``. The transform may be a plain function or a coroutine
function.
"""

from __future__ import annotations

import inspect
from typing import Optional

from fetchflow.plugins.base import Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.types import OperationType, Response

TRANSFORMED_DATA = "transformed_data"


class TransformPlugin(Plugin):
    """Run the per-request ``transform`` option over successful responses."""

    @property
    def name(self) -> str:
        return "transform"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.READ, OperationType.WRITE)

    async def after_response(self, ctx: PluginContext, response: Response) -> Optional[Response]:
        transform = ctx.plugin_options.get("transform")
        if transform is None or response.error is not None or response.data is None:
            return None

        result = transform(response.data)
        if inspect.isawaitable(result):
            result = await result
        ctx.state_manager.set_meta(ctx.query_key, {TRANSFORMED_DATA: result})
        return None
