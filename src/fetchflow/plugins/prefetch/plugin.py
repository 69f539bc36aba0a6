"""Prefetch plugin -- run a read through the full chain without mounting it.

``await client.prefetch(client.api("posts").get(), stale_time=30)`` builds a
read controller, executes it once and discards it. Because it goes through
every plugin, a prefetch shares in-flight requests, respects fresh cache
entries and leaves its result in the cache for the controller that mounts
later.
"""

from __future__ import annotations

from typing import Any

from fetchflow.exceptions import PluginError
from fetchflow.plugins.base import Plugin
from fetchflow.plugins.context import InstanceContext
from fetchflow.request import RequestDescriptor
from fetchflow.types import OperationType, Response


class PrefetchPlugin(Plugin):
    """Expose ``prefetch(descriptor, force=False, **plugin_options)``."""

    @property
    def name(self) -> str:
        return "prefetch"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.READ,)

    def instance_api(self, ctx: InstanceContext) -> dict[str, Any]:
        async def prefetch(
            descriptor: RequestDescriptor, force: bool = False, **plugin_options: Any
        ) -> Response:
            """Execute *descriptor* as a read and return its response."""
            if ctx.client is None:
                raise PluginError("prefetch requires a client")
            controller = ctx.client.read(descriptor, enabled=False, **plugin_options)
            return await controller.execute(force=force)

        return {"prefetch": prefetch}
