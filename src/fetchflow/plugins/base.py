"""Abstract base class for fetchflow plugins.

Every plugin subclasses :class:`Plugin` and implements :attr:`~Plugin.name`
and :attr:`~Plugin.operations`. All hooks have no-op defaults, so a plugin
only overrides what it needs:

* :meth:`~Plugin.middleware` -- wraps the transport call (onion style).
* :meth:`~Plugin.on_mount`, :meth:`~Plugin.on_update`,
  :meth:`~Plugin.on_unmount` -- controller lifecycle, outside the chain.
* :meth:`~Plugin.after_response` -- side effects once the chain resolved.
* :meth:`~Plugin.exports` -- functions other plugins reach through
  ``ctx.plugins.get(name)``.
* :meth:`~Plugin.instance_api` -- methods attached to the client object.

Plugins can be passed to :func:`~fetchflow.instance.create_client` directly
or registered as entry points in the ``fetchflow.plugins`` group and loaded
by :meth:`~fetchflow.plugins.executor.PluginExecutor.discover`.

Example:
    A plugin that stamps a header on every write::

        class StampPlugin(Plugin):
            @property
            def name(self) -> str:
                return "stamp"

            @property
            def operations(self) -> tuple[OperationType, ...]:
                return (OperationType.WRITE,)

            async def middleware(self, ctx, call_next):
                ctx.request.setdefault("headers", {})["X-Stamp"] = "1"
                return await call_next()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from fetchflow.models import ClientConfig
from fetchflow.types import OperationType, Response

if TYPE_CHECKING:
    from fetchflow.plugins.context import InstanceContext, PluginContext

NextFn = Callable[[], Awaitable[Response]]
"""The continuation handed to :meth:`Plugin.middleware`."""

HookResult = Union[None, Awaitable[None]]

ALL_OPERATIONS: tuple[OperationType, ...] = (
    OperationType.READ,
    OperationType.WRITE,
    OperationType.INFINITE_READ,
)
READ_OPERATIONS: tuple[OperationType, ...] = (
    OperationType.READ,
    OperationType.INFINITE_READ,
)


class Plugin(ABC):
    """Base class for all fetchflow plugins.

    The plugin lifecycle is:

    1. Instantiation -- by user code, or with no arguments during entry-point
       discovery.
    2. :meth:`on_init` -- called once at registration with the client
       configuration.
    3. Hooks -- called by controllers and the executor for every operation
       listed in :attr:`operations`.
    4. :meth:`cleanup` -- called once when the client closes.

    Lifecycle hooks and :meth:`after_response` may be plain methods or
    coroutines; the executor awaits whatever they return.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique plugin name used for lookup, exports and logging."""
        ...

    @property
    @abstractmethod
    def operations(self) -> tuple[OperationType, ...]:
        """Operation types the plugin participates in. Must not be empty."""
        ...

    @property
    def priority(self) -> float:
        """Chain position. Lower values wrap outer, higher run closer to the transport."""
        return 0

    @property
    def dependencies(self) -> tuple[str, ...]:
        """Names of plugins that must also be registered."""
        return ()

    @property
    def version(self) -> str:
        return "0.1.0"

    @property
    def description(self) -> str:
        return ""

    def on_init(self, config: ClientConfig) -> None:
        """Called once at registration.

        Plugins constructed without explicit settings read their defaults
        from the matching section of *config* here.

        Args:
            config: The client configuration.
        """

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        """Wrap the rest of the chain.

        Args:
            ctx: The mutable context of this invocation.
            call_next: Runs the remaining middleware and finally the
                transport.

        Returns:
            The response, either from ``call_next()`` or synthesized.
        """
        return await call_next()

    def on_mount(self, ctx: PluginContext) -> HookResult:
        """Called when a controller mounts."""

    def on_update(self, ctx: PluginContext, previous: PluginContext) -> HookResult:
        """Called when a controller's options change.

        Args:
            ctx: Context built from the new options.
            previous: Context built from the options before the update.
        """

    def on_unmount(self, ctx: PluginContext) -> HookResult:
        """Called when a controller unmounts. Release listeners registered in :meth:`on_mount`."""

    def after_response(
        self, ctx: PluginContext, response: Response
    ) -> Union[Optional[Response], Awaitable[Optional[Response]]]:
        """Called after the chain resolved, whichever middleware produced *response*.

        Returns:
            A replacement :class:`~fetchflow.types.Response`, or ``None`` to
            keep *response*.
        """
        return None

    def exports(self, ctx: PluginContext) -> Optional[dict[str, Any]]:
        """Functions published to other plugins via ``ctx.plugins.get(self.name)``."""
        return None

    def instance_api(self, ctx: InstanceContext) -> dict[str, Any]:
        """Methods to attach to the client object, keyed by attribute name."""
        return {}

    def cleanup(self) -> None:
        """Called once when the owning client closes."""


def declares(plugin: Plugin, hook: str) -> bool:
    """Whether *plugin* overrides *hook* from :class:`Plugin`."""
    return getattr(type(plugin), hook, None) is not getattr(Plugin, hook)
