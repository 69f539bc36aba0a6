"""Plugin executor -- registration, ordering, and hook execution.

:class:`PluginExecutor` owns the plugin tuple of one client. It validates
plugins on registration, keeps them sorted by ascending
:attr:`~fetchflow.plugins.base.Plugin.priority` (stable for ties), and runs:

* the middleware chain, onion-composed around the transport call;
* ``after_response`` hooks once the chain has resolved;
* ``on_mount`` / ``on_update`` / ``on_unmount`` lifecycle hooks on behalf of
  controllers;
* ``exports`` lookups for :class:`~fetchflow.plugins.context.PluginAccessor`;
* ``instance_api`` collection for the client object.

Third-party packages register plugins under the ``fetchflow.plugins``
entry-point group::

    [project.entry-points."fetchflow.plugins"]
    my-plugin = "my_package.plugin:MyPlugin"
"""

from __future__ import annotations

import functools
import importlib.metadata
import inspect
import logging
import math
import numbers
from typing import Any, Awaitable, Callable, Iterable, Optional

from fetchflow.events.emitter import EVENT_REQUEST_COMPLETE
from fetchflow.exceptions import PluginError
from fetchflow.models import ClientConfig
from fetchflow.plugins.base import NextFn, Plugin, declares
from fetchflow.plugins.context import InstanceContext, PluginAccessor, PluginContext
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "fetchflow.plugins"
"""The entry-point group name used for plugin discovery."""

LIFECYCLE_HOOKS = ("on_mount", "on_unmount")

CoreFetch = Callable[[], Awaitable[Response]]


class PluginExecutor:
    """Registers plugins and runs their hooks.

    Args:
        plugins: Plugins to register, in any order.
        config: Client configuration handed to each plugin's
            :meth:`~fetchflow.plugins.base.Plugin.on_init` and consulted by
            :meth:`discover`.

    Raises:
        PluginError: If a plugin is invalid, registered twice, or depends on
            a plugin that is not registered.

    Example::

        executor = PluginExecutor([CachePlugin(stale_time=5), DeduplicationPlugin()])
        response = await executor.execute_middleware(OperationType.READ, ctx, core_fetch)
    """

    def __init__(
        self,
        plugins: Iterable[Plugin] = (),
        config: Optional[ClientConfig] = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._plugins: dict[str, Plugin] = {}
        self._ordered: Optional[tuple[Plugin, ...]] = None
        for plugin in plugins:
            self.register(plugin, check_dependencies=False)
        self.validate_dependencies()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self) -> list[str]:
        """Register plugins found in the ``fetchflow.plugins`` entry-point group.

        The ``plugins.enabled`` list of the client configuration acts as an
        allowlist when non-empty; ``plugins.disabled`` is a blocklist.
        Entry points whose name is already registered are skipped.

        Returns:
            Names of the plugins that were registered. Plugins that fail to
            load are logged as warnings and skipped.
        """
        loaded: list[str] = []
        enabled = set(self._config.plugins.enabled)
        disabled = set(self._config.plugins.disabled)

        for ep in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
            name = ep.name
            if enabled and name not in enabled:
                logger.debug("Plugin '%s' not in enabled list, skipping", name)
                continue
            if name in disabled:
                logger.debug("Plugin '%s' is disabled, skipping", name)
                continue
            if name in self._plugins:
                logger.debug("Plugin '%s' already registered, skipping", name)
                continue

            try:
                plugin_cls = ep.load()
                plugin: Plugin = plugin_cls()
                self.register(plugin, check_dependencies=False)
                loaded.append(plugin.name)
            except Exception as exc:
                logger.warning("Failed to load plugin '%s': %s", name, exc)

        self.validate_dependencies()
        return loaded

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, plugin: Plugin, *, check_dependencies: bool = True) -> None:
        """Validate, initialize and register a single plugin.

        Args:
            plugin: The plugin instance.
            check_dependencies: Verify :attr:`~fetchflow.plugins.base.Plugin.dependencies`
                right away. Batch registration defers this until every plugin
                is in.

        Raises:
            PluginError: If the name is empty or taken, ``operations`` is
                empty or holds an unknown operation, or ``priority`` is not a
                finite number.
        """
        name = plugin.name
        if not isinstance(name, str) or not name:
            raise PluginError(f"Plugin {plugin!r} must have a non-empty name")
        if name in self._plugins:
            raise PluginError(f"Plugin '{name}' is already registered")

        operations = tuple(plugin.operations or ())
        if not operations:
            raise PluginError(f"Plugin '{name}' must declare at least one operation")
        for operation in operations:
            try:
                OperationType(operation)
            except ValueError:
                raise PluginError(
                    f"Plugin '{name}' declares unknown operation {operation!r}"
                ) from None

        priority = plugin.priority
        if (
            isinstance(priority, bool)
            or not isinstance(priority, numbers.Real)
            or not math.isfinite(priority)
        ):
            raise PluginError(f"Plugin '{name}' has invalid priority {priority!r}")

        plugin.on_init(self._config)
        self._plugins[name] = plugin
        self._ordered = None
        logger.info("Registered plugin '%s' v%s (priority %s)", name, plugin.version, priority)

        if check_dependencies:
            self.validate_dependencies()

    def validate_dependencies(self) -> None:
        """Raise :class:`PluginError` for the first unmet plugin dependency."""
        for plugin in self._plugins.values():
            missing = [dep for dep in plugin.dependencies if dep not in self._plugins]
            if missing:
                raise PluginError(
                    f"Plugin '{plugin.name}' requires missing plugin(s): {', '.join(missing)}"
                )

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def get_plugin(self, name: str) -> Plugin:
        """Retrieve a registered plugin by name.

        Raises:
            PluginError: If no plugin with the given *name* is registered.
        """
        try:
            return self._plugins[name]
        except KeyError:
            raise PluginError(f"Plugin '{name}' is not registered") from None

    def has_plugin(self, name: str) -> bool:
        return name in self._plugins

    def list_plugins(self) -> list[dict[str, Any]]:
        """Plugin metadata in chain order, for display."""
        return [
            {
                "name": plugin.name,
                "version": plugin.version,
                "priority": plugin.priority,
                "operations": [OperationType(op).value for op in plugin.operations],
                "description": plugin.description,
            }
            for plugin in self.plugins
        ]

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        """Registered plugins sorted by ascending priority, registration order for ties."""
        if self._ordered is None:
            # sorted() is stable, so equal priorities keep registration order.
            self._ordered = tuple(sorted(self._plugins.values(), key=lambda p: p.priority))
        return self._ordered

    def for_operation(self, operation: OperationType) -> list[Plugin]:
        """Plugins supporting *operation*, in chain order."""
        operation = OperationType(operation)
        return [
            plugin
            for plugin in self.plugins
            if operation in {OperationType(op) for op in plugin.operations}
        ]

    # ------------------------------------------------------------------
    # Contexts and exports
    # ------------------------------------------------------------------

    def create_context(self, **fields: Any) -> PluginContext:
        """Build a :class:`PluginContext` whose ``plugins`` accessor points here."""
        ctx = PluginContext(**fields)
        ctx.plugins = PluginAccessor(self, ctx)
        return ctx

    def get_exports(self, name: str, ctx: PluginContext) -> Optional[dict[str, Any]]:
        """Return what plugin *name* exports for *ctx*, or ``None`` if it is absent."""
        plugin = self._plugins.get(name)
        if plugin is None:
            return None
        return plugin.exports(ctx)

    def build_instance_api(self, instance_ctx: InstanceContext) -> dict[str, Any]:
        """Collect every plugin's ``instance_api`` into one mapping.

        Raises:
            PluginError: If two plugins contribute the same attribute name.
        """
        api: dict[str, Any] = {}
        owners: dict[str, str] = {}
        for plugin in self.plugins:
            for attr, value in (plugin.instance_api(instance_ctx) or {}).items():
                if attr in api:
                    raise PluginError(
                        f"Plugins '{owners[attr]}' and '{plugin.name}' both provide '{attr}'"
                    )
                api[attr] = value
                owners[attr] = plugin.name
        return api

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_middleware(
        self,
        operation: OperationType,
        ctx: PluginContext,
        core_fetch: CoreFetch,
    ) -> Response:
        """Run the middleware chain around *core_fetch*, then ``after_response``.

        The first plugin in chain order is the outermost layer. When every
        hook has run the ``request_complete`` event is emitted.

        Args:
            operation: The operation type; selects the eligible plugins.
            ctx: The invocation context. ``ctx.response`` is set to the
                final response.
            core_fetch: The innermost step, normally the transport call.

        Returns:
            The final :class:`~fetchflow.types.Response`.

        Raises:
            PluginError: If a middleware resolves to something other than a
                :class:`~fetchflow.types.Response`.
        """
        eligible = self.for_operation(operation)

        async def innermost() -> Response:
            logger.debug("%s %s reached transport", ctx.method, ctx.self_tag)
            return await core_fetch()

        chain: NextFn = innermost
        for plugin in reversed(eligible):
            if declares(plugin, "middleware"):
                chain = functools.partial(plugin.middleware, ctx, chain)

        response = await chain()
        if not isinstance(response, Response):
            raise PluginError(
                f"Middleware chain for {ctx.method} {ctx.self_tag} returned "
                f"{type(response).__name__}, expected Response"
            )
        ctx.response = response

        for plugin in eligible:
            if not declares(plugin, "after_response"):
                continue
            result = plugin.after_response(ctx, response)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, Response):
                response = result
                ctx.response = response

        ctx.event_emitter.emit(
            EVENT_REQUEST_COMPLETE,
            {"query_key": ctx.query_key, "operation_type": ctx.operation_type, "response": response},
        )
        return response

    async def execute_lifecycle(
        self, hook: str, operation: OperationType, ctx: PluginContext
    ) -> None:
        """Invoke lifecycle *hook* (``on_mount`` or ``on_unmount``) in chain order.

        Raises:
            ValueError: If *hook* is not a lifecycle hook name.
        """
        if hook not in LIFECYCLE_HOOKS:
            raise ValueError(f"Unknown lifecycle hook: {hook}")
        for plugin in self.for_operation(operation):
            if not declares(plugin, hook):
                continue
            result = getattr(plugin, hook)(ctx)
            if inspect.isawaitable(result):
                await result

    async def execute_update_lifecycle(
        self, operation: OperationType, ctx: PluginContext, previous: PluginContext
    ) -> None:
        """Invoke ``on_update`` with the new and previous contexts, in chain order."""
        for plugin in self.for_operation(operation):
            if not declares(plugin, "on_update"):
                continue
            result = plugin.on_update(ctx, previous)
            if inspect.isawaitable(result):
                await result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cleanup(self) -> None:
        """Call :meth:`~fetchflow.plugins.base.Plugin.cleanup` on every plugin.

        Exceptions from individual plugins are logged so one plugin's failure
        does not prevent the others from cleaning up. The registry is kept.
        """
        for name, plugin in self._plugins.items():
            try:
                plugin.cleanup()
            except Exception as exc:
                logger.warning("Error cleaning up plugin '%s': %s", name, exc)

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins
