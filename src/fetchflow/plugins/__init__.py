"""Plugin system for fetchflow -- registration, ordering, and hook execution.

Every cross-cutting behaviour (caching, deduplication, invalidation, retry,
polling, debouncing, optimistic updates) is a plugin. The core only knows
how to run them: :class:`PluginExecutor` sorts plugins by priority, composes
their middleware around the transport call and invokes their lifecycle
hooks on behalf of controllers.

Key classes:

* :class:`Plugin` -- Abstract base class that all plugins extend.
* :class:`PluginExecutor` -- Registers plugins and runs their hooks.
* :class:`PluginContext` -- Mutable per-invocation state handed to hooks.
* :class:`InstanceContext` -- What ``instance_api`` hooks receive.

Built-in plugins live in subpackages and are re-exported here. They are also
registered as ``fetchflow.plugins`` entry points, so
:meth:`PluginExecutor.discover` can load them by name.

Example::

    from fetchflow.plugins import CachePlugin, DeduplicationPlugin

    client = create_client(
        "https://api.example.com",
        plugins=[CachePlugin(stale_time=30), DeduplicationPlugin()],
    )
"""

from fetchflow.plugins.base import Plugin
from fetchflow.plugins.cache import CachePlugin
from fetchflow.plugins.context import InstanceContext, PluginAccessor, PluginContext
from fetchflow.plugins.debounce import DebouncePlugin
from fetchflow.plugins.debug import DebugPlugin
from fetchflow.plugins.deduplication import DeduplicationPlugin
from fetchflow.plugins.executor import PluginExecutor
from fetchflow.plugins.gc import GcPlugin
from fetchflow.plugins.initial_data import InitialDataPlugin
from fetchflow.plugins.invalidation import InvalidationPlugin
from fetchflow.plugins.optimistic import OptimisticPlugin, OptimisticUpdate
from fetchflow.plugins.polling import PollingPlugin
from fetchflow.plugins.prefetch import PrefetchPlugin
from fetchflow.plugins.refetch import RefetchPlugin
from fetchflow.plugins.retry import RetryPlugin
from fetchflow.plugins.throttle import ThrottlePlugin
from fetchflow.plugins.transform import TransformPlugin

__all__ = [
    "Plugin",
    "PluginExecutor",
    "PluginContext",
    "PluginAccessor",
    "InstanceContext",
    "CachePlugin",
    "DebouncePlugin",
    "DebugPlugin",
    "DeduplicationPlugin",
    "GcPlugin",
    "InitialDataPlugin",
    "InvalidationPlugin",
    "OptimisticPlugin",
    "OptimisticUpdate",
    "PollingPlugin",
    "PrefetchPlugin",
    "RefetchPlugin",
    "RetryPlugin",
    "ThrottlePlugin",
    "TransformPlugin",
    "default_plugins",
]


def default_plugins() -> list[Plugin]:
    """The plugin set used when a client is created without explicit plugins."""
    return [
        CachePlugin(),
        DeduplicationPlugin(),
        InvalidationPlugin(),
        RetryPlugin(),
    ]
