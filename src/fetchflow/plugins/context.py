"""Context objects handed to plugin hooks.

* :class:`PluginContext` -- a mutable dataclass created per invocation by a
  controller and threaded through the middleware chain, the lifecycle hooks
  and ``after_response``. Fields are filled progressively: ``response`` is
  only set once the chain has resolved.
* :class:`PluginAccessor` -- ``ctx.plugins``; resolves another plugin's
  :meth:`~fetchflow.plugins.base.Plugin.exports` for this context.
* :class:`InstanceContext` -- what
  :meth:`~fetchflow.plugins.base.Plugin.instance_api` receives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from fetchflow.events.emitter import EventEmitter
from fetchflow.models import ClientConfig
from fetchflow.state.manager import StateManager
from fetchflow.types import OperationType, Response

if TYPE_CHECKING:
    from fetchflow.instance import FetchflowClient
    from fetchflow.plugins.executor import PluginExecutor


class PluginAccessor:
    """Look up other plugins' exports from within a hook.

    Args:
        executor: The executor holding the registered plugins.
        context: The context the exports are bound to.
    """

    def __init__(self, executor: PluginExecutor, context: PluginContext) -> None:
        self._executor = executor
        self._context = context

    def get(self, name: str) -> Optional[dict[str, Any]]:
        """Return the exports of plugin *name*, or ``None`` if it is not registered."""
        return self._executor.get_exports(name, self._context)

    def has(self, name: str) -> bool:
        return self._executor.has_plugin(name)


@dataclass
class PluginContext:
    """Mutable per-invocation state shared by every plugin hook.

    Attributes:
        operation_type: ``read``, ``write`` or ``infinite_read``.
        path: Resolved path segments.
        method: Upper-case HTTP method.
        query_key: Canonical key of the request.
        tags: Invalidation tags of the request.
        state_manager: The client's state manager.
        event_emitter: The client's event emitter.
        request: ``query``, ``params``, ``body`` and ``headers`` sent to the
            transport. Middleware may rewrite them.
        fetch_options: Transport options (``retries``, ``retry_delay``,
            ``timeout``).
        plugin_options: Per-request plugin options after precedence merging.
        temp: Scratch space owned by the controller; survives across
            executions of the same controller.
        instance_id: Identifies the controller that created the context.
        request_timestamp: When the invocation started (state manager clock).
        force_refetch: Set by forced executions; the cache plugin skips its
            lookup.
        response: The final response, set once the chain resolved.
        abort: Cancels the in-flight request of the owning controller.
        refetch: Starts a forced execution of the owning controller.
        plugins: Accessor for other plugins' exports.
    """

    operation_type: OperationType
    path: list[str]
    method: str
    query_key: str
    tags: list[str]
    state_manager: StateManager
    event_emitter: EventEmitter
    request: dict[str, Any] = field(default_factory=dict)
    fetch_options: dict[str, Any] = field(default_factory=dict)
    plugin_options: dict[str, Any] = field(default_factory=dict)
    temp: dict[str, Any] = field(default_factory=dict)
    instance_id: Optional[str] = None
    request_timestamp: float = 0.0
    force_refetch: bool = False
    response: Optional[Response] = None
    abort: Optional[Callable[[], None]] = None
    refetch: Optional[Callable[[], Awaitable[Response]]] = None
    plugins: Optional[PluginAccessor] = None

    @property
    def self_tag(self) -> str:
        """The exact path of the request, ``"posts/1"`` for ``["posts", "1"]``."""
        return "/".join(self.path)

    def option(self, name: str, default: Any = None) -> Any:
        """Return plugin option *name*, or *default* when unset or ``None``."""
        value = self.plugin_options.get(name)
        return default if value is None else value


@dataclass
class InstanceContext:
    """Dependencies available to :meth:`~fetchflow.plugins.base.Plugin.instance_api`."""

    state_manager: StateManager
    event_emitter: EventEmitter
    executor: PluginExecutor
    config: ClientConfig
    client: Optional[FetchflowClient] = None
