"""Client factory -- the public entry point of fetchflow.

:func:`create_client` wires one :class:`~fetchflow.state.manager.StateManager`,
one :class:`~fetchflow.events.emitter.EventEmitter`, one
:class:`~fetchflow.plugins.executor.PluginExecutor` and one transport into a
:class:`FetchflowClient`. Everything is scoped to that client: two clients
never share cache entries, listeners or plugin state.

The client's :meth:`~FetchflowClient.read`, :meth:`~FetchflowClient.write`
and :meth:`~FetchflowClient.infinite_read` are the only way to create
controllers. Methods contributed by plugins through ``instance_api``
(``invalidate``, ``clear_cache``, ``prefetch``, ...) are available as
attributes of the client.

Example::

    async with create_client("https://api.example.com") as client:
        posts = client.read(client.api("posts").get(), stale_time=30)
        response = await posts.execute()
        client.invalidate(["posts"])
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Mapping, Optional

from fetchflow.client.fetch import fetch_response
from fetchflow.client.transport import HttpxTransport, Transport
from fetchflow.events.emitter import EventEmitter
from fetchflow.exceptions import PluginError, ProgrammerError
from fetchflow.models import ClientConfig
from fetchflow.operations.controller import OperationController
from fetchflow.operations.infinite import InfiniteReadController, PagePredicate, PageRequestBuilder
from fetchflow.plugins import default_plugins
from fetchflow.plugins.base import Plugin
from fetchflow.plugins.context import InstanceContext, PluginContext
from fetchflow.plugins.executor import PluginExecutor
from fetchflow.request import RequestBuilder, RequestDescriptor, TagOption
from fetchflow.state.manager import StateManager
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)


class FetchflowClient:
    """A configured request-orchestration client.

    Use :func:`create_client` rather than instantiating this directly.
    """

    def __init__(
        self,
        *,
        config: ClientConfig,
        state_manager: StateManager,
        event_emitter: EventEmitter,
        executor: PluginExecutor,
        transport: Transport,
        owns_transport: bool = False,
    ) -> None:
        self.config = config
        self.state_manager = state_manager
        self.event_emitter = event_emitter
        self.executor = executor
        self.transport = transport
        self._owns_transport = owns_transport
        self._instance_api: dict[str, Any] = {}
        self._closed = False

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def closed(self) -> bool:
        return self._closed

    def api(self, *segments: Any) -> RequestBuilder:
        """Start a request description: ``client.api("posts", 1).get()``."""
        return RequestBuilder(*segments)

    # ------------------------------------------------------------------
    # Controllers
    # ------------------------------------------------------------------

    def read(
        self,
        descriptor: RequestDescriptor,
        *,
        tags: TagOption = None,
        enabled: bool = True,
        **plugin_options: Any,
    ) -> OperationController:
        """Create a read controller.

        Args:
            descriptor: The request, usually ``client.api(...).get(...)``.
            tags: Explicit tags or a tag mode; path prefixes by default.
            enabled: Whether :meth:`~OperationController.mount` executes.
            **plugin_options: Controller-level plugin options such as
                ``stale_time``, ``dedupe`` or ``polling_interval``.

        Raises:
            ProgrammerError: If a path placeholder has no value.
        """
        return OperationController(
            OperationType.READ,
            descriptor,
            tags=tags,
            enabled=enabled,
            **self._controller_kwargs(plugin_options),
        )

    def write(
        self,
        descriptor: RequestDescriptor,
        *,
        tags: TagOption = None,
        **plugin_options: Any,
    ) -> OperationController:
        """Create a write controller; nothing is sent until :meth:`~OperationController.execute`."""
        return OperationController(
            OperationType.WRITE,
            descriptor,
            tags=tags,
            enabled=False,
            **self._controller_kwargs(plugin_options),
        )

    def infinite_read(
        self,
        descriptor: RequestDescriptor,
        *,
        merger: Callable[[list[Any]], Any],
        can_fetch_next: Optional[PagePredicate] = None,
        next_page_request: Optional[PageRequestBuilder] = None,
        can_fetch_prev: Optional[PagePredicate] = None,
        prev_page_request: Optional[PageRequestBuilder] = None,
        tags: TagOption = None,
        enabled: bool = True,
        **plugin_options: Any,
    ) -> InfiniteReadController:
        """Create a paginated read controller.

        See :class:`~fetchflow.operations.infinite.InfiniteReadController`
        for the meaning of the continuation callables.
        """
        return InfiniteReadController(
            descriptor,
            merger=merger,
            can_fetch_next=can_fetch_next,
            next_page_request=next_page_request,
            can_fetch_prev=can_fetch_prev,
            prev_page_request=prev_page_request,
            tags=tags,
            enabled=enabled,
            **self._controller_kwargs(plugin_options),
        )

    def _controller_kwargs(self, plugin_options: Mapping[str, Any]) -> dict[str, Any]:
        if self._closed:
            raise ProgrammerError("Client is closed")
        return {
            "state_manager": self.state_manager,
            "event_emitter": self.event_emitter,
            "executor": self.executor,
            "fetcher": self._fetch,
            "client_options": self.config.plugin_options,
            "plugin_options": plugin_options,
        }

    async def _fetch(self, ctx: PluginContext) -> Response:
        return await fetch_response(
            self.transport,
            base_url=self.config.base_url,
            method=ctx.method,
            path=ctx.path,
            request=ctx.request,
            options=ctx.fetch_options,
        )

    # ------------------------------------------------------------------
    # Instance API
    # ------------------------------------------------------------------

    def _install_instance_api(self, api: Mapping[str, Any]) -> None:
        for name in api:
            if hasattr(type(self), name) or name in self.__dict__:
                raise PluginError(f"Instance API '{name}' would shadow a client attribute")
        self._instance_api = dict(api)

    @property
    def instance_api(self) -> dict[str, Any]:
        """Plugin-contributed methods, keyed by attribute name."""
        return dict(self._instance_api)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails.
        api = self.__dict__.get("_instance_api", {})
        if name in api:
            return api[name]
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Clean up plugins, drop every event listener and close an owned transport."""
        if self._closed:
            return
        self._closed = True
        self.executor.cleanup()
        self.event_emitter.clear()
        if self._owns_transport:
            aclose = getattr(self.transport, "aclose", None)
            if aclose is not None:
                await aclose()
        logger.debug("Client for %r closed", self.config.base_url)

    async def __aenter__(self) -> FetchflowClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"FetchflowClient(base_url={self.config.base_url!r}, plugins={len(self.executor)})"


def create_client(
    base_url: Optional[str] = None,
    plugins: Optional[Iterable[Plugin]] = None,
    config: Optional[ClientConfig] = None,
    transport: Optional[Transport] = None,
    *,
    clock: Optional[Callable[[], float]] = None,
    discover: bool = False,
) -> FetchflowClient:
    """Build a :class:`FetchflowClient`.

    Args:
        base_url: Prefix for every request path; overrides ``config.base_url``.
        plugins: Plugins to register. ``None`` registers
            :func:`~fetchflow.plugins.default_plugins` (cache, deduplication,
            invalidation, retry); pass an empty list for none.
        config: Client configuration; defaults to :class:`ClientConfig`.
        transport: Transport callable. ``None`` creates an
            :class:`~fetchflow.client.transport.HttpxTransport` owned (and
            closed) by the client.
        clock: Time source in seconds for cache timestamps.
        discover: Also register plugins from the ``fetchflow.plugins``
            entry-point group.

    Raises:
        PluginError: If a plugin is invalid or instance APIs collide.
    """
    config = config or ClientConfig()
    if base_url is not None:
        config = config.model_copy(update={"base_url": base_url})

    event_emitter = EventEmitter()
    state_manager = StateManager(event_emitter, clock or time.time)
    executor = PluginExecutor(default_plugins() if plugins is None else plugins, config)
    if discover:
        executor.discover()

    owns_transport = transport is None
    client = FetchflowClient(
        config=config,
        state_manager=state_manager,
        event_emitter=event_emitter,
        executor=executor,
        transport=transport if transport is not None else HttpxTransport(config.transport),
        owns_transport=owns_transport,
    )
    instance_ctx = InstanceContext(
        state_manager=state_manager,
        event_emitter=event_emitter,
        executor=executor,
        config=config,
        client=client,
    )
    client._install_instance_api(executor.build_instance_api(instance_ctx))
    logger.debug("Created %r", client)
    return client
