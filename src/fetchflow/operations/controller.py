"""Read and write controllers.

An :class:`OperationController` drives one logical request -- a read such as
``GET /posts`` or a write such as ``POST /posts`` -- through the plugin
chain and exposes its observable state as an
:class:`~fetchflow.types.OperationSnapshot`:

``idle -> loading -> success | error``; a background execution from
``success`` shows ``fetching`` while the old data stays visible; an
optimistic write overlays ``optimistic`` until it resolves.

Reads keep their data in the :class:`~fetchflow.state.manager.StateManager`
cache and follow it through a subscription, so every controller on the same
key sees the same data. Writes keep their last result on the controller;
they never populate the read cache.

Typical use::

    posts = client.read(client.api("posts").get(), stale_time=30)
    await posts.mount()
    posts.get_state().data

    create = client.write(client.api("posts").post())
    response = await create.execute({"body": {"title": "Hello"}})
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from fetchflow.events.emitter import (
    EVENT_INVALIDATE,
    EVENT_REFETCH,
    EVENT_REFETCH_ALL,
    EventEmitter,
)
from fetchflow.operations.base import BaseController, Fetcher, copy_request, key_options
from fetchflow.plugins.context import PluginContext
from fetchflow.plugins.executor import PluginExecutor
from fetchflow.request import RequestDescriptor, TagOption, merge_request, resolve_tags
from fetchflow.state.manager import StateManager
from fetchflow.types import (
    OperationSnapshot,
    OperationState,
    OperationStatus,
    OperationType,
    Response,
)

logger = logging.getLogger(__name__)


class OperationController(BaseController):
    """Per-call state machine for reads and writes.

    Args:
        operation_type: :attr:`~fetchflow.types.OperationType.READ` or
            :attr:`~fetchflow.types.OperationType.WRITE`.
        descriptor: The request to drive.
        state_manager: The client's state manager.
        event_emitter: The client's event emitter.
        executor: The client's plugin executor.
        fetcher: Sends a request through the transport.
        tags: Explicit tags or a tag mode; path-prefix tags by default.
        enabled: Whether :meth:`mount` executes a read immediately.
        client_options: Client-wide plugin options.
        plugin_options: Controller-level plugin options.

    Raises:
        ProgrammerError: For a read whose path placeholders have no value.
            Writes check their path at :meth:`execute` time, since params
            are often supplied there.
    """

    def __init__(
        self,
        operation_type: OperationType,
        descriptor: RequestDescriptor,
        *,
        state_manager: StateManager,
        event_emitter: EventEmitter,
        executor: PluginExecutor,
        fetcher: Fetcher,
        tags: TagOption = None,
        enabled: bool = True,
        client_options: Optional[Mapping[str, Any]] = None,
        plugin_options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(
            operation_type,
            descriptor,
            state_manager=state_manager,
            event_emitter=event_emitter,
            executor=executor,
            fetcher=fetcher,
            client_options=client_options,
            plugin_options=plugin_options,
        )
        self.enabled = enabled
        self._tag_option = tags
        self._request: dict[str, Any] = copy_request(descriptor.options)
        self._last_overrides: Optional[Mapping[str, Any]] = None
        self._path: list[str] = []
        self._tags: list[str] = []
        self._key: Optional[str] = None
        self._unsubscribe_state: Optional[Any] = None

        self._data: Any = None
        self._error: Any = None
        self._active = 0

        if operation_type is OperationType.READ:
            self._bind(self._request)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def query_key(self) -> Optional[str]:
        """Key of the current request; ``None`` for a write not executed yet."""
        return self._key

    @property
    def path(self) -> list[str]:
        return list(self._path)

    @property
    def tags(self) -> list[str]:
        return list(self._tags)

    def _bind(self, request: Mapping[str, Any]) -> None:
        path = self.descriptor.resolved_path(request.get("params") or {})
        key = self.state_manager.create_query_key(
            path, self.descriptor.method, key_options(request)
        )
        self._path = path
        self._tags = resolve_tags(self._tag_option, path)
        if key != self._key:
            self._key = key
            if self._unsubscribe_state is not None:
                self._unsubscribe_state()
                self._unsubscribe_state = self.state_manager.subscribe(key, self._notify)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def _reads_cache(self) -> bool:
        return self.operation_type is not OperationType.WRITE

    def get_state(self) -> OperationSnapshot:
        """Return the current observable state."""
        entry = self.state_manager.get_cache(self._key) if self._key else None
        state = entry.state if entry is not None else OperationState()
        data = state.data if self._reads_cache else self._data
        in_flight = self._active > 0

        if in_flight:
            status = OperationStatus.LOADING if data is None else OperationStatus.FETCHING
        elif self._error is not None:
            status = OperationStatus.ERROR
        elif state.is_optimistic:
            status = OperationStatus.OPTIMISTIC
        elif data is not None:
            status = OperationStatus.SUCCESS
        else:
            status = OperationStatus.IDLE

        return OperationSnapshot(
            status=status,
            data=data,
            error=self._error,
            loading=in_flight and data is None,
            fetching=in_flight,
            stale=entry.stale if entry is not None else False,
            is_optimistic=state.is_optimistic,
            meta=self.state_manager.get_meta(self._key) if self._key else {},
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def create_context(
        self,
        request: Optional[Mapping[str, Any]] = None,
        plugin_options: Optional[Mapping[str, Any]] = None,
        *,
        force: bool = False,
    ) -> PluginContext:
        """Build the plugin context for *request* and resolved *plugin_options*."""
        return self.executor.create_context(
            operation_type=self.operation_type,
            path=list(self._path),
            method=self.descriptor.method,
            query_key=self._key or "",
            tags=list(self._tags),
            state_manager=self.state_manager,
            event_emitter=self.event_emitter,
            request=copy_request(request if request is not None else self._request),
            plugin_options=dict(plugin_options if plugin_options is not None else self.resolve_options()),
            temp=self.temp,
            instance_id=self.instance_id,
            request_timestamp=self.state_manager.now(),
            force_refetch=force,
            abort=self.abort,
            refetch=self.refetch,
        )

    async def execute(
        self,
        request: Optional[Mapping[str, Any]] = None,
        *,
        force: bool = False,
        **plugin_options: Any,
    ) -> Response:
        """Run the request through the plugin chain.

        Args:
            request: Overrides for ``query``, ``params``, ``headers`` (merged
                key by key) and ``body`` (replaced).
            force: Skip fresh cache entries.
            **plugin_options: Per-execute plugin options; they win over the
                controller's and the client's.

        Returns:
            The response envelope. Network, HTTP, abort and plugin failures
            are reported in ``response.error``; nothing is raised for them.

        Raises:
            ProgrammerError: If a path placeholder has no value.
        """
        merged = merge_request(self._request, request)
        self._bind(merged)
        self._last_overrides = copy_request(request) if request is not None else None
        options = self.resolve_options(plugin_options)
        ctx = self.create_context(merged, options, force=force)

        self._active += 1
        self._notify()
        try:
            async with self._serialized(options):
                response = await self._run_chain(ctx)
            self._apply(ctx, response)
        finally:
            self._active -= 1
        self._notify()
        return response

    async def refetch(self) -> Response:
        """Execute the most recent request again, bypassing fresh cache entries.

        The request overrides of the last :meth:`execute` are replayed, so a
        read whose query changed at execute time refetches the new query.
        """
        return await self.execute(self._last_overrides, force=True)

    def _apply(self, ctx: PluginContext, response: Response) -> None:
        if response.error is not None:
            # Aborts land here too; the cache is never written for them.
            self._error = response.error
            return

        self._error = None
        if not self._reads_cache:
            self._data = response.data
            return
        if response.data is None or response.cached:
            return

        entry = self.state_manager.get_cache(ctx.query_key)
        if entry is not None and entry.state.data is response.data and not entry.stale:
            return
        self.state_manager.set_cache(
            ctx.query_key,
            OperationState(data=response.data, timestamp=self.state_manager.now()),
            tags=ctx.tags,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self) -> Optional[Response]:
        """Start observing the key, run ``on_mount`` hooks and, for enabled reads, execute.

        Returns:
            The response of the initial execution, or ``None`` if there was none.
        """
        if self._mounted:
            return None
        self._mounted = True

        if self._key is not None:
            self._unsubscribe_state = self.state_manager.subscribe(self._key, self._notify)
        if self._reads_cache:
            self._listen(EVENT_REFETCH, self._on_refetch)
            self._listen(EVENT_REFETCH_ALL, self._on_refetch_all)
            self._listen(EVENT_INVALIDATE, self._on_invalidate)

        await self._lifecycle("on_mount", self.create_context())

        if self.enabled and self._reads_cache:
            return await self.execute()
        return None

    async def update(self, **plugin_options: Any) -> None:
        """Replace the controller-level plugin options and run ``on_update`` hooks.

        The new options replace the old ones entirely; hooks re-read their
        policies from the new context, so the latest update always wins.
        """
        previous = self.create_context()
        self._plugin_options = dict(plugin_options)
        await self._update_lifecycle(self.create_context(), previous)
        self._notify()

    async def unmount(self) -> None:
        """Abort in-flight work, run ``on_unmount`` hooks and drop every subscription."""
        if not self._mounted:
            return
        self._mounted = False
        self.abort()

        await self._lifecycle("on_unmount", self.create_context())

        if self._unsubscribe_state is not None:
            self._unsubscribe_state()
            self._unsubscribe_state = None
        self._release_listeners()
        for task in list(self._background):
            task.cancel()

    # ------------------------------------------------------------------
    # Event listeners
    # ------------------------------------------------------------------

    def _on_refetch(self, payload: Any) -> None:
        if isinstance(payload, Mapping) and payload.get("query_key") == self._key:
            self._spawn(self.refetch())

    def _on_refetch_all(self, _payload: Any) -> None:
        self._spawn(self.refetch())

    def _on_invalidate(self, tags: Any) -> None:
        if not tags or not set(tags).intersection(self._tags):
            return
        if not self.resolve_options().get("refetch_on_invalidate", True):
            return
        logger.debug("%s invalidated, refetching", "/".join(self._path))
        self._spawn(self.refetch())

    def __repr__(self) -> str:
        return (
            f"OperationController({self.operation_type.value} "
            f"{self.descriptor.method} {'/'.join(self.descriptor.segments)!r})"
        )
