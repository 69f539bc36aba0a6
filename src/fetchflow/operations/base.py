"""Plumbing shared by :class:`~fetchflow.operations.controller.OperationController`
and :class:`~fetchflow.operations.infinite.InfiniteReadController`.

:class:`BaseController` owns what both need:

* a unique ``instance_id`` and a ``temp`` scratch dict that lives as long as
  the controller;
* the layered plugin options (client < controller < execute);
* local subscribers notified on every observable change;
* :meth:`BaseController._run_chain` -- runs the plugin chain as an
  :class:`asyncio.Task`, records it as the pending task of its query key and
  turns failures into error envelopes;
* :meth:`BaseController.abort` -- cancels every chain task of the
  controller.

Controllers are created by :class:`~fetchflow.instance.FetchflowClient`;
nothing else constructs them.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

from fetchflow.events.emitter import EventEmitter
from fetchflow.exceptions import AbortError, PluginError, ProgrammerError
from fetchflow.plugins.context import PluginContext
from fetchflow.plugins.executor import PluginExecutor
from fetchflow.request import RequestDescriptor
from fetchflow.state.manager import StateManager
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)

Fetcher = Callable[[PluginContext], Awaitable[Response]]
"""Innermost step of the chain: send ``ctx.request`` through the transport."""

Subscriber = Callable[[], None]

KEY_OPTIONS = ("query", "params", "body")
"""Request options that take part in the query key; headers do not."""

_ids = itertools.count(1)


def key_options(request: Mapping[str, Any]) -> dict[str, Any]:
    return {name: request[name] for name in KEY_OPTIONS if request.get(name) is not None}


def copy_request(request: Mapping[str, Any]) -> dict[str, Any]:
    """Copy *request* one level deep so middleware edits never leak back."""
    return {
        name: dict(value) if isinstance(value, Mapping) else value
        for name, value in request.items()
    }


class BaseController:
    """State and behaviour common to every controller.

    Args:
        operation_type: Which plugins apply.
        descriptor: The request this controller drives.
        state_manager: The client's state manager.
        event_emitter: The client's event emitter.
        executor: The client's plugin executor.
        fetcher: Sends a request through the transport.
        client_options: Client-wide plugin options.
        plugin_options: Controller-level plugin options.
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
        client_options: Optional[Mapping[str, Any]] = None,
        plugin_options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.operation_type = operation_type
        self.descriptor = descriptor
        self.state_manager = state_manager
        self.event_emitter = event_emitter
        self.executor = executor
        self.instance_id = f"{operation_type.value}-{next(_ids)}"
        self.temp: dict[str, Any] = {}

        self._fetcher = fetcher
        self._client_options = dict(client_options or {})
        self._plugin_options = dict(plugin_options or {})
        self._subscribers: list[Subscriber] = []
        self._listeners: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task] = set()
        self._background: set[asyncio.Future] = set()
        self._aborted: set[asyncio.Task] = set()
        self._serial = asyncio.Lock()
        self._mounted = False

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def in_flight(self) -> bool:
        return bool(self._tasks)

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    @property
    def plugin_options(self) -> dict[str, Any]:
        """Controller-level plugin options (a copy)."""
        return dict(self._plugin_options)

    def resolve_options(self, overrides: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
        """Merge client, controller and *overrides* options, later layers winning.

        ``None`` values in a layer leave the lower layer in place.
        """
        merged = dict(self._client_options)
        for layer in (self._plugin_options, overrides or {}):
            merged.update({name: value for name, value in layer.items() if value is not None})
        return merged

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call *callback* whenever the controller's observable state changes.

        Returns:
            A callable that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception as exc:
                logger.warning("Subscriber of %s failed: %s", self.instance_id, exc, exc_info=True)

    # ------------------------------------------------------------------
    # Chain execution
    # ------------------------------------------------------------------

    def dedupe_enabled(self, plugin_options: Mapping[str, Any]) -> bool:
        """Whether the deduplication plugin shares requests for these options."""
        if not self.executor.has_plugin("deduplication"):
            return False
        plugin = self.executor.get_plugin("deduplication")
        check = getattr(plugin, "is_dedupe_enabled", None)
        return bool(check and check(self.operation_type, plugin_options))

    @contextlib.asynccontextmanager
    async def _serialized(self, plugin_options: Mapping[str, Any]) -> AsyncIterator[None]:
        """Run the body after every earlier execution of this controller settled.

        Executions that can share a request through deduplication skip the
        queue. The others take the controller lock one at a time, so N
        concurrent calls reach the transport strictly one after another.
        """
        if self.dedupe_enabled(plugin_options):
            yield
            return
        async with self._serial:
            # chains started by deduplicating executions do not hold the lock
            while self._tasks:
                await asyncio.wait(list(self._tasks))
            yield

    async def _run_chain(self, ctx: PluginContext) -> Response:
        """Run the middleware chain for *ctx* and return its response.

        The chain runs in its own task, recorded as the pending task of
        ``ctx.query_key`` unless another request for that key is already in
        flight. Cancellation through :meth:`abort` yields an abort envelope;
        any other exception from a plugin yields a :class:`PluginError`
        envelope. :class:`ProgrammerError` propagates.
        """
        task = asyncio.ensure_future(
            self.executor.execute_middleware(
                self.operation_type, ctx, lambda: self._fetcher(ctx)
            )
        )
        self._tasks.add(task)
        self._register_pending(ctx.query_key, task)

        try:
            return await task
        except asyncio.CancelledError:
            if task in self._aborted and task.cancelled():
                logger.debug("%s %s aborted", ctx.method, ctx.self_tag)
                return Response(status=0, error=AbortError(), aborted=True)
            raise
        except ProgrammerError:
            raise
        except Exception as exc:
            logger.warning(
                "Plugin chain failed for %s %s: %s", ctx.method, ctx.self_tag, exc, exc_info=True
            )
            error = PluginError(f"Plugin chain failed: {exc}")
            error.__cause__ = exc
            return Response(status=0, error=error)
        finally:
            self._tasks.discard(task)
            self._aborted.discard(task)

    def _register_pending(self, key: str, task: asyncio.Task) -> None:
        current = self.state_manager.get_pending_promise(key)
        if current is not None and not current.done():
            return
        self.state_manager.set_pending_promise(key, task)

        def release(finished: asyncio.Future) -> None:
            if self.state_manager.get_pending_promise(key) is finished:
                self.state_manager.set_pending_promise(key, None)

        task.add_done_callback(release)

    def abort(self) -> None:
        """Cancel every in-flight chain of this controller.

        Each pending :meth:`execute` resolves to an envelope with
        ``aborted=True`` and an :class:`~fetchflow.exceptions.AbortError`.
        The cache is not written.
        """
        if not self._tasks:
            return
        for task in list(self._tasks):
            self._aborted.add(task)
            task.cancel()

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    async def _lifecycle(self, hook: str, ctx: PluginContext) -> None:
        try:
            await self.executor.execute_lifecycle(hook, self.operation_type, ctx)
        except ProgrammerError:
            raise
        except Exception as exc:
            logger.warning("%s hook failed for %s: %s", hook, self.instance_id, exc, exc_info=True)

    async def _update_lifecycle(self, ctx: PluginContext, previous: PluginContext) -> None:
        try:
            await self.executor.execute_update_lifecycle(self.operation_type, ctx, previous)
        except ProgrammerError:
            raise
        except Exception as exc:
            logger.warning("on_update hook failed for %s: %s", self.instance_id, exc, exc_info=True)

    def _listen(self, event: str, listener: Callable[[Any], None]) -> None:
        self._listeners.append(self.event_emitter.on(event, listener))

    def _release_listeners(self) -> None:
        for unsubscribe in self._listeners:
            unsubscribe()
        self._listeners.clear()

    async def wait_idle(self) -> None:
        """Wait until in-flight chains and event-triggered refetches have settled."""
        while self._tasks or self._background:
            await asyncio.wait([*self._tasks, *self._background])

    def _spawn(self, awaitable: Awaitable[Any]) -> None:
        """Run *awaitable* in the background, keeping a reference until it finishes."""
        task = asyncio.ensure_future(awaitable)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
