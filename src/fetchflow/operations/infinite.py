"""Paginated reads.

An :class:`InfiniteReadController` keeps an ordered list of
:class:`PageRecord` objects, one per page request. Each page is an ordinary
read with its own query key, so pages are cached, deduplicated and
invalidated like any other read. What makes them a list is four callables:

* ``merger(all_responses)`` -- flattens page data, first page to last;
* ``can_fetch_next(page_ctx)`` / ``can_fetch_prev(page_ctx)`` -- whether
  another page exists after the last / before the first page;
* ``next_page_request(page_ctx)`` / ``prev_page_request(page_ctx)`` --
  request overrides (usually ``{"query": {"cursor": ...}}``) for that page.

Example -- a cursor API returning ``{"items": [...], "next_cursor": 6}``::

    feed = client.infinite_read(
        client.api("activities").get(query={"cursor": 0, "limit": 6}),
        merger=lambda pages: [item for page in pages for item in page["items"]],
        can_fetch_next=lambda ctx: ctx.response.get("next_cursor") is not None,
        next_page_request=lambda ctx: {"query": {"cursor": ctx.response["next_cursor"]}},
    )
    await feed.mount()
    await feed.fetch_next()
    feed.get_state().data  # items of both pages, in order
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

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
from fetchflow.types import OperationState, OperationType, PageStatus, Response

logger = logging.getLogger(__name__)


class FetchDirection(str, enum.Enum):
    NEXT = "next"
    PREV = "prev"


@dataclass
class PageRecord:
    """One page of an infinite read.

    Attributes:
        key: Query key of the page.
        request: Request options the page was fetched with.
        status: Fetch status of the page.
        error: Error of the last failed fetch.
    """

    key: str
    request: dict[str, Any]
    status: PageStatus = PageStatus.PENDING
    error: Any = None


@dataclass
class PageContext:
    """What the continuation callables receive.

    Attributes:
        response: Data of the edge page (last for next, first for prev).
        all_responses: Data of every loaded page, in order.
        request: Request options of the edge page.
    """

    response: Any
    all_responses: list[Any]
    request: dict[str, Any]


@dataclass
class InfiniteSnapshot:
    """Observable state of an :class:`InfiniteReadController`."""

    data: Any = None
    all_responses: list[Any] = field(default_factory=list)
    all_requests: list[dict[str, Any]] = field(default_factory=list)
    pages: list[PageRecord] = field(default_factory=list)
    can_fetch_next: bool = False
    can_fetch_prev: bool = False
    error: Any = None
    loading: bool = False
    fetching: bool = False
    fetching_direction: Optional[FetchDirection] = None


PagePredicate = Callable[[PageContext], bool]
PageRequestBuilder = Callable[[PageContext], Mapping[str, Any]]


def collect_page_data(
    pages: list[PageRecord], state_manager: StateManager
) -> tuple[list[Any], list[dict[str, Any]]]:
    """Return ``(all_responses, all_requests)`` for pages with cached data, in page order."""
    responses: list[Any] = []
    requests: list[dict[str, Any]] = []
    for page in pages:
        entry = state_manager.get_cache(page.key)
        if entry is not None and entry.state.data is not None:
            responses.append(entry.state.data)
            requests.append(page.request)
    return responses, requests


class InfiniteReadController(BaseController):
    """Drive a paginated read.

    Args:
        descriptor: Request of the first page.
        merger: Flattens page data into the value exposed as ``data``.
        can_fetch_next: Whether a page follows the last one.
        next_page_request: Request overrides for the next page.
        can_fetch_prev: Whether a page precedes the first one.
        prev_page_request: Request overrides for the previous page.
        tags: Explicit tags or a tag mode for every page.
        enabled: Whether :meth:`mount` fetches the first page.

    The remaining arguments are those of
    :class:`~fetchflow.operations.base.BaseController`.

    Raises:
        ProgrammerError: If a path placeholder of the first page has no value.
    """

    def __init__(
        self,
        descriptor: RequestDescriptor,
        *,
        merger: Callable[[list[Any]], Any],
        state_manager: StateManager,
        event_emitter: EventEmitter,
        executor: PluginExecutor,
        fetcher: Fetcher,
        can_fetch_next: Optional[PagePredicate] = None,
        next_page_request: Optional[PageRequestBuilder] = None,
        can_fetch_prev: Optional[PagePredicate] = None,
        prev_page_request: Optional[PageRequestBuilder] = None,
        tags: TagOption = None,
        enabled: bool = True,
        client_options: Optional[Mapping[str, Any]] = None,
        plugin_options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(
            OperationType.INFINITE_READ,
            descriptor,
            state_manager=state_manager,
            event_emitter=event_emitter,
            executor=executor,
            fetcher=fetcher,
            client_options=client_options,
            plugin_options=plugin_options,
        )
        self.merger = merger
        self.can_fetch_next = can_fetch_next or (lambda ctx: False)
        self.next_page_request = next_page_request or (lambda ctx: {})
        self.can_fetch_prev = can_fetch_prev
        self.prev_page_request = prev_page_request
        self.enabled = enabled

        self._initial_request = copy_request(descriptor.options)
        self._active_request = self._initial_request
        self._path = descriptor.resolved_path(self._initial_request.get("params") or {})
        self._tags = resolve_tags(tags, self._path)
        self._pages: list[PageRecord] = []
        self._error: Any = None
        self._direction: Optional[FetchDirection] = None
        self._page_unsubscribers: dict[str, Callable[[], None]] = {}

    @property
    def tags(self) -> list[str]:
        return list(self._tags)

    @property
    def pages(self) -> list[PageRecord]:
        return list(self._pages)

    @property
    def first_page_key(self) -> str:
        return self._page_key(self._active_request)[0]

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _page_context(self, direction: FetchDirection) -> Optional[PageContext]:
        responses, requests = collect_page_data(self._pages, self.state_manager)
        if not responses:
            return None
        if direction is FetchDirection.NEXT:
            return PageContext(responses[-1], responses, requests[-1])
        return PageContext(responses[0], responses, requests[0])

    def _has_next(self) -> bool:
        ctx = self._page_context(FetchDirection.NEXT)
        return ctx is not None and bool(self.can_fetch_next(ctx))

    def _has_prev(self) -> bool:
        if self.can_fetch_prev is None or self.prev_page_request is None:
            return False
        ctx = self._page_context(FetchDirection.PREV)
        return ctx is not None and bool(self.can_fetch_prev(ctx))

    def get_state(self) -> InfiniteSnapshot:
        """Return the merged data, page records and continuation flags."""
        responses, requests = collect_page_data(self._pages, self.state_manager)
        pages = []
        for page in self._pages:
            entry = self.state_manager.get_cache(page.key)
            status = page.status
            if status is PageStatus.SUCCESS and entry is not None and entry.stale:
                status = PageStatus.STALE
            pages.append(PageRecord(page.key, dict(page.request), status, page.error))

        in_flight = self.in_flight
        return InfiniteSnapshot(
            data=self.merger(responses) if responses else None,
            all_responses=responses,
            all_requests=requests,
            pages=pages,
            can_fetch_next=self._has_next(),
            can_fetch_prev=self._has_prev(),
            error=self._error,
            loading=in_flight and not responses,
            fetching=in_flight,
            fetching_direction=self._direction,
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _page_key(self, request: Mapping[str, Any]) -> tuple[str, list[str]]:
        path = self.descriptor.resolved_path(request.get("params") or {})
        return (
            self.state_manager.create_query_key(path, self.descriptor.method, key_options(request)),
            path,
        )

    def create_context(
        self, key: str, path: list[str], request: Mapping[str, Any], *, force: bool = False
    ) -> PluginContext:
        return self.executor.create_context(
            operation_type=self.operation_type,
            path=list(path),
            method=self.descriptor.method,
            query_key=key,
            tags=list(self._tags),
            state_manager=self.state_manager,
            event_emitter=self.event_emitter,
            request=copy_request(request),
            plugin_options=self.resolve_options(),
            temp=self.temp,
            instance_id=self.instance_id,
            request_timestamp=self.state_manager.now(),
            force_refetch=force,
            abort=self.abort,
            refetch=self.refetch,
        )

    async def _fetch_page(
        self, direction: FetchDirection, override: Mapping[str, Any], *, force: bool = False
    ) -> Optional[Response]:
        request = merge_request(self._active_request, override)
        key, path = self._page_key(request)

        record = next((page for page in self._pages if page.key == key), None)
        if record is not None and record.status is PageStatus.LOADING:
            return None
        created = record is None
        if record is None:
            record = PageRecord(key, request)
            if direction is FetchDirection.NEXT:
                self._pages.append(record)
            else:
                self._pages.insert(0, record)
        previous_status = record.status
        record.status = PageStatus.LOADING
        self._direction = direction
        self._notify()

        ctx = self.create_context(key, path, request, force=force)
        try:
            response = await self._run_chain(ctx)
        finally:
            self._direction = None

        if response.aborted:
            if created and record in self._pages:
                self._pages.remove(record)
            else:
                record.status = previous_status
        elif response.error is not None:
            record.status = PageStatus.ERROR
            record.error = response.error
            self._error = response.error
        else:
            record.status = PageStatus.SUCCESS
            record.error = None
            self._error = None
            self._store(ctx, response)
            self._sync_page_subscriptions()

        self._notify()
        return response

    def _store(self, ctx: PluginContext, response: Response) -> None:
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

    async def fetch_next(self) -> Optional[Response]:
        """Append the next page; fetch the first page if none is loaded.

        Returns:
            The page response, or ``None`` when there is no next page or it
            is already being fetched.
        """
        ctx = self._page_context(FetchDirection.NEXT)
        if ctx is None:
            return await self._fetch_page(FetchDirection.NEXT, {})
        if not self.can_fetch_next(ctx):
            return None
        return await self._fetch_page(FetchDirection.NEXT, self.next_page_request(ctx))

    async def fetch_prev(self) -> Optional[Response]:
        """Prepend the previous page.

        Returns:
            The page response, or ``None`` when there is no previous page.
        """
        if self.can_fetch_prev is None or self.prev_page_request is None:
            return None
        ctx = self._page_context(FetchDirection.PREV)
        if ctx is None or not self.can_fetch_prev(ctx):
            return None
        return await self._fetch_page(FetchDirection.PREV, self.prev_page_request(ctx))

    async def trigger(self, force: bool = True, **request_override: Any) -> Optional[Response]:
        """Drop every page and fetch the first one again.

        Args:
            force: Mark cached pages of this path stale and bypass the cache.
            **request_override: New first-page request options (``query``,
                ``params``, ``body``, ``headers``) merged onto the original
                ones. Without overrides the original request is used.
        """
        self._active_request = (
            merge_request(self._initial_request, request_override)
            if request_override
            else self._initial_request
        )
        return await self._restart(force)

    async def refetch(self) -> Optional[Response]:
        """Reload from the first page, re-deriving each following page.

        Later page requests may depend on earlier results (a cursor), so
        pages are fetched one by one while fewer pages than before are
        loaded and ``can_fetch_next`` still holds.

        Returns:
            The first page's response.
        """
        target = len(collect_page_data(self._pages, self.state_manager)[0])
        first = await self._restart(True)
        if first is None or first.error is not None or first.aborted:
            return first

        while len(collect_page_data(self._pages, self.state_manager)[0]) < target:
            response = await self.fetch_next()
            if response is None or response.error is not None or response.aborted:
                break
            if response.data is None:
                break
        return first

    async def _restart(self, force: bool) -> Optional[Response]:
        self.abort()
        if force:
            self_tag = "/".join(self._path)
            for key, _ in self.state_manager.get_cache_entries_by_self_tag(self_tag):
                self.state_manager.update_cache(key, stale=True)

        self._pages = []
        self._error = None
        self._sync_page_subscriptions()
        return await self._fetch_page(FetchDirection.NEXT, {}, force=force)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _lifecycle_context(self) -> PluginContext:
        key, path = self._page_key(self._active_request)
        return self.create_context(key, path, self._active_request)

    async def mount(self) -> Optional[Response]:
        """Subscribe to page keys and events, run ``on_mount`` and fetch the first page if enabled."""
        if self._mounted:
            return None
        self._mounted = True
        self._sync_page_subscriptions()
        self._listen(EVENT_REFETCH, self._on_refetch)
        self._listen(EVENT_REFETCH_ALL, self._on_refetch_all)
        self._listen(EVENT_INVALIDATE, self._on_invalidate)

        await self._lifecycle("on_mount", self._lifecycle_context())

        if self.enabled and not self._pages:
            return await self.fetch_next()
        return None

    async def update(self, **plugin_options: Any) -> None:
        """Replace controller-level plugin options and run ``on_update`` hooks."""
        previous = self._lifecycle_context()
        self._plugin_options = dict(plugin_options)
        await self._update_lifecycle(self._lifecycle_context(), previous)
        self._notify()

    async def unmount(self) -> None:
        """Abort in-flight pages, run ``on_unmount`` and drop subscriptions."""
        if not self._mounted:
            return
        self._mounted = False
        self.abort()
        await self._lifecycle("on_unmount", self._lifecycle_context())
        self._release_listeners()
        self._sync_page_subscriptions()
        for task in list(self._background):
            task.cancel()

    def _sync_page_subscriptions(self) -> None:
        wanted = {page.key for page in self._pages} if self._mounted else set()
        for key in list(self._page_unsubscribers):
            if key not in wanted:
                self._page_unsubscribers.pop(key)()
        for key in wanted:
            if key not in self._page_unsubscribers:
                self._page_unsubscribers[key] = self.state_manager.subscribe(key, self._notify)

    # ------------------------------------------------------------------
    # Event listeners
    # ------------------------------------------------------------------

    def _on_refetch(self, payload: Any) -> None:
        if isinstance(payload, Mapping) and any(
            page.key == payload.get("query_key") for page in self._pages
        ):
            self._spawn(self.refetch())

    def _on_refetch_all(self, _payload: Any) -> None:
        self._spawn(self.refetch())

    def _on_invalidate(self, tags: Any) -> None:
        if not tags or not set(tags).intersection(self._tags):
            return
        if not self.resolve_options().get("refetch_on_invalidate", True):
            return
        self._spawn(self.refetch())

    def __repr__(self) -> str:
        return f"InfiniteReadController({'/'.join(self.descriptor.segments)!r}, pages={len(self._pages)})"
