"""Optimistic plugin -- update cached reads before a write resolves.

A write passes one or more :class:`OptimisticUpdate` objects through its
``optimistic`` option::

    controller = client.write(
        client.api("posts", 3).delete(),
        optimistic=OptimisticUpdate(
            target="posts",
            updater=lambda posts, _: [p for p in posts if p["id"] != 3],
        ),
    )

Each update targets every cache entry whose own path (last tag) equals the
target path; ``match`` narrows that to entries whose request options pass a
predicate. With the default ``immediate`` timing the updater runs before the
request and the entry is flagged ``is_optimistic``. On success the flag is
cleared; on failure the previous data is restored unless
``rollback_on_error`` is false. Updates with ``on_success`` timing run only
after success and receive the response data as second argument.

While optimistic updates are present the invalidation default switches to
``none`` for that write, since refetching would overwrite the optimistic
data. An explicit mode in the ``invalidate`` option still wins.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Union

from fetchflow.models import InvalidationMode
from fetchflow.plugins.base import NextFn, Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.request import RequestBuilder, RequestDescriptor
from fetchflow.state.manager import StateManager, parse_query_key
from fetchflow.types import OperationType, Response

logger = logging.getLogger(__name__)

Target = Union[str, Sequence[str], RequestBuilder, RequestDescriptor]


class OptimisticTiming(str, enum.Enum):
    IMMEDIATE = "immediate"
    ON_SUCCESS = "on_success"


@dataclass
class OptimisticUpdate:
    """One optimistic cache update.

    Attributes:
        target: Path of the reads to update: ``"posts/1"``, a segment list,
            a :class:`~fetchflow.request.RequestBuilder` or a
            :class:`~fetchflow.request.RequestDescriptor`.
        updater: ``updater(cached_data, response_data)`` returns the new
            data. ``response_data`` is ``None`` for immediate updates.
        match: Optional predicate over the cached request's options
            (``query``, ``params``, ``body``).
        timing: Apply before the request or after it succeeds.
        rollback_on_error: Restore the previous data when the write fails.
        on_error: Called with the response error when the write fails.
    """

    target: Target
    updater: Callable[[Any, Any], Any]
    match: Optional[Callable[[dict[str, Any]], bool]] = None
    timing: OptimisticTiming = OptimisticTiming.IMMEDIATE
    rollback_on_error: bool = True
    on_error: Optional[Callable[[Any], None]] = None

    def __post_init__(self) -> None:
        self.timing = OptimisticTiming(self.timing)

    @property
    def self_tag(self) -> str:
        target = self.target
        if isinstance(target, RequestDescriptor):
            return "/".join(target.resolved_path())
        if isinstance(target, RequestBuilder):
            return "/".join(target.segments)
        if isinstance(target, str):
            return target.strip("/")
        return "/".join(str(segment) for segment in target)


@dataclass
class _Snapshot:
    key: str
    previous: Any


def _updates_from(ctx: PluginContext) -> list[OptimisticUpdate]:
    option = ctx.plugin_options.get("optimistic")
    if option is None:
        return []
    if isinstance(option, OptimisticUpdate):
        return [option]
    return list(option)


def _targets(state_manager: StateManager, update: OptimisticUpdate) -> list[tuple[str, Any]]:
    matched = []
    for key, entry in state_manager.get_cache_entries_by_self_tag(update.self_tag):
        if update.match is not None and not update.match(parse_query_key(key)):
            continue
        matched.append((key, entry))
    return matched


class OptimisticPlugin(Plugin):
    """Apply, confirm and roll back optimistic cache updates around writes."""

    @property
    def name(self) -> str:
        return "optimistic"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.WRITE,)

    @property
    def priority(self) -> float:
        return -20

    @property
    def description(self) -> str:
        return "Updates cached reads before a write resolves"

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        updates = _updates_from(ctx)
        if not updates:
            return await call_next()

        invalidation = ctx.plugins.get("invalidation") if ctx.plugins else None
        if invalidation:
            invalidation["set_default_mode"](InvalidationMode.NONE)

        snapshots = self._apply(ctx.state_manager, updates)
        try:
            response = await call_next()
        except BaseException:
            self._rollback(ctx.state_manager, snapshots)
            if invalidation:
                # after_response never runs for a raising chain
                invalidation["clear_default_mode"]()
            raise

        if response.error is None and not response.aborted:
            self._confirm(ctx.state_manager, snapshots)
            self._apply_on_success(ctx.state_manager, updates, response.data)
        else:
            if any(u.rollback_on_error for u in updates if u.timing is OptimisticTiming.IMMEDIATE):
                self._rollback(ctx.state_manager, snapshots)
            for update in updates:
                if update.on_error is not None:
                    update.on_error(response.error)
        return response

    def _apply(
        self, state_manager: StateManager, updates: list[OptimisticUpdate]
    ) -> list[_Snapshot]:
        snapshots: list[_Snapshot] = []
        for update in updates:
            if update.timing is not OptimisticTiming.IMMEDIATE:
                continue
            for key, entry in _targets(state_manager, update):
                if entry.state.data is None:
                    continue
                snapshots.append(_Snapshot(key, entry.state.data))
                state_manager.update_cache(
                    key, data=update.updater(entry.state.data, None), is_optimistic=True
                )
        if snapshots:
            logger.debug("Applied %d optimistic update(s)", len(snapshots))
        return snapshots

    def _apply_on_success(
        self, state_manager: StateManager, updates: list[OptimisticUpdate], data: Any
    ) -> None:
        for update in updates:
            if update.timing is not OptimisticTiming.ON_SUCCESS:
                continue
            for key, entry in _targets(state_manager, update):
                state_manager.update_cache(key, data=update.updater(entry.state.data, data))

    @staticmethod
    def _confirm(state_manager: StateManager, snapshots: list[_Snapshot]) -> None:
        for snapshot in snapshots:
            if state_manager.get_cache(snapshot.key) is not None:
                state_manager.update_cache(snapshot.key, is_optimistic=False)

    @staticmethod
    def _rollback(state_manager: StateManager, snapshots: list[_Snapshot]) -> None:
        # reversed: the first snapshot of a key holds its original data.
        for snapshot in reversed(snapshots):
            if state_manager.get_cache(snapshot.key) is not None:
                state_manager.update_cache(
                    snapshot.key, data=snapshot.previous, is_optimistic=False
                )
        if snapshots:
            logger.debug("Rolled back %d optimistic update(s)", len(snapshots))
