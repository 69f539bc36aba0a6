"""Tests for the plugin system -- base class, executor ordering, hooks, exports and discovery."""

from __future__ import annotations

from typing import Any
from unittest.mock import patch

import pytest

from fetchflow.events.emitter import EVENT_REQUEST_COMPLETE, EventEmitter
from fetchflow.exceptions import PluginError
from fetchflow.models import ClientConfig, PluginsConfig
from fetchflow.plugins.base import Plugin, declares
from fetchflow.plugins.context import InstanceContext, PluginContext
from fetchflow.plugins.executor import PluginExecutor
from fetchflow.state.manager import StateManager
from fetchflow.types import OperationType, Response

# ---------------------------------------------------------------------------
# Test helpers -- concrete Plugin subclasses
# ---------------------------------------------------------------------------


class MinimalPlugin(Plugin):
    """Smallest valid plugin -- only ``name`` and ``operations``."""

    @property
    def name(self) -> str:
        return "minimal"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.READ,)


class TracePlugin(Plugin):
    """Records when its middleware is entered and left."""

    def __init__(self, name: str, priority: float = 0, log: list | None = None) -> None:
        self._name = name
        self._priority = priority
        self.log = log if log is not None else []

    @property
    def name(self) -> str:
        return self._name

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.READ, OperationType.WRITE)

    @property
    def priority(self) -> float:
        return self._priority

    async def middleware(self, ctx, call_next):
        self.log.append(f"{self._name}:in")
        response = await call_next()
        self.log.append(f"{self._name}:out")
        return response


class ShortCircuitPlugin(Plugin):
    @property
    def name(self) -> str:
        return "short"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.READ,)

    async def middleware(self, ctx, call_next):
        return Response(status=200, data="synthesized")


class BadReturnPlugin(ShortCircuitPlugin):
    async def middleware(self, ctx, call_next):
        return {"not": "a response"}


class AfterResponsePlugin(Plugin):
    """Replaces the response asynchronously."""

    @property
    def name(self) -> str:
        return "after"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return (OperationType.READ,)

    async def after_response(self, ctx, response):
        return Response(status=response.status, data={"wrapped": response.data})


class ExportingPlugin(MinimalPlugin):
    @property
    def name(self) -> str:
        return "exporter"

    def exports(self, ctx):
        return {"path": lambda: ctx.self_tag}

    def instance_api(self, ctx):
        return {"hello": lambda: "hi"}


class CollidingPlugin(MinimalPlugin):
    @property
    def name(self) -> str:
        return "collider"

    def instance_api(self, ctx):
        return {"hello": lambda: "again"}


class DependentPlugin(MinimalPlugin):
    @property
    def name(self) -> str:
        return "dependent"

    @property
    def dependencies(self) -> tuple[str, ...]:
        return ("minimal",)


class LifecyclePlugin(MinimalPlugin):
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.config: ClientConfig | None = None

    @property
    def name(self) -> str:
        return "lifecycle"

    def on_init(self, config: ClientConfig) -> None:
        self.config = config

    async def on_mount(self, ctx):
        self.calls.append("mount")

    def on_update(self, ctx, previous):
        self.calls.append("update")

    def on_unmount(self, ctx):
        self.calls.append("unmount")

    def cleanup(self) -> None:
        self.calls.append("cleanup")


class ExplodingCleanupPlugin(MinimalPlugin):
    @property
    def name(self) -> str:
        return "exploding-cleanup"

    def cleanup(self) -> None:
        raise RuntimeError("cleanup boom")


def _invalid(
    plugin_name: Any = "bad", ops: Any = (OperationType.READ,), prio: Any = 0
) -> Plugin:
    class InvalidPlugin(Plugin):
        @property
        def name(self) -> Any:
            return plugin_name

        @property
        def operations(self) -> Any:
            return ops

        @property
        def priority(self) -> Any:
            return prio

    return InvalidPlugin()


def _context(executor: PluginExecutor, operation: OperationType = OperationType.READ) -> PluginContext:
    emitter = EventEmitter()
    return executor.create_context(
        operation_type=operation,
        path=["posts", "1"],
        method="GET",
        query_key="key",
        tags=["posts", "posts/1"],
        state_manager=StateManager(emitter),
        event_emitter=emitter,
    )


async def _core() -> Response:
    return Response(status=200, data="core")


# ---------------------------------------------------------------------------
# Plugin ABC
# ---------------------------------------------------------------------------


class TestPluginABC:
    def test_cannot_instantiate_without_name(self) -> None:
        with pytest.raises(TypeError):
            Plugin()  # type: ignore[abstract]

    def test_defaults(self) -> None:
        plugin = MinimalPlugin()
        assert plugin.priority == 0
        assert plugin.dependencies == ()
        assert plugin.version == "0.1.0"
        assert plugin.description == ""

    def test_declares(self) -> None:
        assert not declares(MinimalPlugin(), "middleware")
        assert declares(TracePlugin("t"), "middleware")
        assert declares(LifecyclePlugin(), "on_mount")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_register_calls_on_init(self) -> None:
        config = ClientConfig(base_url="https://x.test")
        plugin = LifecyclePlugin()
        PluginExecutor([plugin], config)
        assert plugin.config is config

    def test_duplicate_name_raises(self) -> None:
        executor = PluginExecutor([MinimalPlugin()])
        with pytest.raises(PluginError, match="already registered"):
            executor.register(MinimalPlugin())

    @pytest.mark.parametrize(
        "plugin",
        [
            _invalid(plugin_name=""),
            _invalid(ops=()),
            _invalid(ops=("bogus",)),
            _invalid(prio=float("inf")),
            _invalid(prio=float("nan")),
            _invalid(prio="high"),
            _invalid(prio=True),
        ],
    )
    def test_invalid_plugins_rejected(self, plugin: Plugin) -> None:
        with pytest.raises(PluginError):
            PluginExecutor([plugin])

    def test_missing_dependency(self) -> None:
        with pytest.raises(PluginError, match="minimal"):
            PluginExecutor([DependentPlugin()])

    def test_dependency_order_does_not_matter(self) -> None:
        executor = PluginExecutor([DependentPlugin(), MinimalPlugin()])
        assert "dependent" in executor

    def test_get_plugin_unknown_raises(self) -> None:
        with pytest.raises(PluginError):
            PluginExecutor().get_plugin("missing")

    def test_ordering_by_priority_then_registration(self) -> None:
        executor = PluginExecutor(
            [TracePlugin("c", 5), TracePlugin("a", -1), TracePlugin("b", 5), TracePlugin("z", 0)]
        )
        assert [p.name for p in executor.plugins] == ["a", "z", "c", "b"]
        assert [entry["name"] for entry in executor.list_plugins()] == ["a", "z", "c", "b"]

    def test_for_operation_filters(self) -> None:
        executor = PluginExecutor([MinimalPlugin(), TracePlugin("t")])
        assert [p.name for p in executor.for_operation(OperationType.WRITE)] == ["t"]


# ---------------------------------------------------------------------------
# Middleware chain
# ---------------------------------------------------------------------------


class TestMiddleware:
    @pytest.mark.asyncio
    async def test_lower_priority_wraps_outer(self) -> None:
        log: list[str] = []
        executor = PluginExecutor(
            [TracePlugin("inner", 10, log), TracePlugin("outer", -10, log), TracePlugin("mid", 0, log)]
        )

        response = await executor.execute_middleware(OperationType.READ, _context(executor), _core)

        assert response.data == "core"
        assert log == ["outer:in", "mid:in", "inner:in", "inner:out", "mid:out", "outer:out"]

    @pytest.mark.asyncio
    async def test_short_circuit_skips_core(self) -> None:
        called = []

        async def core() -> Response:
            called.append(True)
            return Response(status=200)

        executor = PluginExecutor([ShortCircuitPlugin()])
        response = await executor.execute_middleware(OperationType.READ, _context(executor), core)

        assert response.data == "synthesized"
        assert called == []

    @pytest.mark.asyncio
    async def test_plugins_for_other_operations_are_skipped(self) -> None:
        executor = PluginExecutor([ShortCircuitPlugin()])
        ctx = _context(executor, OperationType.WRITE)
        response = await executor.execute_middleware(OperationType.WRITE, ctx, _core)
        assert response.data == "core"

    @pytest.mark.asyncio
    async def test_non_response_result_raises(self) -> None:
        executor = PluginExecutor([BadReturnPlugin()])
        with pytest.raises(PluginError, match="expected Response"):
            await executor.execute_middleware(OperationType.READ, _context(executor), _core)

    @pytest.mark.asyncio
    async def test_after_response_may_replace(self) -> None:
        executor = PluginExecutor([AfterResponsePlugin()])
        ctx = _context(executor)

        response = await executor.execute_middleware(OperationType.READ, ctx, _core)

        assert response.data == {"wrapped": "core"}
        assert ctx.response is response

    @pytest.mark.asyncio
    async def test_request_complete_event(self) -> None:
        executor = PluginExecutor()
        ctx = _context(executor)
        events = []
        ctx.event_emitter.on(EVENT_REQUEST_COMPLETE, events.append)

        response = await executor.execute_middleware(OperationType.READ, ctx, _core)

        assert events == [
            {"query_key": "key", "operation_type": OperationType.READ, "response": response}
        ]


# ---------------------------------------------------------------------------
# Lifecycle, exports and instance API
# ---------------------------------------------------------------------------


class TestHooks:
    @pytest.mark.asyncio
    async def test_lifecycle_hooks(self) -> None:
        plugin = LifecyclePlugin()
        executor = PluginExecutor([plugin])
        ctx = _context(executor)

        await executor.execute_lifecycle("on_mount", OperationType.READ, ctx)
        await executor.execute_update_lifecycle(OperationType.READ, ctx, ctx)
        await executor.execute_lifecycle("on_unmount", OperationType.READ, ctx)

        assert plugin.calls == ["mount", "update", "unmount"]

    @pytest.mark.asyncio
    async def test_unknown_lifecycle_hook(self) -> None:
        executor = PluginExecutor()
        with pytest.raises(ValueError):
            await executor.execute_lifecycle("on_fire", OperationType.READ, _context(executor))

    def test_exports_are_bound_to_context(self) -> None:
        executor = PluginExecutor([ExportingPlugin()])
        ctx = _context(executor)
        assert ctx.plugins.get("exporter")["path"]() == "posts/1"
        assert ctx.plugins.get("missing") is None
        assert ctx.plugins.has("exporter")

    def test_instance_api_collected(self) -> None:
        executor = PluginExecutor([ExportingPlugin()])
        api = executor.build_instance_api(_instance_context(executor))
        assert api["hello"]() == "hi"

    def test_instance_api_conflict(self) -> None:
        executor = PluginExecutor([ExportingPlugin(), CollidingPlugin()])
        with pytest.raises(PluginError, match="hello"):
            executor.build_instance_api(_instance_context(executor))

    def test_cleanup_resilient_to_exceptions(self) -> None:
        tracker = LifecyclePlugin()
        executor = PluginExecutor([ExplodingCleanupPlugin(), tracker])
        executor.cleanup()
        assert tracker.calls == ["cleanup"]
        assert len(executor) == 2


def _instance_context(executor: PluginExecutor) -> InstanceContext:
    emitter = EventEmitter()
    return InstanceContext(
        state_manager=StateManager(emitter),
        event_emitter=emitter,
        executor=executor,
        config=ClientConfig(),
    )


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscover:
    """Entry-point-based plugin discovery."""

    def _make_entry_point(self, name: str, plugin_cls: type) -> Any:
        class MockEP:
            def __init__(self, n: str, cls: type) -> None:
                self.name = n
                self._cls = cls

            def load(self) -> type:
                return self._cls

        return MockEP(name, plugin_cls)

    def _discover(self, executor: PluginExecutor, eps: list[Any]) -> list[str]:
        with patch(
            "fetchflow.plugins.executor.importlib.metadata.entry_points", return_value=eps
        ):
            return executor.discover()

    def test_discover_loads_plugins(self) -> None:
        executor = PluginExecutor()
        loaded = self._discover(executor, [self._make_entry_point("minimal", MinimalPlugin)])
        assert loaded == ["minimal"]
        assert executor.get_plugin("minimal").name == "minimal"

    def test_discover_respects_disabled(self) -> None:
        executor = PluginExecutor(config=ClientConfig(plugins=PluginsConfig(disabled=["minimal"])))
        assert self._discover(executor, [self._make_entry_point("minimal", MinimalPlugin)]) == []
        assert "minimal" not in executor

    def test_discover_respects_enabled_allowlist(self) -> None:
        executor = PluginExecutor(config=ClientConfig(plugins=PluginsConfig(enabled=["lifecycle"])))
        loaded = self._discover(
            executor,
            [
                self._make_entry_point("minimal", MinimalPlugin),
                self._make_entry_point("lifecycle", LifecyclePlugin),
            ],
        )
        assert loaded == ["lifecycle"]

    def test_discover_skips_registered_names(self) -> None:
        executor = PluginExecutor([MinimalPlugin()])
        assert self._discover(executor, [self._make_entry_point("minimal", MinimalPlugin)]) == []

    def test_discover_handles_broken_plugin(self) -> None:
        class BrokenEP:
            name = "broken"

            def load(self) -> type:
                raise ImportError("missing dependency")

        executor = PluginExecutor()
        loaded = self._discover(executor, [BrokenEP(), self._make_entry_point("minimal", MinimalPlugin)])
        assert loaded == ["minimal"]

    def test_builtin_entry_points_load(self) -> None:
        from fetchflow.plugins import CachePlugin

        executor = PluginExecutor()
        assert self._discover(executor, [self._make_entry_point("cache", CachePlugin)]) == ["cache"]
        assert executor.get_plugin("cache").stale_time == 0
