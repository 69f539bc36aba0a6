"""Tests for create_client and FetchflowClient."""

from __future__ import annotations

import pytest

from conftest import BASE_URL, wait_until
from fetchflow.client.transport import HttpxTransport
from fetchflow.exceptions import PluginError, ProgrammerError
from fetchflow.instance import FetchflowClient, create_client
from fetchflow.models import ClientConfig
from fetchflow.plugins import CachePlugin, InvalidationPlugin
from fetchflow.plugins.base import ALL_OPERATIONS, Plugin
from fetchflow.types import OperationType


class ShadowingPlugin(Plugin):
    @property
    def name(self) -> str:
        return "shadowing"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return ALL_OPERATIONS

    def instance_api(self, ctx):
        return {"read": lambda: None}


class CleanupPlugin(Plugin):
    def __init__(self) -> None:
        self.cleaned = 0

    @property
    def name(self) -> str:
        return "cleanup"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return ALL_OPERATIONS

    def cleanup(self) -> None:
        self.cleaned += 1


class TestCreateClient:
    def test_defaults(self) -> None:
        client = create_client()
        assert isinstance(client, FetchflowClient)
        assert isinstance(client.transport, HttpxTransport)
        assert {plugin.name for plugin in client.executor.plugins} == {"cache", "deduplication", "invalidation", "retry"}
        assert {"invalidate", "clear_cache"} <= set(client.instance_api)

    def test_empty_plugin_list(self, make_client) -> None:
        client = make_client(plugins=[])
        assert len(client.executor) == 0
        assert client.instance_api == {}

    def test_base_url_overrides_config(self) -> None:
        client = create_client("https://override.test", config=ClientConfig(base_url="https://config.test"))
        assert client.base_url == "https://override.test"

    def test_config_base_url_used_without_argument(self) -> None:
        client = create_client(config=ClientConfig(base_url="https://config.test"))
        assert client.base_url == "https://config.test"

    def test_instance_api_cannot_shadow_client_attributes(self) -> None:
        with pytest.raises(PluginError, match="shadow"):
            create_client(BASE_URL, plugins=[ShadowingPlugin()])

    def test_clients_do_not_share_state(self, make_client) -> None:
        first = make_client()
        second = make_client()
        assert first.state_manager is not second.state_manager
        assert first.event_emitter is not second.event_emitter


class TestInstanceApi:
    def test_unknown_attribute_raises(self, make_client) -> None:
        client = make_client(plugins=[])
        with pytest.raises(AttributeError, match="clear_cache"):
            client.clear_cache()

    @pytest.mark.asyncio
    async def test_invalidate_marks_and_refetches(self, make_client, server) -> None:
        server.json("GET", "/posts", [])
        server.json("GET", "/users", [])
        client = make_client(plugins=[CachePlugin(stale_time=60), InvalidationPlugin()])
        posts = client.read(client.api("posts").get())
        users = client.read(client.api("users").get())
        await posts.mount()
        await users.mount()

        marked = client.invalidate("posts")

        assert marked == [posts.query_key]
        await wait_until(lambda: server.count("GET", "/posts") == 2)
        assert server.count("GET", "/users") == 1

    @pytest.mark.asyncio
    async def test_invalidate_wildcard_refetches_everything(self, make_client, server) -> None:
        server.json("GET", "/posts", [])
        server.json("GET", "/users", [])
        client = make_client(plugins=[CachePlugin(stale_time=60), InvalidationPlugin()])
        posts = client.read(client.api("posts").get())
        users = client.read(client.api("users").get())
        await posts.mount()
        await users.mount()

        marked = client.invalidate(["*"])

        assert sorted(marked) == sorted([posts.query_key, users.query_key])
        await wait_until(lambda: server.count() == 4)

    @pytest.mark.asyncio
    async def test_clear_cache(self, make_client, server) -> None:
        server.json("GET", "/posts", [1])
        client = make_client(plugins=[CachePlugin(stale_time=60)])
        posts = client.read(client.api("posts").get())
        await posts.mount()
        assert len(client.state_manager) == 1

        client.clear_cache()

        assert len(client.state_manager) == 0
        assert posts.get_state().data is None


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_closed_client_rejects_controllers(self, make_client) -> None:
        client = make_client()
        await client.close()
        assert client.closed
        with pytest.raises(ProgrammerError, match="closed"):
            client.read(client.api("posts").get())

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_client) -> None:
        plugin = CleanupPlugin()
        client = make_client(plugins=[plugin])
        await client.close()
        await client.close()
        assert plugin.cleaned == 1

    @pytest.mark.asyncio
    async def test_close_drops_listeners(self, make_client) -> None:
        client = make_client()
        client.event_emitter.on("refetch", lambda payload: None)
        await client.close()
        assert client.event_emitter.listener_count("refetch") == 0

    @pytest.mark.asyncio
    async def test_async_context_manager(self) -> None:
        async with create_client(BASE_URL) as client:
            assert not client.closed
        assert client.closed
        assert client.transport._client is None
