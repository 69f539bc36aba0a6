"""Tests for HttpxTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from fetchflow.client.transport import HttpxTransport
from fetchflow.models import TransportConfig


def _recording_transport(config: TransportConfig | None = None, status: int = 200):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json={"echo": request.method})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxTransport(config, client=client), seen


class TestHttpxTransport:
    @pytest.mark.asyncio
    async def test_dict_body_sent_as_json(self) -> None:
        transport, seen = _recording_transport()
        result = await transport(
            "https://api.test/posts", {"method": "post", "body": {"title": "t"}}, None
        )

        assert result.ok
        assert result.status == 200
        assert result.data == {"echo": "POST"}
        assert json.loads(seen[0].content) == {"title": "t"}
        assert seen[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_string_body_sent_raw(self) -> None:
        transport, seen = _recording_transport()
        await transport("https://api.test/raw", {"method": "PUT", "body": "plain"}, None)
        assert seen[0].content == b"plain"

    @pytest.mark.asyncio
    async def test_default_and_request_headers_merge(self) -> None:
        transport, seen = _recording_transport(
            TransportConfig(headers={"User-Agent": "fetchflow", "X-Env": "test"})
        )
        await transport("https://api.test/", {"method": "GET", "headers": {"X-Env": "override"}}, None)

        assert seen[0].headers["user-agent"] == "fetchflow"
        assert seen[0].headers["x-env"] == "override"

    @pytest.mark.asyncio
    async def test_error_status_resolves(self) -> None:
        transport, _ = _recording_transport(status=500)
        result = await transport("https://api.test/", {"method": "GET"}, None)
        assert not result.ok
        assert result.status == 500

    @pytest.mark.asyncio
    async def test_network_failure_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(httpx.ConnectError):
            await transport("https://api.test/", {"method": "GET"}, None)

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self) -> None:
        async with HttpxTransport() as transport:
            assert transport._client is not None
        assert transport._client is None
