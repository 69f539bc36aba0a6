"""Shared test fixtures for fetchflow.

Provides a fake clock, an in-process HTTP server built on
:class:`httpx.MockTransport` that counts calls and can hold requests open,
a client factory wired to both, isolated config directories, and output
state management for CLI tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Optional, Union

import httpx
import pytest

from fetchflow.client.transport import HttpxTransport
from fetchflow.instance import FetchflowClient, create_client
from fetchflow.models import ClientConfig, RetryConfig
from fetchflow.output import OutputFormat, OutputManager, reset_output, set_output
from fetchflow.plugins.base import Plugin

BASE_URL = "https://api.test"

Route = Union[tuple[int, Any], Callable[[httpx.Request], tuple[int, Any]]]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    CliRunner swaps sys.stdout/sys.stderr per invocation; a manager created
    during one test must not leak its stream references into the next.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _reset_package_logger() -> None:
    """Undo the CLI's logging setup so caplog sees ``fetchflow`` records."""
    yield
    package_logger = logging.getLogger("fetchflow")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced time source, in seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Fake server
# ---------------------------------------------------------------------------


class FakeServer:
    """Routes ``(method, path)`` to canned JSON replies and records every request.

    Set :attr:`gate` to an :class:`asyncio.Event` to hold requests open until
    it is set.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[httpx.Request] = []
        self.gate: Optional[asyncio.Event] = None

    def route(self, method: str, path: str, reply: Route) -> None:
        self.routes[(method.upper(), path)] = reply

    def json(self, method: str, path: str, body: Any, status: int = 200) -> None:
        self.route(method, path, (status, body))

    def count(self, method: Optional[str] = None, path: Optional[str] = None) -> int:
        return sum(
            1
            for request in self.requests
            if (method is None or request.method == method.upper())
            and (path is None or request.url.path == path)
        )

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        reply = self.routes.get((request.method, request.url.path))
        if reply is None:
            return httpx.Response(404, json={"error": "not found"})
        status, body = reply(request) if callable(reply) else reply
        if body is None:
            return httpx.Response(status)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def transport(self) -> HttpxTransport:
        return HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def make_client(server: FakeServer, clock: FakeClock) -> Callable[..., FetchflowClient]:
    """Factory for clients talking to :func:`server` with the fake clock.

    Retries default to zero so failing routes are called exactly once.
    """

    def factory(
        plugins: Optional[Iterable[Plugin]] = None,
        config: Optional[ClientConfig] = None,
        **kwargs: Any,
    ) -> FetchflowClient:
        config = config or ClientConfig(retry=RetryConfig(retries=0, retry_delay=0))
        return create_client(
            BASE_URL,
            plugins=plugins,
            config=config,
            transport=server.transport(),
            clock=clock,
            **kwargs,
        )

    return factory


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until *predicate* holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Point XDG_CONFIG_HOME at tmp_path, clear FETCHFLOW_* and chdir into tmp_path.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setattr("fetchflow.config._is_xdg_platform", lambda: True)
    for var in ("FETCHFLOW_BASE_URL", "FETCHFLOW_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def json_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.JSON, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
