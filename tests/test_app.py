"""Tests for the fetchflow command line."""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import BASE_URL
from fetchflow import __version__
from fetchflow.app import app
from fetchflow.config import config_path, load_client_config
from fetchflow.exit_codes import EXIT_HTTP_ERROR, EXIT_INVALID_USAGE, EXIT_SUCCESS
from fetchflow.instance import create_client
from fetchflow.plugins import DebouncePlugin

ACTIVITIES = [{"id": n} for n in range(5)]


def _activities(request: httpx.Request):
    cursor = int(request.url.params.get("cursor", 0))
    limit = int(request.url.params.get("limit", 2))
    end = cursor + limit
    return 200, {
        "items": ACTIVITIES[cursor:end],
        "next_cursor": end if end < len(ACTIVITIES) else None,
    }


@pytest.fixture
def cli(cli_runner, server, isolated_config, monkeypatch: pytest.MonkeyPatch):
    """Invoke the app with clients wired to the fake server."""

    def factory(base_url=None, plugins=None, config=None, transport=None, **kwargs):
        return create_client(base_url, plugins, config, server.transport(), **kwargs)

    monkeypatch.setattr("fetchflow.app.create_client", factory)

    def invoke(*args: str):
        return cli_runner.invoke(app, ["--json", "--base-url", BASE_URL, *args])

    return invoke


class TestRequestCommands:
    def test_get_prints_json(self, cli, server) -> None:
        server.json("GET", "/users/1", {"id": 1, "name": "Ada"})

        result = cli("get", "users", "1")

        assert result.exit_code == EXIT_SUCCESS, result.output
        assert json.loads(result.stdout) == {"id": 1, "name": "Ada"}

    def test_get_slash_path_and_query(self, cli, server) -> None:
        server.json("GET", "/users/1", {"id": 1})

        result = cli("get", "users/1", "-q", "expand=posts", "-H", "X-Trace: abc")

        assert result.exit_code == EXIT_SUCCESS, result.output
        request = server.requests[0]
        assert request.url.params["expand"] == "posts"
        assert request.headers["x-trace"] == "abc"

    def test_http_error_exit_code(self, cli, server) -> None:
        server.json("GET", "/users/9", {"message": "no such user"}, status=404)

        result = cli("get", "users", "9")

        assert result.exit_code == EXIT_HTTP_ERROR
        assert "HTTP 404" in result.output
        assert "no such user" in result.output

    def test_post_sends_json_body(self, cli, server) -> None:
        server.json("POST", "/posts", {"id": 7}, status=201)

        result = cli("post", "posts", "--body", '{"title": "Hello"}')

        assert result.exit_code == EXIT_SUCCESS, result.output
        assert json.loads(server.requests[0].content) == {"title": "Hello"}
        assert json.loads(result.stdout) == {"id": 7}

    def test_delete_without_body(self, cli, server) -> None:
        server.json("DELETE", "/posts/7", None, status=204)

        result = cli("delete", "posts", "7")

        assert result.exit_code == EXIT_SUCCESS, result.output
        assert server.count("DELETE", "/posts/7") == 1

    def test_malformed_query_is_usage_error(self, cli, server) -> None:
        result = cli("get", "users", "-q", "no-separator")

        assert result.exit_code == EXIT_INVALID_USAGE
        assert server.count() == 0


class TestPagesCommand:
    def test_follows_cursor_and_merges_items(self, cli, server) -> None:
        server.route("GET", "/activities", _activities)

        result = cli("pages", "activities", "--items-field", "items", "--limit", "2")

        assert result.exit_code == EXIT_SUCCESS, result.output
        assert json.loads(result.stdout) == ACTIVITIES
        assert server.count() == 3

    def test_max_pages(self, cli, server) -> None:
        server.route("GET", "/activities", _activities)

        result = cli("pages", "activities", "--items-field", "items", "--max-pages", "1")

        assert result.exit_code == EXIT_SUCCESS, result.output
        assert json.loads(result.stdout) == ACTIVITIES[:2]
        assert server.count() == 1


class TestConfigCommands:
    def test_set_then_show(self, cli) -> None:
        result = cli("config", "set", "cache.stale_time", "30")
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert load_client_config().cache.stale_time == 30

        result = cli("--quiet", "config", "show")
        assert result.exit_code == EXIT_SUCCESS, result.output
        shown = json.loads(result.stdout)
        assert shown["cache"]["stale_time"] == 30
        assert shown["base_url"] == BASE_URL

    def test_set_unknown_section(self, cli) -> None:
        result = cli("config", "set", "nope.value", "1")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert not config_path().exists()

    def test_set_invalid_value(self, cli) -> None:
        result = cli("config", "set", "retry.retries", "many")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "Validation error" in result.output


def test_version(cli_runner) -> None:
    result = cli_runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


class _EntryPoint:
    def __init__(self, name: str, plugin_cls: type) -> None:
        self.name = name
        self._cls = plugin_cls

    def load(self) -> type:
        return self._cls


class TestPluginsCommand:
    def test_lists_default_chain_in_order(self, cli) -> None:
        result = cli("plugins")

        assert result.exit_code == EXIT_SUCCESS, result.output
        rows = json.loads(result.stdout)
        assert [(row["Name"], row["Priority"]) for row in rows] == [
            ("cache", "-10"),
            ("deduplication", "0"),
            ("invalidation", "0"),
            ("retry", "10"),
        ]
        assert "write" in rows[2]["Operations"]

    def test_installed_adds_entry_point_plugins(self, cli, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "fetchflow.plugins.executor.importlib.metadata.entry_points",
            lambda group: [_EntryPoint("debounce", DebouncePlugin)],
        )

        result = cli("plugins", "--installed")

        assert result.exit_code == EXIT_SUCCESS, result.output
        rows = {row["Name"]: row for row in json.loads(result.stdout)}
        assert rows["debounce"]["Description"] == "Waits for input to settle before fetching"
        assert len(rows) == 5
