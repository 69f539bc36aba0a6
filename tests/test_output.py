"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline, quiet and verbose modes
- JSON, plain and rich payload rendering
- render_response exit codes
- print_table in all three modes
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from fetchflow.exceptions import AbortError, HTTPError, NetworkError
from fetchflow.exit_codes import (
    EXIT_ABORTED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_ERROR,
    EXIT_SUCCESS,
)
from fetchflow.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)
from fetchflow.types import Response


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("fetchflow.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("fetchflow.output._is_tty", lambda: True)


# ------------------------------------------------------------------ #
# Format resolution and colour
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.RICH

    def test_auto_resolves_to_plain_when_tty_but_no_color(self, tty):
        assert OutputManager(format=OutputFormat.AUTO, no_color=True).format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color()

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color()

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert not _should_disable_color()


# ------------------------------------------------------------------ #
# Streams, quiet, verbose
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        OutputManager(no_color=True).print_data("payload")
        captured = capfd.readouterr()
        assert captured.out == "payload\n"
        assert captured.err == ""

    def test_diagnostics_go_to_stderr(self, capfd, non_tty):
        mgr = OutputManager(no_color=True)
        mgr.info("hello")
        mgr.warning("careful")
        mgr.error("broken")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "hello" in captured.err
        assert "Warning: careful" in captured.err
        assert "Error: broken" in captured.err

    def test_quiet_suppresses_info_but_not_errors(self, capfd, non_tty):
        mgr = OutputManager(no_color=True, quiet=True)
        mgr.info("chatty")
        mgr.success("done")
        mgr.error("still shown")
        captured = capfd.readouterr()
        assert "chatty" not in captured.err
        assert "done" not in captured.err
        assert "still shown" in captured.err

    def test_debug_only_when_verbose(self, capfd, non_tty):
        OutputManager(no_color=True).debug("hidden")
        OutputManager(no_color=True, verbose=True).debug("shown")
        err = capfd.readouterr().err
        assert "hidden" not in err
        assert "[debug] shown" in err


# ------------------------------------------------------------------ #
# Payload rendering
# ------------------------------------------------------------------ #


class TestFormatResponse:
    def test_json_dict(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response({"id": 1, "name": "Ada"})
        assert json.loads(capfd.readouterr().out) == {"id": 1, "name": "Ada"}

    def test_json_string_that_is_json(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response('{"a": 1}')
        assert json.loads(capfd.readouterr().out) == {"a": 1}

    def test_json_plain_string(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response("not json")
        assert capfd.readouterr().out == "not json\n"

    def test_plain_dict_as_key_value(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response({"id": 1, "name": "Ada"})
        assert capfd.readouterr().out == "id\t1\nname\tAda\n"

    def test_plain_list_of_dicts_as_rows(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response([{"a": 1, "b": 2}, {"a": 3, "b": 4}])
        assert capfd.readouterr().out == "1\t2\n3\t4\n"

    def test_rich_dict_produces_output(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response({"key": "value"})
        assert "key" in capfd.readouterr().out


class TestRenderResponse:
    def test_success_prints_data(self, capfd, non_tty):
        code = OutputManager(format=OutputFormat.JSON).render_response(Response(status=200, data=[1]))
        assert code == EXIT_SUCCESS
        assert json.loads(capfd.readouterr().out) == [1]

    def test_success_without_body_prints_nothing(self, capfd, non_tty):
        code = OutputManager(format=OutputFormat.JSON).render_response(Response(status=204))
        assert code == EXIT_SUCCESS
        assert capfd.readouterr().out == ""

    def test_cached_status_in_verbose_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True, verbose=True)
        mgr.render_response(Response(status=200, data={}, cached=True))
        assert "status 200 (cached)" in capfd.readouterr().err

    def test_http_error_prints_body_to_stderr(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        error = HTTPError(404, {"message": "no such user"})
        code = mgr.render_response(Response(status=404, error=error))
        captured = capfd.readouterr()
        assert code == EXIT_HTTP_ERROR
        assert captured.out == ""
        assert "Error: HTTP 404" in captured.err
        assert "no such user" in captured.err

    @pytest.mark.parametrize(
        "error, expected",
        [
            (NetworkError("refused"), EXIT_CONNECTION_ERROR),
            (AbortError(), EXIT_ABORTED),
            (RuntimeError("surprise"), EXIT_GENERIC_FAILURE),
        ],
    )
    def test_error_exit_codes(self, capfd, non_tty, error, expected):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        assert mgr.render_response(Response(status=0, error=error)) == expected


class TestPrintTable:
    def test_table_json_mode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).print_table(["Name", "Priority"], [["cache", "-10"]])
        assert json.loads(capfd.readouterr().out) == [{"Name": "cache", "Priority": "-10"}]

    def test_table_plain_mode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).print_table(["Name", "Priority"], [["cache", "-10"]])
        assert capfd.readouterr().out == "Name\tPriority\ncache\t-10\n"

    def test_table_rich_mode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).print_table(
            ["Name"], [["retry"]], title="Plugins"
        )
        out = capfd.readouterr().out
        assert "Plugins" in out
        assert "retry" in out


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalOutput:
    def test_get_output_creates_default(self, non_tty):
        reset_output()
        assert isinstance(get_output(), OutputManager)

    def test_set_and_reset(self, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON)
        set_output(mgr)
        assert get_output() is mgr
        reset_output()
        assert get_output() is not mgr
