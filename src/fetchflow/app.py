"""Typer application and CLI entry point for fetchflow.

The ``fetchflow`` command sends one request (``get``, ``post``, ``put``,
``patch``, ``delete``) or walks a cursor-paginated listing (``pages``)
through a client built from the resolved configuration, so the full plugin
chain (cache, deduplication, retry, invalidation) runs exactly as it does
in library use. ``plugins`` lists that chain. ``config`` shows and edits
the user configuration file.

Exit codes follow :mod:`fetchflow.exit_codes`: an error envelope exits with
the code of its error, a :class:`~fetchflow.exceptions.FetchflowError` with
its ``exit_code``.

Example::

    fetchflow --base-url https://api.example.com get posts 1
    fetchflow post posts --body '{"title": "Hello"}'
    fetchflow pages activities --cursor-param cursor --next-field next_cursor
    fetchflow plugins --installed
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from fetchflow import __version__
from fetchflow.exceptions import FetchflowError
from fetchflow.exit_codes import (
    EXIT_ABORTED,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SUCCESS,
)
from fetchflow.instance import create_client
from fetchflow.models import ClientConfig
from fetchflow.output import OutputFormat, OutputManager, get_output, set_output
from fetchflow.request import RequestBuilder, RequestDescriptor
from fetchflow.types import Response

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="fetchflow",
    help="Send HTTP requests through the fetchflow plugin chain.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

config_app = typer.Typer(no_args_is_help=True)
app.add_typer(config_app, name="config", help="Show or edit the user configuration.")

_LOG_HANDLER_NAME = "fetchflow-cli"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"fetchflow {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Send ``fetchflow`` log records to stderr through a :class:`RichHandler`."""
    package_logger = logging.getLogger("fetchflow")
    for handler in list(package_logger.handlers):
        if handler.get_name() == _LOG_HANDLER_NAME:
            package_logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose,
    )
    handler.set_name(_LOG_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-b", help="Prefix for every request path."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", min=0, help="Request timeout in seconds."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Initialise output and logging, and store connection overrides in ``ctx.obj``."""
    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["timeout"] = timeout


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _parse_pairs(values: Optional[list[str]], separator: str, option: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition(separator)
        if not sep or not key.strip():
            get_output().error(f"Invalid {option} '{item}', expected KEY{separator}VALUE")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        pairs[key.strip()] = value.strip()
    return pairs


def _parse_body(body: Optional[str]) -> Any:
    """Parse *body* as JSON if possible, returning the raw string otherwise."""
    if body is None:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return body


def _resolve(ctx: typer.Context) -> ClientConfig:
    from fetchflow.config import resolve_config

    obj = ctx.obj or {}
    return resolve_config(cli_base_url=obj.get("base_url"), cli_timeout=obj.get("timeout"))


def _run(ctx: typer.Context, work: Any) -> Response:
    """Resolve config, run ``work(config)`` on a fresh event loop and map errors to exits."""
    output = get_output()
    try:
        config = _resolve(ctx)
        if not config.base_url:
            output.warning("No base URL configured; paths are sent relative to '/'")
        return asyncio.run(work(config))
    except FetchflowError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _finish(response: Optional[Response]) -> None:
    if response is None:
        return
    code = get_output().render_response(response)
    if code != EXIT_SUCCESS:
        raise typer.Exit(code=code)


def _send(
    ctx: typer.Context,
    method: str,
    path: list[str],
    query: Optional[list[str]],
    header: Optional[list[str]],
    body: Optional[str] = None,
) -> None:
    descriptor = RequestBuilder(*path).request(
        method,
        query=_parse_pairs(query, "=", "--query") or None,
        headers=_parse_pairs(header, ":", "--header") or None,
        body=_parse_body(body),
    )

    async def work(config: ClientConfig) -> Response:
        async with create_client(config=config) as client:
            if descriptor.method == "GET":
                controller = client.read(descriptor, enabled=False)
            else:
                controller = client.write(descriptor)
            logger.debug("%s %s", descriptor.method, "/".join(descriptor.segments))
            return await controller.execute()

    _finish(_run(ctx, work))


_PATH_HELP = "Path segments, e.g. 'posts 1' or 'posts/1'."
_QUERY_HELP = "Query parameter KEY=VALUE (repeatable)."
_HEADER_HELP = "Header KEY:VALUE (repeatable)."
_BODY_HELP = "Request body; parsed as JSON when possible."


# ------------------------------------------------------------------
# Request commands
# ------------------------------------------------------------------


@app.command("get")
def get_command(
    ctx: typer.Context,
    path: list[str] = typer.Argument(help=_PATH_HELP),
    query: Optional[list[str]] = typer.Option(None, "--query", "-q", help=_QUERY_HELP),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help=_HEADER_HELP),
) -> None:
    """Send a GET request and print the response body."""
    _send(ctx, "GET", path, query, header)


@app.command("post")
def post_command(
    ctx: typer.Context,
    path: list[str] = typer.Argument(help=_PATH_HELP),
    body: Optional[str] = typer.Option(None, "--body", "-d", help=_BODY_HELP),
    query: Optional[list[str]] = typer.Option(None, "--query", "-q", help=_QUERY_HELP),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help=_HEADER_HELP),
) -> None:
    """Send a POST request."""
    _send(ctx, "POST", path, query, header, body)


@app.command("put")
def put_command(
    ctx: typer.Context,
    path: list[str] = typer.Argument(help=_PATH_HELP),
    body: Optional[str] = typer.Option(None, "--body", "-d", help=_BODY_HELP),
    query: Optional[list[str]] = typer.Option(None, "--query", "-q", help=_QUERY_HELP),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help=_HEADER_HELP),
) -> None:
    """Send a PUT request."""
    _send(ctx, "PUT", path, query, header, body)


@app.command("patch")
def patch_command(
    ctx: typer.Context,
    path: list[str] = typer.Argument(help=_PATH_HELP),
    body: Optional[str] = typer.Option(None, "--body", "-d", help=_BODY_HELP),
    query: Optional[list[str]] = typer.Option(None, "--query", "-q", help=_QUERY_HELP),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help=_HEADER_HELP),
) -> None:
    """Send a PATCH request."""
    _send(ctx, "PATCH", path, query, header, body)


@app.command("delete")
def delete_command(
    ctx: typer.Context,
    path: list[str] = typer.Argument(help=_PATH_HELP),
    query: Optional[list[str]] = typer.Option(None, "--query", "-q", help=_QUERY_HELP),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help=_HEADER_HELP),
) -> None:
    """Send a DELETE request."""
    _send(ctx, "DELETE", path, query, header)


@app.command("pages")
def pages_command(
    ctx: typer.Context,
    path: list[str] = typer.Argument(help=_PATH_HELP),
    cursor_param: str = typer.Option(
        "cursor", "--cursor-param", help="Query parameter carrying the cursor."
    ),
    next_field: str = typer.Option(
        "next_cursor", "--next-field", help="Response field holding the next cursor."
    ),
    items_field: Optional[str] = typer.Option(
        None, "--items-field", help="Response field holding the page items."
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", min=1, help="Page size, sent as the 'limit' query parameter."
    ),
    max_pages: int = typer.Option(10, "--max-pages", min=1, help="Stop after this many pages."),
    query: Optional[list[str]] = typer.Option(None, "--query", "-q", help=_QUERY_HELP),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help=_HEADER_HELP),
) -> None:
    """Follow a cursor through a paginated listing and print the merged items.

    Each response must be a JSON object; the cursor for the next page is read
    from ``--next-field`` and sent as ``--cursor-param``. Pages are merged by
    concatenating ``--items-field`` (or the page itself when it is a list).
    """
    params: dict[str, Any] = dict(_parse_pairs(query, "=", "--query"))
    if limit is not None:
        params["limit"] = limit
    descriptor = RequestBuilder(*path).get(
        query=params or None,
        headers=_parse_pairs(header, ":", "--header") or None,
    )

    def next_cursor(page: Any) -> Any:
        return page.get(next_field) if isinstance(page, dict) else None

    def merge(pages: list[Any]) -> list[Any]:
        items: list[Any] = []
        for page in pages:
            chunk = page.get(items_field) if items_field and isinstance(page, dict) else page
            if isinstance(chunk, list):
                items.extend(chunk)
            elif chunk is not None:
                items.append(chunk)
        return items

    async def work(config: ClientConfig) -> Response:
        async with create_client(config=config) as client:
            feed = client.infinite_read(
                descriptor,
                merger=merge,
                can_fetch_next=lambda page: next_cursor(page.response) is not None,
                next_page_request=lambda page: {
                    "query": {cursor_param: next_cursor(page.response)}
                },
                enabled=False,
            )
            response = await feed.fetch_next()
            while (
                response is not None
                and response.error is None
                and len(feed.pages) < max_pages
            ):
                response = await feed.fetch_next()

            state = feed.get_state()
            get_output().debug(
                f"{len(state.all_responses)} page(s) loaded, more available: {state.can_fetch_next}"
            )
            if state.error is not None:
                return Response(status=0, error=state.error)
            return Response(status=200, data=state.data if state.data is not None else [])

    _finish(_run(ctx, work))


@app.command("plugins")
def plugins_command(
    ctx: typer.Context,
    installed: bool = typer.Option(
        False,
        "--installed",
        help="Also load plugins registered under the 'fetchflow.plugins' entry point.",
    ),
) -> None:
    """List the plugins a client runs, in middleware chain order.

    Example::

        fetchflow plugins
        fetchflow plugins --installed
    """
    output = get_output()

    async def collect(config: ClientConfig) -> list[dict[str, Any]]:
        async with create_client(config=config) as client:
            if installed:
                client.executor.discover()
            return client.executor.list_plugins()

    try:
        entries = asyncio.run(collect(_resolve(ctx)))
    except FetchflowError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    headers = ["Name", "Priority", "Operations", "Description"]
    rows = [
        [
            entry["name"],
            f"{entry['priority']:g}",
            ", ".join(entry["operations"]),
            entry["description"] or "-",
        ]
        for entry in entries
    ]
    output.print_table(headers, rows, title=f"Plugins ({len(rows)})")


# ------------------------------------------------------------------
# Config commands
# ------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration after flags, env and project overrides."""
    from fetchflow.config import get_config_dir

    output = get_output()
    try:
        config = _resolve(ctx)
    except FetchflowError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    output.info(f"Config directory: {get_config_dir()}")
    output.format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g. 'transport.timeout')."),
    value: str = typer.Argument(help="Value to set; parsed as JSON when possible."),
) -> None:
    """Set a value in the user configuration file.

    Example::

        fetchflow config set base_url https://api.example.com
        fetchflow config set cache.stale_time 30
    """
    from fetchflow.config import load_client_config, save_client_config

    output = get_output()
    try:
        data = load_client_config().model_dump(mode="json")
    except FetchflowError as exc:
        output.error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    keys = key.split(".")
    target = data
    for part in keys[:-1]:
        if not isinstance(target.get(part), dict):
            output.error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[part]
    target[keys[-1]] = _parse_body(value)

    try:
        config = ClientConfig.model_validate(data)
    except ValueError as exc:
        output.error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_client_config(config)
    output.success(f"Set {key} = {target[keys[-1]]!r}")


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def _setup_signal_handlers() -> None:
    def _handler(signum: int, frame: Any) -> None:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_ABORTED)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """Console-script entry point.

    :class:`~fetchflow.exceptions.FetchflowError` exits with its
    ``exit_code``; any other exception prints a message and exits with
    :data:`~fetchflow.exit_codes.EXIT_GENERIC_FAILURE`.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_ABORTED)
    except FetchflowError as exc:
        get_output().error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:
        get_output().error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
