"""Exception hierarchy for fetchflow.

All exceptions inherit from :class:`FetchflowError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`fetchflow.exit_codes`.

Two families live here:

* **Raised** -- :class:`ProgrammerError`, :class:`PluginError` and
  :class:`ConfigError` are raised at call time. A ``ProgrammerError`` means
  the calling code is wrong and is never converted into a response.
* **Enveloped** -- :class:`NetworkError`, :class:`HTTPError` and
  :class:`AbortError` describe request outcomes. Controllers never raise
  them; they are placed on :attr:`fetchflow.types.Response.error` so callers
  have a single ``if response.error`` path.

Subclass hierarchy::

    FetchflowError      (exit 1)
    +-- ProgrammerError (exit 2)
    +-- PluginError     (exit 10)
    +-- ConfigError     (exit 1)
    +-- NetworkError    (exit 6)
    +-- HTTPError       (exit 4)
    +-- AbortError      (exit 130)
"""

from __future__ import annotations

from typing import Any

from fetchflow.exit_codes import (
    EXIT_ABORTED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_PLUGIN_ERROR,
)


class FetchflowError(Exception):
    """Base exception for all fetchflow errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ProgrammerError(FetchflowError):
    """Raised for malformed calls, such as a missing required path parameter."""

    exit_code = EXIT_INVALID_USAGE


class PluginError(FetchflowError):
    """Raised when a plugin fails validation or registration, or when the plugin chain fails."""

    exit_code = EXIT_PLUGIN_ERROR


class ConfigError(FetchflowError):
    """Raised for configuration problems (unreadable file, invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE


class NetworkError(FetchflowError):
    """The transport raised instead of resolving.

    Named after the outcome rather than the built-in ``ConnectionError`` so it
    also covers timeouts and protocol errors.
    """

    exit_code = EXIT_CONNECTION_ERROR


class HTTPError(FetchflowError):
    """The transport resolved with ``ok=False``.

    Args:
        status: The HTTP status code.
        body: The parsed response body (JSON value, text, or ``None``).
    """

    exit_code = EXIT_HTTP_ERROR

    def __init__(self, status: int, body: Any = None):
        super().__init__(f"HTTP {status}")
        self.status = status
        self.body = body


class AbortError(FetchflowError):
    """The request was cancelled before it settled."""

    exit_code = EXIT_ABORTED

    def __init__(self, message: str = "Request aborted"):
        super().__init__(message)
