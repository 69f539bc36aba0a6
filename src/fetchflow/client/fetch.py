"""The innermost step of every middleware chain: call the transport once.

:func:`fetch_response` builds the URL, invokes the transport with retry and
exponential backoff, and always returns a :class:`~fetchflow.types.Response`:
a transport that raises yields a :class:`~fetchflow.exceptions.NetworkError`
envelope and ``ok=False`` yields an :class:`~fetchflow.exceptions.HTTPError`
envelope. Only :class:`asyncio.CancelledError` escapes, so that ``abort()``
can be told apart from a failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Sequence

from fetchflow.client.response import to_response
from fetchflow.client.transport import Transport
from fetchflow.exceptions import NetworkError
from fetchflow.request import build_url
from fetchflow.types import Response

logger = logging.getLogger(__name__)


async def fetch_response(
    transport: Transport,
    *,
    base_url: str,
    method: str,
    path: Sequence[str],
    request: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
) -> Response:
    """Send one logical request through *transport*.

    Retries on transport exceptions and 5xx statuses up to
    ``options["retries"]`` times. The delay starts at
    ``options["retry_delay"]`` seconds and doubles each attempt.

    Args:
        transport: The transport callable.
        base_url: Prefix for the request path.
        method: HTTP method.
        path: Resolved path segments.
        request: ``query``, ``headers`` and ``body``.
        options: Transport options (``retries``, ``retry_delay``,
            ``timeout``), usually filled in by the retry plugin.

    Returns:
        The normalized response envelope.
    """
    options = dict(options or {})
    url = build_url(base_url, path, request.get("query"))
    init = {
        "method": method,
        "headers": dict(request.get("headers") or {}),
        "body": request.get("body"),
    }
    retries = int(options.get("retries") or 0)
    delay = float(options.get("retry_delay") or 0)

    for attempt in range(retries + 1):
        try:
            logger.debug("%s %s (attempt %d/%d)", method, url, attempt + 1, retries + 1)
            result = await transport(url, init, options)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if attempt < retries:
                wait = delay * 2 ** attempt
                logger.debug("Transport error: %s, retrying in %ss", exc, wait)
                await asyncio.sleep(wait)
                continue
            error = NetworkError(f"{method} {url} failed: {exc}")
            error.__cause__ = exc
            return Response(status=0, error=error)

        if result.status >= 500 and attempt < retries:
            wait = delay * 2 ** attempt
            logger.debug("Server error %s, retrying in %ss", result.status, wait)
            await asyncio.sleep(wait)
            continue

        return to_response(result)

    return Response(status=0, error=NetworkError("Request failed after all retries"))  # pragma: no cover
