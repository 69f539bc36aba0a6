"""Default transport -- an async callable backed by :class:`httpx.AsyncClient`.

The core only depends on the transport *signature*::

    async def transport(url: str, init: dict, options: dict | None) -> TransportResponse

``init`` carries ``method``, ``headers`` and ``body``; ``options`` carries
per-request knobs such as ``timeout``. Any callable with this shape can be
passed to :func:`~fetchflow.instance.create_client`, which is how tests run
the engine without a network.

Cancellation is honored natively: cancelling the task that awaits the
transport cancels the underlying httpx request.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from fetchflow.client.response import extract_response_data
from fetchflow.models import TransportConfig
from fetchflow.types import TransportResponse

Transport = Callable[[str, Mapping[str, Any], Optional[Mapping[str, Any]]], Awaitable[TransportResponse]]


class HttpxTransport:
    """Transport that sends requests through a shared :class:`httpx.AsyncClient`.

    The client is created lazily on first use so the transport can be
    constructed outside an event loop. It may be used as an async context
    manager, or closed explicitly with :meth:`aclose`.

    Args:
        config: Timeout, SSL and default header settings.
        client: A pre-built client to use instead of creating one (for
            example one wired to :class:`httpx.MockTransport` in tests).
            A client passed in is still closed by :meth:`aclose`.

    Example::

        async with HttpxTransport(TransportConfig(timeout=10)) as transport:
            result = await transport("https://api.example.com/users", {"method": "GET"}, None)
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config or TransportConfig()
        self._client = client

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> HttpxTransport:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client, if one was created."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Transport call
    # ------------------------------------------------------------------ #

    async def __call__(
        self,
        url: str,
        init: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> TransportResponse:
        """Send one request and normalize the result.

        Args:
            url: Fully built request URL.
            init: ``method``, ``headers`` and ``body``. Dict and list bodies
                are sent as JSON, ``str``/``bytes`` bodies as raw content.
            options: Optional ``timeout`` override in seconds.

        Returns:
            A :class:`~fetchflow.types.TransportResponse`. Non-2xx statuses
            resolve normally with ``ok=False``.

        Raises:
            httpx.HTTPError: On network-level failures. The caller converts
                these into :class:`~fetchflow.exceptions.NetworkError`.
        """
        client = self._ensure_client()

        kwargs: dict[str, Any] = {
            "method": str(init.get("method", "GET")).upper(),
            "url": url,
            "headers": {**self._config.headers, **(init.get("headers") or {})},
        }
        body = init.get("body")
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif isinstance(body, (str, bytes)):
            kwargs["content"] = body
        elif body is not None:
            kwargs["json"] = body

        timeout = (options or {}).get("timeout")
        if timeout is not None:
            kwargs["timeout"] = timeout

        response = await client.request(**kwargs)
        return TransportResponse(
            ok=response.is_success,
            status=response.status_code,
            headers=dict(response.headers),
            data=extract_response_data(response),
        )

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                verify=self._config.verify_ssl,
                follow_redirects=self._config.follow_redirects,
            )
        return self._client
