"""Response normalization -- maps transport results onto the :class:`~fetchflow.types.Response` envelope.

Two steps happen between the wire and the caller:

1. :func:`extract_response_data` turns an :class:`httpx.Response` body into
   a Python value (JSON, text, or ``None``). The default transport uses it to
   fill :attr:`TransportResponse.data`.
2. :func:`to_response` turns a :class:`~fetchflow.types.TransportResponse`
   into the envelope, converting ``ok=False`` into an
   :class:`~fetchflow.exceptions.HTTPError` that carries the status and the
   parsed body.

See Also:
    :mod:`fetchflow.client.fetch` -- where transport exceptions become
    :class:`~fetchflow.exceptions.NetworkError`.
"""

from __future__ import annotations

from typing import Any

import httpx

from fetchflow.exceptions import HTTPError
from fetchflow.types import Response, TransportResponse

_TEXT_TYPES = ("text/", "application/xml", "+xml")


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    JSON content types are decoded as JSON and text/XML types are returned as
    text. For any other content type JSON is attempted first, falling back to
    the raw text. Returns ``None`` for responses with no content.

    Args:
        response: The :class:`httpx.Response` to extract data from.

    Returns:
        A JSON-decoded object, a ``str``, or ``None`` if the body is empty.
    """
    if not response.content:
        return None

    content_type = response.headers.get("content-type", "")
    if any(marker in content_type for marker in _TEXT_TYPES):
        return response.text

    try:
        return response.json()
    except ValueError:
        return response.text


def to_response(result: TransportResponse) -> Response:
    """Convert a transport result into the response envelope.

    Args:
        result: What the transport resolved to.

    Returns:
        A :class:`~fetchflow.types.Response` with ``data`` set when
        ``result.ok`` and an :class:`~fetchflow.exceptions.HTTPError` in
        ``error`` otherwise.
    """
    if result.ok:
        return Response(status=result.status, data=result.data, headers=dict(result.headers))
    return Response(
        status=result.status,
        error=HTTPError(result.status, result.data),
        headers=dict(result.headers),
    )
