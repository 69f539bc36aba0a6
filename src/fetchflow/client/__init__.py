"""Transport layer for fetchflow.

* :class:`HttpxTransport` -- the default transport, backed by
  :class:`httpx.AsyncClient`.
* :func:`fetch_response` -- URL building, retry and error mapping around a
  single transport call.
* :func:`to_response` / :func:`extract_response_data` -- normalization into
  the :class:`~fetchflow.types.Response` envelope.
"""

from fetchflow.client.fetch import fetch_response
from fetchflow.client.response import extract_response_data, to_response
from fetchflow.client.transport import HttpxTransport, Transport

__all__ = [
    "HttpxTransport",
    "Transport",
    "extract_response_data",
    "fetch_response",
    "to_response",
]
