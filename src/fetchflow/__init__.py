"""fetchflow -- plugin-driven request orchestration for asyncio clients.

A :class:`FetchflowClient` turns request descriptions into controllers that
cache, deduplicate, invalidate, retry and paginate HTTP requests. Every one
of those behaviours is a plugin run around the transport call, so a client
carries only the behaviour it is given.

Typical use::

    from fetchflow import create_client

    async with create_client("https://api.example.com") as client:
        posts = client.read(client.api("posts").get(), stale_time=30)
        await posts.execute()

        create = client.write(client.api("posts").post())
        await create.execute({"body": {"title": "Hello"}})  # invalidates "posts"

Modules:
    instance: :func:`create_client` and :class:`FetchflowClient`.
    operations: Read, write and infinite-read controllers.
    plugins: Plugin base class, executor and the built-in plugins.
    state: The per-client cache and in-flight registry.
    events: The per-client event bus.
    client: httpx transport, URL building, retries and response parsing.
    config: Configuration files and precedence resolution.
    app: The ``fetchflow`` command line.
"""

__version__ = "0.1.0"

from fetchflow.exceptions import (  # noqa: E402
    AbortError,
    ConfigError,
    FetchflowError,
    HTTPError,
    NetworkError,
    PluginError,
    ProgrammerError,
)
from fetchflow.instance import FetchflowClient, create_client  # noqa: E402
from fetchflow.models import ClientConfig  # noqa: E402
from fetchflow.request import RequestBuilder, RequestDescriptor  # noqa: E402
from fetchflow.types import (  # noqa: E402
    OperationSnapshot,
    OperationStatus,
    OperationType,
    Response,
)

__all__ = [
    "__version__",
    "AbortError",
    "ClientConfig",
    "ConfigError",
    "FetchflowClient",
    "FetchflowError",
    "HTTPError",
    "NetworkError",
    "OperationSnapshot",
    "OperationStatus",
    "OperationType",
    "PluginError",
    "ProgrammerError",
    "RequestBuilder",
    "RequestDescriptor",
    "Response",
    "create_client",
]
