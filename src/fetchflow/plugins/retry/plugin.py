"""Retry plugin -- configure retries, backoff and timeout per request.

The plugin does not loop itself; it writes ``retries``, ``retry_delay`` and
``timeout`` into ``ctx.fetch_options`` and
:func:`~fetchflow.client.fetch.fetch_response` honours them. Per-request
options of the same names override the plugin defaults.
"""

from __future__ import annotations

from typing import Optional

from fetchflow.models import ClientConfig
from fetchflow.plugins.base import ALL_OPERATIONS, NextFn, Plugin
from fetchflow.plugins.context import PluginContext
from fetchflow.types import OperationType, Response


class RetryPlugin(Plugin):
    """Set transport retry options.

    Args:
        retries: Extra attempts after the first failure.
        retry_delay: Initial backoff in seconds; doubles per attempt.
        timeout: Per-attempt timeout in seconds.

    Any argument left as ``None`` is read from ``ClientConfig.retry``.
    """

    def __init__(
        self,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.retries = retries
        self.retry_delay = retry_delay
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "retry"

    @property
    def operations(self) -> tuple[OperationType, ...]:
        return ALL_OPERATIONS

    @property
    def priority(self) -> float:
        return 10

    @property
    def description(self) -> str:
        return "Retries failed transport calls with exponential backoff"

    def on_init(self, config: ClientConfig) -> None:
        if self.retries is None:
            self.retries = config.retry.retries
        if self.retry_delay is None:
            self.retry_delay = config.retry.retry_delay
        if self.timeout is None:
            self.timeout = config.retry.timeout

    async def middleware(self, ctx: PluginContext, call_next: NextFn) -> Response:
        ctx.fetch_options["retries"] = ctx.option("retries", self.retries or 0)
        ctx.fetch_options["retry_delay"] = ctx.option("retry_delay", self.retry_delay or 0.0)
        timeout = ctx.option("timeout", self.timeout)
        if timeout is not None:
            ctx.fetch_options["timeout"] = timeout
        return await call_next()
