"""Retry and timeout options for the transport call.

See Also:
    :class:`~fetchflow.plugins.retry.plugin.RetryPlugin`
"""

from fetchflow.plugins.retry.plugin import RetryPlugin

__all__ = ["RetryPlugin"]
