"""Interval refetching for mounted reads.

See Also:
    :class:`~fetchflow.plugins.polling.plugin.PollingPlugin`
"""

from fetchflow.plugins.polling.plugin import PollingPlugin

__all__ = ["PollingPlugin"]
