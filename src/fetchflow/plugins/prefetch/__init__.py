"""Warm the cache ahead of use.

See Also:
    :class:`~fetchflow.plugins.prefetch.plugin.PrefetchPlugin`
"""

from fetchflow.plugins.prefetch.plugin import PrefetchPlugin

__all__ = ["PrefetchPlugin"]
