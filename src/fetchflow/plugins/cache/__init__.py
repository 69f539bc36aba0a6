"""Stale-time response cache for reads.

See Also:
    :class:`~fetchflow.plugins.cache.plugin.CachePlugin`
"""

from fetchflow.plugins.cache.plugin import CachePlugin

__all__ = ["CachePlugin"]
