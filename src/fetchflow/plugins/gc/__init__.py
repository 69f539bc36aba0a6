"""Removal of old, unobserved cache entries.

See Also:
    :class:`~fetchflow.plugins.gc.plugin.GcPlugin`
"""

from fetchflow.plugins.gc.plugin import GcPlugin, collect_garbage

__all__ = ["GcPlugin", "collect_garbage"]
