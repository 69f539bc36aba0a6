"""Tag invalidation after successful writes.

See Also:
    :class:`~fetchflow.plugins.invalidation.plugin.InvalidationPlugin`
"""

from fetchflow.plugins.invalidation.plugin import DEFAULT_MODE_KEY, InvalidationPlugin

__all__ = ["DEFAULT_MODE_KEY", "InvalidationPlugin"]
