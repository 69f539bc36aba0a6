"""Refetch on focus and reconnect signals.

See Also:
    :class:`~fetchflow.plugins.refetch.plugin.RefetchPlugin`
"""

from fetchflow.plugins.refetch.plugin import RefetchPlugin

__all__ = ["RefetchPlugin"]
