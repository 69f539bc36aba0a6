"""Optimistic cache updates for writes.

See Also:
    :class:`~fetchflow.plugins.optimistic.plugin.OptimisticPlugin`
    :class:`~fetchflow.plugins.optimistic.plugin.OptimisticUpdate`
"""

from fetchflow.plugins.optimistic.plugin import OptimisticPlugin, OptimisticTiming, OptimisticUpdate

__all__ = ["OptimisticPlugin", "OptimisticTiming", "OptimisticUpdate"]
