"""Minimum interval between network reads of one key.

See Also:
    :class:`~fetchflow.plugins.throttle.plugin.ThrottlePlugin`
"""

from fetchflow.plugins.throttle.plugin import ThrottlePlugin

__all__ = ["ThrottlePlugin"]
