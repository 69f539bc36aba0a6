"""Request/response logging.

See Also:
    :class:`~fetchflow.plugins.debug.plugin.DebugPlugin`
"""

from fetchflow.plugins.debug.plugin import DebugPlugin

__all__ = ["DebugPlugin"]
