"""Wait for a quiet period before fetching a read.

See Also:
    :class:`~fetchflow.plugins.debounce.plugin.DebouncePlugin`
"""

from fetchflow.plugins.debounce.plugin import DebouncePlugin, resolve_delay

__all__ = ["DebouncePlugin", "resolve_delay"]
