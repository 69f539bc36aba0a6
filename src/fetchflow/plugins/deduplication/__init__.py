"""In-flight request sharing.

See Also:
    :class:`~fetchflow.plugins.deduplication.plugin.DeduplicationPlugin`
"""

from fetchflow.plugins.deduplication.plugin import DeduplicationPlugin

__all__ = ["DeduplicationPlugin"]
