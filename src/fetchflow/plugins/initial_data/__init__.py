"""Seed reads with caller-provided data.

See Also:
    :class:`~fetchflow.plugins.initial_data.plugin.InitialDataPlugin`
"""

from fetchflow.plugins.initial_data.plugin import IS_INITIAL_DATA, InitialDataPlugin

__all__ = ["IS_INITIAL_DATA", "InitialDataPlugin"]
