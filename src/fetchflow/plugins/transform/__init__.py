"""Derived data computed from responses.

See Also:
    :class:`~fetchflow.plugins.transform.plugin.TransformPlugin`
"""

from fetchflow.plugins.transform.plugin import TRANSFORMED_DATA, TransformPlugin

__all__ = ["TRANSFORMED_DATA", "TransformPlugin"]
