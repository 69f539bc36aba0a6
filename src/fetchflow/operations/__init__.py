"""Controllers that drive reads, writes and paginated reads through the plugin chain."""

from fetchflow.operations.base import BaseController, Fetcher
from fetchflow.operations.controller import OperationController
from fetchflow.operations.infinite import (
    FetchDirection,
    InfiniteReadController,
    InfiniteSnapshot,
    PageContext,
    PageRecord,
    collect_page_data,
)

__all__ = [
    "BaseController",
    "Fetcher",
    "OperationController",
    "InfiniteReadController",
    "InfiniteSnapshot",
    "FetchDirection",
    "PageContext",
    "PageRecord",
    "collect_page_data",
]
