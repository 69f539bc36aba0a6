"""Client-wide state: cache entries, in-flight requests, metadata, subscribers."""

from fetchflow.state.manager import StateManager, parse_query_key

__all__ = ["StateManager", "parse_query_key"]
