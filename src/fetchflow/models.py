"""Pydantic configuration models shared across fetchflow.

These models describe everything a client can be configured with, either in
code or through the JSON files read by :mod:`fetchflow.config`:

* :class:`TransportConfig` -- httpx client settings.
* Plugin sections -- :class:`CacheConfig`, :class:`DeduplicationConfig`,
  :class:`RetryConfig`, :class:`InvalidationConfig`, :class:`RefetchConfig`
  and :class:`GcConfig`, each holding the defaults of one built-in plugin.
* :class:`PluginsConfig` -- allow/deny lists for entry-point discovery.
* :class:`ClientConfig` -- the root model.

Runtime values (responses, cache entries, operation state) are plain
dataclasses in :mod:`fetchflow.types`; only persisted configuration is
modelled with pydantic. Durations are seconds.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class DedupeMode(str, enum.Enum):
    """Deduplication policy for one operation type."""

    IN_FLIGHT = "in_flight"
    OFF = "off"


class InvalidationMode(str, enum.Enum):
    """Which tags a successful write invalidates by default.

    ``ALL`` uses every tag of the write, ``SELF`` only its exact path and
    ``NONE`` nothing.
    """

    ALL = "all"
    SELF = "self"
    NONE = "none"


class TransportConfig(BaseModel):
    """Settings for the default httpx-backed transport."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    follow_redirects: bool = Field(default=True, description="Follow 3xx redirects")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )


class CacheConfig(BaseModel):
    """Defaults for the cache plugin."""

    stale_time: float = Field(
        default=0.0, ge=0, description="Seconds a cache entry is served without refetching"
    )


class DeduplicationConfig(BaseModel):
    """Defaults for the deduplication plugin."""

    read: DedupeMode = Field(
        default=DedupeMode.IN_FLIGHT, description="Policy for read and infinite reads"
    )
    write: DedupeMode = Field(default=DedupeMode.OFF, description="Policy for writes")


class RetryConfig(BaseModel):
    """Defaults for the retry plugin."""

    retries: int = Field(default=3, ge=0, description="Max retry attempts")
    retry_delay: float = Field(
        default=1.0, ge=0, description="Initial backoff delay in seconds (doubles per attempt)"
    )
    timeout: Optional[float] = Field(
        default=None, description="Per-attempt timeout in seconds, None keeps the transport default"
    )


class InvalidationConfig(BaseModel):
    """Defaults for the invalidation plugin."""

    default_mode: InvalidationMode = Field(default=InvalidationMode.ALL)


class RefetchConfig(BaseModel):
    """Defaults for the refetch plugin."""

    refetch_on_focus: bool = False
    refetch_on_reconnect: bool = False


class GcConfig(BaseModel):
    """Limits applied by the garbage-collection plugin."""

    max_age: Optional[float] = Field(
        default=None, description="Remove entries older than this many seconds"
    )
    max_entries: Optional[int] = Field(
        default=None, ge=0, description="Keep at most this many entries, oldest removed first"
    )
    interval: Optional[float] = Field(
        default=60.0, description="Seconds between automatic runs, None disables the timer"
    )


class PluginsConfig(BaseModel):
    """Explicit plugin allow/deny lists applied during entry-point discovery."""

    enabled: list[str] = Field(default_factory=list)
    disabled: list[str] = Field(default_factory=list)


class ClientConfig(BaseModel):
    """Root configuration for a :class:`~fetchflow.instance.FetchflowClient`.

    Loaded by :func:`~fetchflow.config.load_client_config` and resolved with
    environment and CLI overrides by :func:`~fetchflow.config.resolve_config`.

    ``plugin_options`` holds client-wide per-request plugin options (for
    example ``{"stale_time": 5}``). They sit below per-controller and
    per-execute options in precedence.

    Unknown keys are preserved in ``model_extra`` so third-party plugins can
    read their own sections.
    """

    model_config = ConfigDict(extra="allow")

    base_url: str = Field(default="", description="Prefix for every request path")
    transport: TransportConfig = Field(default_factory=TransportConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    deduplication: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    invalidation: InvalidationConfig = Field(default_factory=InvalidationConfig)
    refetch: RefetchConfig = Field(default_factory=RefetchConfig)
    gc: GcConfig = Field(default_factory=GcConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    plugin_options: dict[str, Any] = Field(default_factory=dict)
