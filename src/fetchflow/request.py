"""Request descriptors and the helpers that turn them into URLs, keys and tags.

A request is described by a plain :class:`RequestDescriptor` -- path
segments, an HTTP method and an options dict -- built with ordinary method
calls on a :class:`RequestBuilder`::

    api = RequestBuilder("users", ":id")
    descriptor = api.get(params={"id": 42}, query={"expand": "posts"})

Path placeholders use either ``:name`` or ``{name}`` syntax and are filled
from ``options["params"]`` by :func:`resolve_path`. A placeholder without a
value is a bug in the calling code and raises
:class:`~fetchflow.exceptions.ProgrammerError` immediately.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union
from urllib.parse import urlencode

from fetchflow.exceptions import ProgrammerError
from fetchflow.models import InvalidationMode

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)
_TAG_MODES = {mode.value for mode in InvalidationMode}

TagOption = Union[str, Sequence[str], None]


@dataclass(frozen=True)
class RequestDescriptor:
    """The ``(segments, method, options)`` triple the core consumes.

    Attributes:
        segments: Path segments, possibly containing placeholders.
        method: Upper-case HTTP method.
        options: Request options -- ``query``, ``params``, ``body`` and
            ``headers``.
    """

    segments: tuple[str, ...]
    method: str
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def params(self) -> dict[str, Any]:
        return dict(self.options.get("params") or {})

    def resolved_path(self, params: Optional[Mapping[str, Any]] = None) -> list[str]:
        """Segments with placeholders substituted (see :func:`resolve_path`)."""
        return resolve_path(self.segments, self.params if params is None else params)


class RequestBuilder:
    """Fluent builder for :class:`RequestDescriptor` objects.

    Segments may be passed individually or as slash-separated strings;
    non-string segments (ids) are converted with :func:`str`. Calling the
    builder appends further segments and returns a new builder.

    Example::

        api = RequestBuilder()
        api("posts", 1, "comments").get(query={"page": 2})
        api("posts").post({"title": "Hello"})
    """

    def __init__(self, *segments: Any) -> None:
        self._segments = _split_segments(segments)

    def __call__(self, *segments: Any) -> RequestBuilder:
        return RequestBuilder(*self._segments, *segments)

    @property
    def segments(self) -> tuple[str, ...]:
        return self._segments

    def request(self, method: str, **options: Any) -> RequestDescriptor:
        """Build a descriptor for an arbitrary *method*; ``None`` options are dropped."""
        cleaned = {k: v for k, v in options.items() if v is not None}
        return RequestDescriptor(self._segments, method.upper(), cleaned)

    def get(
        self,
        *,
        query: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> RequestDescriptor:
        return self.request("GET", query=query, params=params, headers=headers)

    def post(
        self,
        body: Any = None,
        *,
        query: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> RequestDescriptor:
        return self.request("POST", body=body, query=query, params=params, headers=headers)

    def put(
        self,
        body: Any = None,
        *,
        query: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> RequestDescriptor:
        return self.request("PUT", body=body, query=query, params=params, headers=headers)

    def patch(
        self,
        body: Any = None,
        *,
        query: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> RequestDescriptor:
        return self.request("PATCH", body=body, query=query, params=params, headers=headers)

    def delete(
        self,
        *,
        query: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> RequestDescriptor:
        return self.request("DELETE", query=query, params=params, headers=headers)

    def __repr__(self) -> str:
        return f"RequestBuilder({'/'.join(self._segments)!r})"


def _split_segments(segments: Sequence[Any]) -> tuple[str, ...]:
    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, str):
            parts.extend(p for p in segment.split("/") if p)
        else:
            parts.append(str(segment))
    return tuple(parts)


def _placeholder_name(segment: str) -> Optional[str]:
    if segment.startswith(":") and len(segment) > 1:
        return segment[1:]
    if segment.startswith("{") and segment.endswith("}") and len(segment) > 2:
        return segment[1:-1]
    return None


def resolve_path(segments: Sequence[str], params: Optional[Mapping[str, Any]]) -> list[str]:
    """Substitute ``:name`` / ``{name}`` placeholders from *params*.

    Raises:
        ProgrammerError: If a placeholder has no value in *params*.
    """
    params = params or {}
    resolved: list[str] = []
    for segment in segments:
        name = _placeholder_name(segment)
        if name is None:
            resolved.append(segment)
            continue
        value = params.get(name)
        if value is None:
            raise ProgrammerError(f"Missing path parameter: {name}")
        resolved.append(str(value))
    return resolved


def generate_tags(path: Sequence[str]) -> list[str]:
    """Return one tag per path prefix, coarse to fine.

    ``["posts", "1", "comments"]`` becomes
    ``["posts", "posts/1", "posts/1/comments"]``.
    """
    return ["/".join(path[: i + 1]) for i in range(len(path))]


def _tags_for_mode(mode: str, path: Sequence[str]) -> list[str]:
    if mode == InvalidationMode.ALL.value:
        return generate_tags(path)
    if mode == InvalidationMode.SELF.value:
        return ["/".join(path)] if path else []
    return []


def resolve_tags(option: TagOption, path: Sequence[str]) -> list[str]:
    """Resolve a ``tags`` option against a resolved *path*.

    * ``None`` -- prefix tags from :func:`generate_tags`.
    * ``"all"`` / ``"self"`` / ``"none"`` -- the corresponding mode.
    * A list -- explicit tags; an ``"all"`` or ``"self"`` item adds that
      mode's tags after the explicit ones. Duplicates are removed.
    """
    if option is None:
        return generate_tags(path)
    if isinstance(option, str):
        if option in _TAG_MODES:
            return _tags_for_mode(option, path)
        return [option]

    tags: list[str] = []
    mode: Optional[str] = None
    for item in option:
        if item in (InvalidationMode.ALL.value, InvalidationMode.SELF.value):
            mode = item
        elif item != InvalidationMode.NONE.value:
            tags.append(item)
    if mode is not None:
        tags.extend(_tags_for_mode(mode, path))
    return list(dict.fromkeys(tags))


def _format_query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def build_url(base_url: str, path: Sequence[str], query: Optional[Mapping[str, Any]] = None) -> str:
    """Join *base_url*, *path* and *query* into a request URL.

    ``None`` and empty-string query values are skipped; sequences become
    repeated keys and booleans are lower-cased.
    """
    items = {
        key: (
            [_format_query_value(v) for v in value]
            if isinstance(value, (list, tuple))
            else _format_query_value(value)
        )
        for key, value in (query or {}).items()
        if value is not None and value != ""
    }
    query_string = urlencode(items, doseq=True)
    path_string = "/".join(str(segment) for segment in path)

    if _ABSOLUTE_URL.match(base_url):
        url = base_url.rstrip("/") + "/" + path_string
    else:
        base = base_url.strip("/")
        url = "/" + "/".join(part for part in (base, path_string) if part)

    return f"{url}?{query_string}" if query_string else url


def merge_request(
    initial: Mapping[str, Any], override: Optional[Mapping[str, Any]]
) -> dict[str, Any]:
    """Shallow-merge request *override* onto *initial*.

    ``query``, ``params`` and ``headers`` are merged key by key; ``body``
    and any other option are replaced when present in *override*.
    """
    merged = dict(initial)
    for name, value in (override or {}).items():
        if value is None:
            continue
        if name in ("query", "params", "headers") and isinstance(value, Mapping):
            merged[name] = {**(initial.get(name) or {}), **value}
        else:
            merged[name] = value
    return merged
