"""Tests for fetchflow.request -- builder, path resolution, tags, URLs and request merging."""

from __future__ import annotations

import pytest

from fetchflow.exceptions import ProgrammerError
from fetchflow.request import (
    RequestBuilder,
    build_url,
    generate_tags,
    merge_request,
    resolve_path,
    resolve_tags,
)


class TestRequestBuilder:
    def test_segments_are_split_and_stringified(self) -> None:
        builder = RequestBuilder("users/", 1, "posts")
        assert builder.segments == ("users", "1", "posts")

    def test_call_appends(self) -> None:
        api = RequestBuilder()
        assert api("posts")(3).segments == ("posts", "3")

    def test_get_drops_none_options(self) -> None:
        descriptor = RequestBuilder("users").get(query={"page": 1})
        assert descriptor.method == "GET"
        assert descriptor.options == {"query": {"page": 1}}

    def test_post_carries_body(self) -> None:
        descriptor = RequestBuilder("posts").post({"title": "t"})
        assert descriptor.method == "POST"
        assert descriptor.options["body"] == {"title": "t"}

    def test_request_upper_cases_method(self) -> None:
        assert RequestBuilder("x").request("options").method == "OPTIONS"


class TestResolvePath:
    def test_colon_and_brace_placeholders(self) -> None:
        assert resolve_path(["users", ":id", "{section}"], {"id": 7, "section": "posts"}) == [
            "users",
            "7",
            "posts",
        ]

    def test_missing_param_is_programmer_error(self) -> None:
        with pytest.raises(ProgrammerError, match="id"):
            resolve_path(["users", ":id"], {})

    def test_descriptor_resolves_own_params(self) -> None:
        descriptor = RequestBuilder("users", ":id").get(params={"id": 3})
        assert descriptor.resolved_path() == ["users", "3"]


class TestTags:
    def test_prefix_tags(self) -> None:
        assert generate_tags(["posts", "1", "comments"]) == ["posts", "posts/1", "posts/1/comments"]

    def test_default_is_prefix_tags(self) -> None:
        assert resolve_tags(None, ["posts", "1"]) == ["posts", "posts/1"]

    def test_modes(self) -> None:
        assert resolve_tags("self", ["posts", "1"]) == ["posts/1"]
        assert resolve_tags("none", ["posts", "1"]) == []
        assert resolve_tags("all", ["posts", "1"]) == ["posts", "posts/1"]

    def test_explicit_list_with_mode(self) -> None:
        assert resolve_tags(["feed", "self"], ["posts", "1"]) == ["feed", "posts/1"]
        assert resolve_tags(["feed", "feed"], ["posts"]) == ["feed"]

    def test_single_explicit_tag(self) -> None:
        assert resolve_tags("feed", ["posts"]) == ["feed"]


class TestBuildUrl:
    def test_absolute_base(self) -> None:
        assert build_url("https://api.test/v1/", ["users", "1"]) == "https://api.test/v1/users/1"

    def test_relative_base(self) -> None:
        assert build_url("api", ["users"]) == "/api/users"
        assert build_url("", ["users"]) == "/users"

    def test_query_skips_empty_values(self) -> None:
        url = build_url("https://x.test", ["a"], {"p": 1, "q": None, "r": "", "flag": True})
        assert url == "https://x.test/a?p=1&flag=true"

    def test_query_sequences_repeat(self) -> None:
        assert build_url("https://x.test", ["a"], {"id": [1, 2]}) == "https://x.test/a?id=1&id=2"


class TestMergeRequest:
    def test_maps_merge_and_body_replaces(self) -> None:
        initial = {"query": {"a": 1, "b": 2}, "headers": {"X": "1"}, "body": {"old": True}}
        merged = merge_request(initial, {"query": {"b": 3}, "headers": {"Y": "2"}, "body": {"new": True}})
        assert merged == {
            "query": {"a": 1, "b": 3},
            "headers": {"X": "1", "Y": "2"},
            "body": {"new": True},
        }

    def test_none_override_keeps_initial(self) -> None:
        assert merge_request({"query": {"a": 1}}, {"query": None}) == {"query": {"a": 1}}
        assert merge_request({"query": {"a": 1}}, None) == {"query": {"a": 1}}
