"""Tests for response normalization."""

from __future__ import annotations

import httpx

from fetchflow.client.response import extract_response_data, to_response
from fetchflow.exceptions import HTTPError
from fetchflow.types import TransportResponse

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_response(
    status_code: int = 200,
    content: bytes | None = None,
    json_data: object | None = None,
    headers: dict[str, str] | None = None,
    text: str | None = None,
) -> httpx.Response:
    """Build an httpx.Response bound to a dummy request."""
    if headers is None:
        headers = {}
    request = httpx.Request("GET", "https://api.example.com/test")
    if json_data is not None:
        headers.setdefault("content-type", "application/json")
        return httpx.Response(status_code, json=json_data, headers=headers, request=request)
    if text is not None:
        headers.setdefault("content-type", "text/plain")
        return httpx.Response(status_code, text=text, headers=headers, request=request)
    return httpx.Response(status_code, content=content or b"", headers=headers, request=request)


# ---------------------------------------------------------------------------
# extract_response_data
# ---------------------------------------------------------------------------


class TestExtractResponseData:
    def test_json_parse(self) -> None:
        response = _make_response(json_data={"key": "value", "nested": {"a": 1}})
        assert extract_response_data(response) == {"key": "value", "nested": {"a": 1}}

    def test_json_list_parse(self) -> None:
        assert extract_response_data(_make_response(json_data=[1, 2, 3])) == [1, 2, 3]

    def test_text_content_type_is_not_parsed(self) -> None:
        response = _make_response(text='{"looks": "like json"}')
        assert extract_response_data(response) == '{"looks": "like json"}'

    def test_xml_is_text(self) -> None:
        response = _make_response(content=b"<a/>", headers={"content-type": "application/xml"})
        assert extract_response_data(response) == "<a/>"

    def test_empty_body_returns_none(self) -> None:
        assert extract_response_data(_make_response(status_code=204)) is None

    def test_unknown_type_tries_json_first(self) -> None:
        response = _make_response(content=b'{"parsed": true}')
        assert extract_response_data(response) == {"parsed": True}

    def test_malformed_json_falls_back_to_text(self) -> None:
        response = _make_response(
            content=b'{"broken": json',
            headers={"content-type": "application/json"},
        )
        data = extract_response_data(response)
        assert isinstance(data, str)
        assert '{"broken": json' in data


# ---------------------------------------------------------------------------
# to_response
# ---------------------------------------------------------------------------


class TestToResponse:
    def test_ok_result_carries_data(self) -> None:
        response = to_response(
            TransportResponse(ok=True, status=200, headers={"x-id": "1"}, data={"id": 1})
        )
        assert response.status == 200
        assert response.data == {"id": 1}
        assert response.error is None
        assert response.headers == {"x-id": "1"}

    def test_not_ok_result_becomes_http_error(self) -> None:
        response = to_response(TransportResponse(ok=False, status=409, data={"message": "taken"}))
        assert response.data is None
        assert isinstance(response.error, HTTPError)
        assert response.error.status == 409
        assert response.error.body == {"message": "taken"}
        assert str(response.error) == "HTTP 409"
