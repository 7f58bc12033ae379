from __future__ import annotations

import json

import pytest
import requests
from requests import Response

from listingmirror.infrastructure.http import (AuthError, MalformedPayload, NotFound,
                                               RateLimited, RequestFailed, RetryPolicy,
                                               TransientUpstreamError, UpstreamClient,
                                               classify_response)


def _make_response(payload, status: int = 200, headers: dict | None = None) -> Response:
    resp = Response()
    body = payload if isinstance(payload, str) else json.dumps(payload)
    resp._content = body.encode("utf-8")
    resp.status_code = status
    resp.url = "https://api.example.com/v1/properties"
    if headers:
        resp.headers.update(headers)
    return resp


class FakeSession:
    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        pass


def _client(responses: list, sleeps: list | None = None) -> tuple[UpstreamClient, FakeSession]:
    session = FakeSession(responses)
    client = UpstreamClient(
        "https://api.example.com/",
        "secret",
        timeout_seconds=5,
        retry_policy=RetryPolicy(max_attempts=3),
        session=session,
        sleep=(sleeps.append if sleeps is not None else (lambda _d: None)),
    )
    return client, session


@pytest.mark.parametrize(
    "status, error",
    [
        (401, AuthError),
        (403, AuthError),
        (404, NotFound),
        (429, RateLimited),
        (503, TransientUpstreamError),
        (400, RequestFailed),
    ],
)
def test_classify_response_maps_status_codes(status: int, error: type) -> None:
    with pytest.raises(error):
        classify_response(_make_response({}, status=status))


def test_classify_response_reads_retry_after() -> None:
    with pytest.raises(RateLimited) as excinfo:
        classify_response(_make_response({}, status=429, headers={"Retry-After": "7"}))
    assert excinfo.value.retry_after == 7.0


def test_invalid_json_is_a_request_failure() -> None:
    with pytest.raises(RequestFailed):
        classify_response(_make_response("<html>oops</html>"))


def test_list_page_sends_key_and_paging_params() -> None:
    client, session = _client([_make_response({"items": [{"id": 1}, {"id": 2}]})])

    page = client.list_page(3)

    call = session.calls[0]
    assert call["url"] == "https://api.example.com/v1/properties"
    assert call["params"] == {"page": 3, "limit": 50}
    assert call["headers"]["X-API-Key"] == "secret"
    assert call["headers"]["Accept"] == "application/json"
    assert call["headers"]["User-Agent"].startswith("listingmirror-sync/")
    assert [r["id"] for r in page.records] == [1, 2]
    assert page.has_more is None


@pytest.mark.parametrize(
    "payload, expected_more",
    [
        ({"data": [{"id": 1}], "pagination": {"has_next": True}}, True),
        ({"properties": [{"id": 1}], "pagination": {"page": 2, "pages": 2}}, False),
        ({"data": [{"id": 1}], "pagination": {"has_next": False, "page": 1, "pages": 3}}, True),
        ({"data": [{"id": 1}], "pagination": {"has_next": False, "page": 3, "pages": 3}}, False),
        ({"data": [{"id": 1}], "pagination": {"has_next": True, "page": 3, "pages": 3}}, True),
        ([{"id": 1}], None),
    ],
)
def test_list_page_unwraps_known_shapes(payload, expected_more) -> None:
    client, _ = _client([_make_response(payload)])

    page = client.list_page(1)

    assert page.records == [{"id": 1}]
    assert page.has_more is expected_more


def test_list_page_retries_network_errors() -> None:
    sleeps: list[float] = []
    client, session = _client(
        [
            requests.ConnectionError("reset"),
            requests.Timeout("slow"),
            _make_response({"items": [{"id": 9}]}),
        ],
        sleeps,
    )

    page = client.list_page(1)

    assert [r["id"] for r in page.records] == [9]
    assert len(session.calls) == 3
    assert sleeps == [1.0, 2.0]


def test_fetch_detail_unwraps_data_envelope() -> None:
    client, session = _client([_make_response({"data": {"id": 5, "name": "Tower"}})])

    detail = client.fetch_detail(5)

    assert detail == {"id": 5, "name": "Tower"}
    assert session.calls[0]["url"] == "https://api.example.com/v1/properties/5"


def test_fetch_detail_accepts_bare_object_with_id() -> None:
    client, _ = _client([_make_response({"id": 5, "name": "Tower"})])
    assert client.fetch_detail(5)["name"] == "Tower"


def test_fetch_detail_not_found_is_not_retried() -> None:
    client, session = _client([_make_response({}, status=404)])

    with pytest.raises(NotFound):
        client.fetch_detail(5)
    assert len(session.calls) == 1


def test_fetch_detail_rejects_unknown_shapes() -> None:
    client, _ = _client([_make_response({"message": "ok"})])

    with pytest.raises(MalformedPayload):
        client.fetch_detail(5)


def test_check_connection_reports_failure_without_raising() -> None:
    client, _ = _client([_make_response({}, status=401)])
    assert client.check_connection() is False

    client, _ = _client([_make_response({"items": []})])
    assert client.check_connection() is True
