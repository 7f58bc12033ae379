"""HTTP client for the upstream listings API.

The client wraps a :class:`requests.Session`, authenticates every call with
the ``X-API-Key`` header and turns responses into the error taxonomy from
:mod:`.errors`. Both the listing and the detail endpoint go through the same
:class:`~.retry.RetryPolicy`.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import requests
from requests import Response, Session

from ..observability import get_logger, record_upstream_request
from .errors import (AuthError, MalformedPayload, NotFound, RateLimited,
                     RequestFailed, TransientUpstreamError, UpstreamError)
from .retry import RetryPolicy

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50


@dataclass
class ListPage:
    """One page of the upstream listing."""

    records: list[dict[str, Any]]
    has_more: bool | None = None


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def classify_response(response: Response) -> Any:
    """Return the decoded JSON body of a 2xx response or raise a typed error."""

    status = response.status_code
    url = response.url or ""
    if status in (401, 403):
        raise AuthError(f"Upstream rejected credentials ({status}) for {url}", status=status)
    if status == 404:
        raise NotFound(f"Not found: {url}", status=status)
    if status == 429:
        raise RateLimited(
            f"Rate limited by upstream for {url}",
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    if status >= 500:
        raise TransientUpstreamError(f"Upstream error {status} for {url}", status=status)
    if not 200 <= status < 300:
        raise RequestFailed(f"Unexpected status {status} for {url}", status=status)
    try:
        return response.json()
    except ValueError as exc:
        raise RequestFailed(f"Invalid JSON from {url}: {exc}", status=status) from exc


def _unwrap_list(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = None
        for key in ("items", "data", "properties"):
            if isinstance(payload.get(key), list):
                items = payload[key]
                break
        if items is None:
            raise MalformedPayload("Listing payload carries no record array")
    else:
        raise MalformedPayload(f"Unexpected listing payload type {type(payload).__name__}")
    return [item for item in items if isinstance(item, dict)]


def _has_more(payload: Any) -> bool | None:
    """Read ``pagination``; either ``has_next`` or ``page < pages`` means more."""
    if not isinstance(payload, dict):
        return None
    pagination = payload.get("pagination")
    if not isinstance(pagination, dict):
        return None
    signals: list[bool] = []
    if "has_next" in pagination:
        signals.append(bool(pagination["has_next"]))
    try:
        signals.append(int(pagination["page"]) < int(pagination["pages"]))
    except (KeyError, TypeError, ValueError):
        pass
    return any(signals) if signals else None


def _unwrap_detail(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict):
        for key in ("data", "property"):
            if isinstance(payload.get(key), dict):
                return payload[key]
        if "id" in payload:
            return payload
    raise MalformedPayload("Detail payload is not a recognised record object")


class UpstreamClient:
    """Authenticated access to the listing and detail endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_seconds: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        session: Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        user_agent: str = "",
    ) -> None:
        from listingmirror import __version__

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or requests.Session()
        self.sleep = sleep
        self.headers = {
            "Accept": "application/json",
            "User-Agent": user_agent or f"listingmirror-sync/{__version__}",
            "X-API-Key": api_key,
        }

    # -------------------- transport --------------------
    def _get(self, path: str, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        started = time.perf_counter()
        try:
            response = self.session.get(
                url, params=params, headers=self.headers, timeout=self.timeout_seconds
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            record_upstream_request(endpoint, "transient", time.perf_counter() - started)
            raise TransientUpstreamError(f"Network error for {url}: {exc}") from exc
        except requests.RequestException as exc:
            record_upstream_request(endpoint, "failed", time.perf_counter() - started)
            raise RequestFailed(f"Request to {url} failed: {exc}") from exc
        duration = time.perf_counter() - started
        try:
            payload = classify_response(response)
        except NotFound:
            record_upstream_request(endpoint, "not_found", duration)
            raise
        except AuthError:
            record_upstream_request(endpoint, "auth_error", duration)
            raise
        except (TransientUpstreamError, RateLimited):
            record_upstream_request(endpoint, "transient", duration)
            raise
        except UpstreamError:
            record_upstream_request(endpoint, "failed", duration)
            raise
        record_upstream_request(endpoint, "ok", duration)
        return payload

    def _with_retry(
        self, fn: Callable[[], Any], what: str, cancel_event: threading.Event | None
    ) -> Any:
        def _log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            logger.warning(
                "Upstream %s failed (attempt %d): %s; retrying in %.1fs",
                what,
                attempt,
                exc,
                delay,
            )

        return self.retry_policy.call(
            fn, sleep=self.sleep, cancel_event=cancel_event, on_retry=_log_retry
        )

    # -------------------- endpoints --------------------
    def list_page(
        self,
        page: int,
        page_size: int = DEFAULT_PAGE_SIZE,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ListPage:
        """Fetch one listing page (1-based)."""

        def _fetch() -> ListPage:
            payload = self._get(
                "/v1/properties", "list", params={"page": page, "limit": page_size}
            )
            return ListPage(records=_unwrap_list(payload), has_more=_has_more(payload))

        return self._with_retry(_fetch, f"listing page {page}", cancel_event)

    def fetch_detail(
        self, external_id: int, *, cancel_event: threading.Event | None = None
    ) -> dict[str, Any]:
        """Fetch the full detail payload of one record.

        Raises:
            NotFound: The record no longer exists upstream.
            MalformedPayload: The body is JSON of an unrecognised shape.
        """

        def _fetch() -> dict[str, Any]:
            payload = self._get(f"/v1/properties/{int(external_id)}", "detail")
            return _unwrap_detail(payload)

        return self._with_retry(_fetch, f"detail {external_id}", cancel_event)

    def check_connection(self) -> bool:
        """Probe upstream with a single one-item listing request, no retries."""

        try:
            payload = self._get("/v1/properties", "list", params={"page": 1, "limit": 1})
            _unwrap_list(payload)
        except UpstreamError as exc:
            logger.warning("Upstream connection check failed: %s", exc)
            return False
        return True

    def close(self) -> None:
        self.session.close()
