"""Shared fakes for the sync tests. Nothing here touches the network."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from listingmirror.infrastructure.http import ListPage, NotFound
from listingmirror.infrastructure.observability import reset_metrics


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeUpstream:
    """In-memory stand-in for :class:`UpstreamClient`.

    ``pages`` lists the ids on each listing page. With ``with_metadata`` every
    page reports ``has_more`` so the walker does not rely on page size.
    ``details`` may map an id to a payload or to an exception to raise; ids
    without an entry get a generated payload.
    """

    def __init__(
        self,
        pages: list[list[int]],
        details: dict[int, Any] | None = None,
        *,
        with_metadata: bool = True,
        page_errors: dict[int, Exception] | None = None,
        block_listing: threading.Event | None = None,
    ) -> None:
        self.pages = pages
        self.details = details or {}
        self.with_metadata = with_metadata
        self.page_errors = page_errors or {}
        self.block_listing = block_listing
        self.list_calls: list[int] = []
        self.detail_calls: list[int] = []
        self.closed = False

    def list_page(self, page: int, page_size: int = 50, *, cancel_event=None) -> ListPage:
        self.list_calls.append(page)
        if self.block_listing is not None:
            self.block_listing.wait(5)
        if page in self.page_errors:
            raise self.page_errors[page]
        ids = self.pages[page - 1] if page <= len(self.pages) else []
        has_more = page < len(self.pages) if self.with_metadata else None
        return ListPage(records=[{"id": i} for i in ids], has_more=has_more)

    def fetch_detail(self, external_id: int, *, cancel_event=None) -> dict[str, Any]:
        self.detail_calls.append(external_id)
        value = self.details.get(external_id)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return {"id": external_id, "name": f"Project {external_id}", "area": "Jumeirah"}
        return value

    def check_connection(self) -> bool:
        return True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def fake_upstream_cls() -> type[FakeUpstream]:
    return FakeUpstream


@pytest.fixture
def not_found() -> NotFound:
    return NotFound("gone", status=404)


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()
