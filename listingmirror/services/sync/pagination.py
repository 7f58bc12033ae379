"""Walk the paginated upstream listing and collect every record id."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from ...infrastructure.http import (DEFAULT_PAGE_SIZE, AuthError, CycleCancelled,
                                    NotFound, UpstreamClient, UpstreamError,
                                    UpstreamUnavailable, default_is_retryable)
from ...infrastructure.observability import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_PAGES = 1000


@dataclass
class WalkResult:
    ids: list[int] = field(default_factory=list)
    pages_fetched: int = 0
    complete: bool = True


def _coerce_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        coerced = int(value)
    except (TypeError, ValueError):
        return None
    return coerced or None


def _collect_ids(records: Iterable[dict[str, Any]], ids: list[int], seen: set[int]) -> None:
    for record in records:
        external_id = _coerce_id(record.get("id"))
        if external_id is None or external_id in seen:
            continue
        seen.add(external_id)
        ids.append(external_id)


class PaginationWalker:
    """Fetch pages 1, 2, ... until the listing is exhausted.

    A walk is *complete* only when it ended because upstream said there is
    nothing more; any early stop leaves ``complete=False`` so callers can skip
    work that needs the full id set.
    """

    def __init__(
        self,
        client: UpstreamClient,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        delay_between_requests: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: threading.Event | None = None,
        max_pages: int = DEFAULT_MAX_PAGES,
        is_retryable: Callable[[BaseException], bool] = default_is_retryable,
    ) -> None:
        self.client = client
        self.page_size = max(1, page_size)
        self.delay_between_requests = max(0.0, delay_between_requests)
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.max_pages = max(1, max_pages)
        self.is_retryable = is_retryable

    def collect_all_ids(self) -> list[int]:
        return self.walk().ids

    def walk(self) -> WalkResult:
        result = WalkResult()
        seen: set[int] = set()
        page = 1
        while True:
            if page > self.max_pages:
                logger.warning(
                    "Stopping listing walk after %d pages; treating listing as incomplete",
                    self.max_pages,
                )
                result.complete = False
                return result
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise CycleCancelled("cancelled during listing walk")

            try:
                listing = self.client.list_page(
                    page, self.page_size, cancel_event=self.cancel_event
                )
            except (AuthError, CycleCancelled):
                raise
            except UpstreamError as exc:
                if page == 1:
                    raise UpstreamUnavailable(
                        f"Could not fetch the first listing page: {exc}"
                    ) from exc
                if isinstance(exc, NotFound):
                    logger.info("Listing page %d returned 404; treating as end of listing", page)
                    return result
                if self.is_retryable(exc):
                    logger.warning(
                        "Listing page %d failed after retries (%s); keeping %d ids from earlier pages",
                        page,
                        exc,
                        len(result.ids),
                    )
                    result.complete = False
                    return result
                raise

            result.pages_fetched += 1
            _collect_ids(listing.records, result.ids, seen)
            logger.debug("Listing page %d: %d records", page, len(listing.records))

            if self.delay_between_requests:
                self.sleep(self.delay_between_requests)

            if not listing.records:
                return result
            if listing.has_more is False:
                return result
            if listing.has_more is None and len(listing.records) < self.page_size:
                return result
            page += 1
