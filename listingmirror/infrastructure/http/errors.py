"""Error taxonomy for talking to the upstream listings API."""

from __future__ import annotations


class UpstreamError(Exception):
    """Base class for failures reported by or on the way to upstream."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthError(UpstreamError):
    """401/403: the API key was rejected. Never retried."""


class NotFound(UpstreamError):
    """404: the requested record does not exist upstream."""


class RateLimited(UpstreamError):
    """429: upstream asked us to slow down."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status=status)
        self.retry_after = retry_after


class TransientUpstreamError(UpstreamError):
    """Network failure, timeout or 5xx response."""


class RequestFailed(UpstreamError):
    """Any other non-success response, or a body that is not JSON."""


class MalformedPayload(RequestFailed):
    """A 2xx response whose JSON shape is not recognised."""


class UpstreamUnavailable(UpstreamError):
    """The listing could not be started at all (first page failed)."""


class CycleCancelled(Exception):
    """Raised when a cancellation request is observed mid-cycle."""


__all__ = [
    "AuthError",
    "CycleCancelled",
    "MalformedPayload",
    "NotFound",
    "RateLimited",
    "RequestFailed",
    "TransientUpstreamError",
    "UpstreamError",
    "UpstreamUnavailable",
]
