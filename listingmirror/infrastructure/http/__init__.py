"""HTTP access to the upstream listings API."""

from .client import DEFAULT_PAGE_SIZE, ListPage, UpstreamClient, classify_response
from .errors import (AuthError, CycleCancelled, MalformedPayload, NotFound,
                     RateLimited, RequestFailed, TransientUpstreamError,
                     UpstreamError, UpstreamUnavailable)
from .retry import RetryPolicy, default_is_retryable

__all__ = [
    "AuthError",
    "CycleCancelled",
    "DEFAULT_PAGE_SIZE",
    "ListPage",
    "MalformedPayload",
    "NotFound",
    "RateLimited",
    "RequestFailed",
    "RetryPolicy",
    "TransientUpstreamError",
    "UpstreamClient",
    "UpstreamError",
    "UpstreamUnavailable",
    "classify_response",
    "default_is_retryable",
]
