"""Shared error types for ingest_core."""

from __future__ import annotations


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""


class FetchError(RuntimeError):
    """Base exception for outbound HTTP fetch failures."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        """Initialize fetch-error metadata.

        Args:
            message: Human-readable error message.
            url: Requested URL, when known.
            http_status: Optional HTTP status observed from the dependency.
            response_body: Optional response payload text.
        """
        super().__init__(message)
        self.url = url
        self.http_status = http_status
        self.response_body = response_body


class RetryableStatusError(FetchError, TransientError):
    """Raised for rate-limited (429) and server-error (5xx) responses."""


class HttpStatusError(FetchError):
    """Raised for non-retryable HTTP statuses such as 4xx client errors."""


class SourcePayloadError(RuntimeError):
    """Raised when a source answered but its payload cannot be used."""
