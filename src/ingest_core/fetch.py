"""Retrying HTTP fetch with exponential backoff.

One logical request is attempted up to ``max_attempts`` times:

  - 2xx responses are returned immediately.
  - 429 and 5xx responses are retried after ``2 ** attempt_index`` seconds.
  - Any other status fails at once with ``HttpStatusError``.
  - Transport errors (``httpx.RequestError``) are retried with the same backoff
    and the original exception propagates from the last attempt.

This wrapper knows nothing about circuit breakers. It is normally the call
passed to ``CircuitBreaker.execute`` so that a breaker only records a failure
after the retry budget here is spent.
"""

from __future__ import annotations

from collections.abc import Mapping

import httpx
from tenacity import RetryCallState, retry_if_exception_type

from ingest_core.clock import Clock, SystemClock
from ingest_core.errors import FetchError, HttpStatusError, RetryableStatusError
from ingest_core.logging import AnyLogger, get_logger, log_warning
from ingest_core.retry import RetryBackoffPolicy, build_exponential_retrying

DEFAULT_HEADERS = {"Accept": "application/json"}
QueryParams = Mapping[str, str | int | float]

_logger = get_logger(__name__)


def is_retryable_status(status: int) -> bool:
    """Return true for rate-limit and server-error statuses."""
    return status == 429 or 500 <= status <= 599


async def _send_once(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: QueryParams | None,
    headers: Mapping[str, str],
) -> httpx.Response:
    response = await client.request(method, url, params=params, headers=headers)
    status = response.status_code
    if response.is_success:
        return response
    if is_retryable_status(status):
        raise RetryableStatusError(
            f"HTTP {status} from {url}",
            url=url,
            http_status=status,
            response_body=response.text,
        )
    raise HttpStatusError(
        f"HTTP {status}: {response.reason_phrase}",
        url=url,
        http_status=status,
        response_body=response.text,
    )


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    params: QueryParams | None = None,
    headers: Mapping[str, str] | None = None,
    max_attempts: int = 3,
    clock: Clock | None = None,
    logger: AnyLogger | None = None,
) -> httpx.Response:
    """Perform one request with bounded retries and doubling delays.

    Args:
        client: Shared async HTTP client.
        url: Absolute request URL.
        method: HTTP method.
        params: Optional query parameters.
        headers: Extra headers; they override the JSON ``Accept`` default.
        max_attempts: Total attempts including the first one.
        clock: Time source whose ``sleep`` performs the backoff delays.
        logger: Structured logger for retry events.

    Returns:
        The first 2xx response.

    Raises:
        RetryableStatusError: When the last attempt saw a 429 or 5xx.
        HttpStatusError: On a non-retryable status, without retrying.
        httpx.RequestError: When the last attempt failed at the transport level.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    resolved_clock: Clock = SystemClock() if clock is None else clock
    resolved_logger: AnyLogger = _logger if logger is None else logger
    request_headers = {**DEFAULT_HEADERS, **(headers or {})}

    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome is not None else None
        delay = state.next_action.sleep if state.next_action is not None else 0.0
        log_warning(
            resolved_logger,
            "fetch_retry_scheduled",
            url=url,
            attempt=state.attempt_number,
            max_attempts=max_attempts,
            delay_seconds=delay,
            http_status=getattr(error, "http_status", None),
            reason=str(error),
        )

    retrying = build_exponential_retrying(
        retry=retry_if_exception_type((RetryableStatusError, httpx.RequestError)),
        policy=RetryBackoffPolicy(attempts=max_attempts),
        sleep=resolved_clock.sleep,
        before_sleep=_before_sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await _send_once(
                client,
                method,
                url,
                params=params,
                headers=request_headers,
            )

    raise RuntimeError("fetch retry loop exited unexpectedly.")


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    params: QueryParams | None = None,
    headers: Mapping[str, str] | None = None,
    max_attempts: int = 3,
    clock: Clock | None = None,
    logger: AnyLogger | None = None,
) -> object:
    """Fetch ``url`` with retries and decode the JSON body."""
    response = await fetch_with_retry(
        client,
        url,
        method=method,
        params=params,
        headers=headers,
        max_attempts=max_attempts,
        clock=clock,
        logger=logger,
    )
    try:
        return response.json()
    except ValueError as exc:
        raise FetchError(
            "Response is not valid JSON.",
            url=url,
            http_status=response.status_code,
            response_body=response.text,
        ) from exc
