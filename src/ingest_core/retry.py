from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    stop_after_attempt,
    stop_never,
    wait_exponential_jitter,
)
from tenacity.retry import retry_base


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Configuration for retry attempt count and exponential backoff.

    The delay before retry ``n`` (1-based) is
    ``initial_seconds * 2 ** (n - 1)``, capped at ``max_seconds``, plus up to
    ``jitter_seconds`` of random jitter.
    """

    attempts: int | None = 3
    initial_seconds: float = 1.0
    max_seconds: float = 60.0
    jitter_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.attempts is not None and self.attempts < 1:
            raise ValueError("attempts must be >= 1 when provided")
        if self.initial_seconds < 0:
            raise ValueError("initial_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        if self.max_seconds < self.initial_seconds:
            raise ValueError("max_seconds must be >= initial_seconds")
        if self.jitter_seconds < 0:
            raise ValueError("jitter_seconds must be >= 0")


def build_exponential_retrying(
    *,
    retry: retry_base,
    policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with doubling backoff."""
    stop = (
        stop_never if policy.attempts is None else stop_after_attempt(policy.attempts)
    )
    wait = wait_exponential_jitter(
        initial=policy.initial_seconds,
        max=policy.max_seconds,
        exp_base=2,
        jitter=policy.jitter_seconds,
    )
    if sleep is None and before_sleep is None:
        return AsyncRetrying(
            retry=retry,
            wait=wait,
            stop=stop,
            reraise=reraise,
        )
    if sleep is None:
        return AsyncRetrying(
            retry=retry,
            wait=wait,
            stop=stop,
            before_sleep=before_sleep,
            reraise=reraise,
        )
    if before_sleep is None:
        return AsyncRetrying(
            retry=retry,
            wait=wait,
            stop=stop,
            sleep=sleep,
            reraise=reraise,
        )
    return AsyncRetrying(
        retry=retry,
        wait=wait,
        stop=stop,
        sleep=sleep,
        before_sleep=before_sleep,
        reraise=reraise,
    )
