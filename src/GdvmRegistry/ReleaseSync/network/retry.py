"""Bounded retry policy for network operations.

Every manifest fetch and every digest download runs under its own
:class:`RetryPolicy`, so the attempt ceiling applies per operation rather
than per release.  Failed attempts are re-issued immediately; there is no
backoff between attempts.

Example:
    >>> policy = RetryPolicy(max_attempts=3)
    >>> policy.call(lambda: "done")
    'done'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, Tuple, Type, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_none

from ..errors import DownloadFailure
from ..settings import DEFAULT_MAX_ATTEMPTS

__all__ = ["RetryPolicy", "RetryHook"]

T = TypeVar("T")
RetryHook = Callable[[int, BaseException], None]


@dataclass(frozen=True)
class RetryPolicy(Generic[T]):
    """Retry an operation up to ``max_attempts`` times.

    Attributes:
        max_attempts: Total attempts, including the first one.
        on_retry: Called with the failed attempt number and its exception
            before the operation is issued again.
        retry_on: Exception types that trigger another attempt; anything
            else propagates immediately.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    on_retry: Optional[RetryHook] = None
    retry_on: Tuple[Type[BaseException], ...] = (DownloadFailure,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        if self.on_retry is None or retry_state.outcome is None:
            return
        exc = retry_state.outcome.exception()
        if exc is not None:
            self.on_retry(retry_state.attempt_number, exc)

    def call(self, operation: Callable[[], T]) -> T:
        """Run ``operation`` and return its result, re-raising the last failure."""

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_none(),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=self._before_sleep,
            reraise=True,
        )
        return retrying(operation)
