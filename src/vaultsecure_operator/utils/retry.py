"""Bounded fixed-delay retry used around engine root rotation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

from tenacity import RetryCallState, RetryError, Retrying, stop_after_attempt, wait_fixed

from ..constants import DEFAULT_ROTATION_RETRY_ATTEMPTS, DEFAULT_ROTATION_RETRY_DELAY_SECONDS
from .errors import sanitize_exception

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class RetryExhausted(Exception):
    """Raised when every attempt of a RetryPolicy failed."""

    def __init__(self, attempts: int, delay: float, last_error: BaseException | None):
        self.attempts = attempts
        self.delay = delay
        self.last_error = last_error
        super().__init__(
            f"gave up after {attempts} attempts with {delay:g}s delay: "
            f"{sanitize_exception(last_error) if last_error else 'unknown error'}"
        )


@dataclass(frozen=True)
class RetryResult(Generic[_T]):
    """Value returned by a retried call and the attempts it took."""

    value: _T
    attempts: int


@dataclass
class RetryPolicy:
    """Retry a call a fixed number of times with a fixed delay between attempts.

    Any exception counts as a failed attempt, including client timeouts.
    `sleep` is injectable so tests can observe delays without waiting.
    """

    attempts: int = DEFAULT_ROTATION_RETRY_ATTEMPTS
    delay: float = DEFAULT_ROTATION_RETRY_DELAY_SECONDS
    sleep: Callable[[float], Any] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    @property
    def worst_case_wait(self) -> float:
        """Cumulative delay spent when every attempt fails."""
        return self.delay * (self.attempts - 1)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{self.attempts} failed, "
            f"retrying in {self.delay:g}s: {sanitize_exception(error) if error else 'unknown error'}"
        )

    def call(self, fn: Callable[[], _T]) -> RetryResult[_T]:
        """Run fn until it succeeds or the attempt budget is spent.

        Raises:
            RetryExhausted: If every attempt raised
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.delay),
            sleep=self.sleep,
            before_sleep=self._log_retry,
        )
        try:
            for attempt in retrying:
                with attempt:
                    value = fn()
                if not attempt.retry_state.outcome.failed:
                    return RetryResult(value=value, attempts=attempt.retry_state.attempt_number)
        except RetryError as e:
            last = e.last_attempt
            raise RetryExhausted(
                attempts=last.attempt_number,
                delay=self.delay,
                last_error=last.exception(),
            ) from last.exception()
        raise RetryExhausted(attempts=self.attempts, delay=self.delay, last_error=None)
