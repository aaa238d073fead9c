"""Cancellation token and the per-chunk retry/backoff schedule."""
from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Callable, TypeVar

from .console import RUNTIME_METRICS, bench
from .errors import CancelledError, NetworkError, RateLimitError, ServerError, TranslationError

T = TypeVar("T")
MAX_RETRIES = 2
NETWORK_RETRY_DELAY = 3.0
SERVER_RETRY_DELAY = 2.0
DEFAULT_RETRY_DELAY = 1.0
RATE_LIMIT_DELAY = 10.0
RATE_LIMIT_DELAY_CAP = 30.0


class CancelToken:
    """Owned by whoever starts a run; checked at every suspension point."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True when woken by cancellation."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


def pause(token: CancelToken, seconds: float, sleep: Callable[[float], None] | None = None) -> None:
    token.raise_if_cancelled()
    if sleep is not None:
        sleep(seconds)
    elif token.wait(seconds):
        raise CancelledError()
    token.raise_if_cancelled()


@dataclass
class RetryPolicy:
    max_retries: int = MAX_RETRIES
    network_delay: float = NETWORK_RETRY_DELAY
    server_delay: float = SERVER_RETRY_DELAY
    default_delay: float = DEFAULT_RETRY_DELAY
    rate_limit_delay: float = RATE_LIMIT_DELAY
    rate_limit_cap: float = RATE_LIMIT_DELAY_CAP
    sleep: Callable[[float], None] | None = None

    def delay_for(self, exc: TranslationError) -> float:
        if isinstance(exc, RateLimitError):
            wanted = exc.retry_after if exc.retry_after is not None else self.rate_limit_delay
            return max(0.0, min(wanted, self.rate_limit_cap))
        if isinstance(exc, NetworkError):
            return self.network_delay
        if isinstance(exc, ServerError):
            return self.server_delay
        return self.default_delay

    def call(
        self,
        operation: Callable[[], T],
        token: CancelToken,
        on_status: Callable[[str], None] | None = None,
        on_retry: Callable[[int, TranslationError], None] | None = None,
    ) -> T:
        """Run ``operation`` with up to ``max_retries`` retries.

        Non-retryable errors and the last retryable one are re-raised.
        """
        notify = on_status or (lambda message: None)
        attempts = max(0, int(self.max_retries)) + 1
        for attempt in range(1, attempts + 1):
            token.raise_if_cancelled()
            try:
                return operation()
            except CancelledError:
                raise
            except TranslationError as exc:
                bench(f"attempt {attempt}/{attempts} failed: {exc.label}: {exc}")
                if not exc.retryable or attempt == attempts:
                    raise
                RUNTIME_METRICS.bump("retry.attempts")
                RUNTIME_METRICS.bump(f"retry.{exc.label}")
                if on_retry is not None:
                    on_retry(attempt, exc)
                delay = self.delay_for(exc)
                if isinstance(exc, RateLimitError):
                    notify(f"Rate limit reached, waiting {delay:.0f}s before retry {attempt} of {self.max_retries}...")
                else:
                    notify(f"{exc.label.replace('_', ' ').capitalize()} error, retry {attempt} of {self.max_retries} in {delay:.0f}s...")
                with RUNTIME_METRICS.timed(f"wait.backoff.{exc.label}"):
                    pause(token, delay, self.sleep)
                if isinstance(exc, RateLimitError):
                    notify("Rate-limit wait finished, resuming.")
                notify(f"Retrying (attempt {attempt + 1} of {attempts})...")
        raise AssertionError("unreachable")
