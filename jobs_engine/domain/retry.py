"""
Pure retry policy (exponential backoff with a ceiling).

Contract:
    ``RetryPolicy.decide()`` turns a failure report into a ``RetryDecision``.
    No I/O, no clock: the caller passes ``failed_at``.

Counting convention:
    ``retry_count`` counts failed attempts of one execution.  The decision
    is taken on the count *before* the failure being reported is added, so
    ``max_retries`` is the number of retries allowed after the initial
    attempt.  With ``max_retries=2`` an execution gets three attempts; the
    third failure is terminal and the DLQ entry records
    ``retry_attempts=3``.

Backoff:
    ``delay = base_delay * 2 ** prior_retries`` capped at ``max_delay``,
    where ``prior_retries`` is the pre-increment ``retry_count``.  First
    retry waits ``base_delay``, the second ``2 * base_delay``, and so on.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

DEFAULT_BASE_DELAY_SECONDS = 60
DEFAULT_MAX_DELAY_SECONDS = 3600


@dataclass(frozen=True)
class RetryDecision:
    """Result of evaluating one failure."""

    retry: bool
    new_retry_count: int
    backoff_until: datetime | None = None
    delay_seconds: int = 0
    reason: str = ""


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy with a ceiling."""

    base_delay_seconds: int = DEFAULT_BASE_DELAY_SECONDS
    max_delay_seconds: int = DEFAULT_MAX_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.base_delay_seconds <= 0:
            raise ValueError(
                f"base_delay_seconds must be positive: {self.base_delay_seconds}"
            )
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError(
                "max_delay_seconds must be >= base_delay_seconds: "
                f"{self.max_delay_seconds} < {self.base_delay_seconds}"
            )

    def backoff_delay(self, prior_retries: int) -> int:
        """Seconds to wait before the next attempt."""
        if prior_retries < 0:
            raise ValueError(f"prior_retries must be >= 0: {prior_retries}")
        # Cap the exponent so huge retry counts cannot overflow the multiply.
        exponent = min(prior_retries, 32)
        return min(self.base_delay_seconds * (2 ** exponent), self.max_delay_seconds)

    def decide(
        self,
        retry_count: int,
        max_retries: int,
        should_retry: bool,
        failed_at: datetime,
    ) -> RetryDecision:
        """Decide retry vs. terminal failure for one reported failure.

        Args:
            retry_count: The execution's retry_count before this failure.
            max_retries: Retries allowed after the initial attempt.
            should_retry: The job body's transient/permanent signal.
            failed_at: Clock time of the failure.
        """
        new_count = retry_count + 1

        if not should_retry:
            return RetryDecision(
                retry=False,
                new_retry_count=new_count,
                reason="permanent_failure",
            )

        if retry_count >= max_retries:
            return RetryDecision(
                retry=False,
                new_retry_count=new_count,
                reason="retries_exhausted",
            )

        delay = self.backoff_delay(retry_count)
        return RetryDecision(
            retry=True,
            new_retry_count=new_count,
            backoff_until=failed_at + timedelta(seconds=delay),
            delay_seconds=delay,
            reason="transient_failure",
        )
