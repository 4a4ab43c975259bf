"""
Backoff policy for retrying failed task runs.

Design Pattern: Strategy Pattern
BackoffPolicy encapsulates how the delay grows between retries, so the
dispatcher can reschedule a failed record without knowing the formula.

Both strategies are clamped to a ceiling (one hour by default) so long
retry chains never produce unbounded delays.
"""

from __future__ import annotations

from enum import Enum

DEFAULT_MAX_BACKOFF_MS = 60 * 60 * 1000
"""Ceiling applied to every computed delay (one hour)."""

# 2**63 already exceeds any sane ceiling; larger exponents are not computed.
_MAX_EXPONENT = 63


class BackoffPolicy(Enum):
    """
    Strategy for the delay between retry attempts.

    Examples:
        BackoffPolicy.LINEAR.calculate_delay(1000, 3)       # 3000
        BackoffPolicy.EXPONENTIAL.calculate_delay(1000, 3)  # 8000
    """

    LINEAR = "LINEAR"
    EXPONENTIAL = "EXPONENTIAL"

    def calculate_delay(
        self, base_delay_ms: int, attempt: int, max_delay_ms: int = DEFAULT_MAX_BACKOFF_MS
    ) -> int:
        """
        Calculate the delay before retry number `attempt`.

        Args:
            base_delay_ms: Base delay in milliseconds
            attempt: Retry number, 1-indexed (1 = first retry)
            max_delay_ms: Ceiling for the result

        Returns:
            Delay in milliseconds, never above max_delay_ms

        Raises:
            ValueError: If attempt < 1 or a delay is negative
        """
        return calculate_delay(self, base_delay_ms, attempt, max_delay_ms=max_delay_ms)

    def __str__(self) -> str:
        return self.value


def calculate_delay(
    policy: BackoffPolicy,
    base_delay_ms: int,
    attempt: int,
    *,
    max_delay_ms: int = DEFAULT_MAX_BACKOFF_MS,
) -> int:
    """
    Map (policy, base delay, attempt) to a retry delay.

    - LINEAR: base * attempt
    - EXPONENTIAL: base * 2^attempt

    Both are clamped to max_delay_ms.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    if base_delay_ms < 0 or max_delay_ms < 0:
        raise ValueError("delays must be non-negative")

    if policy is BackoffPolicy.LINEAR:
        delay_ms = base_delay_ms * attempt
    else:
        delay_ms = base_delay_ms * (2 ** min(attempt, _MAX_EXPONENT))

    return min(delay_ms, max_delay_ms)
