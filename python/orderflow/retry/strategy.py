"""Retry strategy selection.

The selector is a pure function of (error kind, attempt): no clock, no
counters, no I/O. The same inputs always produce an equal strategy.

| ErrorKind                      | backoff                         | modifications                          |
|--------------------------------|---------------------------------|----------------------------------------|
| NETWORK, RATE_LIMITED          | min(1000 * 2^(attempt-1), 30000)| none                                   |
| VERIFICATION_ERROR             | 0                               | skip verification                      |
| CLIENT_DATA_ERROR              | 0                               | placeholder client                     |
| PRODUCT_VALIDATION_ERROR       | 0                               | drop shipping line, relax validation   |
| PROVIDER_VALIDATION_ERROR      | 0                               | alternate series, no stock, no email   |
| SYSTEM_ERROR, none             | 0                               | none                                   |
"""

from __future__ import annotations

from orderflow.types import ErrorKind, PayloadModification, RetryStrategy, RetryStrategyType

BASE_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 30000
DEFAULT_ALTERNATE_SERIES = "FACT"

NOOP_STRATEGY = RetryStrategy()


def exponential_backoff_ms(
    attempt: int,
    base_ms: int = BASE_BACKOFF_MS,
    max_ms: int = MAX_BACKOFF_MS,
) -> int:
    """Backoff for a retry attempt, doubling from ``base_ms`` up to ``max_ms``.

    Example:
        >>> [exponential_backoff_ms(n) for n in (1, 2, 4, 6)]
        [1000, 2000, 8000, 30000]
    """
    exponent = max(attempt, 1) - 1
    # bound the power for very large attempt numbers
    if exponent >= 15:
        return max_ms
    return min(base_ms * 2**exponent, max_ms)


class RetryStrategySelector:
    """Maps a classified failure and attempt number to a RetryStrategy."""

    def __init__(
        self,
        *,
        alternate_series: str = DEFAULT_ALTERNATE_SERIES,
        base_backoff_ms: int = BASE_BACKOFF_MS,
        max_backoff_ms: int = MAX_BACKOFF_MS,
    ) -> None:
        self.alternate_series = alternate_series
        self.base_backoff_ms = base_backoff_ms
        self.max_backoff_ms = max_backoff_ms

    def select(self, error_kind: ErrorKind | None, attempt: int) -> RetryStrategy:
        """Select the strategy for retrying after ``error_kind``.

        Args:
            error_kind: Kind of the previous failure; None on a first attempt.
            attempt: Retry attempt number, starting at 1.

        Returns:
            The strategy to apply. A first attempt always gets the no-op
            strategy.

        Example:
            >>> RetryStrategySelector().select(ErrorKind.NETWORK, 4).backoff_ms
            8000
        """
        if error_kind is None:
            return NOOP_STRATEGY

        if error_kind in (ErrorKind.NETWORK, ErrorKind.RATE_LIMITED):
            return RetryStrategy(
                type=RetryStrategyType.NETWORK_RETRY,
                backoff_ms=exponential_backoff_ms(
                    attempt, self.base_backoff_ms, self.max_backoff_ms
                ),
            )

        if error_kind == ErrorKind.VERIFICATION_ERROR:
            return RetryStrategy(
                type=RetryStrategyType.SKIP_VERIFICATION,
                modifications=frozenset({PayloadModification.SKIP_VERIFICATION}),
            )

        if error_kind == ErrorKind.CLIENT_DATA_ERROR:
            return RetryStrategy(
                type=RetryStrategyType.SIMPLIFIED_CLIENT,
                modifications=frozenset({PayloadModification.SIMPLIFIED_CLIENT}),
            )

        if error_kind == ErrorKind.PRODUCT_VALIDATION_ERROR:
            return RetryStrategy(
                type=RetryStrategyType.EXCLUDE_PROBLEMATIC_ITEMS,
                modifications=frozenset(
                    {
                        PayloadModification.EXCLUDE_SHIPPING,
                        PayloadModification.RELAX_PRODUCT_VALIDATION,
                    }
                ),
            )

        if error_kind == ErrorKind.PROVIDER_VALIDATION_ERROR:
            return RetryStrategy(
                type=RetryStrategyType.ALTERNATIVE_OPTIONS,
                modifications=frozenset(
                    {
                        PayloadModification.ALTERNATE_SERIES,
                        PayloadModification.DISABLE_STOCK,
                        PayloadModification.DISABLE_EMAIL,
                    }
                ),
                series_name=self.alternate_series,
            )

        return NOOP_STRATEGY


__all__ = [
    "BASE_BACKOFF_MS",
    "MAX_BACKOFF_MS",
    "NOOP_STRATEGY",
    "RetryStrategySelector",
    "exponential_backoff_ms",
]
