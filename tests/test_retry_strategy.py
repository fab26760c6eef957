"""Tests for retry strategy selection.

These tests verify:
- The strategy table for every ErrorKind
- Exponential backoff with its cap
- Selection is pure: equal inputs give equal strategies
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from orderflow.retry.strategy import (
    NOOP_STRATEGY,
    RetryStrategySelector,
    exponential_backoff_ms,
)
from orderflow.types import ErrorKind, PayloadModification, RetryStrategy, RetryStrategyType


class TestExponentialBackoff:
    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(1, 1000), (2, 2000), (3, 4000), (4, 8000), (5, 16000), (6, 30000), (50, 30000)],
    )
    def test_doubles_and_caps(self, attempt, expected):
        assert exponential_backoff_ms(attempt) == expected

    def test_attempt_below_one_uses_base(self):
        assert exponential_backoff_ms(0) == 1000

    def test_custom_bounds(self):
        assert exponential_backoff_ms(3, base_ms=100, max_ms=250) == 250


class TestRetryStrategySelector:
    def test_no_previous_error_is_noop(self):
        strategy = RetryStrategySelector().select(None, 1)
        assert strategy == NOOP_STRATEGY
        assert strategy.is_noop
        assert strategy.type == RetryStrategyType.STANDARD

    @pytest.mark.parametrize("kind", [ErrorKind.NETWORK, ErrorKind.RATE_LIMITED])
    def test_network_kinds_back_off_without_modifications(self, kind):
        selector = RetryStrategySelector()

        assert selector.select(kind, 1).backoff_ms == 1000
        assert selector.select(kind, 4).backoff_ms == 8000
        assert selector.select(kind, 6).backoff_ms == 30000

        strategy = selector.select(kind, 2)
        assert strategy.type == RetryStrategyType.NETWORK_RETRY
        assert strategy.modifications == frozenset()

    def test_verification_error_skips_verification(self):
        strategy = RetryStrategySelector().select(ErrorKind.VERIFICATION_ERROR, 1)

        assert strategy.type == RetryStrategyType.SKIP_VERIFICATION
        assert strategy.backoff_ms == 0
        assert strategy.modifications == {PayloadModification.SKIP_VERIFICATION}

    def test_client_data_error_uses_placeholder_client(self):
        strategy = RetryStrategySelector().select(ErrorKind.CLIENT_DATA_ERROR, 2)

        assert strategy.type == RetryStrategyType.SIMPLIFIED_CLIENT
        assert strategy.has(PayloadModification.SIMPLIFIED_CLIENT)
        assert strategy.backoff_ms == 0

    def test_product_validation_drops_shipping_and_relaxes(self):
        strategy = RetryStrategySelector().select(ErrorKind.PRODUCT_VALIDATION_ERROR, 1)

        assert strategy.type == RetryStrategyType.EXCLUDE_PROBLEMATIC_ITEMS
        assert strategy.modifications == {
            PayloadModification.EXCLUDE_SHIPPING,
            PayloadModification.RELAX_PRODUCT_VALIDATION,
        }

    def test_provider_validation_switches_series(self):
        strategy = RetryStrategySelector(alternate_series="RTR").select(
            ErrorKind.PROVIDER_VALIDATION_ERROR, 1
        )

        assert strategy.type == RetryStrategyType.ALTERNATIVE_OPTIONS
        assert strategy.series_name == "RTR"
        assert strategy.modifications == {
            PayloadModification.ALTERNATE_SERIES,
            PayloadModification.DISABLE_STOCK,
            PayloadModification.DISABLE_EMAIL,
        }

    def test_system_error_is_noop(self):
        assert RetryStrategySelector().select(ErrorKind.SYSTEM_ERROR, 3) == NOOP_STRATEGY

    @pytest.mark.parametrize("kind", [None, *ErrorKind])
    def test_selection_is_pure(self, kind):
        selector = RetryStrategySelector()
        for attempt in range(1, 6):
            first = selector.select(kind, attempt)
            second = RetryStrategySelector().select(kind, attempt)
            assert first == second
            assert selector.select(kind, attempt) == first

    def test_strategies_are_immutable(self):
        strategy = RetryStrategySelector().select(ErrorKind.NETWORK, 1)
        with pytest.raises(ValidationError):
            strategy.backoff_ms = 0  # type: ignore[misc]

    def test_strategy_equality_is_by_value(self):
        a = RetryStrategy(
            type=RetryStrategyType.SKIP_VERIFICATION,
            modifications=frozenset({PayloadModification.SKIP_VERIFICATION}),
        )
        b = RetryStrategySelector().select(ErrorKind.VERIFICATION_ERROR, 5)
        assert a == b
