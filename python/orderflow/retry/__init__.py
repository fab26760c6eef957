"""Retry machinery: strategies, persisted state, idempotency and orchestration."""

from __future__ import annotations

from .idempotency import IdempotencyGuard
from .orchestrator import RetryOrchestrator
from .state import (
    INVOICE_MARKERS,
    WAYBILL_MARKERS,
    OperationMarkers,
    RetryState,
    has_error_marker,
    read_retry_state,
)
from .strategy import (
    BASE_BACKOFF_MS,
    MAX_BACKOFF_MS,
    NOOP_STRATEGY,
    RetryStrategySelector,
    exponential_backoff_ms,
)

__all__ = [
    "BASE_BACKOFF_MS",
    "INVOICE_MARKERS",
    "IdempotencyGuard",
    "MAX_BACKOFF_MS",
    "NOOP_STRATEGY",
    "OperationMarkers",
    "RetryOrchestrator",
    "RetryState",
    "RetryStrategySelector",
    "WAYBILL_MARKERS",
    "exponential_backoff_ms",
    "has_error_marker",
    "read_retry_state",
]
