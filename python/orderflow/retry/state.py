"""Durable orchestration state stored as order tags and fields.

The commerce platform is the only durable store, so every past outcome
is encoded on the order itself. Each operation owns a set of markers:

- ``success_tag`` and ``<reference_tag_prefix><reference>`` after success
- ``error_tag`` and a date tag after a terminal failure
- ``<namespace>.<reference_key>`` holding the document reference
- ``<namespace>.error`` holding a human-readable failure message
- ``<namespace>.retry_state`` holding a versioned JSON record

Date tag grammar, for operations whose ``error_tag_prefix`` is ``error-``::

    error-<YYYY-MM-DD>              first failure
    error-<YYYY-MM-DD>-retry        second failure (legacy form)
    error-<YYYY-MM-DD>-retry<N>     failure number N+1

The retry-state field is authoritative; tags are parsed only for orders
written before the field existed.
"""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field, ValidationError

from orderflow.logging import log_warn
from orderflow.types import ErrorKind, OperationResult, Order, OrderField

RETRY_STATE_VERSION = 1

RETRY_STATE_KEY = "retry_state"
ERROR_KEY = "error"
CREATED_AT_KEY = "created_at"


class OperationMarkers(BaseModel):
    """Tag and field names owned by one side-effecting operation."""

    operation: str
    label: str = Field(description="Human-readable operation name used in messages.")
    namespace: str
    reference_key: str
    success_tag: str
    reference_tag_prefix: str
    error_tag: str
    error_tag_prefix: str

    model_config = {"frozen": True}

    def key(self, name: str) -> str:
        return f"{self.namespace}.{name}"


INVOICE_MARKERS = OperationMarkers(
    operation="invoice",
    label="Invoice",
    namespace="invoice",
    reference_key="number",
    success_tag="invoiced",
    reference_tag_prefix="INVOICE-",
    error_tag="invoice-error",
    error_tag_prefix="error-",
)

WAYBILL_MARKERS = OperationMarkers(
    operation="waybill",
    label="Waybill",
    namespace="shipping",
    reference_key="awb_number",
    success_tag="waybill-created",
    reference_tag_prefix="AWB-",
    error_tag="waybill-error",
    error_tag_prefix="awb-error-",
)


class RetryState(BaseModel):
    """Versioned retry record serialized into ``<namespace>.retry_state``.

    Example:
        >>> state = RetryState(operation="invoice", attempt=2, last_error_kind=ErrorKind.NETWORK)
        >>> RetryState.model_validate_json(state.model_dump_json()).attempt
        2
    """

    version: int = RETRY_STATE_VERSION
    operation: str
    attempt: int = Field(ge=0, description="Attempts made so far.")
    last_error_kind: ErrorKind | None = None
    last_error_at: datetime | None = None
    last_error_message: str | None = None
    status_code: int | None = None
    retryable: bool = True


def _date_tag_pattern(markers: OperationMarkers) -> re.Pattern[str]:
    return re.compile(
        rf"^{re.escape(markers.error_tag_prefix)}(\d{{4}}-\d{{2}}-\d{{2}})(?:-retry(\d+)?)?$"
    )


def date_tag(markers: OperationMarkers, at: datetime, attempt: int) -> str:
    """Date tag recording failure number ``attempt``.

    Example:
        >>> date_tag(INVOICE_MARKERS, datetime(2024, 5, 1), 3)
        'error-2024-05-01-retry2'
    """
    tag = f"{markers.error_tag_prefix}{at.date().isoformat()}"
    if attempt > 1:
        tag = f"{tag}-retry{attempt - 1}"
    return tag


def attempts_from_tags(tags: set[str], markers: OperationMarkers) -> int:
    """Highest failure count encoded in date tags, 0 when none match."""
    pattern = _date_tag_pattern(markers)
    highest = 0
    for tag in tags:
        match = pattern.match(tag.strip())
        if not match:
            continue
        if match.group(0).endswith("-retry") and match.group(2) is None:
            count = 2
        elif match.group(2) is not None:
            count = int(match.group(2)) + 1
        else:
            count = 1
        highest = max(highest, count)
    return highest


def is_error_tag(tag: str, markers: OperationMarkers) -> bool:
    return tag == markers.error_tag or bool(_date_tag_pattern(markers).match(tag))


def has_error_marker(order: Order, markers: OperationMarkers) -> bool:
    return any(is_error_tag(tag, markers) for tag in order.tags)


def read_retry_state(order: Order, markers: OperationMarkers) -> RetryState | None:
    """Reconstruct the retry record of an order.

    Reads the structured field first and falls back to date tags. A
    malformed field is logged and ignored.
    """
    raw = order.field(markers.namespace, RETRY_STATE_KEY)
    if raw:
        try:
            state = RetryState.model_validate_json(raw)
        except ValidationError as e:
            log_warn(
                "Ignoring unreadable retry state field",
                {"order_id": order.id, "operation": markers.operation, "error": e.error_count()},
            )
        else:
            if state.version <= RETRY_STATE_VERSION:
                return state
            log_warn(
                "Ignoring retry state written by a newer version",
                {"order_id": order.id, "version": state.version},
            )

    attempts = attempts_from_tags(order.tags, markers)
    if attempts == 0:
        return None
    return RetryState(operation=markers.operation, attempt=attempts)


def compose_error_message(
    markers: OperationMarkers,
    message: str,
    at: datetime,
    *,
    status_code: int | None = None,
    status_message: str | None = None,
    is_retry: bool = False,
) -> str:
    """Human-readable failure message stored in ``<namespace>.error``.

    Example:
        >>> compose_error_message(
        ...     INVOICE_MARKERS, "Invalid series", datetime(2024, 5, 1), status_code=400
        ... )
        'Invoice failed: Invalid series (HTTP 400). Timestamp: 2024-05-01T00:00:00'
    """
    text = f"{'Retry ' if is_retry else ''}{markers.label} failed: {message}"
    if status_code is not None:
        text += f" (HTTP {status_code})"
    if status_message:
        text += f" | {status_message}"
    return f"{text}. Timestamp: {at.isoformat()}"


def success_tags(order: Order, markers: OperationMarkers, reference: str) -> list[str]:
    """Tag set after success: error markers removed, success markers added."""
    tags = {tag for tag in order.tags if not is_error_tag(tag, markers)}
    tags.add(markers.success_tag)
    tags.add(f"{markers.reference_tag_prefix}{reference}")
    return sorted(tags)


def success_fields(markers: OperationMarkers, result: OperationResult) -> list[OrderField]:
    """Reference fields written after success; error and retry state cleared."""
    fields = [
        OrderField(namespace=markers.namespace, key=markers.reference_key, value=result.reference),
        OrderField(
            namespace=markers.namespace,
            key=CREATED_AT_KEY,
            value=result.created_at.isoformat(),
        ),
    ]
    for key, value in result.fields.items():
        fields.append(OrderField(namespace=markers.namespace, key=key, value=value))
    fields.append(OrderField(namespace=markers.namespace, key=ERROR_KEY, value=""))
    fields.append(OrderField(namespace=markers.namespace, key=RETRY_STATE_KEY, value=""))
    return fields


def failure_tags(order: Order, markers: OperationMarkers, at: datetime, attempt: int) -> list[str]:
    """Tag set after a terminal failure.

    Success markers are never present at this point: the idempotency
    guard stops runs on orders that already carry them.
    """
    tags = set(order.tags)
    tags.discard(markers.success_tag)
    tags.add(markers.error_tag)
    tags.add(date_tag(markers, at, attempt))
    return sorted(tags)


def failure_fields(
    markers: OperationMarkers,
    state: RetryState,
    message: str,
) -> list[OrderField]:
    return [
        OrderField(namespace=markers.namespace, key=ERROR_KEY, value=message, type="multi_line_text_field"),
        OrderField(namespace=markers.namespace, key=RETRY_STATE_KEY, value=state.model_dump_json(), type="json"),
    ]


__all__ = [
    "CREATED_AT_KEY",
    "ERROR_KEY",
    "INVOICE_MARKERS",
    "OperationMarkers",
    "RETRY_STATE_KEY",
    "RETRY_STATE_VERSION",
    "RetryState",
    "WAYBILL_MARKERS",
    "attempts_from_tags",
    "compose_error_message",
    "date_tag",
    "failure_fields",
    "failure_tags",
    "has_error_marker",
    "is_error_tag",
    "read_retry_state",
    "success_fields",
    "success_tags",
]
