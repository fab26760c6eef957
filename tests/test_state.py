"""Tests for order-level retry state.

These tests verify:
- Date tag grammar, including the legacy ``-retry`` form
- Error and success tag transitions
- Field payloads written after success and failure
- Retry state reconstruction from fields with a tag fallback
"""

from __future__ import annotations

from conftest import FIXED_NOW
from orderflow.retry.state import (
    INVOICE_MARKERS,
    WAYBILL_MARKERS,
    RetryState,
    attempts_from_tags,
    compose_error_message,
    date_tag,
    failure_fields,
    failure_tags,
    has_error_marker,
    is_error_tag,
    read_retry_state,
    success_fields,
    success_tags,
)
from orderflow.types import ErrorKind, OperationResult, Order


def order_with(tags: str = "", **fields: str) -> Order:
    return Order(id="1001", tags=tags, fields=fields)


class TestDateTags:
    def test_first_failure(self):
        assert date_tag(INVOICE_MARKERS, FIXED_NOW, 1) == "error-2024-05-01"

    def test_later_failures(self):
        assert date_tag(INVOICE_MARKERS, FIXED_NOW, 2) == "error-2024-05-01-retry1"
        assert date_tag(WAYBILL_MARKERS, FIXED_NOW, 3) == "awb-error-2024-05-01-retry2"

    def test_attempts_from_tags(self):
        tags = {"vip", "error-2024-04-30", "error-2024-05-01-retry2"}
        assert attempts_from_tags(tags, INVOICE_MARKERS) == 3

    def test_legacy_retry_suffix_counts_as_second_failure(self):
        assert attempts_from_tags({"error-2024-05-01-retry"}, INVOICE_MARKERS) == 2

    def test_no_matching_tags(self):
        assert attempts_from_tags({"invoiced", "error-today"}, INVOICE_MARKERS) == 0

    def test_markers_do_not_overlap(self):
        tags = {"awb-error-2024-05-01-retry1"}
        assert attempts_from_tags(tags, INVOICE_MARKERS) == 0
        assert attempts_from_tags(tags, WAYBILL_MARKERS) == 2

    def test_error_markers(self):
        assert is_error_tag("invoice-error", INVOICE_MARKERS)
        assert is_error_tag("error-2024-05-01", INVOICE_MARKERS)
        assert not is_error_tag("invoiced", INVOICE_MARKERS)
        assert has_error_marker(order_with("vip, waybill-error"), WAYBILL_MARKERS)
        assert not has_error_marker(order_with("vip"), WAYBILL_MARKERS)


class TestErrorMessage:
    def test_plain(self):
        message = compose_error_message(INVOICE_MARKERS, "Invalid series", FIXED_NOW, status_code=400)
        assert message == "Invoice failed: Invalid series (HTTP 400). Timestamp: 2024-05-01T12:00:00+00:00"

    def test_retry_with_status_message(self):
        message = compose_error_message(
            WAYBILL_MARKERS,
            "Courier down",
            FIXED_NOW,
            status_code=503,
            status_message="Service Unavailable",
            is_retry=True,
        )
        assert message.startswith("Retry Waybill failed: Courier down (HTTP 503) | Service Unavailable.")


class TestTagTransitions:
    def test_success_clears_error_markers(self):
        order = order_with("vip, invoice-error, error-2024-04-30, error-2024-05-01-retry1")

        assert success_tags(order, INVOICE_MARKERS, "FCT-101") == ["INVOICE-FCT-101", "invoiced", "vip"]

    def test_success_keeps_other_operation_markers(self):
        order = order_with("waybill-error, invoice-error")

        tags = success_tags(order, INVOICE_MARKERS, "101")

        assert "waybill-error" in tags
        assert "invoice-error" not in tags

    def test_failure_adds_error_and_date_tags(self):
        order = order_with("vip")

        assert failure_tags(order, INVOICE_MARKERS, FIXED_NOW, 2) == [
            "error-2024-05-01-retry1",
            "invoice-error",
            "vip",
        ]


class TestFields:
    def test_success_fields_clear_error_state(self):
        result = OperationResult(
            reference="AWB9001",
            fields={"tracking_url": "https://track.example.com/AWB9001"},
            created_at=FIXED_NOW,
        )

        fields = {f.qualified_key: f.value for f in success_fields(WAYBILL_MARKERS, result)}

        assert fields == {
            "shipping.awb_number": "AWB9001",
            "shipping.created_at": "2024-05-01T12:00:00+00:00",
            "shipping.tracking_url": "https://track.example.com/AWB9001",
            "shipping.error": "",
            "shipping.retry_state": "",
        }

    def test_failure_fields(self):
        state = RetryState(operation="invoice", attempt=2, last_error_kind=ErrorKind.NETWORK)

        error, retry_state = failure_fields(INVOICE_MARKERS, state, "Invoice failed: boom")

        assert error.qualified_key == "invoice.error"
        assert error.type == "multi_line_text_field"
        assert retry_state.type == "json"
        assert RetryState.model_validate_json(retry_state.value) == state


class TestReadRetryState:
    def test_structured_field_wins(self):
        state = RetryState(
            operation="invoice",
            attempt=2,
            last_error_kind=ErrorKind.CLIENT_DATA_ERROR,
            status_code=400,
        )
        order = order_with("error-2024-05-01", **{"invoice.retry_state": state.model_dump_json()})

        assert read_retry_state(order, INVOICE_MARKERS) == state

    def test_falls_back_to_tags(self):
        order = order_with("awb-error-2024-05-01-retry1")

        state = read_retry_state(order, WAYBILL_MARKERS)

        assert state is not None
        assert state.operation == "waybill"
        assert state.attempt == 2
        assert state.last_error_kind is None

    def test_malformed_field_falls_back_to_tags(self):
        order = order_with("error-2024-05-01", **{"invoice.retry_state": "{not json"})

        state = read_retry_state(order, INVOICE_MARKERS)

        assert state is not None
        assert state.attempt == 1

    def test_newer_version_is_ignored(self):
        payload = RetryState(operation="invoice", attempt=2, version=99).model_dump_json()
        order = order_with(**{"invoice.retry_state": payload})

        assert read_retry_state(order, INVOICE_MARKERS) is None

    def test_clean_order(self):
        assert read_retry_state(order_with("vip"), INVOICE_MARKERS) is None
