"""Webhook processing for commerce-platform order events.

The processor turns platform webhooks into orchestration runs. Every
handler acknowledges the delivery: failures are recorded on the order
and in the returned WebhookAck, never raised back to the HTTP layer,
so the platform does not redeliver a webhook that was already handled.

Example:
    >>> processor = WebhookProcessor(orchestrator, store, invoice_operation)
    >>> ack = await processor.dispatch("orders/create", {"id": 1001})
    >>> ack.outcomes[0].state
    <OrchestrationState.SUCCESS: 'success'>
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .logging import log_error, log_info, log_warn
from .operations.base import SideEffectOperation
from .ports import ShippingAdapter, StateStore
from .retry.orchestrator import RetryOrchestrator
from .retry.state import WAYBILL_MARKERS, has_error_marker, read_retry_state
from .types import OrderField, RetryOutcome, WebhookAck, utc_now

AWB_CANCELLED_TAG = "AWB_CANCELLED"
AWB_CANCELLATION_FAILED_TAG = "AWB_CANCELLATION_FAILED"
AWB_CANCELLED_KEY = "awb_cancelled"

# =============================================================================
# Event models
# =============================================================================


class WebhookEvent(BaseModel):
    """Common shape of an order webhook."""

    topic: str = Field(description="Platform webhook topic.")
    order_id: str = Field(description="Order the event refers to.")
    webhook_id: str | None = Field(default=None, description="Platform delivery identifier.")
    shop_domain: str | None = None

    @field_validator("order_id", mode="before")
    @classmethod
    def _stringify_order_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class OrderCreatedEvent(WebhookEvent):
    """``orders/create``: a new order was placed."""

    topic: str = "orders/create"

    @classmethod
    def from_payload(cls, payload: dict[str, Any], **kwargs: Any) -> OrderCreatedEvent:
        return cls(order_id=payload["id"], **kwargs)


class OrderUpdatedEvent(WebhookEvent):
    """``orders/updated``: the order changed, including our own tag writes."""

    topic: str = "orders/updated"

    @classmethod
    def from_payload(cls, payload: dict[str, Any], **kwargs: Any) -> OrderUpdatedEvent:
        return cls(order_id=payload["id"], **kwargs)


class FulfillmentCancelledEvent(WebhookEvent):
    """``fulfillments/update`` with a cancelled status."""

    topic: str = "fulfillments/update"
    fulfillment_id: str | None = None
    tracking_number: str | None = None
    status: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any], **kwargs: Any) -> FulfillmentCancelledEvent:
        fulfillment_id = payload.get("id")
        return cls(
            order_id=payload["order_id"],
            fulfillment_id=str(fulfillment_id) if fulfillment_id is not None else None,
            tracking_number=payload.get("tracking_number"),
            status=payload.get("status"),
            **kwargs,
        )


# =============================================================================
# Processor
# =============================================================================


class WebhookProcessor:
    """Routes order webhooks to the retry orchestrator.

    Attributes:
        auto_ship: Create a waybill right after the invoice on new orders.
        max_retries: Bound used to decide whether an updated order still
            deserves another run.
    """

    def __init__(
        self,
        orchestrator: RetryOrchestrator,
        state_store: StateStore,
        invoice_operation: SideEffectOperation,
        *,
        waybill_operation: SideEffectOperation | None = None,
        shipping: ShippingAdapter | None = None,
        auto_ship: bool = True,
        max_retries: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._orchestrator = orchestrator
        self._store = state_store
        self._invoice = invoice_operation
        self._waybill = waybill_operation
        self._shipping = shipping
        self.auto_ship = auto_ship
        self.max_retries = max_retries
        self._clock = clock

    @property
    def operations(self) -> list[SideEffectOperation]:
        return [op for op in (self._invoice, self._waybill) if op is not None]

    async def dispatch(self, topic: str, payload: dict[str, Any]) -> WebhookAck:
        """Parse a raw webhook payload and route it by topic.

        Unknown topics are acknowledged without doing anything.
        """
        try:
            if topic == "orders/create":
                return await self.handle_order_created(OrderCreatedEvent.from_payload(payload))
            if topic == "orders/updated":
                return await self.handle_order_updated(OrderUpdatedEvent.from_payload(payload))
            if topic == "fulfillments/update":
                if (payload.get("status") or "").lower() not in ("cancelled", "canceled"):
                    return WebhookAck(topic=topic, message="Fulfillment not cancelled, ignored")
                return await self.handle_fulfillment_cancelled(FulfillmentCancelledEvent.from_payload(payload))
        except Exception as e:
            log_error(f"Unprocessable webhook payload: {e}", {"topic": topic, "error_type": type(e).__name__})
            return WebhookAck(topic=topic, message=f"Unprocessable payload: {e}")

        log_info("Ignoring webhook topic", {"topic": topic})
        return WebhookAck(topic=topic, message="Topic not handled")

    async def handle_order_created(self, event: OrderCreatedEvent) -> WebhookAck:
        """Create the invoice, then the waybill when auto shipping is on.

        The two outcomes are independent: a failed invoice does not stop
        the waybill.
        """
        log_info("Order created webhook received", {"order_id": event.order_id, "webhook_id": event.webhook_id})
        operations = [self._invoice]
        if self.auto_ship and self._waybill is not None:
            operations.append(self._waybill)

        outcomes = await self._run_all(event.order_id, operations)
        return WebhookAck(topic=event.topic, order_id=event.order_id, outcomes=outcomes)

    async def handle_order_updated(self, event: OrderUpdatedEvent) -> WebhookAck:
        """Re-run operations that failed earlier and are not exhausted."""
        try:
            order = await self._store.get_order(event.order_id)
        except Exception as e:
            log_error(f"Could not load updated order: {e}", {"order_id": event.order_id})
            return WebhookAck(topic=event.topic, order_id=event.order_id, message=f"Order not loaded: {e}")

        pending = []
        for operation in self.operations:
            if operation is self._waybill and not self.auto_ship:
                continue
            if not has_error_marker(order, operation.markers):
                continue
            state = read_retry_state(order, operation.markers)
            if state is not None and (state.attempt >= self.max_retries or not state.retryable):
                log_info(
                    "Not retrying operation",
                    {
                        "order_id": order.id,
                        "operation": operation.name,
                        "attempt": state.attempt,
                        "retryable": state.retryable,
                    },
                )
                continue
            pending.append(operation)

        if not pending:
            return WebhookAck(topic=event.topic, order_id=event.order_id, message="Nothing to retry")

        outcomes = await self._run_all(event.order_id, pending)
        return WebhookAck(topic=event.topic, order_id=event.order_id, outcomes=outcomes)

    async def handle_fulfillment_cancelled(self, event: FulfillmentCancelledEvent) -> WebhookAck:
        """Cancel the courier waybill behind a cancelled fulfillment.

        A waybill that cannot be cancelled is tagged for manual follow-up.
        """
        context = {"order_id": event.order_id, "fulfillment_id": event.fulfillment_id}
        markers = WAYBILL_MARKERS

        try:
            order = await self._store.get_order(event.order_id)
        except Exception as e:
            log_error(f"Could not load order for cancellation: {e}", context)
            return WebhookAck(topic=event.topic, order_id=event.order_id, message=f"Order not loaded: {e}")

        reference = event.tracking_number or order.field(markers.namespace, markers.reference_key)
        if not reference:
            log_info("Cancelled fulfillment has no waybill, skipping", context)
            return WebhookAck(topic=event.topic, order_id=event.order_id, message="No waybill to cancel")

        context["reference"] = reference
        if self._shipping is None:
            log_warn("No shipping adapter configured, waybill left active", context)
            return await self._cancellation_failed(event, order.tags, "No shipping adapter configured")

        try:
            cancelled = await self._shipping.cancel_waybill(reference)
        except Exception as e:
            log_error(f"Waybill cancellation failed: {e}", context)
            return await self._cancellation_failed(event, order.tags, str(e))
        if not cancelled:
            log_error("Courier refused waybill cancellation", context)
            return await self._cancellation_failed(event, order.tags, "Courier refused cancellation")

        tags = {
            tag
            for tag in order.tags
            if tag != markers.success_tag and tag != f"{markers.reference_tag_prefix}{reference}"
        }
        tags.add(AWB_CANCELLED_TAG)
        tags.discard(AWB_CANCELLATION_FAILED_TAG)
        try:
            await self._store.set_fields(
                order.id,
                [
                    OrderField(namespace=markers.namespace, key=markers.reference_key, value=""),
                    OrderField(
                        namespace=markers.namespace,
                        key=AWB_CANCELLED_KEY,
                        value=self._clock().isoformat(),
                        type="date_time",
                    ),
                ],
            )
            await self._store.set_tags(order.id, sorted(tags))
        except Exception as e:
            log_error(f"Waybill cancelled but recording it failed: {e}", context)
            return WebhookAck(
                topic=event.topic,
                order_id=event.order_id,
                message=f"Waybill {reference} cancelled; order not updated: {e}",
                requires_manual_intervention=True,
            )

        log_info("Waybill cancelled", context)
        return WebhookAck(topic=event.topic, order_id=event.order_id, message=f"Waybill {reference} cancelled")

    async def _cancellation_failed(
        self,
        event: FulfillmentCancelledEvent,
        tags: set[str],
        reason: str,
    ) -> WebhookAck:
        try:
            await self._store.set_tags(event.order_id, sorted(tags | {AWB_CANCELLATION_FAILED_TAG}))
        except Exception as e:
            log_error(f"Could not tag failed cancellation: {e}", {"order_id": event.order_id})
        return WebhookAck(
            topic=event.topic,
            order_id=event.order_id,
            message=f"Waybill cancellation failed: {reason}",
            requires_manual_intervention=True,
        )

    async def _run_all(self, order_id: str, operations: list[SideEffectOperation]) -> list[RetryOutcome]:
        outcomes = []
        for operation in operations:
            outcomes.append(await self._orchestrator.run(order_id, operation, max_retries=self.max_retries))
        return outcomes


__all__ = [
    "AWB_CANCELLATION_FAILED_TAG",
    "AWB_CANCELLED_TAG",
    "FulfillmentCancelledEvent",
    "OrderCreatedEvent",
    "OrderUpdatedEvent",
    "WebhookEvent",
    "WebhookProcessor",
]
