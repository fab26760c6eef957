"""Detection of side effects that already happened.

Before creating an invoice or waybill the orchestrator asks the guard
whether the order already carries one. Checks run in order and the first
hit wins:

1. The reference field (``<namespace>.<reference_key>``)
2. A fulfillment with a tracking reference (waybills only)
3. A ``<reference_tag_prefix><reference>`` tag

If a check raises, the guard answers "not done" and logs at ERROR level.
A rare duplicate document in a genuine fault is preferred over silently
blocking a legitimate order.
"""

from __future__ import annotations

from orderflow.event_bridge import EventBridge, EventNames
from orderflow.logging import log_debug, log_error
from orderflow.types import IdempotencyCheck, Order

from .state import CREATED_AT_KEY, OperationMarkers

CANCELLED_FULFILLMENT_STATUSES = {"cancelled", "canceled", "error", "failure"}


class IdempotencyGuard:
    """Checks an order's tags, fields and fulfillments for an existing document."""

    def __init__(
        self,
        markers: OperationMarkers,
        *,
        check_fulfillments: bool = False,
        events: EventBridge | None = None,
    ) -> None:
        """Initialize the guard.

        Args:
            markers: Tag and field names of the guarded operation.
            check_fulfillments: Treat tracked fulfillments as an existing
                document; only meaningful for waybills.
            events: Bridge notified when the guard fails open.
        """
        self.markers = markers
        self.check_fulfillments = check_fulfillments
        self._events = events

    def already_done(self, order: Order) -> IdempotencyCheck:
        """Decide whether the side effect already exists for ``order``.

        Never raises.
        """
        try:
            return self._check(order)
        except Exception as e:
            log_error(
                "Idempotency check failed; proceeding as not done, a duplicate is possible",
                {
                    "order_id": getattr(order, "id", None),
                    "operation": self.markers.operation,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            if self._events is not None:
                self._events.publish(EventNames.IDEMPOTENCY_CHECK_FAILED, getattr(order, "id", None), e)
            return IdempotencyCheck(exists=False)

    def _check(self, order: Order) -> IdempotencyCheck:
        markers = self.markers

        reference = order.field(markers.namespace, markers.reference_key)
        if reference:
            log_debug("Existing document found in field", {"order_id": order.id, "reference": reference})
            return IdempotencyCheck(
                exists=True,
                reference=reference,
                created_at=order.field(markers.namespace, CREATED_AT_KEY),
                source="field",
            )

        if self.check_fulfillments:
            for fulfillment in order.fulfillments:
                status = (fulfillment.status or "").lower()
                tracking = (fulfillment.tracking_number or "").strip()
                if tracking and status not in CANCELLED_FULFILLMENT_STATUSES:
                    return IdempotencyCheck(
                        exists=True,
                        reference=tracking,
                        created_at=fulfillment.created_at.isoformat() if fulfillment.created_at else None,
                        source="fulfillment",
                    )

        prefix = markers.reference_tag_prefix
        for tag in sorted(order.tags):
            if tag.startswith(prefix) and len(tag) > len(prefix):
                return IdempotencyCheck(exists=True, reference=tag[len(prefix) :], source="tag")

        return IdempotencyCheck(exists=False)


__all__ = ["IdempotencyGuard"]
