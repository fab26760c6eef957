"""Waybill creation through the courier's ShippingAdapter."""

from __future__ import annotations

from typing import Any

from orderflow.errors import ClientDataError, ProviderError
from orderflow.localities import LocalityResolver
from orderflow.logging import log_debug, log_info, log_warn
from orderflow.ports import ShippingAdapter
from orderflow.retry.state import WAYBILL_MARKERS
from orderflow.types import OperationResult, Order, RetryStrategy

from .base import SideEffectOperation

MIN_PARCEL_WEIGHT_KG = 0.1
COD_FINANCIAL_STATUSES = {"pending", "authorized"}


class WaybillOperation(SideEffectOperation):
    """Creates one waybill per order.

    The shipping address is resolved onto the courier's gazetteer before
    the payload is built. Invoice-specific payload modifications do not
    apply to waybills and are ignored.
    """

    operation_name = "waybill"
    markers = WAYBILL_MARKERS
    tracks_fulfillments = True

    def __init__(
        self,
        adapter: ShippingAdapter,
        resolver: LocalityResolver,
        *,
        default_weight_kg: float = 1.0,
        service: str = "standard",
    ) -> None:
        self._adapter = adapter
        self._resolver = resolver
        self.default_weight_kg = default_weight_kg
        self.service = service

    async def execute(self, order: Order, strategy: RetryStrategy) -> OperationResult:
        if strategy.modifications:
            log_debug(
                "Ignoring invoice payload modifications for waybill",
                {"order_id": order.id, "modifications": sorted(m.value for m in strategy.modifications)},
            )

        address = order.shipping_address or order.billing_address
        if address is None or not (address.city or "").strip():
            raise ClientDataError("Shipping address is missing a city", retryable=False)

        locality = await self._resolver.resolve(address.city or "", address.province or address.province_code)

        package_info = self.package_info(order)
        options = {
            "region": locality.region,
            "locality": locality.canonical_name,
            "service": self.service,
        }
        payload = self._adapter.build_waybill_payload(order, package_info, options)
        courier = self._adapter.provider_name()

        log_info(
            "Creating waybill",
            {
                "order_id": order.id,
                "courier": courier,
                "region": locality.region,
                "locality": locality.canonical_name,
            },
        )
        response = await self._adapter.create_waybill(payload)

        reference = response.get("tracking_reference")
        if not reference:
            raise ProviderError("Courier returned no tracking reference", details=response, retryable=False)

        # The waybill exists from here on; nothing below may raise
        reference = str(reference)
        fields = {"courier": str(courier)}
        try:
            url = self._adapter.tracking_url(reference)
            if url:
                fields["tracking_url"] = str(url)
        except Exception as e:
            log_warn(
                f"Could not build tracking URL: {e}",
                {"order_id": order.id, "reference": reference, "courier": courier},
            )
        cost = response.get("cost")
        if cost is not None:
            fields["cost"] = str(cost)

        return OperationResult(
            reference=reference,
            fields=fields,
            details={"region": locality.region, "locality": locality.canonical_name, "method": locality.method.value},
        )

    def package_info(self, order: Order) -> dict[str, Any]:
        """Parcel description derived from the order's shippable items."""
        grams = sum(
            item.grams * item.quantity for item in order.line_items if item.requires_shipping
        )
        weight = grams / 1000 if grams > 0 else self.default_weight_kg
        info: dict[str, Any] = {
            "parcels": 1,
            "weight_kg": max(round(weight, 3), MIN_PARCEL_WEIGHT_KG),
            "declared_value": order.total_price,
            "content": ", ".join(i.title for i in order.line_items if i.title)[:100] or None,
            "reference": order.name or order.id,
        }
        if (order.financial_status or "").lower() in COD_FINANCIAL_STATUSES and order.total_price:
            info["cash_on_delivery"] = order.total_price
        return info


__all__ = ["WaybillOperation"]
