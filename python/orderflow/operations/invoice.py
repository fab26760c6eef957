"""Invoice creation through the invoicing provider.

Builds the invoice payload from an order, applies the strategy's
payload modifications, enriches company clients with registry data and
sends the result to the InvoicingProvider.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date
from typing import Any

from orderflow.errors import ClientDataError, ConfigurationError, ProductValidationError, ProviderError
from orderflow.localities import lookup_region
from orderflow.logging import log_debug, log_info
from orderflow.ports import InvoicingProvider
from orderflow.retry.state import INVOICE_MARKERS
from orderflow.types import (
    Address,
    LineItem,
    OperationResult,
    Order,
    PayloadModification,
    RetryStrategy,
)
from orderflow.verification import CompanyVerifier, company_name, extract_fiscal_id

from .base import SideEffectOperation

PLACEHOLDER_CLIENT: dict[str, Any] = {
    "name": "Customer",
    "code": "RETRY_CLIENT",
    "address": "N/A",
    "city": "Bucuresti",
    "state": "Bucuresti",
    "country": "Romania",
}

VAT_NAMES = {21: "Normala", 11: "Redusa", 0: "SFDD"}

SHIPPING_TITLE_MARKERS = ("shipping", "transport", "livrare")

# Keys added by enrichment that the provider does not accept
_ENRICHMENT_KEYS = ("verified", "verificationError", "verifiedAt")

_SECTOR = re.compile(r"sector\s*(\d)", re.IGNORECASE)


def bucharest_sector(address: Address) -> str | None:
    """Sector number mentioned anywhere in a Bucharest address.

    Example:
        >>> bucharest_sector(Address(address1="Str. Lunga 3, Sector 4"))
        '4'
    """
    for part in (address.address1, address.address2, address.city):
        if part:
            match = _SECTOR.search(part)
            if match:
                return match.group(1)
    return None


def sanitize_payload(value: Any) -> Any:
    """Drop None values from nested dicts and lists."""
    if isinstance(value, dict):
        return {k: sanitize_payload(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [sanitize_payload(v) for v in value if v is not None]
    return value


def refunded_quantity(order: Order, line_item_id: str | None) -> int:
    if line_item_id is None:
        return 0
    total = 0
    for refund in order.refunds:
        for refund_item in refund.get("refund_line_items") or []:
            item = refund_item.get("line_item") or {}
            item_id = refund_item.get("line_item_id", item.get("id"))
            if item_id is not None and str(item_id) == line_item_id:
                total += int(refund_item.get("quantity") or 0)
    return total


def is_shipping_item(item: LineItem) -> bool:
    title = (item.title or "").lower()
    return any(marker in title for marker in SHIPPING_TITLE_MARKERS)


class InvoiceOperation(SideEffectOperation):
    """Creates one invoice per order.

    Strategy effects:
        SKIP_VERIFICATION: do not enrich the client from the registry.
        SIMPLIFIED_CLIENT: replace the client with a placeholder record.
        EXCLUDE_SHIPPING: leave shipping charges off the invoice.
        RELAX_PRODUCT_VALIDATION: drop unusable line items and ask the
            provider not to validate products.
        ALTERNATE_SERIES, DISABLE_STOCK, DISABLE_EMAIL: document options.
    """

    operation_name = "invoice"
    markers = INVOICE_MARKERS
    tracks_fulfillments = False

    def __init__(
        self,
        provider: InvoicingProvider,
        *,
        company_fiscal_id: str,
        verifier: CompanyVerifier | None = None,
        series_name: str = "PRS",
        language: str = "RO",
        currency: str = "RON",
        vat_rate: int = 21,
        send_email: bool = True,
        use_stock: bool = True,
        management: str | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._provider = provider
        self._verifier = verifier
        self.company_fiscal_id = company_fiscal_id
        self.series_name = series_name
        self.language = language
        self.currency = currency
        self.vat_rate = vat_rate
        self.send_email = send_email
        self.use_stock = use_stock
        self.management = management
        self._today = today

    async def execute(self, order: Order, strategy: RetryStrategy) -> OperationResult:
        payload, details = await self.build_payload(order, strategy)
        total = invoice_total(payload["products"])
        currency = payload["products"][0].get("currency") or self.currency
        client = payload["client"]
        details.update(
            {
                "client_name": client.get("name"),
                "client_cif": client.get("cif"),
                "strategy": strategy.type.value,
            }
        )

        log_info(
            "Creating invoice",
            {
                "order_id": order.id,
                "series": payload.get("seriesName"),
                "products": len(payload.get("products", [])),
                "strategy": strategy.type.value,
            },
        )
        response = await self._provider.create_invoice(payload)

        data = response.get("data") or {}
        number = data.get("number")
        if not number:
            raise ProviderError(
                "Invoicing provider returned no invoice number",
                status_code=response.get("status"),
                details=response,
            )

        # The invoice exists from here on; only plain lookups below
        series = data.get("seriesName") or data.get("series") or payload["seriesName"]
        fields = {
            "series": str(series),
            "url": str(data.get("link") or data.get("url") or ""),
            "issue_date": str(data.get("issueDate") or payload["issueDate"]),
            "total": f"{total:.2f}",
            "currency": str(currency),
        }
        return OperationResult(
            reference=str(number),
            fields={k: v for k, v in fields.items() if v},
            details=details,
        )

    async def build_payload(
        self,
        order: Order,
        strategy: RetryStrategy,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Build the provider payload for an order.

        Returns:
            ``(payload, details)`` where details records enrichment results.

        Raises:
            ConfigurationError: The issuing company identifier is not set.
            ProductValidationError: No invoiceable product remains.
            ClientDataError: The client has no usable name.
        """
        if not self.company_fiscal_id:
            raise ConfigurationError("Issuing company fiscal identifier is not configured")

        details: dict[str, Any] = {}
        relax = strategy.has(PayloadModification.RELAX_PRODUCT_VALIDATION)

        products = self.build_products(order, relax=relax)
        if not strategy.has(PayloadModification.EXCLUDE_SHIPPING):
            products.extend(self.build_shipping_products(order))
        if not any("price" in p for p in products):
            raise ProductValidationError(
                "No invoiceable items: every line item was refunded or has no price"
            )

        if strategy.has(PayloadModification.SIMPLIFIED_CLIENT):
            client = dict(PLACEHOLDER_CLIENT)
            if order.email:
                client["email"] = order.email
        else:
            client = self.build_client(order)
            fiscal_id = extract_fiscal_id(order)
            if fiscal_id and self._verifier is not None:
                if strategy.has(PayloadModification.SKIP_VERIFICATION):
                    log_debug("Skipping company verification", {"order_id": order.id})
                    client["cif"] = fiscal_id
                else:
                    client = await self._verifier.enrich_client(client, fiscal_id)
                    for key in _ENRICHMENT_KEYS:
                        if key in client:
                            details[key] = client.pop(key)
            elif fiscal_id:
                client["cif"] = fiscal_id

        if not client.get("name"):
            raise ClientDataError("Client information is missing: no name on billing or shipping address")

        series = self.series_name
        if strategy.has(PayloadModification.ALTERNATE_SERIES) and strategy.series_name:
            series = strategy.series_name

        payload: dict[str, Any] = {
            "cif": self.company_fiscal_id,
            "client": client,
            "seriesName": series,
            "issueDate": self._today().isoformat(),
            "language": self.language,
            "mentions": f"Invoice issued for order {order.name or order.order_number or order.id}",
            "sendEmail": 0 if strategy.has(PayloadModification.DISABLE_EMAIL) or not self.send_email else 1,
            "useStock": 0 if strategy.has(PayloadModification.DISABLE_STOCK) or not self.use_stock else 1,
            "products": products,
        }
        if relax:
            payload["validateProducts"] = False

        if (order.financial_status or "").lower() == "paid":
            paid_on = order.processed_at.date() if order.processed_at else self._today()
            payload["collectDate"] = paid_on.isoformat()
            payload["collect"] = {
                "type": "Card",
                "documentNumber": str(order.order_number or order.name or order.id),
            }

        return sanitize_payload(payload), details

    def build_products(self, order: Order, *, relax: bool = False) -> list[dict[str, Any]]:
        """Product lines net of refunds, followed by their discounts."""
        currency = order.currency or self.currency
        products: list[dict[str, Any]] = []

        for item in order.line_items:
            quantity = max(0, item.quantity - refunded_quantity(order, item.id))
            if quantity <= 0:
                continue
            if relax and (item.price <= 0 or not item.title or is_shipping_item(item)):
                log_debug(
                    "Excluding line item from invoice",
                    {"order_id": order.id, "line_item": item.id, "title": item.title},
                )
                continue

            vat = self.vat_percentage(item)
            products.append(
                {
                    "name": item.title or item.name,
                    "code": item.sku or item.id,
                    "price": item.price,
                    "quantity": quantity,
                    "measuringUnit": "buc",
                    "currency": currency,
                    "productType": "Marfa",
                    "management": self.management,
                    "vatName": VAT_NAMES.get(vat, "Normala"),
                    "vatPercentage": vat,
                    "vatIncluded": 1 if order.taxes_included else 0,
                }
            )

            discount = sum(float(a.get("amount") or 0) for a in item.discount_allocations)
            if discount > 0:
                products.append(
                    {
                        "name": f"Discount {item.title}",
                        "discountType": "valoric",
                        "discount": round(discount, 2),
                        "discountAllAbove": 0,
                    }
                )

        return products

    def build_shipping_products(self, order: Order) -> list[dict[str, Any]]:
        currency = order.currency or self.currency
        return [
            {
                "name": line.title or "Transport",
                "price": line.price,
                "quantity": 1,
                "measuringUnit": "buc",
                "currency": currency,
                "productType": "Serviciu",
                "management": self.management,
            }
            for line in order.shipping_lines
            if line.price > 0
        ]

    def build_client(self, order: Order) -> dict[str, Any]:
        """Invoice client from the billing address, else the shipping address."""
        address = order.billing_address or order.shipping_address or Address()
        customer = order.customer or {}
        email = order.email or customer.get("email")

        name = None
        if order.billing_address and order.billing_address.company:
            name = company_name(order)
        name = name or address.full_name or email

        city = address.city
        state = address.province
        if lookup_region(address.province_code or address.province) == "Bucuresti":
            state = "Bucuresti"
            sector = bucharest_sector(address)
            if sector:
                city = f"Sector {sector}"

        return {
            "name": name,
            "code": str(customer.get("id") or email or order.id),
            "address": ", ".join(p for p in (address.street, address.zip) if p),
            "city": city,
            "state": state,
            "country": address.country or "Romania",
            "email": email or "",
            "phone": address.phone or order.phone or "",
            "contact": address.full_name,
        }

    def vat_percentage(self, item: LineItem) -> int:
        if item.tax_lines:
            rate = item.tax_lines[0].get("rate")
            if rate is not None:
                return round(float(rate) * 100)
        return self.vat_rate


def invoice_total(products: list[dict[str, Any]]) -> float:
    total = 0.0
    for product in products:
        if "discount" in product:
            total -= float(product["discount"])
        else:
            total += float(product.get("price", 0)) * float(product.get("quantity", 0))
    return round(total, 2)


__all__ = [
    "InvoiceOperation",
    "PLACEHOLDER_CLIENT",
    "bucharest_sector",
    "invoice_total",
    "sanitize_payload",
]
