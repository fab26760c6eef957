"""Collaborator interfaces consumed by the orchestration layer.

Each port is an abstract base class. Concrete implementations wrap a
provider's REST or GraphQL API and are injected through constructors;
this package ships only the tax-authority client
(:class:`orderflow.verification.anaf.AnafClient`).

Example:
    >>> class MyStore(StateStore):
    ...     async def get_order(self, order_id):
    ...         ...
    ...     async def set_tags(self, order_id, tags):
    ...         ...
    ...     async def set_fields(self, order_id, fields):
    ...         ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any

from .types import Order, OrderField


class StateStore(ABC):
    """Commerce-platform order state: the only durable store."""

    @abstractmethod
    async def get_order(self, order_id: str) -> Order:
        """Fetch the current order, including tags, fields and fulfillments."""
        ...

    @abstractmethod
    async def set_tags(self, order_id: str, tags: list[str]) -> None:
        """Replace the order's full tag set."""
        ...

    @abstractmethod
    async def set_fields(self, order_id: str, fields: list[OrderField]) -> None:
        """Upsert namespaced fields; an empty value clears a field."""
        ...


class InvoicingProvider(ABC):
    """Invoicing provider that issues fiscal invoices."""

    @abstractmethod
    async def create_invoice(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create an invoice.

        Returns:
            ``{"status": int, "data": {"number", "series", "url", "issueDate"}}``

        Raises:
            ProviderError: The provider rejected the request or was unreachable.
        """
        ...


class ShippingAdapter(ABC):
    """Courier provider that creates waybills."""

    @abstractmethod
    def build_waybill_payload(
        self,
        order: Order,
        package_info: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """Build the provider-specific waybill request."""
        ...

    @abstractmethod
    async def create_waybill(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a waybill.

        Returns:
            ``{"tracking_reference": str, "cost": float | None}`` plus
            any provider-specific keys.
        """
        ...

    @abstractmethod
    def tracking_url(self, reference: str) -> str:
        ...

    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def cancel_waybill(self, reference: str) -> bool:
        """Cancel a waybill; returns True when the courier confirmed it."""
        ...


class GeographyService(ABC):
    """Courier gazetteer of canonical locality names."""

    @abstractmethod
    async def localities(self, region: str) -> list[str]:
        """Canonical locality names within a canonical region."""
        ...


class TaxAuthorityClient(ABC):
    """Government company-registry lookup.

    Capped at 100 identifiers per call; callers must keep at least
    1000 ms between calls.
    """

    MAX_BATCH_SIZE = 100

    @abstractmethod
    async def verify_batch(self, identifiers: list[str], on_date: date) -> dict[str, Any]:
        """Look up a batch of normalized identifiers.

        Returns:
            ``{"found": [registry entries], "notFound": [identifiers]}``
        """
        ...


__all__ = [
    "GeographyService",
    "InvoicingProvider",
    "ShippingAdapter",
    "StateStore",
    "TaxAuthorityClient",
]
