"""pytest configuration and fixtures for orderflow tests.

This module provides shared fixtures for testing orderflow, including a
virtual-clock scheduler, an in-memory order store, fake providers and
order factories.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from typing import Any

import pytest

from orderflow import EventBridge
from orderflow.ports import GeographyService, InvoicingProvider, ShippingAdapter, StateStore
from orderflow.scheduler import CancellationToken, Scheduler
from orderflow.types import Order, OrderField

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

# One entry of the tax-authority "found" list
REGISTRY_ENTRY: dict[str, Any] = {
    "date_generale": {
        "cui": 14399840,
        "denumire": "ACME SOFTWARE SRL",
        "nrRegCom": "J12/1234/2001",
        "adresa": "MUN. CLUJ-NAPOCA, STR. MEMORANDUMULUI, NR.10",
        "telefon": "0264000000",
        "codPostal": "400114",
        "statusRO_e_Factura": True,
    },
    "inregistrare_scop_Tva": {"scpTVA": True},
    "stare_inactiv": {"statusInactivi": False},
    "adresa_domiciliu_fiscal": {
        "ddenumire_Strada": "Str. Memorandumului",
        "dnumar_Strada": "10",
        "ddenumire_Localitate": "Mun. Cluj-Napoca",
        "ddenumire_Judet": "CLUJ",
        "dtara": "",
    },
}


# =============================================================================
# Fakes
# =============================================================================


class FakeScheduler(Scheduler):
    """Virtual clock: sleeping advances time instantly and is recorded."""

    def __init__(self, start: float = 0.0) -> None:
        self.time = start
        self.sleeps: list[int] = []

    def now(self) -> float:
        return self.time

    async def sleep(self, ms: int, token: CancellationToken | None = None) -> bool:
        if token is not None and token.cancelled:
            return False
        self.sleeps.append(ms)
        if ms > 0:
            self.time += ms / 1000
        # let other tasks run, as a real sleep would
        await asyncio.sleep(0)
        return True

    def advance(self, ms: int) -> None:
        self.time += ms / 1000


class InMemoryStateStore(StateStore):
    """StateStore keeping orders in a dict and recording every write."""

    def __init__(self, *orders: Order) -> None:
        self.orders: dict[str, Order] = {order.id: order for order in orders}
        self.tag_writes: list[tuple[str, list[str]]] = []
        self.field_writes: list[tuple[str, list[OrderField]]] = []
        self.fail_reads: Exception | None = None
        self.fail_writes: Exception | None = None

    def add(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    async def get_order(self, order_id: str) -> Order:
        if self.fail_reads is not None:
            raise self.fail_reads
        return self.orders[order_id].model_copy(deep=True)

    async def set_tags(self, order_id: str, tags: list[str]) -> None:
        if self.fail_writes is not None:
            raise self.fail_writes
        self.tag_writes.append((order_id, list(tags)))
        self.orders[order_id].tags = set(tags)

    async def set_fields(self, order_id: str, fields: list[OrderField]) -> None:
        if self.fail_writes is not None:
            raise self.fail_writes
        self.field_writes.append((order_id, list(fields)))
        stored = self.orders[order_id].fields
        for field in fields:
            if field.value:
                stored[field.qualified_key] = field.value
            else:
                stored.pop(field.qualified_key, None)


class FakeInvoicingProvider(InvoicingProvider):
    """Returns queued results in order; an exception in the queue is raised."""

    def __init__(self, *results: dict[str, Any] | Exception) -> None:
        self.results = list(results)
        self.payloads: list[dict[str, Any]] = []
        self.counter = 100

    async def create_invoice(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.payloads.append(payload)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        self.counter += 1
        return {
            "status": 200,
            "data": {
                "seriesName": payload["seriesName"],
                "number": str(self.counter),
                "link": f"https://invoices.example.com/{self.counter}",
            },
        }

    @property
    def calls(self) -> int:
        return len(self.payloads)


class FakeShippingAdapter(ShippingAdapter):
    """Courier fake; queued results behave like FakeInvoicingProvider's."""

    def __init__(self, *results: dict[str, Any] | Exception) -> None:
        self.results = list(results)
        self.payloads: list[dict[str, Any]] = []
        self.cancelled: list[str] = []
        self.cancel_result: bool | Exception = True
        self.counter = 9000

    def build_waybill_payload(
        self,
        order: Order,
        package_info: dict[str, Any],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        return {"order": order.id, "package": package_info, **options}

    async def create_waybill(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.payloads.append(payload)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        self.counter += 1
        return {"tracking_reference": f"AWB{self.counter}", "cost": 18.5}

    def tracking_url(self, reference: str) -> str:
        return f"https://track.example.com/{reference}"

    def provider_name(self) -> str:
        return "FakeCourier"

    async def cancel_waybill(self, reference: str) -> bool:
        self.cancelled.append(reference)
        if isinstance(self.cancel_result, Exception):
            raise self.cancel_result
        return self.cancel_result

    @property
    def calls(self) -> int:
        return len(self.payloads)


class FakeGeographyService(GeographyService):
    """Gazetteer backed by a dict of region -> locality names."""

    def __init__(self, localities: dict[str, list[str]] | None = None) -> None:
        self.data = localities or {}
        self.requests: list[str] = []

    async def localities(self, region: str) -> list[str]:
        self.requests.append(region)
        return list(self.data.get(region, []))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def event_bridge() -> Generator[EventBridge, None, None]:
    """Provide a started EventBridge, stopped after the test."""
    bridge = EventBridge()
    bridge.start()
    yield bridge
    bridge.stop()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Fixed clock for timestamps written to orders."""
    return lambda: FIXED_NOW


@pytest.fixture
def make_order() -> Callable[..., Order]:
    """Factory for a typical Romanian B2C order; keyword arguments override."""

    def factory(order_id: str = "1001", **overrides: Any) -> Order:
        data: dict[str, Any] = {
            "id": order_id,
            "name": f"#{order_id}",
            "order_number": int(order_id) if order_id.isdigit() else None,
            "email": "ana.pop@example.com",
            "financial_status": "paid",
            "currency": "RON",
            "total_price": 219.0,
            "taxes_included": True,
            "tags": "",
            "line_items": [
                {
                    "id": 1,
                    "title": "Ceramic mug",
                    "sku": "MUG-01",
                    "quantity": 2,
                    "price": 50.0,
                    "grams": 400,
                },
                {
                    "id": 2,
                    "title": "Tea sampler",
                    "sku": "TEA-07",
                    "quantity": 1,
                    "price": 99.0,
                    "grams": 250,
                },
            ],
            "shipping_lines": [{"title": "Courier", "price": 20.0}],
            "billing_address": {
                "first_name": "Ana",
                "last_name": "Pop",
                "address1": "Str. Memorandumului 10",
                "city": "Cluj-Napoca",
                "province": "Cluj",
                "province_code": "CJ",
                "zip": "400114",
                "country": "Romania",
                "phone": "0722000000",
            },
            "shipping_address": {
                "first_name": "Ana",
                "last_name": "Pop",
                "address1": "Str. Memorandumului 10",
                "city": "Cluj-Napoca",
                "province": "Cluj",
                "province_code": "CJ",
                "zip": "400114",
                "country": "Romania",
            },
            "customer": {"id": 555, "email": "ana.pop@example.com"},
            "processed_at": "2024-05-01T10:00:00+00:00",
        }
        data.update(overrides)
        return Order.model_validate(data)

    return factory


@pytest.fixture
def gazetteer() -> FakeGeographyService:
    return FakeGeographyService(
        {
            "Cluj": ["Cluj-Napoca", "Floresti", "Apahida", "Turda"],
            "Timis": ["Timisoara", "Lugoj", "Dumbravita"],
            "Bucuresti": ["Bucuresti"],
            "Sibiu": ["Sibiu", "Ocna Sibiului", "Talmaciu"],
        }
    )


# Markers for test categorization
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests that talk to real provider sandboxes",
    )
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow running",
    )
