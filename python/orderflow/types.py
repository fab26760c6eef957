"""Pydantic models for the orderflow orchestration layer.

This module provides the data models shared by every component: the
commerce-platform order view, the error and strategy taxonomy, company
registry records, locality matches and orchestration outcomes.

Sections:
- Taxonomy: ErrorKind, RetryStrategyType, PayloadModification
- Order state: Order and its nested records
- Collaborator results: CompanyRecord, LocalityCandidate, OperationResult
- Orchestration results: RetryAttempt, RetryOutcome, BatchRetrySummary
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# Taxonomy
# =============================================================================


class ErrorKind(str, Enum):
    """Closed set of failure categories.

    Every failure observed by the orchestrator maps to exactly one kind.
    """

    NETWORK = "network"
    """Transport failure, missing status, 5xx or 429 from a provider."""

    RATE_LIMITED = "rate_limited"
    """The tax-authority endpoint rejected the call for exceeding its rate."""

    VERIFICATION_ERROR = "verification_error"
    """The tax-authority lookup failed or was rejected."""

    CLIENT_DATA_ERROR = "client_data_error"
    """Client or address data was rejected."""

    PRODUCT_VALIDATION_ERROR = "product_validation_error"
    """Product or line-item data was rejected."""

    PROVIDER_VALIDATION_ERROR = "provider_validation_error"
    """A 400 or 422 from the invoicing or shipping provider."""

    SYSTEM_ERROR = "system_error"
    """Anything not covered above."""

    @classmethod
    def parse(cls, value: str | None) -> ErrorKind | None:
        """Parse a stored kind value, returning None for unknown input.

        Example:
            >>> ErrorKind.parse("network")
            <ErrorKind.NETWORK: 'network'>
            >>> ErrorKind.parse("bogus") is None
            True
        """
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class RetryStrategyType(str, Enum):
    """Strategy tags produced by the strategy selector."""

    STANDARD = "standard"
    NETWORK_RETRY = "network_retry"
    SKIP_VERIFICATION = "skip_verification"
    SIMPLIFIED_CLIENT = "simplified_client"
    EXCLUDE_PROBLEMATIC_ITEMS = "exclude_problematic_items"
    ALTERNATIVE_OPTIONS = "alternative_options"


class PayloadModification(str, Enum):
    """Payload mutations and feature toggles a strategy can request."""

    SKIP_VERIFICATION = "skip_verification"
    SIMPLIFIED_CLIENT = "simplified_client"
    EXCLUDE_SHIPPING = "exclude_shipping"
    RELAX_PRODUCT_VALIDATION = "relax_product_validation"
    ALTERNATE_SERIES = "alternate_series"
    DISABLE_STOCK = "disable_stock"
    DISABLE_EMAIL = "disable_email"


class RetryStrategy(BaseModel):
    """A retry strategy: backoff plus payload modifications.

    Strategies are immutable values; two strategies built from the same
    inputs compare equal.

    Example:
        >>> strategy = RetryStrategy(
        ...     type=RetryStrategyType.SKIP_VERIFICATION,
        ...     modifications=frozenset({PayloadModification.SKIP_VERIFICATION}),
        ... )
        >>> strategy.has(PayloadModification.SKIP_VERIFICATION)
        True
    """

    type: RetryStrategyType = Field(
        default=RetryStrategyType.STANDARD,
        description="Strategy tag.",
    )
    backoff_ms: int = Field(
        default=0,
        ge=0,
        description="Delay before the attempt, in milliseconds.",
    )
    modifications: frozenset[PayloadModification] = Field(
        default_factory=frozenset,
        description="Payload mutations consumed by the retried operation.",
    )
    series_name: str | None = Field(
        default=None,
        description="Alternate document series, when ALTERNATE_SERIES is requested.",
    )

    model_config = {"frozen": True}

    def has(self, modification: PayloadModification) -> bool:
        """Check whether the strategy requests a modification."""
        return modification in self.modifications

    @property
    def is_noop(self) -> bool:
        """True when the strategy neither waits nor mutates anything."""
        return self.backoff_ms == 0 and not self.modifications


class OrchestrationState(str, Enum):
    """States of the per-order retry state machine."""

    START = "start"
    CHECK_EXISTING = "check_existing"
    SKIPPED = "skipped"
    ATTEMPTING = "attempting"
    RETRY_WAIT = "retry_wait"
    SUCCESS = "success"
    FINAL_FAILURE = "final_failure"

    @property
    def is_terminal(self) -> bool:
        return self in (
            OrchestrationState.SKIPPED,
            OrchestrationState.SUCCESS,
            OrchestrationState.FINAL_FAILURE,
        )


# =============================================================================
# Order state
# =============================================================================


class Address(BaseModel):
    """Postal address as delivered by the commerce platform."""

    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    company: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    province_code: str | None = None
    zip: str | None = None
    country: str | None = None
    country_code: str | None = None
    phone: str | None = None

    model_config = {"extra": "ignore"}

    @property
    def full_name(self) -> str:
        if self.name:
            return self.name.strip()
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()

    @property
    def street(self) -> str:
        return " ".join(p for p in (self.address1, self.address2) if p).strip()


class LineItem(BaseModel):
    """Order line item."""

    id: str | None = None
    title: str | None = None
    name: str | None = None
    sku: str | None = None
    quantity: int = 0
    price: float = 0.0
    total_discount: float = 0.0
    requires_shipping: bool = True
    grams: int = 0
    tax_lines: list[dict[str, Any]] = Field(default_factory=list)
    discount_allocations: list[dict[str, Any]] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class ShippingLine(BaseModel):
    """Shipping charge attached to an order."""

    title: str | None = None
    code: str | None = None
    price: float = 0.0

    model_config = {"extra": "ignore"}


class Fulfillment(BaseModel):
    """Fulfillment record; carries a tracking reference once shipped."""

    id: str | None = None
    status: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    tracking_company: str | None = None
    created_at: datetime | None = None

    model_config = {"extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class OrderField(BaseModel):
    """A namespaced key/value field stored on the order.

    Example:
        >>> OrderField(namespace="invoice", key="number", value="42").qualified_key
        'invoice.number'
    """

    namespace: str = Field(description="Field namespace.")
    key: str = Field(description="Field key within the namespace.")
    value: str = Field(description="Field value; an empty string clears it.")
    type: str = Field(
        default="single_line_text_field",
        description="Platform field type.",
    )

    @property
    def qualified_key(self) -> str:
        return f"{self.namespace}.{self.key}"


class Order(BaseModel):
    """The commerce-platform order as seen by this layer.

    Tags arrive as a comma-joined string and are held as a set. Fields
    are keyed by ``namespace.key``.
    """

    id: str = Field(description="Platform order identifier.")
    name: str | None = Field(default=None, description="Display name, e.g. #1001.")
    order_number: int | None = None
    email: str | None = None
    phone: str | None = None
    financial_status: str | None = None
    fulfillment_status: str | None = None
    currency: str | None = None
    total_price: float | None = None
    total_discounts: float = 0.0
    taxes_included: bool = False
    tags: set[str] = Field(default_factory=set)
    fields: dict[str, str] = Field(default_factory=dict)
    fulfillments: list[Fulfillment] = Field(default_factory=list)
    line_items: list[LineItem] = Field(default_factory=list)
    shipping_lines: list[ShippingLine] = Field(default_factory=list)
    billing_address: Address | None = None
    shipping_address: Address | None = None
    customer: dict[str, Any] | None = None
    refunds: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime | None = None
    processed_at: datetime | None = None

    model_config = {"extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        if value is None:
            return set()
        if isinstance(value, str):
            return {tag.strip() for tag in value.split(",") if tag.strip()}
        return value

    def field(self, namespace: str, key: str) -> str | None:
        """Return a field value, treating empty strings as absent."""
        value = self.fields.get(f"{namespace}.{key}")
        return value or None

    @property
    def tags_string(self) -> str:
        """Tags in wire form: sorted and comma-joined."""
        return ", ".join(sorted(self.tags))

    @property
    def display_name(self) -> str:
        return self.name or self.id


# =============================================================================
# Collaborator results
# =============================================================================


class CompanyRecord(BaseModel):
    """Company data returned by the tax-authority registry."""

    fiscal_id: str = Field(description="Normalized fiscal identifier, digits only.")
    name: str = Field(default="", description="Legal name.")
    registration_number: str | None = None
    address: str | None = None
    street: str | None = None
    street_number: str | None = None
    locality: str | None = None
    region: str | None = None
    country: str | None = None
    postal_code: str | None = None
    phone: str | None = None
    vat_payer: bool = False
    active: bool = True
    e_invoice: bool = False
    verified_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_registry(cls, payload: dict[str, Any]) -> CompanyRecord:
        """Build a record from one entry of the registry ``found`` list.

        The registry groups data in sections; only the ones this layer
        uses are read.

        Example:
            >>> record = CompanyRecord.from_registry({
            ...     "date_generale": {"cui": 14399840, "denumire": "ACME SRL"},
            ...     "inregistrare_scop_Tva": {"scpTVA": True},
            ... })
            >>> record.fiscal_id, record.vat_payer
            ('14399840', True)
        """
        general = payload.get("date_generale") or {}
        vat = payload.get("inregistrare_scop_Tva") or {}
        inactive = payload.get("stare_inactiv") or {}
        fiscal = payload.get("adresa_domiciliu_fiscal") or {}

        def _clean(value: Any) -> str | None:
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        return cls(
            fiscal_id=str(general.get("cui", "")).strip(),
            name=_clean(general.get("denumire")) or "",
            registration_number=_clean(general.get("nrRegCom")),
            address=_clean(general.get("adresa")),
            phone=_clean(general.get("telefon")),
            postal_code=_clean(general.get("codPostal") or fiscal.get("dcod_Postal")),
            e_invoice=bool(general.get("statusRO_e_Factura", False)),
            vat_payer=bool(vat.get("scpTVA", False)),
            active=not bool(inactive.get("statusInactivi", False)),
            street=_clean(fiscal.get("ddenumire_Strada")),
            street_number=_clean(fiscal.get("dnumar_Strada")),
            locality=_clean(fiscal.get("ddenumire_Localitate")),
            region=_clean(fiscal.get("ddenumire_Judet")),
            country=_clean(fiscal.get("dtara")),
        )


class BatchVerificationResult(BaseModel):
    """Outcome of one batch lookup."""

    found: list[CompanyRecord] = Field(default_factory=list)
    not_found: list[str] = Field(default_factory=list)
    error: str | None = Field(
        default=None,
        description="Set when the whole batch failed; found/not_found are then empty.",
    )
    error_kind: ErrorKind | None = None


class LocalityMatchMethod(str, Enum):
    """Cascade step that produced a locality match."""

    EXACT = "exact"
    SUBSTRING = "substring"
    AFFIX_STRIPPED = "affix_stripped"


class LocalityCandidate(BaseModel):
    """A free-text locality resolved to the courier's canonical name."""

    raw_name: str = Field(description="Locality as written in the address.")
    canonical_name: str = Field(description="Locality name from the courier gazetteer.")
    region: str = Field(description="Canonical region the locality belongs to.")
    method: LocalityMatchMethod = Field(description="Cascade step that matched.")


class IdempotencyCheck(BaseModel):
    """Result of checking whether a side effect already happened."""

    exists: bool = False
    reference: str | None = None
    created_at: str | None = None
    source: str | None = Field(
        default=None,
        description="Which check produced the hit: field, fulfillment or tag.",
    )


class OperationResult(BaseModel):
    """Successful result of a side-effecting operation."""

    reference: str = Field(description="Document reference: invoice number or tracking reference.")
    fields: dict[str, str] = Field(
        default_factory=dict,
        description="Extra fields to record under the operation namespace.",
    )
    created_at: datetime = Field(default_factory=utc_now)
    details: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Orchestration results
# =============================================================================


class RetryAttempt(BaseModel):
    """One attempt inside a retry cycle. Never persisted as such."""

    attempt: int = Field(ge=1)
    strategy_type: RetryStrategyType = RetryStrategyType.STANDARD
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    started_at: datetime = Field(default_factory=utc_now)


class PreviousError(BaseModel):
    """Caller-supplied metadata about the failure that triggered a retry."""

    error_kind: ErrorKind | None = None
    message: str | None = None
    status_code: int | None = None
    retryable: bool | None = Field(
        default=None,
        description="False stops the run before any attempt.",
    )


class RetryOutcome(BaseModel):
    """Terminal outcome of one orchestration run."""

    order_id: str
    operation: str
    state: OrchestrationState
    attempt_number: int = Field(
        default=0,
        description="Last attempt number reached, 0 when nothing was attempted.",
    )
    attempts: list[RetryAttempt] = Field(default_factory=list)
    reference: str | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    status_code: int | None = None
    retryable: bool = False
    exhausted: bool = False
    state_persisted: bool = True
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.state == OrchestrationState.SUCCESS

    @property
    def skipped(self) -> bool:
        return self.state == OrchestrationState.SKIPPED


class BatchRetrySummary(BaseModel):
    """Aggregate of a batch retry run."""

    total: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    success_rate: float = 0.0
    outcomes: list[RetryOutcome] = Field(default_factory=list)


class WebhookAck(BaseModel):
    """Acknowledgement returned for every webhook delivery."""

    received: bool = True
    topic: str
    order_id: str | None = None
    outcomes: list[RetryOutcome] = Field(default_factory=list)
    message: str | None = None
    requires_manual_intervention: bool = False


class LogContext(BaseModel):
    """Context fields for structured logging.

    Example:
        >>> context = LogContext(order_id="1001", operation="invoice", attempt=2)
        >>> log_info("Attempt started", context)
    """

    correlation_id: str | None = Field(
        default=None,
        description="Correlation ID for request tracing.",
    )
    order_id: str | None = Field(default=None, description="Order identifier.")
    operation: str | None = Field(default=None, description="Operation name.")
    attempt: int | None = Field(default=None, description="Attempt number.")
    error_kind: str | None = Field(default=None, description="Classified error kind.")
    strategy: str | None = Field(default=None, description="Strategy type applied.")


__all__ = [
    "Address",
    "BatchRetrySummary",
    "BatchVerificationResult",
    "CompanyRecord",
    "ErrorKind",
    "Fulfillment",
    "IdempotencyCheck",
    "LineItem",
    "LocalityCandidate",
    "LocalityMatchMethod",
    "LogContext",
    "OperationResult",
    "OrchestrationState",
    "Order",
    "OrderField",
    "PayloadModification",
    "PreviousError",
    "RetryAttempt",
    "RetryOutcome",
    "RetryStrategy",
    "RetryStrategyType",
    "ShippingLine",
    "WebhookAck",
    "utc_now",
]
