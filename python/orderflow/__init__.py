"""
Orderflow

Durable, bounded retries for order side effects: fiscal invoices and
courier waybills created from commerce-platform webhooks. Retry state
lives on the order itself, so redelivered webhooks resume where the
previous delivery stopped and never create a document twice.

Example:
    >>> import orderflow
    >>> orderflow.__version__
    '0.1.0'

    >>> # Wire a processor from settings and your provider adapters
    >>> from orderflow import build_processor, get_settings
    >>> processor = build_processor(
    ...     get_settings(),
    ...     state_store=store,
    ...     invoicing=invoicing,
    ...     shipping=courier,
    ...     geography=gazetteer,
    ... )
    >>> ack = await processor.dispatch("orders/create", {"id": 1001})

    >>> # Or drive one operation directly
    >>> from orderflow import RetryOrchestrator
    >>> outcome = await RetryOrchestrator(store).run("1001", invoice_operation)
"""

from __future__ import annotations

__version__ = "0.1.0"

from orderflow.bootstrap import build_processor
from orderflow.config import OrderflowSettings, get_settings
from orderflow.errors import (
    BatchTooLargeError,
    ClientDataError,
    CompanyNotFoundError,
    ConfigurationError,
    InvalidFormatError,
    LocalityNotFoundError,
    NetworkError,
    OrderflowError,
    ProductValidationError,
    ProviderError,
    RateLimitError,
    VerificationError,
)
from orderflow.errors.error_classifier import ErrorClassifier, is_retryable
from orderflow.event_bridge import EventBridge, EventNames
from orderflow.localities import LocalityResolver, resolve_region
from orderflow.logging import log_debug, log_error, log_info, log_warn, setup_logging
from orderflow.operations import InvoiceOperation, SideEffectOperation, WaybillOperation
from orderflow.ports import (
    GeographyService,
    InvoicingProvider,
    ShippingAdapter,
    StateStore,
    TaxAuthorityClient,
)
from orderflow.rate_limiter import RateLimiter
from orderflow.retry import IdempotencyGuard, RetryOrchestrator, RetryStrategySelector
from orderflow.scheduler import AsyncioScheduler, CancellationToken, Scheduler
from orderflow.types import (
    BatchRetrySummary,
    BatchVerificationResult,
    CompanyRecord,
    ErrorKind,
    IdempotencyCheck,
    LocalityCandidate,
    LocalityMatchMethod,
    OperationResult,
    OrchestrationState,
    Order,
    OrderField,
    PayloadModification,
    PreviousError,
    RetryOutcome,
    RetryStrategy,
    RetryStrategyType,
    WebhookAck,
)
from orderflow.verification import AnafClient, CompanyVerifier
from orderflow.webhooks import (
    FulfillmentCancelledEvent,
    OrderCreatedEvent,
    OrderUpdatedEvent,
    WebhookProcessor,
)

__all__ = [
    "__version__",
    # Composition
    "build_processor",
    "OrderflowSettings",
    "get_settings",
    # Errors
    "BatchTooLargeError",
    "ClientDataError",
    "CompanyNotFoundError",
    "ConfigurationError",
    "ErrorClassifier",
    "InvalidFormatError",
    "LocalityNotFoundError",
    "NetworkError",
    "OrderflowError",
    "ProductValidationError",
    "ProviderError",
    "RateLimitError",
    "VerificationError",
    "is_retryable",
    # Events
    "EventBridge",
    "EventNames",
    # Logging
    "log_debug",
    "log_error",
    "log_info",
    "log_warn",
    "setup_logging",
    # Components
    "AnafClient",
    "AsyncioScheduler",
    "CancellationToken",
    "CompanyVerifier",
    "IdempotencyGuard",
    "InvoiceOperation",
    "LocalityResolver",
    "RateLimiter",
    "RetryOrchestrator",
    "RetryStrategySelector",
    "Scheduler",
    "SideEffectOperation",
    "WaybillOperation",
    "WebhookProcessor",
    "resolve_region",
    # Ports
    "GeographyService",
    "InvoicingProvider",
    "ShippingAdapter",
    "StateStore",
    "TaxAuthorityClient",
    # Types
    "BatchRetrySummary",
    "BatchVerificationResult",
    "CompanyRecord",
    "ErrorKind",
    "FulfillmentCancelledEvent",
    "IdempotencyCheck",
    "LocalityCandidate",
    "LocalityMatchMethod",
    "OperationResult",
    "OrchestrationState",
    "Order",
    "OrderCreatedEvent",
    "OrderField",
    "OrderUpdatedEvent",
    "PayloadModification",
    "PreviousError",
    "RetryOutcome",
    "RetryStrategy",
    "RetryStrategyType",
    "WebhookAck",
]
