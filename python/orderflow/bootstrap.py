"""Composition root.

Wires settings and collaborator implementations into a ready
WebhookProcessor. Nothing in orderflow reads settings on its own; this is
the only place where configuration turns into constructor arguments.

Example:
    >>> from orderflow.bootstrap import build_processor
    >>> from orderflow.config import get_settings
    >>>
    >>> processor = build_processor(
    ...     get_settings(),
    ...     state_store=ShopifyStateStore(session),
    ...     invoicing=OblioProvider(credentials),
    ...     shipping=CargusAdapter(credentials),
    ...     geography=CargusGeography(credentials),
    ... )
    >>> await processor.dispatch("orders/create", payload)
"""

from __future__ import annotations

from .config import OrderflowSettings
from .errors.error_classifier import ErrorClassifier
from .event_bridge import EventBridge
from .localities import LocalityResolver
from .logging import log_info
from .operations import InvoiceOperation, WaybillOperation
from .ports import GeographyService, InvoicingProvider, ShippingAdapter, StateStore, TaxAuthorityClient
from .rate_limiter import RateLimiter
from .retry import RetryOrchestrator, RetryStrategySelector
from .scheduler import AsyncioScheduler, Scheduler
from .verification import AnafClient, CompanyVerifier
from .webhooks import WebhookProcessor


def build_processor(
    settings: OrderflowSettings,
    *,
    state_store: StateStore,
    invoicing: InvoicingProvider,
    shipping: ShippingAdapter,
    geography: GeographyService,
    tax_authority: TaxAuthorityClient | None = None,
    scheduler: Scheduler | None = None,
    events: EventBridge | None = None,
) -> WebhookProcessor:
    """Build a WebhookProcessor from settings and collaborators.

    Args:
        settings: Loaded OrderflowSettings.
        state_store: Commerce-platform order state.
        invoicing: Invoicing provider.
        shipping: Courier adapter.
        geography: Courier gazetteer.
        tax_authority: Registry client; an AnafClient is built from the
            settings when omitted.
        scheduler: Timer shared by the rate limiter and the orchestrator.
        events: Lifecycle event bridge; started here if inactive.

    Returns:
        WebhookProcessor ready to dispatch webhooks.
    """
    scheduler = scheduler or AsyncioScheduler()
    if events is not None and not events.is_active:
        events.start()

    if tax_authority is None:
        tax_authority = AnafClient(
            base_url=settings.tax_authority_base_url,
            timeout=settings.tax_authority_timeout,
        )

    classifier = ErrorClassifier()
    rate_limiter = RateLimiter(settings.rate_limit_interval_ms, scheduler=scheduler)
    verifier = CompanyVerifier(
        tax_authority,
        rate_limiter,
        batch_size=settings.verification_batch_size,
        classifier=classifier,
    )
    resolver = LocalityResolver(geography, default_region=settings.default_region)

    invoice_operation = InvoiceOperation(
        invoicing,
        company_fiscal_id=settings.company_fiscal_id,
        verifier=verifier,
        series_name=settings.invoice_series,
        language=settings.invoice_language,
        currency=settings.currency,
        vat_rate=settings.vat_rate,
        send_email=settings.invoice_send_email,
        use_stock=settings.invoice_use_stock,
        management=settings.invoice_management,
    )
    waybill_operation = WaybillOperation(
        shipping,
        resolver,
        default_weight_kg=settings.default_parcel_weight_kg,
    )

    orchestrator = RetryOrchestrator(
        state_store,
        classifier=classifier,
        selector=RetryStrategySelector(alternate_series=settings.alternate_invoice_series),
        scheduler=scheduler,
        events=events,
        max_retries=settings.max_retries,
        attempts_per_delivery=settings.attempts_per_delivery,
    )

    log_info(
        "Orderflow processor built",
        {
            "max_retries": settings.max_retries,
            "attempts_per_delivery": settings.attempts_per_delivery,
            "auto_ship": settings.auto_ship,
            "courier": shipping.provider_name(),
        },
    )
    return WebhookProcessor(
        orchestrator,
        state_store,
        invoice_operation,
        waybill_operation=waybill_operation,
        shipping=shipping,
        auto_ship=settings.auto_ship,
        max_retries=settings.max_retries,
    )


__all__ = ["build_processor"]
