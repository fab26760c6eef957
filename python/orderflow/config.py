"""Settings for orderflow components.

Settings are read from ``ORDERFLOW_*`` environment variables or a
``.env`` file. Components never read settings on their own; the
composition root passes the values they need into their constructors.

Example:
    >>> from orderflow.config import get_settings
    >>> settings = get_settings()
    >>> settings.max_retries
    3
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrderflowSettings(BaseSettings):
    """Process-wide orderflow configuration."""

    # Retry loop
    max_retries: int = Field(
        default=3,
        ge=1,
        description="Upper bound on the attempt number persisted across deliveries.",
    )
    attempts_per_delivery: int = Field(
        default=1,
        ge=1,
        description="Attempts made within a single webhook delivery.",
    )

    # Tax authority
    tax_authority_base_url: str = Field(
        default="https://webservicesp.anaf.ro/api/PlatitorTvaRest/v9",
    )
    tax_authority_timeout: float = Field(default=30.0, gt=0)
    rate_limit_interval_ms: int = Field(
        default=1000,
        ge=0,
        description="Minimum interval between tax-authority calls.",
    )
    verification_batch_size: int = Field(default=100, ge=1, le=100)

    # Invoicing
    company_fiscal_id: str = Field(
        default="",
        description="Fiscal identifier of the issuing company.",
    )
    invoice_management: str | None = Field(default=None, description="Stock management name.")
    invoice_series: str = Field(default="PRS")
    alternate_invoice_series: str = Field(default="FACT")
    invoice_language: str = Field(default="RO")
    currency: str = Field(default="RON")
    vat_rate: int = Field(default=21, ge=0)
    invoice_send_email: bool = Field(default=True)
    invoice_use_stock: bool = Field(default=True)

    # Shipping
    auto_ship: bool = Field(default=True)
    default_region: str = Field(default="Bucuresti")
    default_parcel_weight_kg: float = Field(default=1.0, gt=0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="ORDERFLOW_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> OrderflowSettings:
    """Load settings once per process."""
    return OrderflowSettings()


__all__ = ["OrderflowSettings", "get_settings"]
