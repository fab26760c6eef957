"""Company verification against the tax-authority registry."""

from __future__ import annotations

from .anaf import AnafClient
from .verifier import (
    MAX_BATCH_SIZE,
    CompanyVerifier,
    company_name,
    extract_fiscal_id,
    normalize_fiscal_id,
)

__all__ = [
    "AnafClient",
    "CompanyVerifier",
    "MAX_BATCH_SIZE",
    "company_name",
    "extract_fiscal_id",
    "normalize_fiscal_id",
]
