"""Company verification against the tax-authority registry.

CompanyVerifier normalizes fiscal identifiers, enforces the registry's
batch cap, spaces calls through the shared RateLimiter and turns
registry failures into classified errors. It never retries on its own;
the caller decides.

Example:
    >>> verifier = CompanyVerifier(AnafClient(), RateLimiter())
    >>> record = await verifier.verify("RO 14399840")
    >>> record.name
    'ACME SRL'
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from datetime import date
from typing import Any

import httpx

from orderflow.errors import (
    BatchTooLargeError,
    CompanyNotFoundError,
    InvalidFormatError,
    OrderflowError,
    ProviderError,
    RateLimitError,
    VerificationError,
)
from orderflow.errors.error_classifier import ErrorClassifier
from orderflow.logging import log_info, log_warn
from orderflow.ports import TaxAuthorityClient
from orderflow.rate_limiter import RateLimiter
from orderflow.types import BatchVerificationResult, CompanyRecord, Order

MAX_BATCH_SIZE = 100

_COUNTRY_PREFIX = re.compile(r"^[A-Z]{2}")
_NON_DIGITS = re.compile(r"\D")
_COMPANY_FISCAL_ID = re.compile(r"(?:CUI|CIF|RO)?\s*:?\s*([0-9]{2,10})", re.IGNORECASE)
_FISCAL_ID_LABEL = re.compile(r"\b(?:CUI|CIF)\b\s*:?", re.IGNORECASE)


def normalize_fiscal_id(identifier: str | int | None) -> str:
    """Normalize a fiscal identifier to its digits.

    Strips whitespace, uppercases, drops a two-letter country prefix and
    removes every remaining non-digit.

    Raises:
        InvalidFormatError: No digits remain, or the result is not
            2 to 10 digits long.

    Example:
        >>> normalize_fiscal_id(" ro 14399840 ")
        '14399840'
    """
    if identifier is None:
        raise InvalidFormatError("Fiscal identifier is required")

    text = "".join(str(identifier).split()).upper()
    text = _COUNTRY_PREFIX.sub("", text)
    digits = _NON_DIGITS.sub("", text)

    if not digits or int(digits) == 0:
        raise InvalidFormatError(f"Invalid fiscal identifier format: {identifier!r}")
    if not 2 <= len(digits) <= 10:
        raise InvalidFormatError(
            f"Fiscal identifier must have 2 to 10 digits: {identifier!r}"
        )
    return digits


def extract_fiscal_id(order: Order) -> str | None:
    """Find a fiscal identifier in the billing company line of an order.

    Example:
        >>> extract_fiscal_id(Order(id="1", billing_address={"company": "ACME SRL CUI: 14399840"}))
        '14399840'
    """
    company = order.billing_address.company if order.billing_address else None
    if not company or not company.strip():
        return None
    match = _COMPANY_FISCAL_ID.search(company)
    return match.group(1) if match else None


def company_name(order: Order) -> str | None:
    """Company name from the billing address, with the identifier removed."""
    company = order.billing_address.company if order.billing_address else None
    if not company or not company.strip():
        return None
    name = _COMPANY_FISCAL_ID.sub("", company)
    name = _FISCAL_ID_LABEL.sub("", name)
    name = re.sub(r"[\s,;:-]+$", "", name).strip()
    return name or company.strip()


class CompanyVerifier:
    """Validates fiscal identifiers and fetches company records.

    Attributes:
        batch_size: Maximum identifiers per registry call.
    """

    def __init__(
        self,
        client: TaxAuthorityClient,
        rate_limiter: RateLimiter,
        *,
        batch_size: int = MAX_BATCH_SIZE,
        classifier: ErrorClassifier | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the verifier.

        Args:
            client: Registry client.
            rate_limiter: Shared limiter; every registry call acquires it first.
            batch_size: Cap per call, at most 100.
            classifier: Classifier used to label failed batches.
            today: Provides the default lookup date.
        """
        self._client = client
        self._rate_limiter = rate_limiter
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)
        self._classifier = classifier or ErrorClassifier()
        self._today = today

    async def verify(self, identifier: str | int, on_date: date | None = None) -> CompanyRecord:
        """Look up one company.

        Raises:
            InvalidFormatError: The identifier has no usable digits.
            CompanyNotFoundError: The registry does not know the identifier.
            VerificationError: The registry call failed.
            RateLimitError: The registry throttled the call.
        """
        fiscal_id = normalize_fiscal_id(identifier)
        result = await self.verify_batch([fiscal_id], on_date)
        if not result.found:
            raise CompanyNotFoundError(fiscal_id)
        return result.found[0]

    async def verify_batch(
        self,
        identifiers: list[str | int],
        on_date: date | None = None,
    ) -> BatchVerificationResult:
        """Look up up to ``batch_size`` companies in one registry call.

        Duplicate identifiers are queried once.

        Raises:
            BatchTooLargeError: More identifiers than the cap.
            InvalidFormatError: Empty batch, or an identifier without digits.
            VerificationError: The registry call failed.
            RateLimitError: The registry throttled the call.
        """
        if len(identifiers) > self.batch_size:
            raise BatchTooLargeError(len(identifiers), self.batch_size)
        if not identifiers:
            raise InvalidFormatError("At least one fiscal identifier is required")

        normalized = list(dict.fromkeys(normalize_fiscal_id(i) for i in identifiers))
        lookup_date = on_date or self._today()

        await self._rate_limiter.acquire()
        try:
            raw = await self._client.verify_batch(normalized, lookup_date)
        except RateLimitError:
            raise
        except ProviderError as e:
            raise VerificationError(
                f"ANAF verification failed: {e.message}",
                status_code=e.status_code,
                code=e.code,
                status_message=e.status_message,
                details=e.details,
            ) from e
        except (httpx.TransportError, OSError) as e:
            raise VerificationError(f"ANAF verification failed: {e}") from e

        found = [CompanyRecord.from_registry(entry) for entry in raw.get("found") or []]
        not_found = [str(item) for item in raw.get("notFound") or []]
        log_info(
            "Tax authority lookup completed",
            {"requested": len(normalized), "found": len(found), "not_found": len(not_found)},
        )
        return BatchVerificationResult(found=found, not_found=not_found)

    async def verify_many(
        self,
        identifiers: list[str | int],
        on_date: date | None = None,
    ) -> list[BatchVerificationResult]:
        """Verify any number of identifiers in capped batches.

        Batches run concurrently and serialize on the rate limiter. A
        failed batch yields a result carrying ``error`` and ``error_kind``
        and does not affect the others.
        """
        chunks = [
            identifiers[i : i + self.batch_size]
            for i in range(0, len(identifiers), self.batch_size)
        ]
        results = await asyncio.gather(
            *(self.verify_batch(chunk, on_date) for chunk in chunks),
            return_exceptions=True,
        )

        outcomes: list[BatchVerificationResult] = []
        for chunk, result in zip(chunks, results):
            if isinstance(result, BatchVerificationResult):
                outcomes.append(result)
                continue
            if not isinstance(result, Exception):
                raise result
            log_warn(
                f"Verification batch failed: {result}",
                {"batch_size": len(chunk), "error_type": type(result).__name__},
            )
            outcomes.append(
                BatchVerificationResult(
                    error=str(result),
                    error_kind=self._classifier.classify(result),
                )
            )
        return outcomes

    async def enrich_client(self, client: dict[str, Any], identifier: str | int) -> dict[str, Any]:
        """Return a copy of an invoice client enriched with registry data.

        On any verification failure the copy is returned unchanged apart
        from ``verified=False`` and ``verificationError``.
        """
        enriched = dict(client)
        try:
            record = await self.verify(identifier)
        except OrderflowError as e:
            log_warn(
                f"Company verification unavailable, continuing with order data: {e.message}",
                {"fiscal_id": str(identifier), "error_type": type(e).__name__},
            )
            enriched["verified"] = False
            enriched["verificationError"] = e.message
            return enriched

        street = " ".join(p for p in (record.street, record.street_number) if p)
        enriched.update(
            {
                "name": record.name or client.get("name"),
                "cif": f"RO{record.fiscal_id}" if record.vat_payer else record.fiscal_id,
                "rc": record.registration_number or client.get("rc"),
                "address": street or record.address or client.get("address"),
                "city": record.locality or client.get("city"),
                "state": record.region or client.get("state"),
                "country": client.get("country") or "Romania",
                "zip": record.postal_code or client.get("zip"),
                "vatPayer": record.vat_payer,
                "verified": True,
                "verifiedAt": record.verified_at.isoformat(),
            }
        )
        return enriched


__all__ = [
    "CompanyVerifier",
    "MAX_BATCH_SIZE",
    "company_name",
    "extract_fiscal_id",
    "normalize_fiscal_id",
]
