"""HTTP client for the ANAF VAT-payer registry.

The registry accepts up to 100 fiscal identifiers per call as
``POST /tva`` with ``[{"cui": <int>, "data": "YYYY-MM-DD"}]`` and answers
``{"cod", "message", "found", "notFound"}``. Spacing calls one second
apart is the caller's job (see :class:`orderflow.rate_limiter.RateLimiter`).
"""

from __future__ import annotations

from datetime import date
from typing import Any

import httpx

from orderflow.api import ApiClient
from orderflow.errors import BatchTooLargeError, ProviderError
from orderflow.logging import log_debug
from orderflow.ports import TaxAuthorityClient

DEFAULT_BASE_URL = "https://webservicesp.anaf.ro/api/PlatitorTvaRest/v9"


class AnafClient(ApiClient, TaxAuthorityClient):
    """TaxAuthorityClient backed by the public ANAF REST endpoint.

    Example:
        >>> client = AnafClient()
        >>> result = await client.verify_batch(["14399840"], date.today())
        >>> result["found"][0]["date_generale"]["denumire"]
        'ACME SRL'
    """

    base_url = DEFAULT_BASE_URL
    default_timeout = 30.0
    default_headers = {"Content-Type": "application/json"}

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)

    async def verify_batch(self, identifiers: list[str], on_date: date) -> dict[str, Any]:
        """Look up a batch of normalized fiscal identifiers.

        Args:
            identifiers: Digits-only identifiers, at most 100.
            on_date: Date the VAT status is requested for.

        Returns:
            ``{"found": [...], "notFound": [...]}`` with registry entries
            as returned by ANAF.

        Raises:
            BatchTooLargeError: More than 100 identifiers.
            NetworkError: The registry was unreachable.
            ProviderError: The registry answered with an error.
        """
        if len(identifiers) > self.MAX_BATCH_SIZE:
            raise BatchTooLargeError(len(identifiers), self.MAX_BATCH_SIZE)

        payload = [{"cui": int(cui), "data": on_date.isoformat()} for cui in identifiers]
        log_debug("Querying tax authority", {"count": len(payload)})

        response = await self.post("/tva", json=payload)
        response.raise_for_failure()

        body = response.body
        if not isinstance(body, dict):
            raise ProviderError(
                "Tax authority returned an unexpected response body",
                status_code=response.status_code,
                details=body,
            )

        code = body.get("cod")
        if code is not None and code != 200:
            raise ProviderError(
                f"Tax authority error: {body.get('message') or 'unknown error'}",
                status_code=code if isinstance(code, int) else None,
                details=body,
            )

        return {
            "found": list(body.get("found") or []),
            "notFound": [str(item) for item in body.get("notFound") or []],
        }


__all__ = ["DEFAULT_BASE_URL", "AnafClient"]
