"""Shared HTTP client plumbing for provider clients.

ApiClient wraps a lazily created ``httpx.AsyncClient`` and converts
transport failures and non-2xx answers into ProviderError subclasses
that the ErrorClassifier understands.

Example:
    >>> class RegistryClient(ApiClient):
    ...     base_url = "https://registry.example.com/api"
    ...
    ...     async def lookup(self, ids):
    ...         response = await self.post("/lookup", json=ids)
    ...         return response.body
"""

from __future__ import annotations

from typing import Any

import httpx

from .errors import NetworkError, ProviderError, RateLimitError
from .logging import log_debug, log_warn

# HTTP status code classifications
CLIENT_ERROR_CODES = range(400, 500)
SERVER_ERROR_CODES = range(500, 600)

# Body keys that commonly carry a provider's error message
ERROR_MESSAGE_KEYS = ("message", "error", "statusMessage", "detail", "errors")


class ApiResponse:
    """Response wrapper for provider calls.

    Attributes:
        status_code: HTTP status code.
        headers: Response headers.
        body: Response body (parsed JSON or raw text).
        raw_response: The underlying httpx.Response object.
    """

    def __init__(
        self,
        response: httpx.Response,
        body: dict[str, Any] | list[Any] | str | None = None,
    ) -> None:
        self.status_code: int = response.status_code
        self.headers: dict[str, str] = dict(response.headers)
        self.raw_response: httpx.Response = response

        if body is not None:
            self.body = body
        else:
            content_type = response.headers.get("content-type", "")
            if "application/json" in content_type:
                try:
                    self.body: dict[str, Any] | list[Any] | str | None = response.json()
                except ValueError:
                    self.body = response.text
            else:
                self.body = response.text

    @property
    def ok(self) -> bool:
        """Check if the response indicates success (2xx status)."""
        return 200 <= self.status_code < 300

    @property
    def is_client_error(self) -> bool:
        return self.status_code in CLIENT_ERROR_CODES

    @property
    def is_server_error(self) -> bool:
        return self.status_code in SERVER_ERROR_CODES

    @property
    def retry_after(self) -> int | None:
        """Get the Retry-After header value in seconds, if present."""
        retry_after = self.headers.get("retry-after")
        if retry_after is None:
            return None
        try:
            return int(retry_after)
        except ValueError:
            # HTTP-date form
            return 60

    def error_message(self) -> str:
        """Best-effort provider error message for a failed response."""
        if isinstance(self.body, dict):
            for key in ERROR_MESSAGE_KEYS:
                value = self.body.get(key)
                if isinstance(value, str) and value:
                    return value
                if isinstance(value, list) and value:
                    return "; ".join(str(v) for v in value)
                if isinstance(value, dict) and value.get("message"):
                    return str(value["message"])
        if isinstance(self.body, str) and self.body.strip():
            return self.body.strip()[:200]
        return f"HTTP {self.status_code}"

    def raise_for_failure(self) -> None:
        """Raise the ProviderError matching a non-2xx answer.

        Raises:
            RateLimitError: On 429.
            ProviderError: On any other non-2xx status.
        """
        if self.ok:
            return
        message = self.error_message()
        reason = self.raw_response.reason_phrase or None
        if self.status_code == 429:
            raise RateLimitError(
                message,
                retry_after=self.retry_after,
                status_message=reason,
                details=self.body,
            )
        raise ProviderError(
            message,
            status_code=self.status_code,
            status_message=reason,
            details=self.body,
        )


class ApiClient:
    """Base class for async provider clients.

    Class Attributes:
        base_url: Base URL for API calls. Can be overridden per-instance.
        default_timeout: Default request timeout in seconds.
        default_headers: Default headers to include in all requests.
    """

    base_url: str = ""
    default_timeout: float = 30.0
    default_headers: dict[str, str] = {}

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Overrides the class base_url.
            timeout: Overrides the class default_timeout.
            transport: Custom httpx transport, e.g. ``httpx.MockTransport``.
        """
        if base_url is not None:
            self.base_url = base_url
        if timeout is not None:
            self.default_timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.default_timeout,
                headers=self.default_headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", path, json=json, **kwargs)

    async def request(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        """Make an HTTP request, mapping transport failures to NetworkError.

        Args:
            method: HTTP method (GET, POST, ...).
            path: URL path (appended to base_url).
            **kwargs: Arguments passed to httpx.AsyncClient.request().

        Returns:
            ApiResponse wrapping the response; non-2xx answers are returned,
            not raised.

        Raises:
            NetworkError: The request failed before a response arrived.
        """
        log_debug(f"{method} {self.base_url}{path}")
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            log_warn(f"{method} {path} timed out", {"error_type": type(e).__name__})
            raise NetworkError(f"Request timed out: {e}", code="ETIMEDOUT") from e
        except httpx.TransportError as e:
            log_warn(f"{method} {path} failed", {"error_type": type(e).__name__})
            raise NetworkError(f"Connection failed: {e}", code=_transport_code(e)) from e
        return ApiResponse(response)


def _transport_code(error: httpx.TransportError) -> str:
    if isinstance(error, httpx.ConnectError):
        return "ECONNREFUSED"
    if isinstance(error, httpx.RemoteProtocolError):
        return "ECONNRESET"
    return "ENETWORK"


__all__ = ["ApiClient", "ApiResponse"]
