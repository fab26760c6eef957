"""Error classes for the orderflow orchestration layer.

Two families of errors live here:

- ProviderError and its subclasses wrap failures reported by a remote
  collaborator (invoicing provider, courier, tax authority). They carry
  the HTTP status, a provider error code and the provider's message.
- Local errors describe data this layer refused to send, or lookups that
  produced no usable result.

Every error may pin an ErrorKind and a retryable flag; the
ErrorClassifier honours both before falling back to its rules.

Example:
    >>> from orderflow.errors import ProviderError, InvalidFormatError
    >>>
    >>> raise ProviderError("Service unavailable", status_code=503)
    >>> raise InvalidFormatError("Fiscal identifier has no digits")
"""

from __future__ import annotations

from typing import Any

from orderflow.types import ErrorKind


class OrderflowError(Exception):
    """Base class for all orderflow errors.

    Attributes:
        message: Human-readable error message
        retryable: Whether this error should trigger a retry, or None
            to let the classifier decide
        error_kind: Pinned classification, or None to let the classifier decide
        metadata: Additional error context
    """

    retryable: bool | None = None
    error_kind: ErrorKind | None = None

    def __init__(
        self,
        message: str,
        *,
        retryable: bool | None = None,
        error_kind: ErrorKind | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Error message
            retryable: Override default retryability
            error_kind: Override default classification
            metadata: Additional context
        """
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        if error_kind is not None:
            self.error_kind = error_kind
        self.metadata = metadata or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for logging and event payloads.

        Returns:
            Dictionary with error details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "retryable": self.retryable,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "metadata": self.metadata,
        }


# Provider errors


class ProviderError(OrderflowError):
    """Failure reported by a remote provider.

    Only its NetworkError subclass stands for a request that never got an
    HTTP answer; a plain ProviderError without a status code is a
    malformed or unusable provider response.

    Example:
        >>> raise ProviderError(
        ...     "Invalid series",
        ...     status_code=400,
        ...     status_message="Bad Request",
        ... )
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        status_message: str | None = None,
        details: Any = None,
        retryable: bool | None = None,
        error_kind: ErrorKind | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            retryable=retryable,
            error_kind=error_kind,
            metadata=metadata,
        )
        self.status_code = status_code
        self.code = code
        self.status_message = status_message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            {
                "status_code": self.status_code,
                "code": self.code,
                "status_message": self.status_message,
            }
        )
        return result


class NetworkError(ProviderError):
    """The request failed before an HTTP response was received.

    Example:
        >>> raise NetworkError("connect ECONNREFUSED", code="ECONNREFUSED")
    """

    retryable = True


class RateLimitError(ProviderError):
    """Too many requests; the provider answered 429."""

    retryable = True
    error_kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        *,
        retry_after: int | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class VerificationError(ProviderError):
    """The tax-authority lookup failed.

    Example:
        >>> raise VerificationError("ANAF returned 502", status_code=502)
    """

    retryable = True
    error_kind = ErrorKind.VERIFICATION_ERROR


# Local errors


class InvalidFormatError(OrderflowError):
    """An identifier or value is malformed; retrying cannot fix it."""

    retryable = False
    error_kind = ErrorKind.CLIENT_DATA_ERROR


class BatchTooLargeError(OrderflowError):
    """A batch exceeded the collaborator's cap."""

    retryable = False
    error_kind = ErrorKind.SYSTEM_ERROR

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Batch of {size} identifiers exceeds the limit of {limit}",
            metadata={"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class CompanyNotFoundError(OrderflowError):
    """The registry has no company with the given identifier."""

    retryable = False
    error_kind = ErrorKind.VERIFICATION_ERROR

    def __init__(self, fiscal_id: str) -> None:
        super().__init__(
            f"Company with fiscal identifier {fiscal_id} not found in registry",
            metadata={"fiscal_id": fiscal_id},
        )
        self.fiscal_id = fiscal_id


class LocalityNotFoundError(OrderflowError):
    """No courier locality matched the address city.

    The message lists up to ten candidate names to help whoever fixes
    the address.
    """

    retryable = False
    error_kind = ErrorKind.CLIENT_DATA_ERROR

    SAMPLE_SIZE = 10

    def __init__(self, city: str, region: str, candidates: list[str]) -> None:
        samples = candidates[: self.SAMPLE_SIZE]
        remaining = len(candidates) - len(samples)
        listing = ", ".join(samples)
        if remaining > 0:
            listing = f"{listing} (and {remaining} more)"
        super().__init__(
            f"Locality '{city}' not found in region '{region}' address data. "
            f"Available localities: {listing or 'none'}",
            metadata={"city": city, "region": region, "samples": samples},
        )
        self.city = city
        self.region = region
        self.samples = samples


class ClientDataError(OrderflowError):
    """Client or address data is missing or unusable."""

    retryable = True
    error_kind = ErrorKind.CLIENT_DATA_ERROR


class ProductValidationError(OrderflowError):
    """No valid product lines could be built for the document."""

    retryable = True
    error_kind = ErrorKind.PRODUCT_VALIDATION_ERROR


class ConfigurationError(OrderflowError):
    """A component was wired with missing or invalid settings."""

    retryable = False
    error_kind = ErrorKind.SYSTEM_ERROR


__all__ = [
    "BatchTooLargeError",
    "ClientDataError",
    "CompanyNotFoundError",
    "ConfigurationError",
    "InvalidFormatError",
    "LocalityNotFoundError",
    "NetworkError",
    "OrderflowError",
    "ProductValidationError",
    "ProviderError",
    "RateLimitError",
    "VerificationError",
]
