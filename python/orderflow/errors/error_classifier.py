"""Error classifier mapping raw failures onto ErrorKind.

Classification is total: every exception maps to exactly one kind, with
SYSTEM_ERROR as the fallback. Rules are applied in order:

1. A kind pinned on the error itself (``error.error_kind``)
2. Missing HTTP status on a transport failure, status >= 500, or 429 -> NETWORK
3. Tax-authority marker in the message -> VERIFICATION_ERROR
4. Client or address marker in the message -> CLIENT_DATA_ERROR
5. Product or line-item marker in the message -> PRODUCT_VALIDATION_ERROR
6. Status 400 or 422 -> PROVIDER_VALIDATION_ERROR
7. Anything else -> SYSTEM_ERROR

Example:
    >>> from orderflow.errors import ProviderError
    >>> from orderflow.errors.error_classifier import ErrorClassifier
    >>>
    >>> classifier = ErrorClassifier()
    >>> classifier.classify(ProviderError("Service unavailable", status_code=503))
    <ErrorKind.NETWORK: 'network'>
    >>> classifier.classify(ProviderError("Bad request", status_code=400))
    <ErrorKind.PROVIDER_VALIDATION_ERROR: 'provider_validation_error'>
"""

from __future__ import annotations

from typing import Any

import httpx

from orderflow.types import ErrorKind

from . import NetworkError, ProviderError

TAX_AUTHORITY_MARKERS = ("anaf", "tax authority", "tax-authority", "fiscal registry")
CLIENT_MARKERS = ("client", "address", "customer")
PRODUCT_MARKERS = ("product", "line item", "line_item", "lineitem")

PROVIDER_VALIDATION_STATUS_CODES = {400, 422}


class ErrorClassifier:
    """Classifies exceptions into ErrorKind and decides retryability.

    Retryability is decided independently of the kind:
    1. The exception's own ``retryable`` attribute, when not None
    2. Known permanent Python error classes (never retry)
    3. Default: retry

    Example:
        >>> classifier = ErrorClassifier()
        >>> classifier.retryable(ConnectionRefusedError("refused"))
        True
        >>> classifier.retryable(KeyError("line_items"))
        False
    """

    # Programming and data-shape errors; another attempt runs the same code
    PERMANENT_ERROR_CLASSES: tuple[type[Exception], ...] = (
        ValueError,
        TypeError,
        KeyError,
        AttributeError,
        IndexError,
        AssertionError,
        NotImplementedError,
    )

    # Failures that never produced an HTTP answer
    TRANSPORT_ERROR_CLASSES: tuple[type[BaseException], ...] = (
        httpx.TransportError,
        ConnectionError,
        TimeoutError,
        OSError,
    )

    def __init__(self, *, default_retryable: bool = True) -> None:
        """Initialize the classifier.

        Args:
            default_retryable: Retryability for errors no rule covers.
        """
        self._default_retryable = default_retryable

    def classify(self, error: BaseException) -> ErrorKind:
        """Map an exception to exactly one ErrorKind.

        Args:
            error: The exception to classify

        Returns:
            The ErrorKind for this failure; never raises.

        Example:
            >>> from orderflow.errors import NetworkError
            >>> ErrorClassifier().classify(NetworkError("refused", code="ECONNREFUSED"))
            <ErrorKind.NETWORK: 'network'>
        """
        pinned = getattr(error, "error_kind", None)
        if isinstance(pinned, ErrorKind):
            return pinned

        status = self.status_code(error)
        if status is None and self.is_transport_failure(error):
            return ErrorKind.NETWORK
        if status is not None and (status >= 500 or status == 429):
            return ErrorKind.NETWORK

        message = self.message(error).lower()
        if any(marker in message for marker in TAX_AUTHORITY_MARKERS):
            return ErrorKind.VERIFICATION_ERROR
        if any(marker in message for marker in CLIENT_MARKERS):
            return ErrorKind.CLIENT_DATA_ERROR
        if any(marker in message for marker in PRODUCT_MARKERS):
            return ErrorKind.PRODUCT_VALIDATION_ERROR

        if status in PROVIDER_VALIDATION_STATUS_CODES:
            return ErrorKind.PROVIDER_VALIDATION_ERROR

        return ErrorKind.SYSTEM_ERROR

    def retryable(self, error: BaseException) -> bool:
        """Determine if an exception should trigger a retry.

        Args:
            error: The exception to check

        Returns:
            True if another attempt may succeed.
        """
        explicit = getattr(error, "retryable", None)
        if explicit is not None:
            return bool(explicit)

        if isinstance(error, self.PERMANENT_ERROR_CLASSES):
            return False

        return self._default_retryable

    def describe(self, error: BaseException) -> dict[str, Any]:
        """Classify an error and return the details recorded for it.

        Returns:
            Dictionary with error_type, error_kind, retryable, status_code,
            status_message and message.

        Example:
            >>> ErrorClassifier().describe(ProviderError("Bad", status_code=400))["error_kind"]
            'provider_validation_error'
        """
        return {
            "error_type": type(error).__name__,
            "error_kind": self.classify(error).value,
            "retryable": self.retryable(error),
            "status_code": self.status_code(error),
            "status_message": getattr(error, "status_message", None),
            "message": self.message(error),
        }

    @classmethod
    def is_transport_failure(cls, error: BaseException) -> bool:
        """True for failures that happened before any HTTP response."""
        if isinstance(error, ProviderError):
            return isinstance(error, NetworkError)
        return isinstance(error, cls.TRANSPORT_ERROR_CLASSES)

    @staticmethod
    def status_code(error: BaseException) -> int | None:
        """Extract an HTTP status code from an exception, if it carries one."""
        if isinstance(error, ProviderError):
            return error.status_code
        if isinstance(error, httpx.HTTPStatusError):
            return error.response.status_code

        for attr in ("status_code", "status"):
            value = getattr(error, attr, None)
            if isinstance(value, int):
                return value

        response = getattr(error, "response", None)
        value = getattr(response, "status_code", None)
        return value if isinstance(value, int) else None

    @staticmethod
    def message(error: BaseException) -> str:
        """Return the human-readable message of an exception."""
        parts = [getattr(error, "message", None) or str(error)]
        status_message = getattr(error, "status_message", None)
        if status_message:
            parts.append(str(status_message))
        text = " ".join(p for p in parts if p)
        return text or type(error).__name__


def is_retryable(error: BaseException, classifier: ErrorClassifier | None = None) -> bool:
    """Convenience wrapper around ErrorClassifier.retryable.

    Args:
        error: The exception to check
        classifier: Classifier to use; a default one when omitted

    Returns:
        True if the error should be retried
    """
    return (classifier or ErrorClassifier()).retryable(error)


__all__ = [
    "CLIENT_MARKERS",
    "ErrorClassifier",
    "PRODUCT_MARKERS",
    "TAX_AUTHORITY_MARKERS",
    "is_retryable",
]
