"""Tests for error classifier module.

These tests verify:
- ErrorKind classification rules and their order
- Retryability decided independently of the kind
- Explicit retryable attribute on exceptions
- describe() return structure
"""

from __future__ import annotations

import httpx
import pytest

from orderflow.errors import (
    BatchTooLargeError,
    ClientDataError,
    CompanyNotFoundError,
    ConfigurationError,
    InvalidFormatError,
    LocalityNotFoundError,
    NetworkError,
    ProductValidationError,
    ProviderError,
    RateLimitError,
    VerificationError,
)
from orderflow.errors.error_classifier import ErrorClassifier, is_retryable
from orderflow.types import ErrorKind


class TestClassifyNetwork:
    """Failures without an answer, server errors and throttling map to NETWORK."""

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_server_errors(self, status):
        error = ProviderError("Service unavailable", status_code=status)
        assert ErrorClassifier().classify(error) == ErrorKind.NETWORK

    def test_too_many_requests_without_pinned_kind(self):
        error = ProviderError("Slow down", status_code=429)
        assert ErrorClassifier().classify(error) == ErrorKind.NETWORK

    def test_network_error_without_status(self):
        error = NetworkError("connect ECONNREFUSED 10.0.0.1:443", code="ECONNREFUSED")
        assert ErrorClassifier().classify(error) == ErrorKind.NETWORK

    @pytest.mark.parametrize(
        "exception",
        [
            ConnectionRefusedError("refused"),
            ConnectionResetError("reset"),
            TimeoutError("timed out"),
            httpx.ConnectTimeout("connect timeout"),
            httpx.ReadError("read failed"),
        ],
    )
    def test_stdlib_and_httpx_transport_errors(self, exception):
        assert ErrorClassifier().classify(exception) == ErrorKind.NETWORK

    def test_server_error_beats_message_markers(self):
        error = ProviderError("client address service down", status_code=503)
        assert ErrorClassifier().classify(error) == ErrorKind.NETWORK

    @pytest.mark.parametrize(
        "message",
        ["Courier returned no tracking reference", "Invoicing provider returned no invoice number"],
    )
    def test_unusable_response_without_status_is_not_network(self, message):
        """Test a provider answer missing its reference is not a transport failure."""
        error = ProviderError(message, retryable=False)

        assert ErrorClassifier().classify(error) == ErrorKind.SYSTEM_ERROR
        assert not ErrorClassifier.is_transport_failure(error)


class TestClassifyMessageMarkers:
    """Message markers apply after the status rules."""

    def test_tax_authority_marker(self):
        error = ProviderError("ANAF lookup rejected the request", status_code=400)
        assert ErrorClassifier().classify(error) == ErrorKind.VERIFICATION_ERROR

    def test_client_marker(self):
        error = ProviderError("Invalid client CIF", status_code=400)
        assert ErrorClassifier().classify(error) == ErrorKind.CLIENT_DATA_ERROR

    def test_address_marker(self):
        error = ProviderError("Address is incomplete", status_code=422)
        assert ErrorClassifier().classify(error) == ErrorKind.CLIENT_DATA_ERROR

    def test_product_marker(self):
        error = ProviderError("Product 'MUG-01' has no price", status_code=400)
        assert ErrorClassifier().classify(error) == ErrorKind.PRODUCT_VALIDATION_ERROR

    def test_tax_authority_marker_wins_over_client_marker(self):
        error = ProviderError("ANAF: client not registered", status_code=400)
        assert ErrorClassifier().classify(error) == ErrorKind.VERIFICATION_ERROR

    def test_status_message_is_searched(self):
        error = ProviderError("Request rejected", status_code=400, status_message="Unknown product code")
        assert ErrorClassifier().classify(error) == ErrorKind.PRODUCT_VALIDATION_ERROR


class TestClassifyStatus:
    @pytest.mark.parametrize("status", [400, 422])
    def test_provider_validation(self, status):
        error = ProviderError("Invalid series", status_code=status)
        assert ErrorClassifier().classify(error) == ErrorKind.PROVIDER_VALIDATION_ERROR

    def test_other_client_status_is_system_error(self):
        error = ProviderError("Forbidden", status_code=403)
        assert ErrorClassifier().classify(error) == ErrorKind.SYSTEM_ERROR

    def test_httpx_status_error(self):
        request = httpx.Request("POST", "https://api.example.com/invoice")
        response = httpx.Response(400, request=request)
        error = httpx.HTTPStatusError("Bad request", request=request, response=response)
        assert ErrorClassifier().classify(error) == ErrorKind.PROVIDER_VALIDATION_ERROR


class TestClassifyLocalErrors:
    """Local exceptions never count as network failures."""

    def test_plain_exception_is_system_error(self):
        assert ErrorClassifier().classify(RuntimeError("boom")) == ErrorKind.SYSTEM_ERROR

    def test_key_error_is_system_error(self):
        assert ErrorClassifier().classify(KeyError("total_price")) == ErrorKind.SYSTEM_ERROR

    def test_local_exception_with_marker(self):
        assert ErrorClassifier().classify(RuntimeError("missing customer")) == ErrorKind.CLIENT_DATA_ERROR

    @pytest.mark.parametrize(
        ("exception", "expected"),
        [
            (RateLimitError("Too many requests"), ErrorKind.RATE_LIMITED),
            (VerificationError("ANAF down", status_code=502), ErrorKind.VERIFICATION_ERROR),
            (ClientDataError("no name"), ErrorKind.CLIENT_DATA_ERROR),
            (ProductValidationError("nothing to bill"), ErrorKind.PRODUCT_VALIDATION_ERROR),
            (InvalidFormatError("bad CUI"), ErrorKind.CLIENT_DATA_ERROR),
            (LocalityNotFoundError("Xyz", "Cluj", []), ErrorKind.CLIENT_DATA_ERROR),
            (ConfigurationError("no CIF"), ErrorKind.SYSTEM_ERROR),
        ],
    )
    def test_pinned_kind(self, exception, expected):
        assert ErrorClassifier().classify(exception) == expected

    def test_pinned_kind_on_instance(self):
        error = ProviderError("Service unavailable", status_code=503, error_kind=ErrorKind.VERIFICATION_ERROR)
        assert ErrorClassifier().classify(error) == ErrorKind.VERIFICATION_ERROR


class TestRetryable:
    @pytest.mark.parametrize(
        "exception",
        [
            NetworkError("down"),
            RateLimitError("slow down"),
            VerificationError("ANAF down"),
            ClientDataError("missing name"),
            ConnectionRefusedError("refused"),
            RuntimeError("unexpected"),
            ProviderError("Invalid series", status_code=400),
        ],
    )
    def test_retryable(self, exception):
        assert ErrorClassifier().retryable(exception) is True

    @pytest.mark.parametrize(
        "exception",
        [
            InvalidFormatError("bad CUI"),
            BatchTooLargeError(101, 100),
            CompanyNotFoundError("123456"),
            LocalityNotFoundError("Xyz", "Cluj", ["Turda"]),
            ConfigurationError("missing"),
            ValueError("bad"),
            KeyError("missing"),
            TypeError("wrong"),
        ],
    )
    def test_permanent(self, exception):
        assert ErrorClassifier().retryable(exception) is False

    def test_explicit_attribute_wins(self):
        error = ProviderError("Courier returned no tracking reference", retryable=False)
        assert ErrorClassifier().retryable(error) is False

    def test_explicit_attribute_on_foreign_exception(self):
        class CourierError(Exception):
            retryable = True

        assert ErrorClassifier().retryable(CourierError("x")) is True

    def test_default_retryable_override(self):
        classifier = ErrorClassifier(default_retryable=False)
        assert classifier.retryable(RuntimeError("unexpected")) is False
        assert classifier.retryable(NetworkError("down")) is True

    def test_convenience_function(self):
        assert is_retryable(NetworkError("down")) is True
        assert is_retryable(ValueError("bad")) is False


class TestDescribe:
    def test_describe_structure(self):
        error = ProviderError("Invalid series", status_code=400, status_message="Bad Request")
        result = ErrorClassifier().describe(error)

        assert result == {
            "error_type": "ProviderError",
            "error_kind": "provider_validation_error",
            "retryable": True,
            "status_code": 400,
            "status_message": "Bad Request",
            "message": "Invalid series Bad Request",
        }

    def test_message_falls_back_to_type_name(self):
        assert ErrorClassifier.message(RuntimeError()) == "RuntimeError"
