"""ANAF client tests.

These tests verify:
- Request shape sent to the registry
- ApiResponse wrapper and error mapping (429, 5xx, body error codes)
- Transport failures mapped to NetworkError
"""

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from conftest import REGISTRY_ENTRY
from orderflow.api import ApiResponse
from orderflow.errors import BatchTooLargeError, NetworkError, ProviderError, RateLimitError
from orderflow.verification import AnafClient


def client_for(handler) -> AnafClient:
    return AnafClient(transport=httpx.MockTransport(handler))


class TestAnafClient:
    @pytest.mark.asyncio
    async def test_request_shape_and_parsing(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"cod": 200, "message": "SUCCESS", "found": [REGISTRY_ENTRY], "notFound": [1234567]},
            )

        client = client_for(handler)
        result = await client.verify_batch(["14399840", "1234567"], date(2024, 5, 1))
        await client.aclose()

        assert seen["method"] == "POST"
        assert seen["path"] == "/api/PlatitorTvaRest/v9/tva"
        assert seen["body"] == [
            {"cui": 14399840, "data": "2024-05-01"},
            {"cui": 1234567, "data": "2024-05-01"},
        ]
        assert result["found"] == [REGISTRY_ENTRY]
        assert result["notFound"] == ["1234567"]

    @pytest.mark.asyncio
    async def test_custom_base_url(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"cod": 200, "found": [], "notFound": []})

        client = AnafClient(base_url="https://registry.test/v9", transport=httpx.MockTransport(handler))
        await client.verify_batch(["14399840"], date(2024, 5, 1))

        assert seen["url"] == "https://registry.test/v9/tva"

    @pytest.mark.asyncio
    async def test_too_many_requests(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "5"}, json={"message": "Too many requests"})

        with pytest.raises(RateLimitError) as exc_info:
            await client_for(handler).verify_batch(["14399840"], date(2024, 5, 1))

        assert exc_info.value.retry_after == 5
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_server_error(self):
        def handler(request):
            return httpx.Response(503, text="Service Unavailable")

        with pytest.raises(ProviderError) as exc_info:
            await client_for(handler).verify_batch(["14399840"], date(2024, 5, 1))

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "Service Unavailable"

    @pytest.mark.asyncio
    async def test_error_code_in_body(self):
        def handler(request):
            return httpx.Response(200, json={"cod": 404, "message": "Not found"})

        with pytest.raises(ProviderError, match="Tax authority error: Not found"):
            await client_for(handler).verify_batch(["14399840"], date(2024, 5, 1))

    @pytest.mark.asyncio
    async def test_unexpected_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(ProviderError, match="unexpected response body"):
            await client_for(handler).verify_batch(["14399840"], date(2024, 5, 1))

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await client_for(handler).verify_batch(["14399840"], date(2024, 5, 1))

        assert exc_info.value.code == "ECONNREFUSED"
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await client_for(handler).verify_batch(["14399840"], date(2024, 5, 1))

        assert exc_info.value.code == "ETIMEDOUT"

    @pytest.mark.asyncio
    async def test_batch_cap_checked_before_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        with pytest.raises(BatchTooLargeError):
            await client_for(handler).verify_batch([str(10_000 + i) for i in range(101)], date(2024, 5, 1))

        assert calls == []


class TestApiResponse:
    def test_ok_and_error_helpers(self):
        response = ApiResponse(httpx.Response(422, json={"errors": ["bad series", "bad date"]}))

        assert not response.ok
        assert response.is_client_error
        assert not response.is_server_error
        assert response.error_message() == "bad series; bad date"

    def test_text_body(self):
        response = ApiResponse(httpx.Response(502, text="upstream down"))

        assert response.body == "upstream down"
        assert response.is_server_error
        assert response.error_message() == "upstream down"

    def test_retry_after_http_date(self):
        response = ApiResponse(
            httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
        )
        assert response.retry_after == 60

    def test_raise_for_failure_passes_on_success(self):
        ApiResponse(httpx.Response(200, json={"ok": True})).raise_for_failure()
