"""Tests for the Easypaisa MA adapter."""

import json

import httpx
import pytest

from wallet_engine.errors import NetworkError, ProviderError
from wallet_engine.models.enums import TransactionStatus
from wallet_engine.providers.easypaisa import INITIATE_PATH, INQUIRE_PATH, EasypaisaProvider, build_credentials_header


def make_provider(handler):
    return EasypaisaProvider(
        base_url="https://easypay.test/",
        username="merchant_user",
        password="s3cret",
        store_id="12345",
        account_num="987654",
        transport=httpx.MockTransport(handler),
    )


def test_credentials_header():
    assert build_credentials_header("merchant_user", "s3cret") == "bWVyY2hhbnRfdXNlcjpzM2NyZXQ="


@pytest.mark.asyncio
async def test_initiate_request_and_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["credentials"] = request.headers["Credentials"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "responseCode": "0000",
            "responseDesc": "SUCCESS",
            "transactionId": "EP123",
            "transactionStatus": "PAID",
            "paymentToken": "tok_1",
        })

    provider = make_provider(handler)
    result = await provider.initiate("ORD-1", 100, "03001234567")

    assert seen["url"] == f"https://easypay.test{INITIATE_PATH}"
    assert seen["credentials"] == "bWVyY2hhbnRfdXNlcjpzM2NyZXQ="
    assert seen["body"] == {
        "orderId": "ORD-1",
        "storeId": 12345,
        "transactionAmount": "100.00",
        "transactionType": "MA",
        "mobileAccountNo": "03001234567",
        "emailAddress": "noreply@mypay.mx",
    }

    assert result.response_code == "0000"
    assert result.provider_transaction_id == "EP123"
    assert result.meta["paymentToken"] == "tok_1"
    assert provider.normalize(result).status == TransactionStatus.SUCCESS


@pytest.mark.asyncio
async def test_inquire_is_keyed_by_reference():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"responseCode": "0000", "transactionStatus": "PENDING"})

    provider = make_provider(handler)
    result = await provider.inquire("ORD-1")

    assert provider.lookup_field == "reference"
    assert seen["path"] == INQUIRE_PATH
    assert seen["body"] == {"orderId": "ORD-1", "storeId": 12345, "accountNum": "987654"}
    assert provider.normalize(result).status == TransactionStatus.PENDING


@pytest.mark.asyncio
async def test_error_status_raises_provider_error():
    def handler(request):
        return httpx.Response(400, json={"responseCode": "0013", "responseDesc": "Invalid mobile account"})

    with pytest.raises(ProviderError) as exc_info:
        await make_provider(handler).initiate("ORD-1", 100, "03001234567")

    assert exc_info.value.code == "0013"
    assert exc_info.value.http_status == 400
    assert "Invalid mobile account" in exc_info.value.message


@pytest.mark.asyncio
async def test_non_json_body_raises_provider_error():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(ProviderError):
        await make_provider(handler).inquire("ORD-1")


@pytest.mark.asyncio
async def test_timeout_raises_network_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(NetworkError) as exc_info:
        await make_provider(handler).initiate("ORD-1", 100, "03001234567")
    assert "Request timeout" in str(exc_info.value)


@pytest.mark.asyncio
async def test_connection_error_raises_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        await make_provider(handler).initiate("ORD-1", 100, "03001234567")
