"""
Easypaisa Mobile Account (MA) adapter.

Endpoints:
  POST /easypay-service/rest/v4/initiate-ma-transaction
  POST /easypay-service/rest/v4/inquire-transaction

Authentication is a static "Credentials" header carrying
Base64("username:password"). Inquiry is keyed by the merchant reference
(sent to Easypaisa as orderId), not by Easypaisa's own transaction id.
"""

import base64
import logging
from typing import Optional

import httpx

from wallet_engine.engine.status import StatusRules
from wallet_engine.providers.base import (
    DEFAULT_TIMEOUT_SECONDS,
    PaymentProvider,
    ProviderResponse,
    str_or_none,
)

logger = logging.getLogger("wallet_engine.providers.easypaisa")

INITIATE_PATH = "/easypay-service/rest/v4/initiate-ma-transaction"
INQUIRE_PATH = "/easypay-service/rest/v4/inquire-transaction"

EASYPAISA_RULES = StatusRules(
    error_prefix="EASYPAY_",
    accepted_codes=frozenset({"0000", "0001"}),
    success_statuses=frozenset({"PAID", "PAID_AND_SETTLED"}),
    failure_statuses=frozenset({"FAILED", "REVERSED", "EXPIRED", "CANCELLED"}),
)


def build_credentials_header(username: str, password: str) -> str:
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


class EasypaisaProvider(PaymentProvider):
    channel = "MA"
    lookup_field = "reference"

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        store_id: str,
        account_num: Optional[str] = None,
        default_email: str = "noreply@mypay.mx",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)
        self._username = username
        self._password = password
        self._store_id = store_id
        self._account_num = account_num
        self._default_email = default_email

    @property
    def name(self) -> str:
        return "easypaisa"

    @property
    def rules(self) -> StatusRules:
        return EASYPAISA_RULES

    def _headers(self) -> dict[str, str]:
        return {"Credentials": build_credentials_header(self._username, self._password)}

    async def initiate(self, reference: str, amount: float, payer_account: str) -> ProviderResponse:
        body = {
            "orderId": reference,
            "storeId": int(self._store_id),
            "transactionAmount": f"{float(amount):.2f}",
            "transactionType": "MA",
            "mobileAccountNo": payer_account,
            "emailAddress": self._default_email,
        }
        logger.info("[easypaisa] Initiating MA transaction: reference=%s amount=%s", reference, body["transactionAmount"])

        data = await self._post_json(INITIATE_PATH, body, headers=self._headers())
        logger.info("[easypaisa] Response: %s - %s", data.get("responseCode"), data.get("responseDesc"))

        return ProviderResponse(
            raw=data,
            response_code=str_or_none(data.get("responseCode")),
            response_desc=str_or_none(data.get("responseDesc")),
            transaction_status=str_or_none(data.get("transactionStatus")),
            provider_transaction_id=str_or_none(data.get("transactionId")),
            meta={
                "providerStatus": data.get("transactionStatus"),
                "paymentToken": data.get("paymentToken"),
                "paymentTokenExpiryDateTime": data.get("paymentTokenExpiryDateTime"),
            },
        )

    async def inquire(self, lookup_key: str) -> ProviderResponse:
        """Inquire by the merchant reference (orderId)."""
        body = {
            "orderId": lookup_key,
            "storeId": int(self._store_id),
            "accountNum": self._account_num,
        }
        logger.info("[easypaisa] Inquiry: orderId=%s", lookup_key)

        data = await self._post_json(INQUIRE_PATH, body, headers=self._headers())
        logger.info(
            "[easypaisa] Inquiry response: %s - %s (%s)",
            data.get("responseCode"),
            data.get("responseDesc"),
            data.get("transactionStatus"),
        )

        return ProviderResponse(
            raw=data,
            response_code=str_or_none(data.get("responseCode")),
            response_desc=str_or_none(data.get("responseDesc")),
            transaction_status=str_or_none(data.get("transactionStatus")),
            provider_transaction_id=str_or_none(data.get("transactionId")),
            meta={"providerStatus": data.get("transactionStatus")},
        )
