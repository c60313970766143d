"""
JazzCash Mobile Wallet (MWALLET) adapter.

Endpoints:
  POST /ApplicationAPI/API/Payment/DoTransaction
  POST /ApplicationAPI/API/PaymentInquiry/Inquire

Every request carries pp_SecureHash, an HMAC-SHA256 over the request fields:

  1. Collect every field whose name starts with "pp" (pp_*, ppmpf_*),
     except pp_SecureHash itself
  2. Sort them by field name (plain ASCII order)
  3. Join their VALUES with "&"
  4. Prepend the integrity salt and "&"
  5. HMAC-SHA256 keyed by the integrity salt, lowercase hex

A one-character difference in any field produces a hash JazzCash rejects as
an authentication failure, so the computation lives in one pure function.

JazzCash returns no transaction status string on DoTransaction; the adapter
derives one from the response code. Inquiry is keyed by pp_TxnRefNo (the
provider transaction id stored on the transaction).
"""

import hashlib
import hmac
import logging
import random
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from wallet_engine.engine.status import StatusRules
from wallet_engine.providers.base import (
    DEFAULT_TIMEOUT_SECONDS,
    PaymentProvider,
    ProviderResponse,
    str_or_none,
)

logger = logging.getLogger("wallet_engine.providers.jazzcash")

TRANSACTION_PATH = "/ApplicationAPI/API/Payment/DoTransaction"
INQUIRY_PATH = "/ApplicationAPI/API/PaymentInquiry/Inquire"

PKT = timezone(timedelta(hours=5), name="PKT")
API_VERSION = "1.1"
DATETIME_FORMAT = "%Y%m%d%H%M%S"
EXPIRY_HOURS = 24

# 000 = completed, 124 = awaiting customer approval on the handset
CODE_STATUS = {
    "000": "COMPLETED",
    "121": "COMPLETED",
    "124": "PENDING",
    "157": "PENDING",
}

JAZZCASH_RULES = StatusRules(
    error_prefix="JAZZCASH_",
    accepted_codes=frozenset({"000", "124"}),
    success_statuses=frozenset({"COMPLETED", "PAID"}),
    failure_statuses=frozenset({"FAILED", "REVERSED", "EXPIRED", "CANCELLED", "REJECTED"}),
)


def generate_secure_hash(params: Mapping[str, Any], integrity_salt: str) -> str:
    """Compute pp_SecureHash for a JazzCash request (see module docstring)."""
    keys = sorted(k for k in params if k.startswith("pp") and k != "pp_SecureHash")
    value_string = "&".join(str(params[k]) for k in keys)
    message = f"{integrity_salt}&{value_string}"
    return hmac.new(
        integrity_salt.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest().lower()


def derive_status(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    return CODE_STATUS.get(code, "FAILED")


def _default_txn_ref(now: datetime) -> str:
    # Second-resolution timestamps collide under concurrent load
    return f"T{now.strftime(DATETIME_FORMAT)}{random.randint(0, 9999):04d}"


class JazzCashProvider(PaymentProvider):
    channel = "MWALLET"
    lookup_field = "provider_transaction_id"

    def __init__(
        self,
        base_url: str,
        merchant_id: str,
        password: str,
        integrity_salt: str,
        return_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
        txn_ref_factory: Optional[Callable[[datetime], str]] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)
        self._merchant_id = merchant_id
        self._password = password
        self._integrity_salt = integrity_salt
        self._return_url = return_url
        self._clock = clock or (lambda: datetime.now(PKT))
        self._txn_ref_factory = txn_ref_factory or _default_txn_ref

    @property
    def name(self) -> str:
        return "jazzcash"

    @property
    def rules(self) -> StatusRules:
        return JAZZCASH_RULES

    def build_transaction_params(self, reference: str, amount: float, payer_account: str) -> dict[str, str]:
        """DoTransaction fields, signed. Amount is sent in paisa."""
        now = self._clock()
        expiry = now + timedelta(hours=EXPIRY_HOURS)
        params = {
            "pp_Amount": str(int(round(float(amount) * 100))),
            "pp_BillReference": reference,
            "pp_Description": "MWallet One Time Payment",
            "pp_Language": "EN",
            "pp_MerchantID": self._merchant_id,
            "pp_Password": self._password,
            "pp_ReturnURL": self._return_url,
            "pp_TxnCurrency": self.currency,
            "pp_TxnDateTime": now.strftime(DATETIME_FORMAT),
            "pp_TxnExpiryDateTime": expiry.strftime(DATETIME_FORMAT),
            "pp_TxnRefNo": self._txn_ref_factory(now),
            "pp_TxnType": "MWALLET",
            "pp_Version": API_VERSION,
            "ppmpf_1": payer_account,
        }
        params["pp_SecureHash"] = generate_secure_hash(params, self._integrity_salt)
        return params

    def build_inquiry_params(self, txn_ref_no: str) -> dict[str, str]:
        params = {
            "pp_MerchantID": self._merchant_id,
            "pp_Password": self._password,
            "pp_TxnRefNo": txn_ref_no,
            "pp_Version": API_VERSION,
        }
        params["pp_SecureHash"] = generate_secure_hash(params, self._integrity_salt)
        return params

    async def initiate(self, reference: str, amount: float, payer_account: str) -> ProviderResponse:
        params = self.build_transaction_params(reference, amount, payer_account)
        logger.info(
            "[jazzcash] Initiating MWALLET transaction: reference=%s amount=%s paisa txnRefNo=%s",
            reference,
            params["pp_Amount"],
            params["pp_TxnRefNo"],
        )

        data = await self._post_json(
            TRANSACTION_PATH,
            params,
            error_fields=("pp_ResponseCode", "pp_ResponseMessage"),
            id_field="pp_TxnRefNo",
            request_id=params["pp_TxnRefNo"],
        )
        code = str_or_none(data.get("pp_ResponseCode"))
        logger.info("[jazzcash] Response: %s - %s", code, data.get("pp_ResponseMessage"))

        return ProviderResponse(
            raw=data,
            response_code=code,
            response_desc=str_or_none(data.get("pp_ResponseMessage")),
            transaction_status=derive_status(code),
            provider_transaction_id=str_or_none(data.get("pp_TxnRefNo")) or params["pp_TxnRefNo"],
            meta={
                "jazzCashTxnRefNo": data.get("pp_TxnRefNo"),
                "jazzCashAmount": data.get("pp_Amount"),
                "retrievalReferenceNo": data.get("pp_RetreivalReferenceNo"),
            },
        )

    async def inquire(self, lookup_key: str) -> ProviderResponse:
        """Inquire by pp_TxnRefNo."""
        params = self.build_inquiry_params(lookup_key)
        logger.info("[jazzcash] Inquiry: txnRefNo=%s", lookup_key)

        data = await self._post_json(
            INQUIRY_PATH,
            params,
            error_fields=("pp_ResponseCode", "pp_ResponseMessage"),
            id_field="pp_TxnRefNo",
        )
        code = str_or_none(data.get("pp_ResponseCode"))
        payment_code = str_or_none(data.get("pp_PaymentResponseCode"))
        status = str_or_none(data.get("pp_Status")) or derive_status(payment_code)
        logger.info("[jazzcash] Inquiry response: %s - %s (%s)", code, data.get("pp_ResponseMessage"), status)

        return ProviderResponse(
            raw=data,
            response_code=code,
            response_desc=str_or_none(data.get("pp_PaymentResponseMessage"))
            or str_or_none(data.get("pp_ResponseMessage")),
            transaction_status=status,
            provider_transaction_id=str_or_none(data.get("pp_TxnRefNo")) or lookup_key,
            meta={"paymentResponseCode": payment_code},
        )
