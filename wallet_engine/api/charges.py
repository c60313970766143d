"""
Charge endpoint.

POST /v1/charge  - Charge a customer wallet, idempotent per (reference, merchant).

The response status code follows the normalized outcome: 200 SUCCESS,
202 PENDING, 4xx/5xx FAILED. A repeated reference returns the stored
transaction without contacting the provider again.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wallet_engine.api.deps import get_merchant, get_orchestrator
from wallet_engine.engine.orchestrator import ChargeOrchestrator, ChargeResult
from wallet_engine.errors import StoreError, ValidationError
from wallet_engine.store.api_keys import Merchant

logger = logging.getLogger("wallet_engine.api.charges")

router = APIRouter(prefix="/v1", tags=["charges"])


class ChargeRequest(BaseModel):
    reference: Optional[str] = None
    amount: Optional[float] = None
    mobile: Optional[str] = None
    paymentMethod: Optional[str] = None


class ChargeResponse(BaseModel):
    success: bool
    reference: Optional[str]
    status: str
    paymentMethod: Optional[str]
    amount: Optional[float]
    currency: str = "PKR"
    transactionId: Optional[str] = None
    errorCode: Optional[str] = None
    errorMessage: Optional[str] = None
    meta: dict[str, Any] = {}


def _result_to_response(result: ChargeResult) -> ChargeResponse:
    return ChargeResponse(
        success=result.success,
        reference=result.reference,
        status=result.status.value,
        paymentMethod=result.provider,
        amount=result.amount,
        currency=result.currency,
        transactionId=result.provider_transaction_id,
        errorCode=result.error_code,
        errorMessage=result.error_message,
        meta={**result.provider_meta, "idempotentReplay": result.replayed},
    )


def _failed(body: ChargeRequest, status_code: int, error_code: str, message: str, **meta: Any) -> JSONResponse:
    response = ChargeResponse(
        success=False,
        reference=body.reference,
        status="FAILED",
        paymentMethod=body.paymentMethod,
        amount=body.amount,
        errorCode=error_code,
        errorMessage=message,
        meta=meta,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump())


@router.post("/charge", response_model=ChargeResponse)
async def create_charge(
    body: ChargeRequest,
    merchant: Merchant = Depends(get_merchant),
    orchestrator: ChargeOrchestrator = Depends(get_orchestrator),
):
    """
    Charge a wallet through the named payment method.

    Idempotent: re-sending the same reference returns the stored
    transaction, whatever its current status.
    """
    try:
        result = await orchestrator.charge(
            merchant_id=merchant.merchant_id,
            reference=body.reference,
            amount=body.amount,
            payer_account=body.mobile,
            provider_name=body.paymentMethod,
        )
    except ValidationError as e:
        return _failed(body, 400, "VALIDATION_ERROR", e.message, reason=e.reason.value)
    except StoreError as e:
        logger.error("Charge reference=%s failed in the store: %s", body.reference, e)
        return _failed(body, 500, "INTERNAL_ERROR", "Transaction could not be recorded")

    response = _result_to_response(result)
    return JSONResponse(status_code=result.http_status, content=response.model_dump())
