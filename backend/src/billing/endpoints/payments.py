"""
Payment Endpoints

Payment verification and recovery when the provider webhook is late.

Status codes:
    200 success, 202 still pending, 409 not recoverable
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backend.src.billing.container import BillingServices
from backend.src.billing.subscriptions.recovery import RecoveryResult, RecoveryStatus
from .dependencies import get_current_user_id, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing-payments"])

RECOVERY_STATUS_CODES = {
    RecoveryStatus.SUCCESS: 200,
    RecoveryStatus.PENDING: 202,
    RecoveryStatus.FAILURE: 409,
}


class VerifyPaymentRequest(BaseModel):
    """Request for payment verification by internal subscription ID."""
    subscription_id: str


class RecoverPaymentRequest(BaseModel):
    """Request for payment recovery by provider payment ID."""
    payment_id: str


def _recovery_response(result: RecoveryResult) -> JSONResponse:
    return JSONResponse(status_code=RECOVERY_STATUS_CODES[result.status], content=result.to_dict())


@router.post("/verify-payment")
async def verify_payment(
    request: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    services: BillingServices = Depends(get_services),
) -> JSONResponse:
    """Check a pending subscription directly with the payment provider."""
    result = await services.recovery.verify_by_id(user_id, request.subscription_id)
    logger.info(f"[RECOVERY] verify-payment {request.subscription_id}: {result.status.value}")
    return _recovery_response(result)


@router.post("/recover-payment")
async def recover_payment(
    request: RecoverPaymentRequest,
    services: BillingServices = Depends(get_services),
) -> JSONResponse:
    """Activate the subscription paid by a provider payment ID."""
    result = await services.recovery.recover_by_payment_id(request.payment_id)
    logger.info(f"[RECOVERY] recover-payment {request.payment_id}: {result.status.value}")
    return _recovery_response(result)
