"""
Subscription Endpoints

API endpoints for checkout, active plans, cancellation and generation access.
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.src.billing.container import BillingServices
from .dependencies import get_current_user_id, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing-subscriptions"])


# ============================================================================
# Request Models
# ============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request for checkout session creation."""
    plan: str


class CancelSubscriptionRequest(BaseModel):
    """Request for subscription cancellation."""
    subscription_id: str


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/create-checkout-session")
async def create_checkout_session(
    request: CreateCheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    services: BillingServices = Depends(get_services),
) -> Dict:
    """
    Create a checkout session for the hobbyist or pro plan.

    Returns 409 when the user already holds the plan (or a better one) or
    a checkout for it is in progress.
    """
    result = await services.checkout.create_checkout(user_id, request.plan)
    return {'success': True, **result.to_dict()}


@router.get("/plans/active")
async def get_active_plans(
    user_id: str = Depends(get_current_user_id),
    services: BillingServices = Depends(get_services),
) -> Dict:
    """List the user's active plans and the resolved plan."""
    return await services.subscription_service.list_active_plans(user_id)


@router.post("/plans/resync")
async def resync_plan(
    user_id: str = Depends(get_current_user_id),
    services: BillingServices = Depends(get_services),
) -> Dict:
    """Re-derive the user's profile plan and balance from active subscriptions."""
    return await services.subscription_service.resync_profile(user_id)


@router.post("/subscriptions/cancel")
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    user_id: str = Depends(get_current_user_id),
    services: BillingServices = Depends(get_services),
) -> Dict:
    """Cancel a recurring subscription at the end of its billing period."""
    return await services.subscription_service.cancel_subscription(user_id, request.subscription_id)


@router.get("/generation-access")
async def get_generation_access(
    user_id: str = Depends(get_current_user_id),
    services: BillingServices = Depends(get_services),
) -> Dict:
    """Whether the user may start a generation right now."""
    access = await services.access.check_generation_access(user_id)
    return access.to_dict()
