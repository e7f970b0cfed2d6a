"""
Webhook Endpoints

Stripe webhook endpoint for processing billing events.
"""

import logging

from fastapi import APIRouter, Depends, Request

from backend.src.billing.container import BillingServices
from backend.src.billing.external.signature import SIGNATURE_HEADER
from .dependencies import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing-webhooks"])


@router.post("/webhook")
async def stripe_webhook(request: Request, services: BillingServices = Depends(get_services)):
    """
    Process Stripe webhook events.

    Handles:
    - checkout.session.completed / checkout.session.async_payment_succeeded (activation)
    - invoice.paid (renewal)
    - customer.subscription.updated / customer.subscription.deleted
    - invoice.payment_failed
    """
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    return await services.webhooks.process_webhook(payload, signature)
