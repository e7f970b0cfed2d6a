"""
Endpoint Dependencies

Shared dependencies for billing API endpoints.
"""

import logging
from typing import Optional

import jwt
from fastapi import HTTPException, Header

from backend.core.conf import settings
from backend.src.billing.container import BillingServices, get_billing_services

logger = logging.getLogger(__name__)


async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> str:
    """
    Extract and verify user ID from a bearer JWT (`sub` claim).

    This is a dependency that can be overridden in tests.
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    token = authorization
    if authorization.startswith("Bearer "):
        token = authorization[7:]

    if not settings.TOKEN_SECRET_KEY:
        logger.error("[AUTH] TOKEN_SECRET_KEY is not configured")
        raise HTTPException(status_code=401, detail="Auth not configured")

    try:
        decoded = jwt.decode(token, settings.TOKEN_SECRET_KEY, algorithms=[settings.TOKEN_ALGORITHM])
    except jwt.InvalidTokenError as e:
        logger.warning(f"[AUTH] Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = decoded.get('sub') or decoded.get('user_id')
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    return str(user_id)


def get_services() -> BillingServices:
    """Billing services dependency."""
    return get_billing_services()
