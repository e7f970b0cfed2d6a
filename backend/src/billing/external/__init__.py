"""
External Integrations Module

Integration with the payment provider:
- Provider-neutral interfaces used by the lifecycle engine
- Stripe client implementing them
- Stripe webhook signature verification (the webhook service lives in .webhooks)

Usage:
    from backend.src.billing.external import verify_webhook_signature
"""

from .interfaces import (
    PaymentProviderInterface,
    ProviderCheckoutSession,
    ProviderSubscription,
)
from .signature import SIGNATURE_HEADER, verify_webhook_signature

__all__ = [
    'PaymentProviderInterface',
    'ProviderCheckoutSession',
    'ProviderSubscription',
    'SIGNATURE_HEADER',
    'verify_webhook_signature',
]
