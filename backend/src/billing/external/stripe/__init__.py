"""
Stripe Integration Module

Stripe-backed implementation of the payment provider interface:
- Async API wrapper translating SDK errors into billing errors
- Deterministic idempotency keys
- StripePaymentProvider used by checkout, recovery and cancellation

Usage:
    from backend.src.billing.external.stripe import StripePaymentProvider

    provider = StripePaymentProvider(config_provider)
    session = await provider.retrieve_checkout_session(session_id)
"""

from .client import StripeAPIWrapper

from .idempotency import (
    StripeIdempotencyManager,
    stripe_idempotency_manager,
    generate_checkout_idempotency_key,
    generate_subscription_cancel_idempotency_key,
)

from .provider import (
    StripePaymentProvider,
    checkout_session_from_stripe,
    subscription_from_stripe,
)

__all__ = [
    # API Client
    'StripeAPIWrapper',
    # Idempotency
    'StripeIdempotencyManager',
    'stripe_idempotency_manager',
    'generate_checkout_idempotency_key',
    'generate_subscription_cancel_idempotency_key',
    # Provider
    'StripePaymentProvider',
    'checkout_session_from_stripe',
    'subscription_from_stripe',
]
