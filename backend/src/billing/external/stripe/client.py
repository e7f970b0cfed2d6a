"""
Stripe API Client Wrapper

Provides a safe interface to the Stripe API. All Stripe API calls should go
through this wrapper so that SDK errors are translated into billing errors.

The API key is passed per request because live and test mode use different
keys and the active key can change at runtime.
"""

import logging
from typing import Any, Callable

import stripe

from backend.src.billing.shared.exceptions import (
    ConfigurationError,
    NotFoundError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)


class StripeAPIWrapper:
    """
    Safe wrapper for Stripe API calls.

    All methods are async class methods that can be called directly:
        session = await StripeAPIWrapper.retrieve_checkout_session(session_id, api_key=key)
    """

    @classmethod
    def _ensure_api_key(cls, api_key: str) -> None:
        if not api_key:
            raise ConfigurationError('provider_secret_key')

    @classmethod
    async def safe_stripe_call(cls, func: Callable, *args, api_key: str, **kwargs) -> Any:
        """
        Execute a Stripe API call and translate SDK errors.

        Args:
            func: Async Stripe API function
            *args: Positional arguments
            api_key: Stripe secret key for this request
            **kwargs: Keyword arguments

        Returns:
            Result from Stripe API

        Raises:
            NotFoundError: If Stripe reports the resource as missing
            TransientProviderError: For any other Stripe failure
        """
        cls._ensure_api_key(api_key)
        operation = getattr(func, '__qualname__', repr(func))
        try:
            return await func(*args, api_key=api_key, **kwargs)
        except stripe.InvalidRequestError as e:
            if getattr(e, 'code', None) == 'resource_missing':
                logger.info(f"[STRIPE CLIENT] {operation}: resource missing ({e.user_message or e})")
                raise NotFoundError(
                    message="Resource not found at payment provider",
                    resource='provider_resource',
                    resource_id=str(args[0]) if args else None,
                ) from e
            logger.error(f"[STRIPE CLIENT] {operation} rejected: {e}")
            raise TransientProviderError(operation=operation, provider_error=str(e)) from e
        except stripe.StripeError as e:
            logger.error(f"[STRIPE CLIENT] {operation} failed: {e}")
            raise TransientProviderError(operation=operation, provider_error=str(e)) from e

    # -------------------------------------------------------------------------
    # Checkout Session Operations
    # -------------------------------------------------------------------------

    @classmethod
    async def create_checkout_session(cls, api_key: str, **kwargs) -> 'stripe.checkout.Session':
        """
        Create a Stripe Checkout session.

        Args:
            mode: 'subscription' or 'payment'
            line_items: List of items
            success_url: Redirect URL on success
            cancel_url: Redirect URL on cancel
            metadata: Additional metadata
            idempotency_key: Request idempotency key

        Returns:
            Stripe Checkout Session object
        """
        return await cls.safe_stripe_call(stripe.checkout.Session.create_async, api_key=api_key, **kwargs)

    @classmethod
    async def retrieve_checkout_session(cls, session_id: str, api_key: str, **kwargs) -> 'stripe.checkout.Session':
        """Retrieve a checkout session by ID."""
        return await cls.safe_stripe_call(
            stripe.checkout.Session.retrieve_async, session_id, api_key=api_key, **kwargs
        )

    # -------------------------------------------------------------------------
    # Subscription Operations
    # -------------------------------------------------------------------------

    @classmethod
    async def retrieve_subscription(cls, subscription_id: str, api_key: str, **kwargs) -> 'stripe.Subscription':
        """Retrieve a subscription by ID."""
        return await cls.safe_stripe_call(
            stripe.Subscription.retrieve_async, subscription_id, api_key=api_key, **kwargs
        )

    @classmethod
    async def cancel_subscription_at_period_end(
        cls,
        subscription_id: str,
        api_key: str,
        idempotency_key: str = None,
    ) -> 'stripe.Subscription':
        """Set a subscription to cancel at the end of the current period."""
        kwargs = {'cancel_at_period_end': True}
        if idempotency_key:
            kwargs['idempotency_key'] = idempotency_key
        return await cls.safe_stripe_call(
            stripe.Subscription.modify_async, subscription_id, api_key=api_key, **kwargs
        )
