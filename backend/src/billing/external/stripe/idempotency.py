"""
Stripe Idempotency Key Generation

Generates deterministic idempotency keys for Stripe API calls so that a
retried request for the same subscription record never creates a second
checkout session or a second cancellation.
"""

import hashlib


class StripeIdempotencyManager:
    """
    Generates deterministic idempotency keys for Stripe operations.

    Keys depend only on the operation and the resource they act on, so the
    same subscription record always maps to the same key.

    Usage:
        key = stripe_idempotency_manager.generate_checkout_key(record.id, price_id)
    """

    def generate_key(self, operation: str, resource_id: str, *args, **kwargs) -> str:
        """
        Generate an idempotency key.

        Args:
            operation: Operation type (e.g., 'checkout', 'cancel_subscription')
            resource_id: Identifier of the resource the operation acts on
            *args: Additional positional arguments to include in key
            **kwargs: Additional keyword arguments to include in key

        Returns:
            40-character hex idempotency key
        """
        sorted_kwargs = sorted(kwargs.items())
        components = [
            operation,
            resource_id,
            *[str(arg) for arg in args],
            *[f"{k}={v}" for k, v in sorted_kwargs],
        ]
        idempotency_base = "_".join(components)
        return hashlib.sha256(idempotency_base.encode()).hexdigest()[:40]

    def generate_checkout_key(self, subscription_id: str, price_id: str) -> str:
        """Idempotency key for the checkout session of one subscription record."""
        return self.generate_key('checkout', subscription_id, price_id)

    def generate_subscription_cancel_key(
        self,
        provider_subscription_id: str,
        cancel_type: str = 'at_period_end'
    ) -> str:
        """Idempotency key for subscription cancellation."""
        return self.generate_key('cancel_subscription', provider_subscription_id, cancel_type)


# Global instance
stripe_idempotency_manager = StripeIdempotencyManager()


def generate_checkout_idempotency_key(subscription_id: str, price_id: str) -> str:
    """Generate idempotency key for checkout session."""
    return stripe_idempotency_manager.generate_checkout_key(subscription_id, price_id)


def generate_subscription_cancel_idempotency_key(provider_subscription_id: str) -> str:
    """Generate idempotency key for subscription cancellation."""
    return stripe_idempotency_manager.generate_subscription_cancel_key(provider_subscription_id)
