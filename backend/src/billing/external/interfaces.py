"""
Payment Provider Interfaces

What the lifecycle engine needs from a payment provider, independent of
the SDK used to talk to it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional

PAID_PAYMENT_STATUSES = frozenset({'paid', 'succeeded'})


@dataclass
class ProviderCheckoutSession:
    """
    A hosted checkout session as reported by the provider.

    Attributes:
        id: Provider session ID
        url: Hosted checkout URL (only present while the session is open)
        status: Session status ('open', 'complete', 'expired')
        payment_status: Payment status ('paid', 'unpaid', ...)
        payment_id: Provider payment ID, once a payment exists
        subscription_id: Provider subscription ID for recurring checkouts
        metadata: Metadata attached at creation
    """
    id: str
    url: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_id: Optional[str] = None
    subscription_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        if (self.payment_status or '').lower() in PAID_PAYMENT_STATUSES:
            return True
        return self.status == 'complete' and bool(self.subscription_id)


@dataclass
class ProviderSubscription:
    """A recurring subscription as reported by the provider."""
    id: str
    status: Optional[str] = None
    cancel_at_period_end: bool = False
    current_period_end: Optional[datetime] = None


class PaymentProviderInterface(ABC):
    """Interface for payment provider clients."""

    @abstractmethod
    async def create_checkout_session(
        self,
        *,
        price_id: str,
        mode: Literal['payment', 'subscription'],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> ProviderCheckoutSession:
        """Create a hosted checkout session."""
        pass

    @abstractmethod
    async def retrieve_checkout_session(self, session_id: str) -> ProviderCheckoutSession:
        """Fetch a checkout session by ID."""
        pass

    @abstractmethod
    async def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        """Fetch a recurring subscription by ID."""
        pass

    @abstractmethod
    async def cancel_at_period_end(self, subscription_id: str) -> ProviderSubscription:
        """Schedule a subscription to end at the close of its current period."""
        pass
