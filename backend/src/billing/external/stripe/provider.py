"""
Stripe Payment Provider

Implements PaymentProviderInterface on top of StripeAPIWrapper and converts
Stripe objects into provider-neutral dataclasses.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from backend.src.billing.external.interfaces import (
    PaymentProviderInterface,
    ProviderCheckoutSession,
    ProviderSubscription,
)
from backend.src.billing.external.stripe.client import StripeAPIWrapper
from backend.src.billing.external.stripe.idempotency import generate_subscription_cancel_idempotency_key
from backend.src.billing.shared.config import BillingConfigProvider

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _id_of(value: Any) -> Optional[str]:
    """Stripe returns either an ID string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return _field(value, 'id')


def _as_dict(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    to_dict = getattr(value, 'to_dict', None)
    return dict(to_dict()) if callable(to_dict) else {}


def _to_datetime(timestamp: Any) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


def checkout_session_from_stripe(session: Any) -> ProviderCheckoutSession:
    return ProviderCheckoutSession(
        id=_field(session, 'id'),
        url=_field(session, 'url'),
        status=_field(session, 'status'),
        payment_status=_field(session, 'payment_status'),
        payment_id=_id_of(_field(session, 'payment_intent')),
        subscription_id=_id_of(_field(session, 'subscription')),
        metadata=_as_dict(_field(session, 'metadata')),
    )


def subscription_from_stripe(subscription: Any) -> ProviderSubscription:
    period_end = _field(subscription, 'current_period_end')
    if period_end is None:
        # Newer API versions carry the period on the subscription items
        items = _field(_field(subscription, 'items'), 'data') or []
        if items:
            period_end = _field(items[0], 'current_period_end')
    return ProviderSubscription(
        id=_field(subscription, 'id'),
        status=_field(subscription, 'status'),
        cancel_at_period_end=bool(_field(subscription, 'cancel_at_period_end')),
        current_period_end=_to_datetime(period_end),
    )


class StripePaymentProvider(PaymentProviderInterface):
    """Stripe-backed payment provider, keyed by the active billing config."""

    def __init__(self, config_provider: BillingConfigProvider):
        self._config_provider = config_provider

    async def _api_key(self) -> str:
        config = await self._config_provider.get()
        return config.require_secret_key()

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
        params: Dict[str, Any] = {
            'mode': mode,
            'line_items': [{'price': price_id, 'quantity': 1}],
            'success_url': success_url,
            'cancel_url': cancel_url,
            'metadata': metadata,
            'idempotency_key': idempotency_key,
        }
        # Copy metadata onto the payment/subscription so webhook payloads carry it
        if mode == 'subscription':
            params['subscription_data'] = {'metadata': metadata}
        else:
            params['payment_intent_data'] = {'metadata': metadata}

        session = await StripeAPIWrapper.create_checkout_session(api_key=await self._api_key(), **params)
        logger.info(f"[STRIPE CLIENT] Created {mode} checkout session {_field(session, 'id')}")
        return checkout_session_from_stripe(session)

    async def retrieve_checkout_session(self, session_id: str) -> ProviderCheckoutSession:
        session = await StripeAPIWrapper.retrieve_checkout_session(session_id, api_key=await self._api_key())
        return checkout_session_from_stripe(session)

    async def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        subscription = await StripeAPIWrapper.retrieve_subscription(subscription_id, api_key=await self._api_key())
        return subscription_from_stripe(subscription)

    async def cancel_at_period_end(self, subscription_id: str) -> ProviderSubscription:
        subscription = await StripeAPIWrapper.cancel_subscription_at_period_end(
            subscription_id,
            api_key=await self._api_key(),
            idempotency_key=generate_subscription_cancel_idempotency_key(subscription_id),
        )
        logger.info(f"[STRIPE CLIENT] Subscription {subscription_id} set to cancel at period end")
        return subscription_from_stripe(subscription)
