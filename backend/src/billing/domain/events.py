"""
Payment Event

A provider notification after authentication, with helpers that read the
identifiers the lifecycle engine needs out of its payload.

Stripe event types are mapped onto the canonical names; some of them
depend on the object they carry (a checkout session that is not paid yet,
a subscription update to a given status).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from backend.src.billing.domain.subscription import parse_datetime
from backend.src.billing.shared.exceptions import WebhookPayloadError


class PaymentEventType(str, Enum):
    """Canonical event names, dotted provider style."""
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    SUBSCRIPTION_ACTIVE = "subscription.active"
    SUBSCRIPTION_RENEWED = "subscription.renewed"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_EXPIRED = "subscription.expired"
    SUBSCRIPTION_FAILED = "subscription.failed"
    SUBSCRIPTION_ON_HOLD = "subscription.on_hold"

    @classmethod
    def parse(cls, value: Any) -> Optional['PaymentEventType']:
        """Map a raw type string to a known event type, None when unknown."""
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        normalized = _EVENT_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return None


# Spelling variants seen from providers
_EVENT_ALIASES: Dict[str, str] = {
    'subscription.canceled': 'subscription.cancelled',
    'subscription.activated': 'subscription.active',
    'subscription.renewal': 'subscription.renewed',
    'subscription.onhold': 'subscription.on_hold',
    'payment.success': 'payment.succeeded',
}


_STRIPE_EVENT_TYPES: Dict[str, PaymentEventType] = {
    'checkout.session.completed': PaymentEventType.PAYMENT_SUCCEEDED,
    'checkout.session.async_payment_succeeded': PaymentEventType.PAYMENT_SUCCEEDED,
    'invoice.paid': PaymentEventType.SUBSCRIPTION_RENEWED,
    'invoice.payment_succeeded': PaymentEventType.SUBSCRIPTION_RENEWED,
    'invoice.payment_failed': PaymentEventType.PAYMENT_FAILED,
    'customer.subscription.deleted': PaymentEventType.SUBSCRIPTION_CANCELLED,
}

# customer.subscription.updated, keyed by the subscription's new status
_STRIPE_SUBSCRIPTION_STATUSES: Dict[str, PaymentEventType] = {
    'active': PaymentEventType.SUBSCRIPTION_RENEWED,
    'past_due': PaymentEventType.SUBSCRIPTION_ON_HOLD,
    'unpaid': PaymentEventType.SUBSCRIPTION_ON_HOLD,
    'canceled': PaymentEventType.SUBSCRIPTION_CANCELLED,
    'incomplete_expired': PaymentEventType.SUBSCRIPTION_EXPIRED,
}

# Checkout sessions that completed without the money being collected yet
# are activated later by checkout.session.async_payment_succeeded.
_PAID_SESSION_STATUSES = ('paid', 'no_payment_required')


def resolve_event_type(raw_type: Any, data: Dict[str, Any]) -> Optional[PaymentEventType]:
    """Canonical type of a delivered event, None when it is not handled."""
    event_type = PaymentEventType.parse(raw_type)
    if event_type is not None:
        return event_type

    normalized = raw_type.strip().lower() if isinstance(raw_type, str) else ''
    if normalized == 'customer.subscription.updated':
        return _STRIPE_SUBSCRIPTION_STATUSES.get(str(data.get('status') or ''))
    if normalized == 'checkout.session.completed' and data.get('payment_status') not in _PAID_SESSION_STATUSES:
        return None
    return _STRIPE_EVENT_TYPES.get(normalized)


def _first(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if isinstance(value, dict):
            value = value.get('id')
        if value:
            return str(value)
    return None


def _nested(data: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    for key in keys:
        value = data.get(key)
        data = value if isinstance(value, dict) else {}
    return data


@dataclass
class PaymentEvent:
    """
    An authenticated provider event.

    Attributes:
        raw_type: Event type exactly as delivered
        type: Canonical event type, None when the type is not handled
        payload: Event data object
    """
    raw_type: str
    type: Optional[PaymentEventType]
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: Optional[str] = None

    @classmethod
    def from_envelope(cls, envelope: Any) -> 'PaymentEvent':
        """
        Build an event from a decoded webhook body.

        Accepts Stripe envelopes (`{"id": "evt_...", "type": ..., "data": {"object": {...}}}`)
        and the flat `{"type": ..., "data": {...}}` form.

        Raises:
            WebhookPayloadError: If the body has no type or no data object
        """
        if not isinstance(envelope, dict):
            raise WebhookPayloadError("Webhook body must be a JSON object")

        raw_type = envelope.get('type')
        if not isinstance(raw_type, str) or not raw_type:
            raise WebhookPayloadError("Webhook body has no event type")

        data = envelope.get('data')
        if isinstance(data, dict) and isinstance(data.get('object'), dict):
            data = data['object']
        if not isinstance(data, dict):
            raise WebhookPayloadError("Webhook body has no data object")

        event_id = envelope.get('id') or envelope.get('webhook_id')
        return cls(
            raw_type=raw_type,
            type=resolve_event_type(raw_type, data),
            payload=data,
            event_id=str(event_id) if event_id else None,
        )

    @property
    def metadata(self) -> Dict[str, Any]:
        metadata = self.payload.get('metadata')
        return metadata if isinstance(metadata, dict) else {}

    @property
    def record_id(self) -> Optional[str]:
        """Internal subscription record ID carried in metadata."""
        value = self.metadata.get('subscription_id')
        return str(value) if value else None

    @property
    def object_type(self) -> Optional[str]:
        """Stripe `object` of the payload ('checkout.session', 'invoice', ...)."""
        value = self.payload.get('object')
        return value if isinstance(value, str) else None

    @property
    def payment_id(self) -> Optional[str]:
        return _first(self.payload, 'payment_id', 'payment_intent')

    @property
    def provider_subscription_id(self) -> Optional[str]:
        if self.object_type == 'subscription':
            return _first(self.payload, 'id')
        found = _first(self.payload, 'subscription_id', 'subscription')
        if found is None:
            # Invoices from newer Stripe API versions nest the subscription under `parent`
            details = _nested(self.payload, 'parent', 'subscription_details')
            found = _first(details, 'subscription')
        return found

    @property
    def session_id(self) -> Optional[str]:
        if self.object_type == 'checkout.session':
            return _first(self.payload, 'id')
        return _first(self.payload, 'checkout_session_id', 'session_id')

    @property
    def next_billing_date(self) -> Optional[datetime]:
        for key in ('next_billing_date', 'current_period_end'):
            parsed = parse_datetime(self.payload.get(key))
            if parsed is not None:
                return parsed
        # Invoice: end of the period its first line item pays for
        lines = _nested(self.payload, 'lines').get('data')
        if isinstance(lines, list) and lines and isinstance(lines[0], dict):
            return parse_datetime(_nested(lines[0], 'period').get('end'))
        return None
