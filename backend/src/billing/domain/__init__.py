"""Domain entities for billing module."""

from .events import PaymentEvent, PaymentEventType
from .subscription import (
    ALLOWED_TRANSITIONS,
    PlanName,
    SubscriptionRecord,
    SubscriptionStatus,
    can_transition,
)
from .user_profile import UserProfile

__all__ = [
    'ALLOWED_TRANSITIONS',
    'PaymentEvent',
    'PaymentEventType',
    'PlanName',
    'SubscriptionRecord',
    'SubscriptionStatus',
    'UserProfile',
    'can_transition',
]
