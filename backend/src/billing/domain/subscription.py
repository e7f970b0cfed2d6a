"""
Subscription Domain Entity

Represents one purchase of a plan by a user and the lifecycle state
machine it moves along.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional


class SubscriptionStatus(str, Enum):
    """Possible subscription record statuses."""
    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PlanName(str, Enum):
    """Plans a user can hold. `free` never has a record."""
    FREE = "free"
    HOBBYIST = "hobbyist"
    PRO = "pro"


# pending -> active -> {past_due, cancelled, expired}; past_due -> {active, expired}
ALLOWED_TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    SubscriptionStatus.PENDING: frozenset({SubscriptionStatus.ACTIVE}),
    SubscriptionStatus.ACTIVE: frozenset({
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.PAST_DUE: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.CANCELLED: frozenset(),
    SubscriptionStatus.EXPIRED: frozenset(),
}


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    """Check whether the state machine allows `current -> target`."""
    return target in ALLOWED_TRANSITIONS[current]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):  # Unix timestamp
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class SubscriptionRecord:
    """
    A user's subscription record.

    Attributes:
        id: Internal record ID (UUID string)
        user_id: Owner of the record
        plan_name: 'hobbyist' or 'pro'
        status: Current lifecycle status
        provider_reference_id: Provider payment/subscription ID, set once on
            activation and never replaced by a different value
        provider_session_id: Checkout session created for this record
        period_ends_at: End of the paid period (recurring plans only)
        credits_granted_at: When the plan's generation grant was claimed,
            None while it is still owed
        created_at: When the pending record was created
    """
    id: str
    user_id: str
    plan_name: PlanName
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    provider_reference_id: Optional[str] = None
    provider_session_id: Optional[str] = None
    period_ends_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    credits_granted_at: Optional[datetime] = None

    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def is_pending(self) -> bool:
        return self.status == SubscriptionStatus.PENDING

    def owes_generation_grant(self) -> bool:
        """Active hobbyist record whose credits were never added to the profile."""
        return self.is_active() and self.plan_name == PlanName.HOBBYIST and self.credits_granted_at is None

    def has_lapsed(self, now: Optional[datetime] = None) -> bool:
        """True for an active pro record whose paid period has ended."""
        if self.plan_name != PlanName.PRO or not self.is_active() or self.period_ends_at is None:
            return False
        return (now or utcnow()) > self.period_ends_at

    def with_changes(self, **changes) -> 'SubscriptionRecord':
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict) -> 'SubscriptionRecord':
        """
        Create a SubscriptionRecord from a dictionary (e.g. a database row).

        Args:
            data: Dictionary with subscription fields

        Returns:
            SubscriptionRecord instance
        """
        return cls(
            id=str(data['id']),
            user_id=str(data['user_id']),
            plan_name=PlanName(data['plan_name']),
            status=SubscriptionStatus(data.get('status') or SubscriptionStatus.PENDING.value),
            provider_reference_id=data.get('provider_reference_id'),
            provider_session_id=data.get('provider_session_id'),
            period_ends_at=parse_datetime(data.get('period_ends_at')),
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
            credits_granted_at=parse_datetime(data.get('credits_granted_at')),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'plan_name': self.plan_name.value,
            'status': self.status.value,
            'provider_reference_id': self.provider_reference_id,
            'provider_session_id': self.provider_session_id,
            'period_ends_at': self.period_ends_at.isoformat() if self.period_ends_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'credits_granted_at': self.credits_granted_at.isoformat() if self.credits_granted_at else None,
        }
