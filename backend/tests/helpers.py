"""Test doubles: in-memory stores, a fake payment provider, a frozen clock and builders."""

import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Dict, Iterable, List, Optional

from backend.core.conf import Settings
from backend.src.billing.domain.subscription import (
    PlanName,
    SubscriptionRecord,
    SubscriptionStatus,
)
from backend.src.billing.domain.user_profile import UserProfile
from backend.src.billing.external.interfaces import (
    PaymentProviderInterface,
    ProviderCheckoutSession,
    ProviderSubscription,
)
from backend.src.billing.shared.exceptions import NotFoundError
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface, UserProfileStoreInterface

WEBHOOK_SECRET = 'whsec_unit_test'
NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock returning a fixed, movable instant."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemorySubscriptionStore(SubscriptionStoreInterface):
    """
    Dict-backed store. Every call yields to the event loop once so that
    concurrent handlers interleave like they would against a database;
    the conditional update itself is atomic.
    """

    def __init__(self):
        self.records: Dict[str, SubscriptionRecord] = {}
        self.update_calls: List[Dict[str, Any]] = []
        self.fail_updates: Optional[Exception] = None

    def add(self, record: SubscriptionRecord) -> SubscriptionRecord:
        self.records[record.id] = record
        return record

    async def insert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        await asyncio.sleep(0)
        self.records[record.id] = record
        return record

    async def get_by_id(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        await asyncio.sleep(0)
        return self.records.get(subscription_id)

    async def find(
        self,
        *,
        user_id: Optional[str] = None,
        statuses: Optional[Iterable[SubscriptionStatus]] = None,
        plan_name: Optional[str] = None,
        provider_reference_id: Optional[str] = None,
        provider_session_id: Optional[str] = None,
        has_session: Optional[bool] = None,
        created_after: Optional[datetime] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[SubscriptionRecord]:
        await asyncio.sleep(0)
        statuses = set(statuses) if statuses is not None else None
        plan_value = plan_name.value if isinstance(plan_name, PlanName) else plan_name
        matches = []
        for record in self.records.values():
            if user_id is not None and record.user_id != user_id:
                continue
            if statuses is not None and record.status not in statuses:
                continue
            if plan_value is not None and record.plan_name.value != plan_value:
                continue
            if provider_reference_id is not None and record.provider_reference_id != provider_reference_id:
                continue
            if provider_session_id is not None and record.provider_session_id != provider_session_id:
                continue
            if has_session is not None and bool(record.provider_session_id) != has_session:
                continue
            if created_after is not None and record.created_at < created_after:
                continue
            matches.append(record)
        matches.sort(key=lambda r: r.created_at, reverse=newest_first)
        return matches[:limit] if limit is not None else matches

    async def update_by_id(
        self,
        subscription_id: str,
        expected_status: Optional[SubscriptionStatus] = None,
        expected_null: Iterable[str] = (),
        **changes: Any,
    ) -> Optional[SubscriptionRecord]:
        await asyncio.sleep(0)
        self.update_calls.append({'id': subscription_id, 'expected_status': expected_status, **changes})
        if self.fail_updates is not None:
            raise self.fail_updates
        record = self.records.get(subscription_id)
        if record is None:
            return None
        if expected_status is not None and record.status != expected_status:
            return None
        if any(getattr(record, column) is not None for column in expected_null):
            return None
        updated = record.with_changes(**changes)
        self.records[subscription_id] = updated
        return updated


class InMemoryUserProfileStore(UserProfileStoreInterface):

    def __init__(self):
        self.profiles: Dict[str, UserProfile] = {}
        self.update_calls: List[Dict[str, Any]] = []
        self.fail_updates: Optional[Exception] = None

    def add(self, user_id: str, plan: str = 'free', generation_balance: Optional[int] = None) -> UserProfile:
        profile = UserProfile(id=user_id, plan=plan, generation_balance=generation_balance)
        self.profiles[user_id] = profile
        return profile

    async def get(self, user_id: str) -> Optional[UserProfile]:
        await asyncio.sleep(0)
        profile = self.profiles.get(user_id)
        return UserProfile(**profile.to_dict()) if profile else None

    async def update(self, user_id: str, **changes: Any) -> Optional[UserProfile]:
        await asyncio.sleep(0)
        if self.fail_updates is not None:
            raise self.fail_updates
        self.update_calls.append({'id': user_id, **changes})
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        data = profile.to_dict()
        data.update(changes)
        self.profiles[user_id] = UserProfile(**data)
        return UserProfile(**data)


class FakePaymentProvider(PaymentProviderInterface):
    """Records calls and serves checkout sessions from memory."""

    def __init__(self):
        self.sessions: Dict[str, ProviderCheckoutSession] = {}
        self.created: List[Dict[str, Any]] = []
        self.retrieved: List[str] = []
        self.cancelled: List[str] = []
        self.fail_with: Optional[Exception] = None
        self._ids = count(1)

    async def create_checkout_session(self, **kwargs) -> ProviderCheckoutSession:
        if self.fail_with is not None:
            raise self.fail_with
        self.created.append(kwargs)
        session_id = f"cs_test_{next(self._ids)}"
        session = ProviderCheckoutSession(
            id=session_id,
            url=f"https://checkout.example.com/{session_id}",
            status='open',
            payment_status='unpaid',
            metadata=dict(kwargs.get('metadata') or {}),
        )
        self.sessions[session_id] = session
        return session

    def mark_paid(
        self,
        session_id: str,
        payment_id: str,
        subscription_id: Optional[str] = None,
        payment_status: str = 'paid',
    ) -> ProviderCheckoutSession:
        session = self.sessions[session_id]
        session.status = 'complete'
        session.payment_status = payment_status
        session.payment_id = payment_id
        session.subscription_id = subscription_id
        return session

    def add_session(self, session: ProviderCheckoutSession) -> ProviderCheckoutSession:
        self.sessions[session.id] = session
        return session

    async def retrieve_checkout_session(self, session_id: str) -> ProviderCheckoutSession:
        if self.fail_with is not None:
            raise self.fail_with
        self.retrieved.append(session_id)
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Resource not found at payment provider", resource='provider_resource',
                                resource_id=session_id)
        return session

    async def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        return ProviderSubscription(id=subscription_id, status='active')

    async def cancel_at_period_end(self, subscription_id: str) -> ProviderSubscription:
        if self.fail_with is not None:
            raise self.fail_with
        self.cancelled.append(subscription_id)
        return ProviderSubscription(id=subscription_id, status='active', cancel_at_period_end=True)


def make_settings(**overrides) -> Settings:
    values = dict(
        PAYMENT_MODE='live',
        STRIPE_SECRET_KEY='sk_live_unit',
        STRIPE_SECRET_KEY_TEST='sk_test_unit',
        STRIPE_HOBBYIST_PRICE_ID='price_hobbyist_live',
        STRIPE_HOBBYIST_PRICE_ID_TEST='price_hobbyist_test',
        STRIPE_PRO_PRICE_ID='price_pro_live',
        STRIPE_PRO_PRICE_ID_TEST='price_pro_test',
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        STRIPE_WEBHOOK_SECRET_TEST='whsec_test_mode',
        SITE_URL='https://app.example.com/',
        TOKEN_SECRET_KEY='unit-test-token-secret',
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_record(
    record_id: str = 'sub_internal_1',
    user_id: str = 'user-1',
    plan_name: str = 'hobbyist',
    status: SubscriptionStatus = SubscriptionStatus.PENDING,
    created_at: datetime = NOW,
    **kwargs,
) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=record_id,
        user_id=user_id,
        plan_name=PlanName(plan_name),
        status=status,
        created_at=created_at,
        **kwargs,
    )


def stripe_signature(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """`stripe-signature` header value for `body`, signed the way Stripe signs deliveries."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{timestamp}.{body.decode('utf-8')}".encode('utf-8')
    digest = hmac.new(secret.encode('utf-8'), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def signed_body(event_type: str, data: Dict[str, Any], secret: str = WEBHOOK_SECRET, event_id: str = 'evt_test_1'):
    body = json.dumps({
        'id': event_id,
        'object': 'event',
        'type': event_type,
        'data': {'object': data},
    }).encode()
    return body, stripe_signature(body, secret)
