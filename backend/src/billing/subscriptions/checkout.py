"""
Checkout Initiator

Starts a purchase: validates the plan against the user's current plans,
creates the pending subscription record and opens a provider checkout
session for it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict

from backend.database.db import uuid4_str
from backend.src.billing.domain.subscription import (
    PlanName,
    SubscriptionRecord,
    SubscriptionStatus,
    utcnow,
)
from backend.src.billing.external.interfaces import PaymentProviderInterface
from backend.src.billing.external.stripe.idempotency import generate_checkout_idempotency_key
from backend.src.billing.shared.config import BillingConfig, BillingConfigProvider, get_plan_priority, get_purchasable_plan
from backend.src.billing.shared.exceptions import ConflictError
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface
from backend.src.billing.subscriptions.access import PlanAccessService
from backend.src.billing.subscriptions.resolver import resolve_plan

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    checkout_url: str
    session_id: str
    subscription_id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'checkout_url': self.checkout_url,
            'session_id': self.session_id,
            'subscription_id': self.subscription_id,
        }


def build_redirect_urls(config: BillingConfig, plan_name: str, subscription_id: str) -> Dict[str, str]:
    return {
        'success_url': (
            f"{config.site_url}/#api?payment=success&plan={plan_name}&subscription_id={subscription_id}"
        ),
        'cancel_url': f"{config.site_url}/#api?payment=cancelled",
    }


class CheckoutInitiator:
    """
    Creates checkout sessions.

    Flow:
        1. validate plan, enforce hierarchy (target must outrank current plan)
        2. reject duplicate recurring checkouts
        3. insert pending record
        4. create provider session (idempotency key from the record ID)
        5. store the session ID on the record
    """

    def __init__(
        self,
        subscriptions: SubscriptionStoreInterface,
        provider: PaymentProviderInterface,
        access: PlanAccessService,
        config_provider: BillingConfigProvider,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = uuid4_str,
    ):
        self._subscriptions = subscriptions
        self._provider = provider
        self._access = access
        self._config_provider = config_provider
        self._clock = clock
        self._id_factory = id_factory

    async def create_checkout(self, user_id: str, plan_name: str) -> CheckoutResult:
        """
        Start checkout for `plan_name`.

        Raises:
            PlanNotFoundError: Unknown or non-purchasable plan
            ConflictError: PLAN_HIERARCHY or DUPLICATE_CHECKOUT
            ConfigurationError: Missing price ID or provider key
            TransientProviderError: Provider failure (pending record stays behind)
        """
        plan = get_purchasable_plan(plan_name)
        config = await self._config_provider.get()
        price_id = config.price_id_for(plan.name)

        active = await self._access.get_active_records(user_id)
        current_plan = resolve_plan(active)
        if plan.priority <= get_plan_priority(current_plan):
            logger.info(f"[CHECKOUT] User {user_id} on {current_plan} cannot buy {plan.name}")
            raise ConflictError(
                message=f"Cannot purchase {plan.name} while on the {current_plan} plan",
                code='PLAN_HIERARCHY',
                details={'current_plan': current_plan, 'requested_plan': plan.name},
            )

        if plan.is_recurring:
            await self._ensure_no_duplicate(user_id, plan.name, active, config)

        now = self._clock()
        record = await self._subscriptions.insert(SubscriptionRecord(
            id=self._id_factory(),
            user_id=user_id,
            plan_name=PlanName(plan.name),
            status=SubscriptionStatus.PENDING,
            created_at=now,
        ))
        logger.info(f"[CHECKOUT] Created pending subscription {record.id} ({plan.name}) for {user_id}")

        try:
            session = await self._provider.create_checkout_session(
                price_id=price_id,
                mode=plan.checkout_mode,
                metadata={
                    'subscription_id': record.id,
                    'user_id': user_id,
                    'plan_name': plan.name,
                },
                idempotency_key=generate_checkout_idempotency_key(record.id, price_id),
                **build_redirect_urls(config, plan.name, record.id),
            )
            await self._subscriptions.update_by_id(
                record.id,
                expected_status=SubscriptionStatus.PENDING,
                provider_session_id=session.id,
            )
        except Exception as e:
            logger.error(f"[CHECKOUT] Checkout failed after creating pending subscription {record.id}: {e}")
            raise

        logger.info(f"[CHECKOUT] Session {session.id} opened for subscription {record.id}")
        return CheckoutResult(checkout_url=session.url, session_id=session.id, subscription_id=record.id)

    async def _ensure_no_duplicate(self, user_id: str, plan_name: str, active, config: BillingConfig) -> None:
        if any(record.plan_name.value == plan_name for record in active):
            raise ConflictError(
                message=f"An active {plan_name} subscription already exists",
                code='DUPLICATE_CHECKOUT',
                details={'plan_name': plan_name},
            )

        window_start = self._clock() - timedelta(days=config.recovery_window_days)
        pending = await self._subscriptions.find(
            user_id=user_id,
            statuses=[SubscriptionStatus.PENDING],
            plan_name=plan_name,
            created_after=window_start,
            limit=1,
        )
        if pending:
            raise ConflictError(
                message=f"A {plan_name} checkout is already in progress",
                code='DUPLICATE_CHECKOUT',
                subscription_id=pending[0].id,
                details={'plan_name': plan_name},
            )
