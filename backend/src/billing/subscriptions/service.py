"""
Subscription Service

User-facing subscription operations: listing active plans, cancelling a
recurring subscription and re-syncing a profile.
"""

import logging
from typing import Dict, List

from backend.src.billing.domain.subscription import SubscriptionStatus
from backend.src.billing.external.interfaces import PaymentProviderInterface
from backend.src.billing.shared.config import get_plan_definition
from backend.src.billing.shared.exceptions import ConflictError, NotFoundError
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface
from backend.src.billing.subscriptions.access import PlanAccessService
from backend.src.billing.subscriptions.processor import EventProcessor
from backend.src.billing.subscriptions.resolver import resolve_plan

logger = logging.getLogger(__name__)


class SubscriptionService:

    def __init__(
        self,
        subscriptions: SubscriptionStoreInterface,
        provider: PaymentProviderInterface,
        access: PlanAccessService,
        processor: EventProcessor,
    ):
        self._subscriptions = subscriptions
        self._provider = provider
        self._access = access
        self._processor = processor

    async def list_active_plans(self, user_id: str) -> Dict:
        """Active plans of a user (lapsed pro periods are expired first)."""
        active = await self._access.get_active_records(user_id)
        plans: List[Dict] = [
            {
                'id': record.id,
                'plan_name': record.plan_name.value,
                'period_ends_at': record.period_ends_at.isoformat() if record.period_ends_at else None,
            }
            for record in sorted(active, key=lambda r: r.created_at, reverse=True)
        ]
        return {'plans': plans, 'plan': resolve_plan(active)}

    async def cancel_subscription(self, user_id: str, subscription_id: str) -> Dict:
        """
        Ask the provider to end a recurring subscription at period end.

        The record itself changes when the `subscription.cancelled` event
        arrives.

        Raises:
            NotFoundError: Unknown record or owned by another user
            ConflictError: NOT_CANCELLABLE
            TransientProviderError: Provider failure
        """
        record = await self._subscriptions.get_by_id(subscription_id)
        if record is None or record.user_id != user_id:
            raise NotFoundError(f"Subscription {subscription_id} not found", resource_id=subscription_id)

        plan = get_plan_definition(record.plan_name.value)
        if (
            record.status != SubscriptionStatus.ACTIVE
            or not record.provider_reference_id
            or plan is None
            or not plan.is_recurring
        ):
            raise ConflictError(
                message="Only active recurring subscriptions can be cancelled",
                code='NOT_CANCELLABLE',
                subscription_id=record.id,
                details={'status': record.status.value, 'plan_name': record.plan_name.value},
            )

        await self._provider.cancel_at_period_end(record.provider_reference_id)
        logger.info(f"[SUBSCRIPTION] User {user_id} cancelled {record.id} at period end")
        return {
            'success': True,
            'message': 'Subscription will be cancelled at the end of the current billing period',
            'subscription_id': record.id,
        }

    async def resync_profile(self, user_id: str) -> Dict:
        """Re-derive the profile from active records, applying grants that are still owed."""
        await self._access.get_active_records(user_id)
        sync = await self._processor.reevaluate(user_id)
        return {
            'plan': sync.profile.plan,
            'generation_balance': sync.profile.generation_balance,
        }
