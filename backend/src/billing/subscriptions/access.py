"""
Plan Access

Generation permissions and credit consumption. Reads here are the points
where lapsed pro subscriptions are expired.
"""

import logging
import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from backend.src.billing.domain.subscription import PlanName, SubscriptionRecord, SubscriptionStatus, utcnow
from backend.src.billing.domain.user_profile import UserProfile
from backend.src.billing.shared.config import BillingConfigProvider
from backend.src.billing.shared.exceptions import NotFoundError, PartialWriteWarning
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface, UserProfileStoreInterface
from backend.src.billing.subscriptions.expiry import expire_lapsed_records
from backend.src.billing.subscriptions.processor import EventProcessor
from backend.src.billing.subscriptions.resolver import resolve_plan

logger = logging.getLogger(__name__)

GENERATION_LIMIT_EXCEEDED = 'GENERATION_LIMIT_EXCEEDED'


@dataclass
class GenerationAccess:
    allowed: bool
    plan: str
    generation_balance: Optional[int]  # None = unlimited
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'allowed': self.allowed,
            'plan': self.plan,
            'generation_balance': self.generation_balance,
            'reason': self.reason,
        }


class PlanAccessService:
    """Answers "may this user generate?" and charges one generation."""

    def __init__(
        self,
        subscriptions: SubscriptionStoreInterface,
        profiles: UserProfileStoreInterface,
        processor: EventProcessor,
        config_provider: BillingConfigProvider,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._subscriptions = subscriptions
        self._profiles = profiles
        self._processor = processor
        self._config_provider = config_provider
        self._clock = clock

    async def get_active_records(self, user_id: str) -> List[SubscriptionRecord]:
        """
        Active records of a user, after expiring lapsed pro periods.

        When something was expired the profile is re-synced on a best-effort
        basis.
        """
        records = await self._subscriptions.find(user_id=user_id, statuses=[SubscriptionStatus.ACTIVE])
        active, expired = await expire_lapsed_records(self._subscriptions, records, self._clock())
        if expired:
            try:
                await self._processor.reevaluate(user_id)
            except Exception as e:
                warning = PartialWriteWarning(user_id, subscription_id=expired[0].id, cause=str(e))
                logger.error(f"[PARTIAL WRITE] {warning.message} (lazy expiry): {e}", exc_info=True)
        return active

    async def current_plan(self, user_id: str) -> str:
        return resolve_plan(await self.get_active_records(user_id))

    async def _load_profile(self, user_id: str) -> UserProfile:
        profile = await self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError(f"User profile {user_id} not found", resource='user_profile', resource_id=user_id)
        return profile

    async def _effective_balance(self, profile: UserProfile) -> int:
        if profile.generation_balance is not None:
            return profile.generation_balance
        if profile.plan == PlanName.FREE.value:
            config = await self._config_provider.get()
            return config.free_generation_grant
        return 0

    async def check_generation_access(self, user_id: str) -> GenerationAccess:
        """
        Whether the user may start a generation. Does not consume anything.

        Raises:
            NotFoundError: If a non-pro user has no profile
        """
        plan = await self.current_plan(user_id)
        if plan == PlanName.PRO.value:
            return GenerationAccess(allowed=True, plan=plan, generation_balance=None)

        profile = await self._load_profile(user_id)
        balance = await self._effective_balance(profile)
        if balance <= 0:
            logger.info(f"[ACCESS] User {user_id} has no generations left ({plan})")
            return GenerationAccess(
                allowed=False,
                plan=plan,
                generation_balance=balance,
                reason=GENERATION_LIMIT_EXCEEDED,
            )
        return GenerationAccess(allowed=True, plan=plan, generation_balance=balance)

    async def consume_generation_credit(self, user_id: str) -> Optional[int]:
        """
        Charge one generation.

        Returns:
            The new balance, or None for pro users (nothing consumed)
        """
        plan = await self.current_plan(user_id)
        if plan == PlanName.PRO.value:
            return None

        profile = await self._load_profile(user_id)
        new_balance = max(0, await self._effective_balance(profile) - 1)
        updated = await self._profiles.update(user_id, generation_balance=new_balance)
        if updated is None:
            raise NotFoundError(f"User profile {user_id} not found", resource='user_profile', resource_id=user_id)
        logger.info(f"[ACCESS] User {user_id} generation balance updated to {new_balance}")
        return new_balance


# Per-plan generation counts of the legacy count-based model
LEGACY_GENERATION_LIMITS = {
    PlanName.FREE.value: 3,
    PlanName.HOBBYIST.value: 20,
}


def is_within_generation_count_limit(plan: str, generation_count: int) -> bool:
    """
    Legacy count-based limit check.

    Deprecated: use PlanAccessService.check_generation_access, which works on
    the generation balance.
    """
    warnings.warn(
        "is_within_generation_count_limit is deprecated; use "
        "PlanAccessService.check_generation_access",
        DeprecationWarning,
        stacklevel=2,
    )
    if plan == PlanName.PRO.value:
        return True
    limit = LEGACY_GENERATION_LIMITS.get(plan, LEGACY_GENERATION_LIMITS[PlanName.FREE.value])
    return generation_count < limit
