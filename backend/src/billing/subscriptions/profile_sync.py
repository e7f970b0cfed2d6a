"""
User Profile Synchronizer

Writes the resolved plan and the generation balance back to the user's
profile after a subscription record changed.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

from backend.src.billing.domain.subscription import PlanName
from backend.src.billing.domain.user_profile import UserProfile
from backend.src.billing.shared.exceptions import NotFoundError
from backend.src.billing.stores.interfaces import UserProfileStoreInterface

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one synchronisation."""
    profile: UserProfile
    changed: bool
    granted: int = 0


class UserProfileSynchronizer:
    """
    Keeps `plan` and `generation_balance` of a profile consistent with the
    resolved plan.

    Balance rules:
        - a resolved `pro` plan clears the balance (unlimited)
        - a downgrade to `free` resets the balance to 0; a profile that is
          already `free` keeps what it has, including the implicit free grant
        - `grant` credits are added on top unless the plan is `pro`

    Not atomic with the subscription update. Which grants are owed is
    decided by the caller from durable record state, so re-running
    converges without granting twice.
    """

    def __init__(self, profiles: UserProfileStoreInterface):
        self._profiles = profiles

    async def sync(self, user_id: str, resolved_plan: str, grant: int = 0) -> SyncResult:
        """
        Synchronise one profile.

        Args:
            user_id: Profile to update
            resolved_plan: Output of the plan resolver
            grant: Generation credits claimed for this sync

        Raises:
            NotFoundError: If the profile does not exist
        """
        profile = await self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError(f"User profile {user_id} not found", resource='user_profile', resource_id=user_id)

        changes: Dict[str, Any] = {}

        if profile.plan != resolved_plan:
            changes['plan'] = resolved_plan

        balance = profile.generation_balance
        if resolved_plan == PlanName.PRO.value:
            new_balance = None
            grant = 0
        elif resolved_plan == PlanName.FREE.value and profile.plan != PlanName.FREE.value:
            new_balance = 0
        else:
            new_balance = balance

        if grant:
            new_balance = (new_balance or 0) + grant

        if new_balance != balance:
            changes['generation_balance'] = new_balance

        if not changes:
            logger.debug(f"[PROFILE SYNC] Profile {user_id} already up to date ({resolved_plan})")
            return SyncResult(profile=profile, changed=False)

        updated = await self._profiles.update(user_id, **changes)
        if updated is None:
            raise NotFoundError(f"User profile {user_id} not found", resource='user_profile', resource_id=user_id)

        logger.info(
            f"[PROFILE SYNC] User {user_id}: plan {profile.plan} -> {updated.plan}, "
            f"balance {balance} -> {updated.generation_balance}"
            + (f" (granted {grant})" if grant else "")
        )
        return SyncResult(profile=updated, changed=True, granted=grant)
