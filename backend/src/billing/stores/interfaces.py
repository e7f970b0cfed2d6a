"""
Store Interfaces

Persistence collaborators of the lifecycle engine. The engine only depends
on these interfaces; SQL implementations live in `stores.sql` and tests use
in-memory fakes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, List, Optional

from backend.src.billing.domain.subscription import SubscriptionRecord, SubscriptionStatus
from backend.src.billing.domain.user_profile import UserProfile


class SubscriptionStoreInterface(ABC):
    """Interface for subscription record persistence."""

    @abstractmethod
    async def insert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Insert a new record."""
        pass

    @abstractmethod
    async def get_by_id(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        """Fetch a record by internal ID, None when missing."""
        pass

    @abstractmethod
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
        """Select records matching every given criterion."""
        pass

    @abstractmethod
    async def update_by_id(
        self,
        subscription_id: str,
        expected_status: Optional[SubscriptionStatus] = None,
        expected_null: Iterable[str] = (),
        **changes: Any,
    ) -> Optional[SubscriptionRecord]:
        """
        Apply `changes` to one record.

        When `expected_status` is given the update only happens if the stored
        status still equals it. Every column named in `expected_null` must
        still be NULL as well; this is how a reference or a credit grant is
        claimed exactly once.

        Returns:
            The updated record, or None when no row matched
        """
        pass


class UserProfileStoreInterface(ABC):
    """Interface for the billing fields of user profiles."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserProfile]:
        """Fetch a profile, None when missing."""
        pass

    @abstractmethod
    async def update(self, user_id: str, **changes: Any) -> Optional[UserProfile]:
        """Write `plan` and/or `generation_balance`, returns the new profile."""
        pass
