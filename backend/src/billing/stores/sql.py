"""
SQL Stores

SQLAlchemy Core implementations of the billing store interfaces.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any, AsyncContextManager, AsyncGenerator, Callable, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database.db import async_db_session
from backend.src.billing.domain.subscription import SubscriptionRecord, SubscriptionStatus
from backend.src.billing.domain.user_profile import UserProfile
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface, UserProfileStoreInterface
from backend.src.billing.stores.tables import app_config, subscriptions, user_profiles

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]

_SUBSCRIPTION_COLUMNS = {
    'user_id',
    'plan_name',
    'status',
    'provider_reference_id',
    'provider_session_id',
    'period_ends_at',
    'credits_granted_at',
}
_PROFILE_COLUMNS = {'plan', 'generation_balance'}


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _filter_columns(changes: Dict[str, Any], allowed: set, table_name: str) -> Dict[str, Any]:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown {table_name} columns: {sorted(unknown)}")
    return {key: _db_value(value) for key, value in changes.items()}


class _SessionMixin:
    def __init__(self, session_factory: SessionFactory = async_db_session):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that is committed on success and rolled back on error."""
        async with self._session_factory() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                raise


class SqlSubscriptionStore(_SessionMixin, SubscriptionStoreInterface):
    """Subscription records in the `subscriptions` table."""

    async def insert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        values = {
            'id': record.id,
            'user_id': record.user_id,
            'plan_name': _db_value(record.plan_name),
            'status': _db_value(record.status),
            'provider_reference_id': record.provider_reference_id,
            'provider_session_id': record.provider_session_id,
            'period_ends_at': record.period_ends_at,
            'created_at': record.created_at,
            'credits_granted_at': record.credits_granted_at,
        }
        async with self._transaction() as db:
            result = await db.execute(subscriptions.insert().values(**values).returning(*subscriptions.c))
            row = result.mappings().one()
        return SubscriptionRecord.from_dict(dict(row))

    async def get_by_id(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        async with self._transaction() as db:
            result = await db.execute(select(subscriptions).where(subscriptions.c.id == subscription_id))
            row = result.mappings().one_or_none()
        return SubscriptionRecord.from_dict(dict(row)) if row else None

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
        query = select(subscriptions)
        if user_id is not None:
            query = query.where(subscriptions.c.user_id == user_id)
        if statuses is not None:
            query = query.where(subscriptions.c.status.in_([_db_value(s) for s in statuses]))
        if plan_name is not None:
            query = query.where(subscriptions.c.plan_name == _db_value(plan_name))
        if provider_reference_id is not None:
            query = query.where(subscriptions.c.provider_reference_id == provider_reference_id)
        if provider_session_id is not None:
            query = query.where(subscriptions.c.provider_session_id == provider_session_id)
        if has_session is True:
            query = query.where(subscriptions.c.provider_session_id.is_not(None))
        elif has_session is False:
            query = query.where(subscriptions.c.provider_session_id.is_(None))
        if created_after is not None:
            query = query.where(subscriptions.c.created_at >= created_after)
        order = subscriptions.c.created_at.desc() if newest_first else subscriptions.c.created_at.asc()
        query = query.order_by(order)
        if limit is not None:
            query = query.limit(limit)

        async with self._transaction() as db:
            result = await db.execute(query)
            rows = result.mappings().all()
        return [SubscriptionRecord.from_dict(dict(row)) for row in rows]

    async def update_by_id(
        self,
        subscription_id: str,
        expected_status: Optional[SubscriptionStatus] = None,
        expected_null: Iterable[str] = (),
        **changes: Any,
    ) -> Optional[SubscriptionRecord]:
        values = _filter_columns(changes, _SUBSCRIPTION_COLUMNS, 'subscriptions')
        expected_null = tuple(expected_null)
        _filter_columns(dict.fromkeys(expected_null), _SUBSCRIPTION_COLUMNS, 'subscriptions')
        stmt = update(subscriptions).where(subscriptions.c.id == subscription_id)
        if expected_status is not None:
            stmt = stmt.where(subscriptions.c.status == _db_value(expected_status))
        for column in expected_null:
            stmt = stmt.where(subscriptions.c[column].is_(None))
        stmt = stmt.values(**values).returning(*subscriptions.c)

        async with self._transaction() as db:
            result = await db.execute(stmt)
            row = result.mappings().one_or_none()
        if row is None:
            logger.debug(
                f"[STORE] No subscription updated for {subscription_id} "
                f"(expected status {_db_value(expected_status)})"
            )
            return None
        return SubscriptionRecord.from_dict(dict(row))


class SqlUserProfileStore(_SessionMixin, UserProfileStoreInterface):
    """Billing fields of the `user_profiles` table."""

    async def get(self, user_id: str) -> Optional[UserProfile]:
        async with self._transaction() as db:
            result = await db.execute(select(user_profiles).where(user_profiles.c.id == user_id))
            row = result.mappings().one_or_none()
        return UserProfile.from_dict(dict(row)) if row else None

    async def update(self, user_id: str, **changes: Any) -> Optional[UserProfile]:
        values = _filter_columns(changes, _PROFILE_COLUMNS, 'user_profiles')
        stmt = (
            update(user_profiles)
            .where(user_profiles.c.id == user_id)
            .values(**values)
            .returning(*user_profiles.c)
        )
        async with self._transaction() as db:
            result = await db.execute(stmt)
            row = result.mappings().one_or_none()
        return UserProfile.from_dict(dict(row)) if row else None


def make_app_config_loader(session_factory: SessionFactory = async_db_session):
    """Build an override loader reading every row of `app_config`."""

    async def load_app_config_overrides() -> Dict[str, Optional[str]]:
        async with session_factory() as db:
            result = await db.execute(select(app_config.c.key, app_config.c.value))
            return {row.key: row.value for row in result}

    return load_app_config_overrides
