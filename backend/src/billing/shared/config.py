"""
Billing Configuration

This module defines the purchasable plans, their priorities, and the runtime
billing configuration (provider keys, price IDs, grant constants).

Usage:
    from backend.src.billing.shared.config import BillingConfigProvider

    config = await BillingConfigProvider(settings).get()
    price_id = config.price_id_for('pro')
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Literal, Mapping, Optional

from backend.core.conf import Settings, settings
from backend.src.billing.shared.exceptions import ConfigurationError, PlanNotFoundError

logger = logging.getLogger(__name__)


# =============================================================================
# PLAN DEFINITIONS
# =============================================================================
@dataclass(frozen=True)
class PlanDefinition:
    """
    A plan a user can hold.

    Attributes:
        name: Internal plan identifier ('free', 'hobbyist', 'pro')
        display_name: Human-readable name shown in UI
        priority: Rank used by the plan hierarchy (higher wins)
        checkout_mode: 'payment' for one-time purchases, 'subscription' for
            recurring plans, None for plans that cannot be bought
    """
    name: str
    display_name: str
    priority: int
    checkout_mode: Optional[Literal['payment', 'subscription']] = None

    @property
    def is_recurring(self) -> bool:
        return self.checkout_mode == 'subscription'

    @property
    def is_purchasable(self) -> bool:
        return self.checkout_mode is not None


PLANS: Dict[str, PlanDefinition] = {
    'free': PlanDefinition(name='free', display_name='Free', priority=0),
    'hobbyist': PlanDefinition(
        name='hobbyist',
        display_name='Hobbyist',
        priority=1,
        checkout_mode='payment',
    ),
    'pro': PlanDefinition(
        name='pro',
        display_name='Pro',
        priority=2,
        checkout_mode='subscription',
    ),
}

PLAN_PRIORITY: Dict[str, int] = {name: plan.priority for name, plan in PLANS.items()}


def get_plan_definition(plan_name: str) -> Optional[PlanDefinition]:
    """Look up a plan by name, None when unknown."""
    return PLANS.get(plan_name)


def get_purchasable_plan(plan_name: str) -> PlanDefinition:
    """
    Look up a plan that can be bought through checkout.

    Raises:
        PlanNotFoundError: If the plan is unknown or cannot be purchased ('free')
    """
    plan = PLANS.get(plan_name)
    if plan is None or not plan.is_purchasable:
        raise PlanNotFoundError(plan_name)
    return plan


def get_plan_priority(plan_name: str) -> int:
    """Priority of a plan, 0 (free) for unknown names."""
    return PLAN_PRIORITY.get(plan_name, 0)


# =============================================================================
# RUNTIME CONFIGURATION
# =============================================================================
@dataclass(frozen=True)
class BillingConfig:
    """Snapshot of the billing configuration in effect."""
    payment_mode: Literal['live', 'test']
    provider_secret_key: str
    webhook_secret: str
    webhook_tolerance_seconds: int
    hobbyist_price_id: str
    pro_price_id: str
    site_url: str
    free_generation_grant: int
    hobbyist_generation_grant: int
    pro_period_days: int
    recovery_window_days: int
    recovery_scan_limit: int

    @property
    def is_test_mode(self) -> bool:
        return self.payment_mode == 'test'

    def price_id_for(self, plan_name: str) -> str:
        """
        Provider price ID for a purchasable plan.

        Raises:
            PlanNotFoundError: If the plan cannot be purchased
            ConfigurationError: If no price ID is configured for it
        """
        plan = get_purchasable_plan(plan_name)
        price_id = {
            'hobbyist': self.hobbyist_price_id,
            'pro': self.pro_price_id,
        }.get(plan.name)
        if not price_id:
            raise ConfigurationError(f'{plan.name}_price_id')
        return price_id

    def require_secret_key(self) -> str:
        if not self.provider_secret_key:
            raise ConfigurationError('provider_secret_key')
        return self.provider_secret_key

    @classmethod
    def from_settings(cls, source: Settings) -> 'BillingConfig':
        """Build the base snapshot. Test mode reads only the *_TEST keys."""
        test_mode = source.PAYMENT_MODE == 'test'
        return cls(
            payment_mode=source.PAYMENT_MODE,
            provider_secret_key=source.STRIPE_SECRET_KEY_TEST if test_mode else source.STRIPE_SECRET_KEY,
            webhook_secret=source.STRIPE_WEBHOOK_SECRET_TEST if test_mode else source.STRIPE_WEBHOOK_SECRET,
            webhook_tolerance_seconds=source.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            hobbyist_price_id=(
                source.STRIPE_HOBBYIST_PRICE_ID_TEST if test_mode else source.STRIPE_HOBBYIST_PRICE_ID
            ),
            pro_price_id=source.STRIPE_PRO_PRICE_ID_TEST if test_mode else source.STRIPE_PRO_PRICE_ID,
            site_url=source.SITE_URL.rstrip('/'),
            free_generation_grant=source.BILLING_FREE_GENERATION_GRANT,
            hobbyist_generation_grant=source.BILLING_HOBBYIST_GENERATION_GRANT,
            pro_period_days=source.BILLING_PRO_PERIOD_DAYS,
            recovery_window_days=source.BILLING_RECOVERY_WINDOW_DAYS,
            recovery_scan_limit=source.BILLING_RECOVERY_SCAN_LIMIT,
        )


# app_config key -> BillingConfig field
PROVIDER_OVERRIDE_KEYS: Dict[str, str] = {
    'stripe_secret_key': 'provider_secret_key',
    'webhook_secret': 'webhook_secret',
    'stripe_hobbyist_price_id': 'hobbyist_price_id',
    'stripe_pro_price_id': 'pro_price_id',
}

GENERAL_OVERRIDE_KEYS: Dict[str, str] = {
    'site_url': 'site_url',
    'free_generation_grant': 'free_generation_grant',
    'hobbyist_generation_grant': 'hobbyist_generation_grant',
    'pro_period_days': 'pro_period_days',
}

_INT_FIELDS = {'free_generation_grant', 'hobbyist_generation_grant', 'pro_period_days'}


def apply_overrides(base: BillingConfig, overrides: Mapping[str, Any]) -> BillingConfig:
    """
    Merge runtime overrides (e.g. rows of the app_config table) into a snapshot.

    Empty values fall back to the base value. In test mode provider keys are
    never taken from overrides.
    """
    allowed = dict(GENERAL_OVERRIDE_KEYS)
    if not base.is_test_mode:
        allowed.update(PROVIDER_OVERRIDE_KEYS)

    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        field_name = allowed.get(key)
        if field_name is None or value in (None, ''):
            continue
        if field_name in _INT_FIELDS:
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning(f"[CONFIG] Ignoring non-integer override {key}={value!r}")
                continue
        elif field_name == 'site_url':
            value = str(value).rstrip('/')
        changes[field_name] = value

    return replace(base, **changes) if changes else base


OverrideLoader = Callable[[], Awaitable[Mapping[str, Any]]]


class BillingConfigProvider:
    """
    Holds the current BillingConfig snapshot and refreshes it.

    Args:
        source: Settings to build the base snapshot from
        loader: Optional async callable returning runtime overrides
        ttl_seconds: Snapshot lifetime. 0 reloads on every call, None never
            reloads after the first load.
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        source: Optional[Settings] = None,
        loader: Optional[OverrideLoader] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source or settings
        self._loader = loader
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: Optional[BillingConfig] = None
        self._loaded_at: float = 0.0

    def _is_stale(self) -> bool:
        if self._snapshot is None:
            return True
        if self._ttl_seconds is None:
            return False
        return self._clock() - self._loaded_at >= self._ttl_seconds

    async def get(self) -> BillingConfig:
        """Return the current snapshot, reloading it when stale."""
        if not self._is_stale():
            return self._snapshot

        base = BillingConfig.from_settings(self._source)
        snapshot = base
        if self._loader is not None:
            try:
                overrides = await self._loader()
            except Exception as e:
                if self._snapshot is not None:
                    logger.error(f"[CONFIG] Override loader failed, keeping previous snapshot: {e}")
                    self._loaded_at = self._clock()
                    return self._snapshot
                logger.error(f"[CONFIG] Override loader failed, using settings only: {e}")
                overrides = {}
            snapshot = apply_overrides(base, overrides)

        if base.is_test_mode:
            logger.debug("[CONFIG] Test payment mode active, provider keys from *_TEST settings")
        self._snapshot = snapshot
        self._loaded_at = self._clock()
        return snapshot

    def invalidate(self) -> None:
        """Drop the snapshot so the next get() reloads."""
        logger.info("[CONFIG] Clearing billing config cache")
        self._snapshot = None
        self._loaded_at = 0.0
