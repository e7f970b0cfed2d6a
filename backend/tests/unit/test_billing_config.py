"""Tests for plan definitions and the billing configuration provider."""

import pytest
from unittest.mock import AsyncMock

from backend.src.billing.shared.config import (
    BillingConfig,
    BillingConfigProvider,
    apply_overrides,
    get_plan_priority,
    get_purchasable_plan,
)
from backend.src.billing.shared.exceptions import ConfigurationError, PlanNotFoundError
from backend.tests.helpers import make_settings


class FakeMonotonic:

    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


class TestPlans:

    def test_priorities(self):
        assert get_plan_priority('free') < get_plan_priority('hobbyist') < get_plan_priority('pro')
        assert get_plan_priority('unknown') == 0

    def test_checkout_modes(self):
        assert get_purchasable_plan('hobbyist').checkout_mode == 'payment'
        assert get_purchasable_plan('pro').is_recurring is True

    def test_free_is_not_purchasable(self):
        with pytest.raises(PlanNotFoundError):
            get_purchasable_plan('free')


class TestBillingConfig:

    def test_live_mode_reads_live_keys(self):
        config = BillingConfig.from_settings(make_settings())

        assert config.is_test_mode is False
        assert config.provider_secret_key == 'sk_live_unit'
        assert config.price_id_for('pro') == 'price_pro_live'
        assert config.site_url == 'https://app.example.com'

    def test_test_mode_reads_only_test_keys(self):
        """Test test mode never falls back to live keys."""
        config = BillingConfig.from_settings(make_settings(PAYMENT_MODE='test', STRIPE_HOBBYIST_PRICE_ID_TEST=''))

        assert config.provider_secret_key == 'sk_test_unit'
        assert config.webhook_secret == 'whsec_test_mode'
        with pytest.raises(ConfigurationError):
            config.price_id_for('hobbyist')

    def test_require_secret_key(self):
        config = BillingConfig.from_settings(make_settings(STRIPE_SECRET_KEY=''))

        with pytest.raises(ConfigurationError):
            config.require_secret_key()


class TestApplyOverrides:

    def test_overrides_replace_settings(self):
        base = BillingConfig.from_settings(make_settings())

        config = apply_overrides(base, {
            'stripe_pro_price_id': 'price_pro_db',
            'hobbyist_generation_grant': '25',
            'site_url': 'https://billing.example.com/',
        })

        assert config.pro_price_id == 'price_pro_db'
        assert config.hobbyist_generation_grant == 25
        assert config.site_url == 'https://billing.example.com'

    def test_empty_and_unknown_values_are_ignored(self):
        base = BillingConfig.from_settings(make_settings())

        config = apply_overrides(base, {
            'stripe_pro_price_id': '',
            'webhook_secret': None,
            'pro_period_days': 'thirty',
            'something_else': 'x',
        })

        assert config == base

    def test_test_mode_ignores_provider_overrides(self):
        """Test stored live keys cannot leak into test mode."""
        base = BillingConfig.from_settings(make_settings(PAYMENT_MODE='test'))

        config = apply_overrides(base, {'stripe_secret_key': 'sk_live_db', 'free_generation_grant': 5})

        assert config.provider_secret_key == 'sk_test_unit'
        assert config.free_generation_grant == 5


class TestBillingConfigProvider:
    """Tests for snapshot caching and refresh."""

    @pytest.mark.asyncio
    async def test_snapshot_is_cached_within_ttl(self):
        loader = AsyncMock(return_value={'stripe_pro_price_id': 'price_1'})
        clock = FakeMonotonic()
        provider = BillingConfigProvider(make_settings(), loader=loader, ttl_seconds=60, clock=clock)

        await provider.get()
        clock.value += 59
        config = await provider.get()

        assert config.pro_price_id == 'price_1'
        assert loader.await_count == 1

    @pytest.mark.asyncio
    async def test_snapshot_refreshes_after_ttl(self):
        """Test a changed override is picked up once the TTL elapses, without a restart."""
        loader = AsyncMock(side_effect=[{'stripe_pro_price_id': 'price_1'}, {'stripe_pro_price_id': 'price_2'}])
        clock = FakeMonotonic()
        provider = BillingConfigProvider(make_settings(), loader=loader, ttl_seconds=60, clock=clock)

        await provider.get()
        clock.value += 60
        config = await provider.get()

        assert config.pro_price_id == 'price_2'

    @pytest.mark.asyncio
    async def test_zero_ttl_reloads_every_time(self):
        loader = AsyncMock(return_value={})
        provider = BillingConfigProvider(make_settings(), loader=loader, ttl_seconds=0, clock=FakeMonotonic())

        await provider.get()
        await provider.get()

        assert loader.await_count == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self):
        loader = AsyncMock(return_value={})
        provider = BillingConfigProvider(make_settings(), loader=loader, ttl_seconds=None)

        await provider.get()
        provider.invalidate()
        await provider.get()

        assert loader.await_count == 2

    @pytest.mark.asyncio
    async def test_loader_failure_keeps_previous_snapshot(self):
        loader = AsyncMock(side_effect=[{'stripe_pro_price_id': 'price_1'}, RuntimeError("db down")])
        clock = FakeMonotonic()
        provider = BillingConfigProvider(make_settings(), loader=loader, ttl_seconds=10, clock=clock)

        await provider.get()
        clock.value += 10
        config = await provider.get()

        assert config.pro_price_id == 'price_1'

    @pytest.mark.asyncio
    async def test_first_load_failure_uses_settings(self):
        loader = AsyncMock(side_effect=RuntimeError("db down"))
        provider = BillingConfigProvider(make_settings(), loader=loader)

        config = await provider.get()

        assert config.pro_price_id == 'price_pro_live'
