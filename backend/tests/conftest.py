"""Shared fixtures for billing tests."""

import pytest

from backend.core.conf import Settings
from backend.src.billing.container import build_billing_services
from backend.src.billing.shared.config import BillingConfigProvider
from backend.tests.helpers import (
    FakePaymentProvider,
    FrozenClock,
    InMemorySubscriptionStore,
    InMemoryUserProfileStore,
    make_settings,
)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def billing_settings() -> Settings:
    return make_settings()


@pytest.fixture
def config_provider(billing_settings) -> BillingConfigProvider:
    return BillingConfigProvider(source=billing_settings, ttl_seconds=None)


@pytest.fixture
def store() -> InMemorySubscriptionStore:
    return InMemorySubscriptionStore()


@pytest.fixture
def profiles() -> InMemoryUserProfileStore:
    return InMemoryUserProfileStore()


@pytest.fixture
def provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def services(store, profiles, provider, config_provider, clock):
    return build_billing_services(
        subscriptions=store,
        profiles=profiles,
        provider=provider,
        config_provider=config_provider,
        clock=clock,
    )
