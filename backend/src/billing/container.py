"""
Billing Service Wiring

Builds the billing services around one set of stores, one payment provider
and one configuration provider. Endpoints get the instance through
`get_billing_services`, which tests override.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from backend.core.conf import settings
from backend.src.billing.external.interfaces import PaymentProviderInterface
from backend.src.billing.external.webhooks import WebhookService
from backend.src.billing.shared.config import BillingConfigProvider
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface, UserProfileStoreInterface
from backend.src.billing.subscriptions.access import PlanAccessService
from backend.src.billing.subscriptions.checkout import CheckoutInitiator
from backend.src.billing.subscriptions.processor import EventProcessor
from backend.src.billing.subscriptions.profile_sync import UserProfileSynchronizer
from backend.src.billing.subscriptions.recovery import RecoveryService
from backend.src.billing.subscriptions.service import SubscriptionService


@dataclass
class BillingServices:
    config_provider: BillingConfigProvider
    subscriptions: SubscriptionStoreInterface
    profiles: UserProfileStoreInterface
    provider: PaymentProviderInterface
    processor: EventProcessor
    access: PlanAccessService
    checkout: CheckoutInitiator
    recovery: RecoveryService
    subscription_service: SubscriptionService
    webhooks: WebhookService


def build_billing_services(
    subscriptions: SubscriptionStoreInterface,
    profiles: UserProfileStoreInterface,
    provider: PaymentProviderInterface,
    config_provider: BillingConfigProvider,
    clock=None,
) -> BillingServices:
    """Wire the billing services. `clock` (returning aware datetimes) is for tests."""
    clock_kwargs = {'clock': clock} if clock is not None else {}

    synchronizer = UserProfileSynchronizer(profiles)
    processor = EventProcessor(subscriptions, synchronizer, config_provider, **clock_kwargs)
    access = PlanAccessService(subscriptions, profiles, processor, config_provider, **clock_kwargs)
    return BillingServices(
        config_provider=config_provider,
        subscriptions=subscriptions,
        profiles=profiles,
        provider=provider,
        processor=processor,
        access=access,
        checkout=CheckoutInitiator(subscriptions, provider, access, config_provider, **clock_kwargs),
        recovery=RecoveryService(subscriptions, provider, processor, config_provider, **clock_kwargs),
        subscription_service=SubscriptionService(subscriptions, provider, access, processor),
        webhooks=WebhookService(processor, config_provider),
    )


def build_default_config_provider(ttl_seconds: Optional[float] = None) -> BillingConfigProvider:
    from backend.src.billing.stores.sql import make_app_config_loader

    return BillingConfigProvider(
        source=settings,
        loader=make_app_config_loader(),
        ttl_seconds=settings.BILLING_CONFIG_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds,
    )


@lru_cache
def get_billing_services() -> BillingServices:
    """Production wiring: SQL stores and the Stripe provider."""
    from backend.src.billing.external.stripe.provider import StripePaymentProvider
    from backend.src.billing.stores.sql import SqlSubscriptionStore, SqlUserProfileStore

    config_provider = build_default_config_provider()
    return build_billing_services(
        subscriptions=SqlSubscriptionStore(),
        profiles=SqlUserProfileStore(),
        provider=StripePaymentProvider(config_provider),
        config_provider=config_provider,
    )
