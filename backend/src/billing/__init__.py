"""
Billing Module

Subscription lifecycle for the generation service. Integrates with Stripe
for checkout and with a signed webhook for provider events.

Submodules:
- shared: Plans, runtime configuration, exceptions
- domain: Core entities (SubscriptionRecord, UserProfile, PaymentEvent)
- stores: Persistence of subscription records, profiles and app config
- external: Payment provider integrations (Stripe), webhook verification
- subscriptions: Lifecycle engine (processor, checkout, recovery, access)
- endpoints: API routes

Usage:
    from backend.src.billing import get_billing_services

    services = get_billing_services()
    result = await services.checkout.create_checkout(user_id, 'pro')
"""

# Shared configuration and exceptions
from .shared import (
    PLANS,
    PLAN_PRIORITY,
    BillingConfig,
    BillingConfigProvider,
    PlanDefinition,
    get_plan_definition,
    get_plan_priority,
    get_purchasable_plan,
    BillingError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    PartialWriteWarning,
    PlanNotFoundError,
    TransientProviderError,
    WebhookPayloadError,
    WebhookSignatureError,
)

# Domain entities
from .domain import (
    PaymentEvent,
    PaymentEventType,
    PlanName,
    SubscriptionRecord,
    SubscriptionStatus,
    UserProfile,
)

# Lifecycle engine
from .subscriptions import (
    CheckoutInitiator,
    EventProcessor,
    PlanAccessService,
    RecoveryService,
    RecoveryStatus,
    SubscriptionService,
    UserProfileSynchronizer,
    resolve_plan,
)

# Webhook and wiring
from .external.webhooks import WebhookService
from .container import BillingServices, build_billing_services, get_billing_services

__all__ = [
    # Configuration
    'PLANS',
    'PLAN_PRIORITY',
    'BillingConfig',
    'BillingConfigProvider',
    'PlanDefinition',
    'get_plan_definition',
    'get_plan_priority',
    'get_purchasable_plan',
    # Exceptions
    'BillingError',
    'ConfigurationError',
    'ConflictError',
    'NotFoundError',
    'PartialWriteWarning',
    'PlanNotFoundError',
    'TransientProviderError',
    'WebhookPayloadError',
    'WebhookSignatureError',
    # Domain
    'PaymentEvent',
    'PaymentEventType',
    'PlanName',
    'SubscriptionRecord',
    'SubscriptionStatus',
    'UserProfile',
    # Engine
    'CheckoutInitiator',
    'EventProcessor',
    'PlanAccessService',
    'RecoveryService',
    'RecoveryStatus',
    'SubscriptionService',
    'UserProfileSynchronizer',
    'resolve_plan',
    # Wiring
    'WebhookService',
    'BillingServices',
    'build_billing_services',
    'get_billing_services',
]
