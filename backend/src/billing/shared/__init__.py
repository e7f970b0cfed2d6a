"""Shared billing utilities: plans, configuration, exceptions."""

from .config import (
    PLANS,
    PLAN_PRIORITY,
    BillingConfig,
    BillingConfigProvider,
    PlanDefinition,
    get_plan_definition,
    get_plan_priority,
    get_purchasable_plan,
)
from .exceptions import (
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

__all__ = [
    'PLANS',
    'PLAN_PRIORITY',
    'BillingConfig',
    'BillingConfigProvider',
    'PlanDefinition',
    'get_plan_definition',
    'get_plan_priority',
    'get_purchasable_plan',
    'BillingError',
    'ConfigurationError',
    'ConflictError',
    'NotFoundError',
    'PartialWriteWarning',
    'PlanNotFoundError',
    'TransientProviderError',
    'WebhookPayloadError',
    'WebhookSignatureError',
]
