"""
Subscriptions Module

The subscription lifecycle engine:
- EventProcessor: applies provider events along the state machine
- CheckoutInitiator: pending record + provider checkout session
- RecoveryService: activation by polling the provider
- PlanAccessService: generation permissions, lazy pro expiry
- SubscriptionService: active plans, cancellation, profile re-sync
"""

from .resolver import resolve_plan
from .profile_sync import SyncResult, UserProfileSynchronizer
from .processor import EventProcessor, ProcessingOutcome, ProcessingResult, select_activation_reference
from .access import GenerationAccess, PlanAccessService, is_within_generation_count_limit
from .checkout import CheckoutInitiator, CheckoutResult
from .recovery import RecoveryResult, RecoveryService, RecoveryStatus
from .service import SubscriptionService

__all__ = [
    'resolve_plan',
    'SyncResult',
    'UserProfileSynchronizer',
    'EventProcessor',
    'ProcessingOutcome',
    'ProcessingResult',
    'select_activation_reference',
    'GenerationAccess',
    'PlanAccessService',
    'is_within_generation_count_limit',
    'CheckoutInitiator',
    'CheckoutResult',
    'RecoveryResult',
    'RecoveryService',
    'RecoveryStatus',
    'SubscriptionService',
]
