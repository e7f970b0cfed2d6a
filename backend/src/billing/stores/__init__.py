"""Persistence for subscription records, user profiles and runtime config."""

from .interfaces import SubscriptionStoreInterface, UserProfileStoreInterface

__all__ = [
    'SubscriptionStoreInterface',
    'UserProfileStoreInterface',
]
