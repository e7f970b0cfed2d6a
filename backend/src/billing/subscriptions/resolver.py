"""
Plan Resolver

Picks the plan a user effectively holds from their active subscription
records: the highest-priority plan wins, `free` when there is none.
"""

from typing import Iterable, Union

from backend.src.billing.domain.subscription import PlanName, SubscriptionRecord
from backend.src.billing.shared.config import PLAN_PRIORITY


def resolve_plan(active: Iterable[Union[str, PlanName, SubscriptionRecord]]) -> str:
    """
    Resolve the effective plan.

    Args:
        active: Active plan names or active SubscriptionRecords, in any order.
            Unknown plan names are ignored.

    Returns:
        'pro', 'hobbyist' or 'free'
    """
    best = PlanName.FREE.value
    for item in active:
        name = item.plan_name if isinstance(item, SubscriptionRecord) else item
        if isinstance(name, PlanName):
            name = name.value
        if name not in PLAN_PRIORITY:
            continue
        if PLAN_PRIORITY[name] > PLAN_PRIORITY[best]:
            best = name
    return best
