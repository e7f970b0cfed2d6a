"""
Lazy Pro Expiry

Active pro records whose paid period has ended are moved to `expired` the
first time a permission or hierarchy check reads them. There is no
scheduled sweep.
"""

import logging
from datetime import datetime
from typing import List, Sequence, Tuple

from backend.src.billing.domain.subscription import SubscriptionRecord, SubscriptionStatus
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface

logger = logging.getLogger(__name__)


async def expire_lapsed_records(
    store: SubscriptionStoreInterface,
    records: Sequence[SubscriptionRecord],
    now: datetime,
) -> Tuple[List[SubscriptionRecord], List[SubscriptionRecord]]:
    """
    Expire lapsed pro records.

    Returns:
        (records still active, records expired by this call)
    """
    still_active: List[SubscriptionRecord] = []
    expired: List[SubscriptionRecord] = []
    for record in records:
        if not record.has_lapsed(now):
            still_active.append(record)
            continue
        updated = await store.update_by_id(
            record.id,
            expected_status=SubscriptionStatus.ACTIVE,
            status=SubscriptionStatus.EXPIRED,
        )
        if updated is not None:
            logger.info(
                f"[ACCESS] Pro subscription {record.id} of user {record.user_id} lapsed "
                f"at {record.period_ends_at.isoformat()}, marked expired"
            )
            expired.append(updated)
        else:
            # Changed concurrently (e.g. renewed); re-read decides
            current = await store.get_by_id(record.id)
            if current is not None and current.is_active() and not current.has_lapsed(now):
                still_active.append(current)
    return still_active, expired
