"""
Event Processor

Applies provider events to subscription records along the lifecycle state
machine and keeps user profiles in sync.

    pending -> active -> {past_due, cancelled, expired}
    past_due -> active (renewal) | expired

Every handler follows read-check-write: the record is re-read, the
transition is checked against its current state, and the write is a
conditional update on the observed status. If another writer got there
first the row is re-read and the checks decide again. This is what makes
activation happen at most once per record even when a webhook and a
recovery call race. The hobbyist credit grant is tracked on the record
itself (`credits_granted_at`) and claimed the same way, so a failed profile
write leaves the grant owed instead of lost.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from backend.src.billing.domain.events import PaymentEvent, PaymentEventType
from backend.src.billing.domain.subscription import (
    PlanName,
    SubscriptionRecord,
    SubscriptionStatus,
    can_transition,
    utcnow,
)
from backend.src.billing.shared.config import BillingConfigProvider, get_plan_definition
from backend.src.billing.shared.exceptions import ConflictError, NotFoundError, PartialWriteWarning
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface
from backend.src.billing.subscriptions.expiry import expire_lapsed_records
from backend.src.billing.subscriptions.profile_sync import SyncResult, UserProfileSynchronizer
from backend.src.billing.subscriptions.resolver import resolve_plan

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


class ProcessingOutcome(str, Enum):
    ACTIVATED = "activated"
    ALREADY_ACTIVE = "already_active"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    IGNORED = "ignored"


@dataclass
class ProcessingResult:
    """What processing an event (or an activation request) did."""
    outcome: ProcessingOutcome
    message: str
    subscription_id: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    plan: Optional[str] = None
    granted: int = 0
    partial_write: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            'result': self.outcome.value,
            'message': self.message,
            'subscription_id': self.subscription_id,
            'subscription_status': self.status.value if self.status else None,
        }
        if self.plan is not None:
            data['plan'] = self.plan
        if self.granted:
            data['granted'] = self.granted
        if self.partial_write:
            data['partial_write'] = True
        return data


def _ignored(message: str, record: Optional[SubscriptionRecord] = None) -> ProcessingResult:
    logger.info(f"[PROCESSOR] Ignoring event: {message}")
    return ProcessingResult(
        outcome=ProcessingOutcome.IGNORED,
        message=message,
        subscription_id=record.id if record else None,
        status=record.status if record else None,
    )


def select_activation_reference(
    record: SubscriptionRecord,
    payment_id: Optional[str],
    provider_subscription_id: Optional[str],
) -> Optional[str]:
    """
    Reference that binds a record on activation.

    Recurring plans are bound to the provider subscription ID, one-time plans
    to the payment ID, so every activation path picks the same value.
    """
    plan = get_plan_definition(record.plan_name.value)
    if plan is not None and plan.is_recurring:
        return provider_subscription_id
    return payment_id


class EventProcessor:
    """
    Applies PaymentEvents to subscription records.

    Usage:
        processor = EventProcessor(store, synchronizer, config_provider)
        result = await processor.process(event)
    """

    def __init__(
        self,
        subscriptions: SubscriptionStoreInterface,
        synchronizer: UserProfileSynchronizer,
        config_provider: BillingConfigProvider,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._subscriptions = subscriptions
        self._synchronizer = synchronizer
        self._config_provider = config_provider
        self._clock = clock

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def process(self, event: PaymentEvent) -> ProcessingResult:
        """
        Apply one event.

        Returns a result for every handled, no-op or ignored event.

        Raises:
            ConflictError: If the event would rebind a record to a different
                provider reference
        """
        if event.type is None:
            return _ignored(f"unhandled event type '{event.raw_type}'")

        logger.info(f"[PROCESSOR] Processing {event.type.value} (event {event.event_id or 'n/a'})")

        if event.type in (PaymentEventType.PAYMENT_SUCCEEDED, PaymentEventType.SUBSCRIPTION_ACTIVE):
            return await self._handle_activation(event)
        if event.type == PaymentEventType.SUBSCRIPTION_RENEWED:
            return await self._handle_renewal(event)
        if event.type == PaymentEventType.SUBSCRIPTION_CANCELLED:
            return await self._handle_transition(event, SubscriptionStatus.CANCELLED)
        if event.type == PaymentEventType.SUBSCRIPTION_EXPIRED:
            return await self._handle_transition(event, SubscriptionStatus.EXPIRED)
        # payment.failed, subscription.failed, subscription.on_hold
        return await self._handle_transition(event, SubscriptionStatus.PAST_DUE)

    # -------------------------------------------------------------------------
    # Record lookup
    # -------------------------------------------------------------------------

    async def _find_one(self, **criteria) -> Optional[SubscriptionRecord]:
        records = await self._subscriptions.find(limit=1, newest_first=True, **criteria)
        return records[0] if records else None

    async def _locate_for_activation(self, event: PaymentEvent) -> Optional[SubscriptionRecord]:
        """Internal ID from metadata first, then session ID, then reference."""
        if event.record_id:
            record = await self._subscriptions.get_by_id(event.record_id)
            if record is not None:
                return record
            logger.warning(f"[PROCESSOR] Record {event.record_id} from event metadata not found")
        if event.session_id:
            record = await self._find_one(provider_session_id=event.session_id)
            if record is not None:
                return record
        return await self._locate_by_reference(event)

    async def _locate_by_reference(self, event: PaymentEvent) -> Optional[SubscriptionRecord]:
        for reference in (event.provider_subscription_id, event.payment_id):
            if reference:
                record = await self._find_one(provider_reference_id=reference)
                if record is not None:
                    return record
        return None

    # -------------------------------------------------------------------------
    # Activation
    # -------------------------------------------------------------------------

    async def _handle_activation(self, event: PaymentEvent) -> ProcessingResult:
        record = await self._locate_for_activation(event)
        if record is None:
            return _ignored(f"no subscription record for {event.raw_type}")

        reference = select_activation_reference(record, event.payment_id, event.provider_subscription_id)
        if not reference:
            return _ignored(f"{event.raw_type} carries no usable reference for {record.plan_name.value}", record)

        try:
            return await self.activate(record.id, reference, period_ends_at=event.next_billing_date)
        except ConflictError as e:
            if e.code == 'INVALID_TRANSITION':
                return _ignored(e.message, record)
            raise

    async def activate(
        self,
        subscription_id: str,
        reference: str,
        period_ends_at: Optional[datetime] = None,
    ) -> ProcessingResult:
        """
        Idempotently activate a record and bind it to `reference`.

        - already active with the same reference: no-op, no grant, no sync
        - bound to a different reference: ConflictError, nothing written
        - otherwise: transition, then exactly one profile sync

        Raises:
            NotFoundError: If the record does not exist
            ConflictError: REFERENCE_MISMATCH or INVALID_TRANSITION
        """
        for _ in range(MAX_WRITE_ATTEMPTS):
            record = await self._subscriptions.get_by_id(subscription_id)
            if record is None:
                raise NotFoundError(f"Subscription {subscription_id} not found", resource_id=subscription_id)

            if record.provider_reference_id and record.provider_reference_id != reference:
                logger.error(
                    f"[PROCESSOR] Reference mismatch on {record.id}: bound to "
                    f"{record.provider_reference_id}, event carries {reference}"
                )
                raise ConflictError(
                    message="Subscription is already bound to a different provider reference",
                    code='REFERENCE_MISMATCH',
                    subscription_id=record.id,
                    details={'reference': reference},
                )

            if record.is_active() and record.provider_reference_id == reference:
                logger.info(f"[PROCESSOR] Subscription {record.id} already active with {reference}, no-op")
                return ProcessingResult(
                    outcome=ProcessingOutcome.ALREADY_ACTIVE,
                    message="Subscription already active",
                    subscription_id=record.id,
                    status=record.status,
                )

            if record.is_active():
                # Active but never bound; bind only
                changes: Dict[str, Any] = {'provider_reference_id': reference}
            elif can_transition(record.status, SubscriptionStatus.ACTIVE):
                changes = {'status': SubscriptionStatus.ACTIVE, 'provider_reference_id': reference}
                plan = get_plan_definition(record.plan_name.value)
                if plan is not None and plan.is_recurring:
                    changes['period_ends_at'] = period_ends_at or await self._next_period_end(record)
            else:
                raise ConflictError(
                    message=f"Cannot activate a {record.status.value} subscription",
                    code='INVALID_TRANSITION',
                    subscription_id=record.id,
                )

            # An unbound record may only be bound by one writer
            expected_null = ('provider_reference_id',) if record.provider_reference_id is None else ()
            updated = await self._subscriptions.update_by_id(
                record.id, expected_status=record.status, expected_null=expected_null, **changes
            )
            if updated is None:
                logger.info(f"[PROCESSOR] Subscription {record.id} changed concurrently, re-reading")
                continue

            is_new_activation = record.is_pending()
            logger.info(
                f"[PROCESSOR] Subscription {record.id} ({record.plan_name.value}) "
                f"{record.status.value} -> active, reference {reference}"
            )
            result = ProcessingResult(
                outcome=ProcessingOutcome.ACTIVATED if is_new_activation else ProcessingOutcome.UPDATED,
                message="Subscription activated" if is_new_activation else "Subscription reactivated",
                subscription_id=updated.id,
                status=updated.status,
            )
            return await self._sync_profile(updated, result)

        raise ConflictError(
            message="Subscription kept changing concurrently",
            code='CONCURRENT_UPDATE',
            subscription_id=subscription_id,
        )

    async def _next_period_end(self, record: SubscriptionRecord) -> datetime:
        config = await self._config_provider.get()
        now = self._clock()
        start = record.period_ends_at if record.period_ends_at and record.period_ends_at > now else now
        return start + timedelta(days=config.pro_period_days)

    # -------------------------------------------------------------------------
    # Other transitions
    # -------------------------------------------------------------------------

    async def _handle_renewal(self, event: PaymentEvent) -> ProcessingResult:
        record = await self._locate_by_reference(event)
        if record is None:
            return _ignored(f"no subscription record for {event.raw_type}")

        for _ in range(MAX_WRITE_ATTEMPTS):
            if record.status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE):
                return _ignored(f"cannot renew a {record.status.value} subscription", record)

            period_ends_at = event.next_billing_date or await self._next_period_end(record)
            if record.is_active() and record.period_ends_at == period_ends_at:
                return ProcessingResult(
                    outcome=ProcessingOutcome.UNCHANGED,
                    message="Renewal already applied",
                    subscription_id=record.id,
                    status=record.status,
                )

            updated = await self._subscriptions.update_by_id(
                record.id,
                expected_status=record.status,
                status=SubscriptionStatus.ACTIVE,
                period_ends_at=period_ends_at,
            )
            if updated is not None:
                logger.info(
                    f"[PROCESSOR] Subscription {record.id} renewed until {period_ends_at.isoformat()}"
                )
                result = ProcessingResult(
                    outcome=ProcessingOutcome.UPDATED,
                    message="Subscription renewed",
                    subscription_id=updated.id,
                    status=updated.status,
                )
                return await self._sync_profile(updated, result)

            record = await self._subscriptions.get_by_id(record.id)
            if record is None:
                return _ignored("subscription record disappeared")

        raise ConflictError(
            message="Subscription kept changing concurrently",
            code='CONCURRENT_UPDATE',
            subscription_id=record.id,
        )

    async def _handle_transition(self, event: PaymentEvent, target: SubscriptionStatus) -> ProcessingResult:
        record = await self._locate_by_reference(event)
        if record is None:
            return _ignored(f"no subscription record for {event.raw_type}")

        for _ in range(MAX_WRITE_ATTEMPTS):
            if record.status == target:
                return ProcessingResult(
                    outcome=ProcessingOutcome.UNCHANGED,
                    message=f"Subscription already {target.value}",
                    subscription_id=record.id,
                    status=record.status,
                )
            if not can_transition(record.status, target):
                return _ignored(
                    f"{event.raw_type} would move {record.status.value} -> {target.value}", record
                )

            updated = await self._subscriptions.update_by_id(
                record.id, expected_status=record.status, status=target
            )
            if updated is not None:
                logger.info(f"[PROCESSOR] Subscription {record.id} {record.status.value} -> {target.value}")
                result = ProcessingResult(
                    outcome=ProcessingOutcome.UPDATED,
                    message=f"Subscription {target.value}",
                    subscription_id=updated.id,
                    status=updated.status,
                )
                return await self._sync_profile(updated, result)

            record = await self._subscriptions.get_by_id(record.id)
            if record is None:
                return _ignored("subscription record disappeared")

        raise ConflictError(
            message="Subscription kept changing concurrently",
            code='CONCURRENT_UPDATE',
            subscription_id=record.id,
        )

    # -------------------------------------------------------------------------
    # Re-evaluation
    # -------------------------------------------------------------------------

    async def reevaluate(self, user_id: str) -> SyncResult:
        """
        Resolve the user's plan from active records and sync the profile.

        Active hobbyist records whose grant is still owed are claimed first
        (a conditional update on `credits_granted_at IS NULL`), so concurrent
        callers cannot grant the same record twice. If the profile write then
        fails the claims are released and the next re-evaluation grants.
        """
        active = await self._subscriptions.find(user_id=user_id, statuses=[SubscriptionStatus.ACTIVE])
        active, _ = await expire_lapsed_records(self._subscriptions, active, self._clock())
        resolved = resolve_plan(active)

        claimed: List[SubscriptionRecord] = []
        if resolved != PlanName.PRO.value:
            claimed = await self._claim_grants([r for r in active if r.owes_generation_grant()])

        config = await self._config_provider.get()
        try:
            return await self._synchronizer.sync(
                user_id,
                resolved,
                grant=len(claimed) * config.hobbyist_generation_grant,
            )
        except Exception:
            await self._release_grants(claimed)
            raise

    async def _claim_grants(self, records: List[SubscriptionRecord]) -> List[SubscriptionRecord]:
        claimed = []
        for record in records:
            updated = await self._subscriptions.update_by_id(
                record.id,
                expected_status=SubscriptionStatus.ACTIVE,
                expected_null=('credits_granted_at',),
                credits_granted_at=self._clock(),
            )
            if updated is not None:
                claimed.append(updated)
        return claimed

    async def _release_grants(self, claimed: List[SubscriptionRecord]) -> None:
        for record in claimed:
            try:
                await self._subscriptions.update_by_id(record.id, credits_granted_at=None)
            except Exception as e:
                logger.error(
                    f"[PARTIAL WRITE] Grant of {record.id} is claimed but was not applied "
                    f"and could not be released: {e}",
                    exc_info=True,
                )
            else:
                logger.info(f"[PROCESSOR] Released the generation grant claim of {record.id}")

    async def _sync_profile(self, record: SubscriptionRecord, result: ProcessingResult) -> ProcessingResult:
        """Profile sync after a committed record change. Failures are partial writes."""
        try:
            sync = await self.reevaluate(record.user_id)
        except Exception as e:
            warning = PartialWriteWarning(record.user_id, subscription_id=record.id, cause=str(e))
            logger.error(f"[PARTIAL WRITE] {warning.message}: {e}", exc_info=True)
            result.partial_write = True
            result.details = warning.to_dict()
            return result

        result.plan = sync.profile.plan
        result.granted = sync.granted
        return result
