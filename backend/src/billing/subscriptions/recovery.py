"""
Recovery Service

Client-triggered activation for when the webhook is late or lost. Both
paths ask the provider for the checkout session and, if it is paid, go
through the same idempotent activation as the webhook.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from backend.src.billing.domain.subscription import SubscriptionRecord, SubscriptionStatus, utcnow
from backend.src.billing.external.interfaces import PaymentProviderInterface, ProviderCheckoutSession
from backend.src.billing.shared.config import BillingConfigProvider
from backend.src.billing.shared.exceptions import ConflictError, NotFoundError
from backend.src.billing.stores.interfaces import SubscriptionStoreInterface
from backend.src.billing.subscriptions.processor import EventProcessor, select_activation_reference

logger = logging.getLogger(__name__)


class RecoveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class RecoveryResult:
    status: RecoveryStatus
    message: str
    reason: Optional[str] = None
    subscription_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'success': self.status == RecoveryStatus.SUCCESS,
            'status': self.status.value,
            'message': self.message,
            'reason': self.reason,
            'subscription_id': self.subscription_id,
        }


class RecoveryService:
    """
    Verifies payments directly with the provider.

    - verify_by_id: the client knows its internal subscription ID
    - recover_by_payment_id: the client only has the provider payment ID
    """

    def __init__(
        self,
        subscriptions: SubscriptionStoreInterface,
        provider: PaymentProviderInterface,
        processor: EventProcessor,
        config_provider: BillingConfigProvider,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._subscriptions = subscriptions
        self._provider = provider
        self._processor = processor
        self._config_provider = config_provider
        self._clock = clock

    async def verify_by_id(self, user_id: str, subscription_id: str) -> RecoveryResult:
        """
        Verify one of the user's subscription records.

        Raises:
            NotFoundError: If the record does not exist or belongs to someone else
            TransientProviderError: If the provider cannot be reached
        """
        record = await self._subscriptions.get_by_id(subscription_id)
        if record is None or record.user_id != user_id:
            raise NotFoundError(f"Subscription {subscription_id} not found", resource_id=subscription_id)

        if record.is_active():
            return RecoveryResult(
                status=RecoveryStatus.SUCCESS,
                message="Plan already active",
                subscription_id=record.id,
            )

        if not record.is_pending() or not record.provider_session_id:
            return RecoveryResult(
                status=RecoveryStatus.FAILURE,
                message="Subscription is not in a verifiable state",
                reason='NOT_VERIFIABLE',
                subscription_id=record.id,
            )

        logger.info(f"[RECOVERY] Verifying session {record.provider_session_id} for subscription {record.id}")
        session = await self._provider.retrieve_checkout_session(record.provider_session_id)
        if not session.is_paid:
            return RecoveryResult(
                status=RecoveryStatus.PENDING,
                message="Payment not yet confirmed",
                subscription_id=record.id,
            )

        return await self._activate_from_session(record, session, "Payment verified and plan updated")

    async def recover_by_payment_id(self, payment_id: str) -> RecoveryResult:
        """
        Find and activate the record paid by `payment_id`.

        Scans pending records with a checkout session inside the recovery
        window, newest first.
        """
        already = await self._subscriptions.find(
            provider_reference_id=payment_id,
            statuses=[SubscriptionStatus.ACTIVE],
            limit=1,
        )
        if already:
            return RecoveryResult(
                status=RecoveryStatus.SUCCESS,
                message="Plan already active",
                subscription_id=already[0].id,
            )

        config = await self._config_provider.get()
        window_start = self._clock() - timedelta(days=config.recovery_window_days)
        candidates = await self._subscriptions.find(
            statuses=[SubscriptionStatus.PENDING],
            has_session=True,
            created_after=window_start,
            limit=config.recovery_scan_limit,
            newest_first=True,
        )
        logger.info(f"[RECOVERY] Scanning {len(candidates)} pending subscriptions for payment {payment_id}")

        for record in candidates:
            try:
                session = await self._provider.retrieve_checkout_session(record.provider_session_id)
            except NotFoundError:
                logger.warning(f"[RECOVERY] Session {record.provider_session_id} not found at provider, skipping")
                continue

            if session.payment_id != payment_id:
                continue
            if not session.is_paid:
                logger.info(f"[RECOVERY] Session {session.id} for payment {payment_id} is not paid yet")
                return RecoveryResult(
                    status=RecoveryStatus.PENDING,
                    message="Payment provider has not yet marked this transaction as complete",
                    subscription_id=record.id,
                )
            return await self._activate_from_session(record, session, "Payment recovered and plan updated")

        logger.warning(f"[RECOVERY] No paid session found for payment {payment_id}")
        return RecoveryResult(
            status=RecoveryStatus.PENDING,
            message="Payment provider has not yet marked this transaction as complete",
        )

    async def _activate_from_session(
        self,
        record: SubscriptionRecord,
        session: ProviderCheckoutSession,
        success_message: str,
    ) -> RecoveryResult:
        reference = select_activation_reference(record, session.payment_id, session.subscription_id)
        if not reference:
            logger.error(f"[RECOVERY] Session {session.id} is paid but carries no reference for {record.id}")
            return RecoveryResult(
                status=RecoveryStatus.PENDING,
                message="Payment confirmed but provider reference not yet available",
                subscription_id=record.id,
            )

        try:
            await self._processor.activate(record.id, reference)
        except ConflictError as e:
            return RecoveryResult(
                status=RecoveryStatus.FAILURE,
                message=e.message,
                reason=e.code,
                subscription_id=record.id,
            )

        logger.info(f"[RECOVERY] Subscription {record.id} activated with reference {reference}")
        return RecoveryResult(status=RecoveryStatus.SUCCESS, message=success_message, subscription_id=record.id)
