"""
Webhook Service

Entry point for payment provider webhooks: authenticates the raw body,
decodes the event and hands it to the event processor.

Acknowledgement policy:
    - bad signature / malformed body: raised (HTTP 400)
    - processed, no-op, ignored: {'status': 'success', ...}
    - reference conflict: {'status': 'conflict', ...}, acknowledged so the
      provider stops retrying; the conflict is logged for manual review
    - anything unexpected: raised (HTTP 500) so the provider retries
"""

import json
import logging
from typing import Any, Dict, Optional, Union

from backend.src.billing.domain.events import PaymentEvent
from backend.src.billing.external.signature import verify_webhook_signature
from backend.src.billing.shared.config import BillingConfigProvider
from backend.src.billing.shared.exceptions import ConflictError, WebhookPayloadError
from backend.src.billing.subscriptions.processor import EventProcessor

logger = logging.getLogger(__name__)


class WebhookService:
    """
    Central service for processing provider webhooks.

    Usage:
        webhook_service = WebhookService(processor, config_provider)
        result = await webhook_service.process_webhook(body, signature)
    """

    def __init__(self, processor: EventProcessor, config_provider: BillingConfigProvider):
        self._processor = processor
        self._config_provider = config_provider

    async def process_webhook(self, payload: Union[bytes, str], signature: Optional[str]) -> Dict[str, Any]:
        """
        Process an incoming webhook.

        Args:
            payload: Raw, unparsed request body
            signature: Value of the stripe-signature header

        Returns:
            Dict with processing status

        Raises:
            WebhookSignatureError: If the body cannot be authenticated
            WebhookPayloadError: If the authenticated body is not an event
        """
        config = await self._config_provider.get()
        verify_webhook_signature(payload, signature, config.webhook_secret, config.webhook_tolerance_seconds)

        try:
            envelope = json.loads(payload)
        except ValueError as e:
            logger.warning(f"[WEBHOOK] Invalid JSON payload: {e}")
            raise WebhookPayloadError("Webhook body is not valid JSON") from e

        event = PaymentEvent.from_envelope(envelope)
        logger.info(f"[WEBHOOK] Processing event type: {event.raw_type} (ID: {event.event_id or 'n/a'})")

        try:
            result = await self._processor.process(event)
        except ConflictError as e:
            logger.error(
                f"[WEBHOOK] Conflict on {event.raw_type}: {e.code} {e.message} {e.details}"
            )
            return {
                'status': 'conflict',
                'event_type': event.raw_type,
                'error': e.code,
                'message': e.message,
                'subscription_id': e.subscription_id,
            }

        return {'status': 'success', 'event_type': event.raw_type, **result.to_dict()}
