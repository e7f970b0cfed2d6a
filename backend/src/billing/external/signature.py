"""
Webhook Signature Verification

Stripe signs each delivery in the `stripe-signature` header as
`t=<timestamp>,v1=<hex digest>`. The check runs on the raw, unparsed body
through `stripe.WebhookSignature`, which also rejects timestamps outside the
replay tolerance.
"""

import logging
from typing import Optional, Union

import stripe

from backend.src.billing.shared.exceptions import WebhookSignatureError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'stripe-signature'
DEFAULT_TOLERANCE_SECONDS = 300  # 5 minutes


def verify_webhook_signature(
    payload: Union[bytes, str],
    signature: Optional[str],
    secret: Optional[str],
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> None:
    """
    Authenticate a webhook body.

    Fails closed: a missing secret, a missing header, a stale timestamp and a
    mismatch all raise.

    Args:
        payload: Raw request body
        signature: Value of the `stripe-signature` header
        secret: Webhook signing secret (whsec_...)
        tolerance: Maximum age of the signed timestamp, in seconds

    Raises:
        WebhookSignatureError: If the body cannot be authenticated
    """
    if not secret:
        logger.error("[WEBHOOK] Webhook secret is not configured, rejecting event")
        raise WebhookSignatureError("Webhook secret is not configured", reason="SECRET_MISSING")

    if not signature:
        logger.warning(f"[WEBHOOK] Missing {SIGNATURE_HEADER} header")
        raise WebhookSignatureError("Missing webhook signature", reason="SIGNATURE_MISSING")

    try:
        body = payload.decode('utf-8') if isinstance(payload, bytes) else payload
    except UnicodeDecodeError as e:
        logger.warning(f"[WEBHOOK] Body is not UTF-8, cannot verify signature: {e}")
        raise WebhookSignatureError() from e

    try:
        stripe.WebhookSignature.verify_header(body, signature, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"[WEBHOOK] Invalid signature: {e}")
        raise WebhookSignatureError() from e
