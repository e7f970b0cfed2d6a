"""
Billing Exceptions

Custom exception classes for billing-related errors.
These provide structured error handling across the billing module and
carry a machine-readable code that endpoints return verbatim.
"""


class BillingError(Exception):
    """
    Base exception for all billing-related errors.

    All billing exceptions inherit from this class, allowing for
    broad exception handling when needed.
    """

    status_code: int = 500

    def __init__(self, message: str, code: str = "BILLING_ERROR", details: dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details
        }


class WebhookSignatureError(BillingError):
    """
    Raised when an inbound provider event cannot be authenticated.

    Covers a missing shared secret, a missing signature and a signature
    mismatch. Never retried internally.
    """

    status_code = 400

    def __init__(self, message: str = "Invalid webhook signature", reason: str = "SIGNATURE_MISMATCH"):
        super().__init__(
            message=message,
            code="WEBHOOK_SIGNATURE_INVALID",
            details={'reason': reason}
        )
        self.reason = reason


class WebhookPayloadError(BillingError):
    """Raised when an authenticated webhook body is not a usable event."""

    status_code = 400

    def __init__(self, message: str = "Invalid webhook payload"):
        super().__init__(message=message, code="WEBHOOK_PAYLOAD_INVALID")


class NotFoundError(BillingError):
    """
    Raised when a subscription record, checkout session or user profile
    does not exist (or is not visible to the caller).
    """

    status_code = 404

    def __init__(
        self,
        message: str = "Resource not found",
        resource: str = "subscription",
        resource_id: str = None
    ):
        details = {'resource': resource}
        if resource_id:
            details['resource_id'] = resource_id
        super().__init__(message=message, code="NOT_FOUND", details=details)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(BillingError):
    """
    Raised when a request conflicts with the current billing state.

    Conflicts are never resolved automatically. The code tells the cases
    apart:
        - PLAN_HIERARCHY: target plan is not above the current plan
        - DUPLICATE_CHECKOUT: a pending/active record for the plan exists
        - REFERENCE_MISMATCH: record already bound to another reference
        - INVALID_TRANSITION: the state machine does not allow the move
        - NOT_VERIFIABLE: record cannot be verified against the provider
        - NOT_CANCELLABLE: record is not a cancellable subscription
        - CONCURRENT_UPDATE: the record kept changing under the writer
    """

    status_code = 409

    def __init__(
        self,
        message: str = "Billing state conflict",
        code: str = "CONFLICT",
        subscription_id: str = None,
        details: dict = None
    ):
        details = dict(details or {})
        if subscription_id:
            details['subscription_id'] = subscription_id
        super().__init__(message=message, code=code, details=details)
        self.subscription_id = subscription_id


class PlanNotFoundError(BillingError):
    """Raised when a requested plan doesn't exist or cannot be purchased."""

    status_code = 400

    def __init__(self, plan_name: str):
        super().__init__(
            message=f"Plan '{plan_name}' not found",
            code="PLAN_NOT_FOUND",
            details={'plan_name': plan_name}
        )
        self.plan_name = plan_name


class TransientProviderError(BillingError):
    """
    Raised when the payment provider API fails or times out.

    Not retried internally; callers re-poll. The provider's own error text
    is kept on the exception for logging and never goes into `details`.
    """

    status_code = 503

    def __init__(
        self,
        message: str = "Payment provider temporarily unavailable",
        operation: str = None,
        provider_error: str = None
    ):
        super().__init__(message=message, code="PROVIDER_UNAVAILABLE", details={'retryable': True})
        self.operation = operation
        self.provider_error = provider_error


class PartialWriteWarning(BillingError):
    """
    Profile synchronisation failed after the subscription record was
    already activated.

    Funds were captured and the activation stands; the profile is repaired
    by a later re-sync. Logged, never raised to clients.
    """

    def __init__(self, user_id: str, subscription_id: str = None, cause: str = None):
        details = {'user_id': user_id}
        if subscription_id:
            details['subscription_id'] = subscription_id
        if cause:
            details['cause'] = cause
        super().__init__(
            message=f"Profile sync failed for user {user_id} after activation",
            code="PARTIAL_WRITE",
            details=details
        )
        self.user_id = user_id
        self.subscription_id = subscription_id


class ConfigurationError(BillingError):
    """Raised when required billing configuration is missing."""

    def __init__(self, setting: str):
        super().__init__(
            message=f"Billing setting '{setting}' is not configured",
            code="BILLING_NOT_CONFIGURED",
            details={'setting': setting}
        )
        self.setting = setting
