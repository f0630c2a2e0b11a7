"""Domain error taxonomy.

Every error carries the HTTP status it maps to and a public message that is
safe to show to the caller. The internal message (``str(exc)``) may contain
ids and causes and is only logged. ``familyhub_error_handler`` in
``familyhub.main`` renders these as ``{"error": <public message>}``.
"""


class FamilyHubError(Exception):
    """Base class for expected, typed failures."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)

    def payload(self) -> dict:
        return {"error": self.public_message}


class AuthError(FamilyHubError):
    """Missing or invalid caller identity."""

    status_code = 401
    public_message = "Not authenticated"


class ForbiddenError(AuthError):
    """Authenticated caller lacks access to the target household."""

    status_code = 403
    public_message = "Access denied"


class NotFoundError(FamilyHubError):
    status_code = 404
    public_message = "Not found"


class ConflictError(FamilyHubError):
    status_code = 409
    public_message = "Conflict"


class PinConflictError(ConflictError):
    public_message = "That PIN is already used by another child in this household"


class TrialUnavailableError(ConflictError):
    public_message = "A free trial has already been used for this account"


class AlreadySubscribedError(ConflictError):
    public_message = "This account already has an active subscription"


# ---------------------------------------------------------------------------
# Verification failures share one public message so that callers cannot
# tell a missing code from an expired or reused one.
# ---------------------------------------------------------------------------


class VerificationError(FamilyHubError):
    status_code = 401
    public_message = "Invalid or expired code"
    reason = "invalid"


class TokenNotFoundError(VerificationError):
    reason = "not_found"


class ExpiredOrConsumedError(VerificationError):
    reason = "expired_or_consumed"


class TokenExpiredError(ExpiredOrConsumedError):
    reason = "expired"


class TokenAlreadyUsedError(ExpiredOrConsumedError):
    reason = "already_used"


class InvalidPinError(VerificationError):
    public_message = "Invalid PIN"
    reason = "invalid_pin"


# ---------------------------------------------------------------------------
# Payment provider
# ---------------------------------------------------------------------------


class ProviderError(FamilyHubError):
    """A payment-provider call failed, timed out, or returned an unexpected shape."""

    status_code = 502
    public_message = "Payment provider request failed"


class ReconciliationRequiredError(ProviderError):
    """A multi-step provider operation stopped after an irreversible step.

    Never retried automatically: an operator has to reconcile the provider
    state (e.g. an issued refund) with the local record.
    """

    status_code = 500
    public_message = "Cancellation partially completed and requires manual reconciliation"

    def __init__(
        self,
        message: str,
        *,
        failed_step: str,
        stripe_subscription_id: str,
        refund_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.failed_step = failed_step
        self.stripe_subscription_id = stripe_subscription_id
        self.refund_id = refund_id

    def payload(self) -> dict:
        return {
            "error": self.public_message,
            "reconciliation_required": True,
            "failed_step": self.failed_step,
            "subscription_id": self.stripe_subscription_id,
            "refund_id": self.refund_id,
        }


class CountingError(FamilyHubError):
    """A usage count could not be computed. Quota checks fail open on it."""

    public_message = "Usage could not be counted"
