"""
Error taxonomy for the analysis endpoints.

Every error carries the HTTP status it maps to and a user-safe message.
Internal detail stays in the exception chain and the server log.
"""

from typing import Optional


class AutoGuardianError(Exception):
    """Base error with an HTTP status and a message safe to show users."""
    status_code: int = 500
    default_message: str = "An unexpected error occurred. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AutoGuardianError):
    """No authenticated identity on the request."""
    status_code = 401
    default_message = "Please sign in."


class InvalidInput(AutoGuardianError):
    """Missing or malformed request fields."""
    status_code = 400
    default_message = "Invalid request."


class QuotaExceeded(AutoGuardianError):
    """Free-tier monthly consultation cap reached."""
    status_code = 429

    def __init__(self, limit: int):
        self.limit = limit
        self.remaining_consultations = 0
        super().__init__(
            f"You've reached your free tier limit of {limit} consultations this month. "
            "Upgrade to Pro for unlimited analyses."
        )


class UsageLookupFailed(AutoGuardianError):
    """The usage count could not be read, so the quota cannot be enforced."""
    status_code = 500
    default_message = "Unable to verify your usage. Please try again."


class ProviderConfigError(AutoGuardianError):
    """The model provider rejected our credentials."""
    status_code = 500
    default_message = "API configuration error. Please contact support."


class ProviderBusy(AutoGuardianError):
    """The model provider is rate limiting us. Retryable by the user."""
    status_code = 503
    default_message = "Our diagnostic service is temporarily busy. Please try again in a moment."


class ProviderError(AutoGuardianError):
    """Any other failure talking to the model provider."""
    status_code = 500
    default_message = "An error occurred with our diagnostic service. Please try again."


class MalformedModelOutput(AutoGuardianError):
    """The model response did not parse as a JSON object."""
    status_code = 500
    default_message = "Failed to parse diagnostic response. Please try again."

    def __init__(self, raw_text: str = "", message: Optional[str] = None):
        self.raw_text = raw_text
        super().__init__(message)


class DuplicateWaitlistEntry(AutoGuardianError):
    """The email address is already on the waitlist."""
    status_code = 409
    default_message = "You're already on the waitlist!"


class BillingError(AutoGuardianError):
    """Checkout, portal or webhook processing failed."""
    status_code = 500
    default_message = "Billing request failed. Please try again."

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
