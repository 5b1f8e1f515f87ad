"""
Automation Errors
=================

Every failure the scheduler or dispatcher can record on a job derives from
AutomationError, so the dispatcher's per-job boundary can turn any of them
into a failed status with a readable message.
"""


class AutomationError(Exception):
    """Base exception for automation scheduling and delivery."""
    pass


class ValidationError(AutomationError):
    """A job cannot be built or sent: missing recipient, missing template."""
    pass


class TransportError(AutomationError):
    """SMTP or SMS gateway refused or failed the send.

    The provider's message is kept verbatim for operator diagnosis.
    """

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class RecordNotFoundError(AutomationError, LookupError):
    """A template, review, customer or business vanished before it was used."""
    pass


class AccessDeniedError(AutomationError):
    """Caller is not authenticated (401) or not entitled to automation (403)."""

    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code
