"""
Exceptions raised while processing billing webhooks.

Only failures that change the HTTP response or must be logged distinctly
are exceptions. Unrecognized event types, orphaned customers and unknown
price identifiers are ordinary outcomes, not errors.
"""
from typing import Optional


class BillingWebhookError(Exception):
    """Base class for webhook processing errors."""

    code = "billing_webhook_error"

    def __init__(self, message: str, event_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.event_id = event_id


class SignatureInvalid(BillingWebhookError):
    """Missing or invalid signature header. No state is touched."""

    code = "invalid_signature"


class MalformedEvent(BillingWebhookError):
    """Authenticated body that is not a well-formed event."""

    code = "malformed_event"


class PersistenceFailure(BillingWebhookError):
    """The subscription upsert could not be committed."""

    code = "persistence_failure"


class AuditWriteFailure(BillingWebhookError):
    """The audit entry could not be written. Never fails the transition."""

    code = "audit_write_failure"
