"""
Exceptions raised by the billing engine.

The webhook view relies on this hierarchy to pick a response code:
signature errors are rejected with 400, processing errors are logged and
acknowledged with 200, and anything else surfaces as a 500 so Stripe retries.
"""


class BillingError(Exception):
    """Base exception for billing errors."""


class BillingInputError(BillingError, ValueError):
    """Raised when a caller omits or mangles a required field."""


class WebhookSignatureError(BillingError):
    """Raised when a webhook payload cannot be authenticated or parsed."""


class WebhookProcessingError(BillingError):
    """
    Raised for permanent failures while handling a verified event.

    Redelivering the event would fail the same way, so the processor logs
    these and acknowledges the event.
    """


class LedgerNotFoundError(WebhookProcessingError):
    """Raised when an event refers to a subscription we have no ledger row for."""

    def __init__(self, subscription_id: str):
        self.subscription_id = subscription_id
        super().__init__(f"No subscription ledger row for {subscription_id}")


class InvalidPhaseMetadataError(WebhookProcessingError):
    """Raised when the phase cursor stored on a subscription cannot be parsed."""
