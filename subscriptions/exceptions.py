class BillingError(Exception):
    """Base class for errors raised by the billing services."""


class NotFoundError(BillingError):
    """An id did not resolve to a customer, product, subscription or invoice."""


class ValidationError(BillingError):
    """Malformed input or an operation that is not allowed in the current state."""


class ProviderError(BillingError):
    """The payment provider call failed, timed out or returned an unrecognised shape."""


class InvoiceGenerationError(ProviderError):
    """Invoice creation failed after the subscription was written.

    The subscription stays ``pending`` without an invoice and can be retried
    with ``SubscriptionLifecycleManager.retry_invoice``.
    """

    def __init__(self, message: str, *, subscription=None):
        super().__init__(message)
        self.subscription = subscription


class NotificationError(BillingError):
    """Email dispatch failed. Never fatal to the operation that triggered it."""
