import logging

from celery import shared_task

from subscriptions.exceptions import BillingError, NotFoundError
from subscriptions.models import Invoice
from subscriptions.services import SubscriptionLifecycleManager
from webhooks.models import WebhookLog

logger = logging.getLogger(__name__)


def _mark_failed(log: WebhookLog, status_code: int, message: str) -> None:
    log.success = False
    log.status_code = status_code
    log.error_message = message
    log.save(update_fields=["success", "status_code", "error_message"])


@shared_task
def reconcile_invoice_from_webhook(log_id: int, payment_id: str):
    log = WebhookLog.objects.get(id=log_id)
    invoice = Invoice.objects.filter(external_payment_id=payment_id).order_by("-issued_date").first()
    if invoice is None:
        _mark_failed(log, 404, f"No invoice with external payment id {payment_id}.")
        raise NotFoundError(log.error_message)

    try:
        result = SubscriptionLifecycleManager().refresh_payment(invoice.pk)
    except BillingError as exc:
        _mark_failed(log, 400, str(exc))
        raise

    log.success = result.succeeded
    log.status_code = 200 if result.succeeded else 502
    log.response = {
        "invoice_id": invoice.pk,
        "outcome": result.outcome,
        "provider_state": result.provider_state,
        "error": result.error,
    }
    log.error_message = result.error or ""
    log.save(update_fields=["success", "status_code", "response", "error_message"])
    logger.info("Webhook %s reconciled invoice %s: %s", log.pk, invoice.pk, result.outcome)
    return log.response
