import logging

from celery import shared_task

from subscriptions.exceptions import BillingError
from subscriptions.services import RecordStore, ReminderScheduler, SubscriptionLifecycleManager

logger = logging.getLogger(__name__)


@shared_task
def send_subscription_reminders():
    summary = ReminderScheduler().run()
    return summary.as_dict()


@shared_task
def reconcile_pending_invoices():
    """Poll the provider for every pending provider-backed invoice."""
    store = RecordStore()
    lifecycle = SubscriptionLifecycleManager(store=store)
    counts = {"updated": 0, "unchanged": 0, "failed": 0}
    for invoice_id in store.pending_provider_invoices().values_list("pk", flat=True):
        try:
            result = lifecycle.refresh_payment(invoice_id)
        except BillingError as exc:
            logger.warning("Skipping invoice %s during reconciliation: %s", invoice_id, exc)
            counts["failed"] += 1
            continue
        counts[result.outcome] += 1
    logger.info("Reconciliation pass finished: %s", counts)
    return counts
