from django.core.management.base import BaseCommand

from subscriptions.exceptions import BillingError
from subscriptions.services import RecordStore, SubscriptionLifecycleManager


class Command(BaseCommand):
    help = "Check the payment provider for every pending provider-backed invoice."

    def add_arguments(self, parser):
        parser.add_argument("--invoice", type=int, action="append", dest="invoices", help="Only reconcile these invoice ids.")

    def handle(self, *args, **options):
        store = RecordStore()
        lifecycle = SubscriptionLifecycleManager(store=store)

        invoice_ids = options.get("invoices") or list(store.pending_provider_invoices().values_list("pk", flat=True))
        if not invoice_ids:
            self.stdout.write("No invoices to reconcile.")
            return

        for invoice_id in invoice_ids:
            try:
                result = lifecycle.refresh_payment(invoice_id)
            except BillingError as exc:
                self.stdout.write(self.style.WARNING(f"Invoice {invoice_id} skipped: {exc}"))
                continue

            if result.outcome == "updated":
                self.stdout.write(self.style.SUCCESS(f"Invoice {invoice_id} is now {result.invoice.status}."))
            elif result.outcome == "failed":
                self.stdout.write(self.style.WARNING(f"Invoice {invoice_id} check failed: {result.error}"))
            else:
                self.stdout.write(f"Invoice {invoice_id} unchanged.")
