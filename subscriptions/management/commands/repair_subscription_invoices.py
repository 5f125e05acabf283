from django.core.management.base import BaseCommand

from subscriptions.exceptions import BillingError
from subscriptions.services import RecordStore, SubscriptionLifecycleManager


class Command(BaseCommand):
    help = "Create invoices for pending subscriptions left without one."

    def handle(self, *args, **options):
        store = RecordStore()
        lifecycle = SubscriptionLifecycleManager(store=store)

        subscription_ids = list(store.subscriptions_missing_invoice().values_list("pk", flat=True))
        if not subscription_ids:
            self.stdout.write("No subscriptions need repair.")
            return

        for subscription_id in subscription_ids:
            try:
                result = lifecycle.retry_invoice(subscription_id)
            except BillingError as exc:
                self.stdout.write(self.style.WARNING(f"Subscription {subscription_id} still without invoice: {exc}"))
                continue
            self.stdout.write(
                self.style.SUCCESS(f"Subscription {subscription_id} invoiced ({result.invoice.pk}, {result.subscription.status}).")
            )
