from datetime import date
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import TestCase, override_settings

from payments.sandbox import SandboxPaymentProvider
from subscriptions.models import Invoice, InvoiceStatus, Subscription, SubscriptionStatus
from subscriptions.services.reminders import ReminderRunSummary
from subscriptions.tasks import reconcile_pending_invoices, send_subscription_reminders
from subscriptions.tests.helpers import make_customer, make_product

SANDBOX_PROVIDERS = {
    "provider-recurring": "payments.sandbox.SandboxPaymentProvider",
    "provider-manual": "payments.sandbox.SandboxPaymentProvider",
}


@override_settings(PAYMENT_PROVIDERS=SANDBOX_PROVIDERS)
class CommandTests(TestCase):
    def setUp(self):
        self.override_email = self.settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
        self.override_email.enable()
        self.addCleanup(self.override_email.disable)
        SandboxPaymentProvider.reset()
        self.customer = make_customer()
        self.product = make_product()

    def _subscription(self, **fields):
        defaults = {
            "customer": self.customer,
            "product": self.product,
            "product_name": self.product.name,
            "duration_months": 1,
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 2, 1),
            "price": Decimal("99.00"),
        }
        defaults.update(fields)
        return Subscription.objects.create(**defaults)

    @mock.patch("subscriptions.management.commands.send_subscription_reminders.ReminderScheduler")
    def test_send_reminders_uses_given_time(self, mock_scheduler):
        mock_scheduler.return_value.run.return_value = ReminderRunSummary(sent=2, skipped=1)
        out = StringIO()

        call_command("send_subscription_reminders", "--now", "2024-01-26T12:00:00", stdout=out)

        now = mock_scheduler.return_value.run.call_args.args[0]
        self.assertEqual((now.year, now.month, now.day, now.hour), (2024, 1, 26, 12))
        self.assertIsNotNone(now.tzinfo)
        self.assertIn("Reminders sent: 2", out.getvalue())

    def test_send_reminders_expires_lapsed(self):
        subscription = self._subscription(status=SubscriptionStatus.ACTIVE, end_date=date(2024, 2, 1))

        call_command("send_subscription_reminders", "--now", "2024-03-01T00:00:00", stdout=StringIO())

        subscription.refresh_from_db()
        self.assertEqual(subscription.status, SubscriptionStatus.EXPIRED)

    def test_reconcile_invoices(self):
        subscription = self._subscription()
        call_command("repair_subscription_invoices", stdout=StringIO())
        subscription.refresh_from_db()
        invoice = subscription.invoice
        self.assertEqual(invoice.status, InvoiceStatus.PENDING)

        # manual invoices are left alone by the provider pass
        out = StringIO()
        call_command("reconcile_invoices", stdout=out)
        self.assertIn("No invoices to reconcile.", out.getvalue())

    def test_reconcile_invoices_marks_paid(self):
        subscription = self._subscription(payment_method="provider-manual")
        call_command("repair_subscription_invoices", stdout=StringIO())
        subscription.refresh_from_db()
        SandboxPaymentProvider.set_state(subscription.invoice.external_payment_id, "COMPLETED")

        out = StringIO()
        call_command("reconcile_invoices", stdout=out)

        self.assertIn("is now paid", out.getvalue())
        subscription.refresh_from_db()
        self.assertEqual(subscription.status, SubscriptionStatus.ACTIVE)
        self.assertEqual(Invoice.objects.get(pk=subscription.invoice_id).status, InvoiceStatus.PAID)

    def test_repair_subscription_invoices(self):
        manual = self._subscription()
        recurring = self._subscription(payment_method="provider-recurring")
        invoiced = self._subscription(status=SubscriptionStatus.ACTIVE)

        out = StringIO()
        call_command("repair_subscription_invoices", stdout=out)

        manual.refresh_from_db()
        recurring.refresh_from_db()
        invoiced.refresh_from_db()
        self.assertIsNotNone(manual.invoice_id)
        self.assertEqual(manual.status, SubscriptionStatus.ACTIVE)
        self.assertIsNotNone(recurring.invoice_id)
        self.assertEqual(recurring.status, SubscriptionStatus.PENDING)
        self.assertTrue(recurring.external_agreement_id)
        self.assertIsNone(invoiced.invoice_id)

    def test_repair_with_nothing_to_do(self):
        out = StringIO()
        call_command("repair_subscription_invoices", stdout=out)
        self.assertIn("No subscriptions need repair.", out.getvalue())

    def test_reconcile_task_counts_outcomes(self):
        subscription = self._subscription(payment_method="provider-manual")
        call_command("repair_subscription_invoices", stdout=StringIO())
        subscription.refresh_from_db()
        SandboxPaymentProvider.set_state(subscription.invoice.external_payment_id, "CANCELLED")

        counts = reconcile_pending_invoices()

        self.assertEqual(counts, {"updated": 1, "unchanged": 0, "failed": 0})
        subscription.refresh_from_db()
        self.assertEqual(subscription.status, SubscriptionStatus.CANCELLED)

    @mock.patch("subscriptions.tasks.ReminderScheduler")
    def test_reminder_task_returns_summary(self, mock_scheduler):
        mock_scheduler.return_value.run.return_value = ReminderRunSummary(sent=1, expired=2)
        self.assertEqual(send_subscription_reminders(), {"sent": 1, "failed": 0, "expired": 2, "skipped": 0})
