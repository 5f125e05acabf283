from datetime import date
from decimal import Decimal
from unittest import mock

from django.test import TestCase, override_settings

from payments.models import PaymentTransaction, TransactionStatus
from subscriptions.exceptions import ProviderError, ValidationError
from subscriptions.models import EventLog, Invoice, InvoiceStatus, PaymentMethod
from subscriptions.services import PaymentReconciler
from subscriptions.services.reconciliation import map_provider_state
from subscriptions.tests.helpers import FakeProvider, make_customer


class PaymentReconcilerTests(TestCase):
    def setUp(self):
        self.customer = make_customer()
        self.provider = FakeProvider(state="COMPLETED")
        self.reconciler = PaymentReconciler(provider_resolver=lambda method: self.provider)
        self.invoice = self._invoice(PaymentMethod.PROVIDER_MANUAL, external_payment_id="pay-42")

    def _invoice(self, method, **fields):
        return Invoice.objects.create(
            customer=self.customer,
            amount=Decimal("99.00"),
            currency="DKK",
            payment_method=method,
            due_date=date(2024, 2, 1),
            **fields,
        )

    def test_state_mapping(self):
        self.assertEqual(map_provider_state("COMPLETED"), InvoiceStatus.PAID)
        self.assertEqual(map_provider_state("CANCELLED"), InvoiceStatus.CANCELLED)
        self.assertEqual(map_provider_state("FAILED"), InvoiceStatus.CANCELLED)
        self.assertIsNone(map_provider_state("PENDING"))
        self.assertIsNone(map_provider_state(None))

    def test_completed_marks_paid_with_one_transaction(self):
        first = self.reconciler.reconcile(self.invoice)
        second = self.reconciler.reconcile(Invoice.objects.get(pk=self.invoice.pk))

        self.assertEqual(first.outcome, "updated")
        self.assertEqual(second.outcome, "unchanged")
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, InvoiceStatus.PAID)
        transactions = PaymentTransaction.objects.filter(invoice=self.invoice)
        self.assertEqual(transactions.count(), 1)
        txn = transactions.get()
        self.assertEqual(txn.status, TransactionStatus.PAID)
        self.assertEqual(txn.transaction_id, "pay-42")
        self.assertEqual(txn.provider_response["data"]["state"], "COMPLETED")

    def test_stale_copy_does_not_duplicate_transaction(self):
        stale = Invoice.objects.get(pk=self.invoice.pk)
        self.reconciler.reconcile(self.invoice)

        result = self.reconciler.reconcile(stale)

        self.assertEqual(result.outcome, "unchanged")
        self.assertEqual(PaymentTransaction.objects.filter(invoice=self.invoice).count(), 1)

    def test_failed_state_cancels_invoice(self):
        self.provider.state = "FAILED"

        result = self.reconciler.reconcile(self.invoice)

        self.assertEqual(result.outcome, "updated")
        self.assertEqual(Invoice.objects.get(pk=self.invoice.pk).status, InvoiceStatus.CANCELLED)
        self.assertEqual(result.transaction.status, TransactionStatus.FAILED)

    def test_unknown_state_is_unchanged(self):
        self.provider.state = "AUTHORISED"

        result = self.reconciler.reconcile(self.invoice)

        self.assertEqual(result.outcome, "unchanged")
        self.assertEqual(result.provider_state, "AUTHORISED")
        self.assertEqual(Invoice.objects.get(pk=self.invoice.pk).status, InvoiceStatus.PENDING)
        self.assertFalse(PaymentTransaction.objects.exists())

    def test_provider_error_reports_failed(self):
        with mock.patch(
            "subscriptions.services.reconciliation.call_with_timeout",
            side_effect=ProviderError("timed out"),
        ):
            result = self.reconciler.reconcile(self.invoice)

        self.assertEqual(result.outcome, "failed")
        self.assertEqual(result.error, "timed out")
        self.assertEqual(Invoice.objects.get(pk=self.invoice.pk).status, InvoiceStatus.PENDING)
        self.assertTrue(EventLog.objects.filter(event_type="invoice.reconciliation_failed").exists())

    def test_unrecognised_shape_reports_failed(self):
        for response in ({"success": True, "data": {}}, {"success": False, "error": "unknown id"}, ["nope"]):
            self.provider.status_response = response
            result = self.reconciler.reconcile(self.invoice)
            self.assertEqual(result.outcome, "failed")
        self.assertFalse(PaymentTransaction.objects.exists())

    @override_settings(PAYMENT_PROVIDERS={"provider-manual": "billing_missing.Provider"})
    def test_unimportable_provider_reports_failed(self):
        result = PaymentReconciler().reconcile(self.invoice)

        self.assertEqual(result.outcome, "failed")
        self.assertIn("cannot be imported", result.error)
        self.assertEqual(Invoice.objects.get(pk=self.invoice.pk).status, InvoiceStatus.PENDING)

    def test_non_pending_invoice_skips_provider(self):
        Invoice.objects.filter(pk=self.invoice.pk).update(status=InvoiceStatus.REFUNDED)

        result = self.reconciler.reconcile(Invoice.objects.get(pk=self.invoice.pk))

        self.assertEqual(result.outcome, "unchanged")
        self.assertEqual(self.provider.status_calls, [])

    def test_preconditions(self):
        manual = self._invoice(PaymentMethod.MANUAL)
        with self.assertRaises(ValidationError):
            self.reconciler.reconcile(manual)

        missing_id = self._invoice(PaymentMethod.PROVIDER_RECURRING)
        with self.assertRaises(ValidationError):
            self.reconciler.reconcile(missing_id)


class MarkPaidManuallyTests(TestCase):
    def setUp(self):
        self.customer = make_customer()
        self.reconciler = PaymentReconciler(provider_resolver=mock.Mock())

    def _invoice(self, method=PaymentMethod.MANUAL):
        return Invoice.objects.create(
            customer=self.customer,
            amount=Decimal("50.00"),
            currency="DKK",
            payment_method=method,
            due_date=date(2024, 2, 1),
        )

    def test_marks_manual_invoice_paid(self):
        invoice = self._invoice()

        txn = self.reconciler.mark_paid_manually(invoice)

        invoice.refresh_from_db()
        self.assertEqual(invoice.status, InvoiceStatus.PAID)
        self.assertEqual(txn.status, TransactionStatus.PAID)
        self.assertEqual(txn.provider_response, {"manual": True})
        self.assertEqual(txn.amount, Decimal("50.00"))
        self.assertTrue(txn.transaction_id.startswith("MANUAL-"))

    def test_manual_invoice_never_pays_itself(self):
        invoice = self._invoice()
        self.assertEqual(Invoice.objects.get(pk=invoice.pk).status, InvoiceStatus.PENDING)
        self.assertFalse(PaymentTransaction.objects.exists())

    def test_rejects_provider_invoice(self):
        with self.assertRaises(ValidationError):
            self.reconciler.mark_paid_manually(self._invoice(PaymentMethod.PROVIDER_MANUAL))

    def test_rejects_already_paid(self):
        invoice = self._invoice()
        self.reconciler.mark_paid_manually(invoice)
        with self.assertRaises(ValidationError):
            self.reconciler.mark_paid_manually(invoice)
        self.assertEqual(PaymentTransaction.objects.count(), 1)
