from datetime import date
from decimal import Decimal
from unittest import mock

from django.core.exceptions import ImproperlyConfigured
from django.test import TestCase

from subscriptions.exceptions import ProviderError, ValidationError
from subscriptions.models import EventLog, Invoice, InvoiceStatus, PaymentMethod, Subscription
from subscriptions.services import InvoiceGenerator
from subscriptions.tests.helpers import FakeDispatcher, FakeProvider, make_customer, make_product


class InvoiceGeneratorTests(TestCase):
    def setUp(self):
        self.customer = make_customer()
        self.product = make_product()
        self.provider = FakeProvider()
        self.dispatcher = FakeDispatcher()
        self.generator = InvoiceGenerator(
            notification_dispatcher=self.dispatcher,
            provider_resolver=lambda method: self.provider,
        )

    def _generate(self, method, **kwargs):
        return self.generator.generate_invoice(
            self.customer,
            kwargs.pop("amount", Decimal("99.00")),
            "DKK",
            date(2024, 2, 1),
            method,
            **kwargs,
        )

    def test_manual_invoice_skips_provider(self):
        result = self._generate(PaymentMethod.MANUAL)

        self.assertEqual(result.invoice.status, InvoiceStatus.PENDING)
        self.assertIsNone(result.invoice.external_payment_id)
        self.assertIsNone(result.payment_link)
        self.assertEqual(self.provider.requests, [])
        self.assertEqual(result.invoice.metadata["customer_email"], "c@example.com")
        self.assertTrue(EventLog.objects.filter(event_type="invoice.created").exists())

    def test_provider_invoice_stores_id_and_link(self):
        result = self._generate(PaymentMethod.PROVIDER_MANUAL)

        invoice = Invoice.objects.get(pk=result.invoice.pk)
        self.assertEqual(invoice.external_payment_id, "pay-1")
        self.assertEqual(invoice.payment_link, "https://pay.example.com/1")
        self.assertIsNone(result.external_agreement_id)
        self.assertEqual(self.provider.requests[0]["amount"], Decimal("99.00"))
        self.assertEqual(self.provider.requests[0]["currency"], "DKK")

    def test_recurring_invoice_returns_agreement_and_sends_email(self):
        result = self._generate(PaymentMethod.PROVIDER_RECURRING)

        self.assertEqual(result.external_agreement_id, "pay-1")
        self.assertEqual(self.dispatcher.agreements[0][1]["payment_link"], "https://pay.example.com/1")

    def test_notification_failure_does_not_roll_back_invoice(self):
        self.dispatcher.fail = True

        result = self._generate(PaymentMethod.PROVIDER_RECURRING)

        self.assertEqual(result.notification_error, "SMTP unavailable")
        self.assertTrue(Invoice.objects.filter(pk=result.invoice.pk).exists())

    def test_provider_failure_creates_no_invoice(self):
        self.provider.create_error = RuntimeError("connection reset")

        with self.assertRaises(ProviderError):
            self._generate(PaymentMethod.PROVIDER_MANUAL)
        self.assertFalse(Invoice.objects.exists())

    def test_unrecognised_provider_response_is_provider_error(self):
        self.provider.create_response = {"id": "pay-x"}

        with self.assertRaises(ProviderError):
            self._generate(PaymentMethod.PROVIDER_MANUAL)
        self.assertFalse(Invoice.objects.exists())

    def test_missing_provider_configuration_is_provider_error(self):
        generator = InvoiceGenerator(
            notification_dispatcher=self.dispatcher,
            provider_resolver=mock.Mock(side_effect=ImproperlyConfigured("not configured")),
        )
        with self.assertRaises(ProviderError):
            generator.generate_invoice(self.customer, "10", "DKK", date(2024, 2, 1), PaymentMethod.PROVIDER_MANUAL)

    def test_provider_timeout_is_provider_error(self):
        with mock.patch("subscriptions.services.invoicing.call_with_timeout", side_effect=ProviderError("timed out")):
            with self.assertRaises(ProviderError):
                self._generate(PaymentMethod.PROVIDER_MANUAL)

    def test_non_positive_amount_rejected(self):
        for amount in (Decimal("0"), Decimal("-5"), "abc"):
            with self.assertRaises(ValidationError):
                self._generate(PaymentMethod.MANUAL, amount=amount)
        self.assertFalse(Invoice.objects.exists())

    def test_unknown_method_rejected(self):
        with self.assertRaises(ValidationError):
            self._generate("bank-transfer")

    def test_metadata_records_subscription(self):
        subscription = Subscription.objects.create(
            customer=self.customer,
            product=self.product,
            product_name=self.product.name,
            duration_months=1,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 2, 1),
            price=self.product.price,
        )

        result = self._generate(PaymentMethod.PROVIDER_MANUAL, subscription=subscription, metadata={"source": "test"})

        metadata = result.invoice.metadata
        self.assertEqual(metadata["subscription_id"], subscription.pk)
        self.assertEqual(metadata["product_id"], self.product.pk)
        self.assertEqual(metadata["product_name"], "Product P")
        self.assertEqual(metadata["source"], "test")
        self.assertEqual(self.provider.requests[0]["reference"], f"SUB-{subscription.pk}")

    def test_amount_and_currency_are_immutable(self):
        invoice = self._generate(PaymentMethod.MANUAL).invoice
        invoice = Invoice.objects.get(pk=invoice.pk)

        invoice.amount = Decimal("1.00")
        with self.assertRaises(ValueError):
            invoice.save()

        invoice = Invoice.objects.get(pk=invoice.pk)
        invoice.status = InvoiceStatus.CANCELLED
        invoice.save(update_fields=["status"])
        self.assertEqual(Invoice.objects.get(pk=invoice.pk).status, InvoiceStatus.CANCELLED)
