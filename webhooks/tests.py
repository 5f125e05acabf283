import hmac
import json
from datetime import date
from decimal import Decimal
from hashlib import sha256
from unittest import mock

from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from payments.models import PaymentTransaction
from subscriptions.exceptions import NotFoundError
from subscriptions.models import Invoice, InvoiceStatus, PaymentMethod, Subscription, SubscriptionStatus
from subscriptions.tests.helpers import FakeProvider, make_customer, make_product
from webhooks.models import WebhookLog
from webhooks.tasks import reconcile_invoice_from_webhook


class WebhookTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.url = reverse("payment_webhook")
        customer = make_customer()
        product = make_product()
        self.invoice = Invoice.objects.create(
            customer=customer,
            amount=Decimal("99.00"),
            currency="DKK",
            payment_method=PaymentMethod.PROVIDER_RECURRING,
            external_payment_id="agr-1",
            due_date=date(2024, 2, 1),
        )
        self.subscription = Subscription.objects.create(
            customer=customer,
            product=product,
            product_name=product.name,
            duration_months=1,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 2, 1),
            price=Decimal("99.00"),
            payment_method=PaymentMethod.PROVIDER_RECURRING,
            invoice=self.invoice,
        )

    @mock.patch("webhooks.views.reconcile_invoice_from_webhook.delay")
    def test_webhook_enqueues_reconciliation(self, mock_delay):
        response = self.client.post(self.url, {"payment_id": "agr-1", "state": "COMPLETED"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        log = WebhookLog.objects.get(external_id="agr-1:COMPLETED")
        mock_delay.assert_called_once_with(log.id, "agr-1")

    @mock.patch("webhooks.views.reconcile_invoice_from_webhook.delay")
    def test_duplicate_webhook_ignored_after_success(self, mock_delay):
        payload = {"payment_id": "agr-1", "state": "COMPLETED"}
        self.client.post(self.url, payload, format="json")
        WebhookLog.objects.update(success=True)

        response = self.client.post(self.url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(WebhookLog.objects.count(), 1)
        self.assertEqual(mock_delay.call_count, 1)

    @override_settings(WEBHOOK_SECRET="s3cret")
    @mock.patch("webhooks.views.reconcile_invoice_from_webhook.delay")
    def test_signature_required_when_secret_set(self, mock_delay):
        body = json.dumps({"payment_id": "agr-1"})

        rejected = self.client.post(self.url, body, content_type="application/json", HTTP_X_SIGNATURE="bad")
        signature = hmac.new(b"s3cret", body.encode(), sha256).hexdigest()
        accepted = self.client.post(self.url, body, content_type="application/json", HTTP_X_SIGNATURE=signature)

        self.assertEqual(rejected.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(accepted.status_code, status.HTTP_202_ACCEPTED)
        self.assertEqual(mock_delay.call_count, 1)

    def test_task_reconciles_invoice_and_subscription(self):
        log = WebhookLog.objects.create(endpoint="payments", external_id="agr-1:COMPLETED", payload={})
        provider = FakeProvider(state="COMPLETED")

        with mock.patch("subscriptions.services.reconciliation.get_provider", return_value=provider):
            reconcile_invoice_from_webhook(log.id, "agr-1")
            reconcile_invoice_from_webhook(log.id, "agr-1")

        log.refresh_from_db()
        self.assertTrue(log.success)
        self.assertEqual(Invoice.objects.get(pk=self.invoice.pk).status, InvoiceStatus.PAID)
        self.assertEqual(PaymentTransaction.objects.filter(invoice=self.invoice).count(), 1)
        self.subscription.refresh_from_db()
        self.assertEqual(self.subscription.status, SubscriptionStatus.ACTIVE)

    def test_task_unknown_payment(self):
        log = WebhookLog.objects.create(endpoint="payments", external_id="nope:", payload={})

        with self.assertRaises(NotFoundError):
            reconcile_invoice_from_webhook(log.id, "nope")

        log.refresh_from_db()
        self.assertFalse(log.success)
        self.assertEqual(log.status_code, 404)
