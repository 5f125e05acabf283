"""
Persistence port for the billing services.

Services never reach for model managers directly; they receive a
``RecordStore`` and go through it, so tests can hand in a store that counts
or fails writes.
"""

from __future__ import annotations

from typing import Any, Iterable

from django.db import transaction

from customers.models import Customer
from payments.models import PaymentTransaction
from subscriptions.exceptions import NotFoundError
from subscriptions.models import (
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    Subscription,
    SubscriptionProduct,
    SubscriptionStatus,
)


class RecordStore:
    """Django ORM backed CRUD for subscriptions, invoices and transactions."""

    # lookups

    def get_customer(self, customer_id) -> Customer:
        return self._get(Customer, customer_id, "Customer")

    def get_product(self, product_id) -> SubscriptionProduct:
        return self._get(SubscriptionProduct, product_id, "Product")

    def get_subscription(self, subscription_id) -> Subscription:
        return self._get(Subscription.objects.select_related("customer", "invoice"), subscription_id, "Subscription")

    def get_invoice(self, invoice_id) -> Invoice:
        return self._get(Invoice.objects.select_related("customer"), invoice_id, "Invoice")

    def lock_invoice(self, invoice_id) -> Invoice:
        """Re-read an invoice with a row lock. Must run inside ``transaction.atomic``."""
        return Invoice.objects.select_for_update().get(pk=invoice_id)

    def active_subscriptions(self) -> Iterable[Subscription]:
        return (
            Subscription.objects.filter(status=SubscriptionStatus.ACTIVE)
            .select_related("customer")
            .order_by("end_date", "pk")
        )

    def subscriptions_for_invoice(self, invoice: Invoice) -> Iterable[Subscription]:
        return Subscription.objects.filter(invoice=invoice)

    def pending_provider_invoices(self) -> Iterable[Invoice]:
        return Invoice.objects.filter(
            status=InvoiceStatus.PENDING,
            payment_method__in=list(PaymentMethod.provider_methods()),
            external_payment_id__isnull=False,
        ).exclude(external_payment_id="")

    def subscriptions_missing_invoice(self) -> Iterable[Subscription]:
        return Subscription.objects.filter(status=SubscriptionStatus.PENDING, invoice__isnull=True)

    # writes

    def create_subscription(self, **fields) -> Subscription:
        return Subscription.objects.create(**fields)

    def update_subscription(self, subscription: Subscription, **fields) -> Subscription:
        for name, value in fields.items():
            setattr(subscription, name, value)
        subscription.save(update_fields=[*fields.keys(), "updated_at"])
        return subscription

    def delete_subscription(self, subscription: Subscription) -> None:
        subscription.delete()

    def set_flag_if_unset(self, subscription: Subscription, flag: str) -> bool:
        """Flip a reminder flag to true; never writes false. Returns whether this call flipped it."""
        updated = Subscription.objects.filter(pk=subscription.pk, **{flag: False}).update(**{flag: True})
        setattr(subscription, flag, True)
        return bool(updated)

    def create_invoice(self, **fields) -> Invoice:
        return Invoice.objects.create(**fields)

    def update_invoice(self, invoice: Invoice, **fields) -> Invoice:
        for name, value in fields.items():
            setattr(invoice, name, value)
        invoice.save(update_fields=list(fields.keys()))
        return invoice

    def upsert_transaction(self, invoice: Invoice, transaction_id: str, **defaults) -> PaymentTransaction:
        txn, _ = PaymentTransaction.objects.update_or_create(
            invoice=invoice,
            transaction_id=transaction_id,
            defaults=defaults,
        )
        return txn

    def create_transaction(self, **fields) -> PaymentTransaction:
        return PaymentTransaction.objects.create(**fields)

    def atomic(self):
        return transaction.atomic()

    @staticmethod
    def _get(source: Any, pk, label: str):
        manager = source.objects if hasattr(source, "objects") else source
        try:
            return manager.get(pk=pk)
        except (manager.model.DoesNotExist, ValueError, TypeError) as exc:
            raise NotFoundError(f"{label} {pk} not found.") from exc
