from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from django.utils import timezone
from django.utils.dateparse import parse_date

from payments.models import PaymentTransaction
from subscriptions.exceptions import InvoiceGenerationError, ProviderError, ValidationError
from subscriptions.models import Invoice, InvoiceStatus, PaymentMethod, Subscription, SubscriptionStatus
from subscriptions.services.events import EventRecorder
from subscriptions.services.invoicing import InvoiceGenerator, coerce_payment_method
from subscriptions.services.reconciliation import PaymentReconciler, ReconciliationResult
from subscriptions.services.store import RecordStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    SubscriptionStatus.PENDING: {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED},
    SubscriptionStatus.ACTIVE: {SubscriptionStatus.EXPIRED},
    SubscriptionStatus.EXPIRED: set(),
    SubscriptionStatus.CANCELLED: set(),
}

EDITABLE_FIELDS = {"start_date", "duration_months", "price", "product_name", "status", "payment_method"}


def add_months(start: date, months: int) -> date:
    """Advance ``start`` by calendar months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_start_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_date(value.strip())
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"Invalid start date {value!r}.")


def check_transition(current: str, target: str) -> None:
    if target == current:
        return
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValidationError(f"Subscription cannot move from {current} to {target}.")


@dataclass
class LifecycleResult:
    subscription: Subscription
    invoice: Optional[Invoice] = None
    payment_link: Optional[str] = None
    notification_error: Optional[str] = None


class SubscriptionLifecycleManager:
    def __init__(
        self,
        *,
        store: Optional[RecordStore] = None,
        invoice_generator: Optional[InvoiceGenerator] = None,
        reconciler: Optional[PaymentReconciler] = None,
        event_recorder: Optional[EventRecorder] = None,
    ):
        self.store = store or RecordStore()
        self.events = event_recorder or EventRecorder()
        self.invoice_generator = invoice_generator or InvoiceGenerator(store=self.store, event_recorder=self.events)
        self.reconciler = reconciler or PaymentReconciler(store=self.store, event_recorder=self.events)

    def create_subscription(self, customer_id, product_id, start_date, payment_method) -> LifecycleResult:
        customer = self.store.get_customer(customer_id)
        product = self.store.get_product(product_id)
        start = parse_start_date(start_date)
        method = coerce_payment_method(payment_method)
        if product.duration_months < 1:
            raise ValidationError(f"Product {product.pk} has no valid duration.")
        if product.price is None or product.price <= 0:
            raise ValidationError(f"Product {product.pk} has no positive price.")

        subscription = self.store.create_subscription(
            customer=customer,
            product=product,
            product_name=product.name,
            duration_months=product.duration_months,
            start_date=start,
            end_date=add_months(start, product.duration_months),
            price=product.price,
            status=SubscriptionStatus.PENDING,
            payment_method=method,
        )
        self.events.record_for(
            "subscription.created",
            subscription,
            payload={
                "product_id": product.pk,
                "payment_method": method,
                "end_date": subscription.end_date.isoformat(),
            },
        )
        return self._attach_invoice(subscription)

    def retry_invoice(self, subscription_id) -> LifecycleResult:
        subscription = self.store.get_subscription(subscription_id)
        if subscription.status != SubscriptionStatus.PENDING or subscription.invoice_id is not None:
            raise ValidationError(f"Subscription {subscription.pk} does not need a new invoice.")
        return self._attach_invoice(subscription)

    def update_subscription(self, subscription_id, partial: dict[str, Any]) -> Subscription:
        subscription = self.store.get_subscription(subscription_id)
        unknown = set(partial) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}.")

        changes = {}
        for name, value in partial.items():
            changes[name] = self._clean_field(subscription, name, value)
        if not changes:
            return subscription

        # end_date stays as computed at creation
        self.store.update_subscription(subscription, **changes)
        self.events.record_for(
            "subscription.updated",
            subscription,
            payload={name: str(value) for name, value in changes.items()},
        )
        return subscription

    def delete_subscription(self, subscription_id) -> None:
        subscription = self.store.get_subscription(subscription_id)
        pk, invoice_id = subscription.pk, subscription.invoice_id
        self.store.delete_subscription(subscription)
        self.events.record(
            "subscription.deleted",
            resource_type="subscription",
            resource_id=pk,
            payload={"invoice_id": invoice_id},
        )

    def activate(self, subscription: Subscription) -> Subscription:
        return self._transition(subscription, SubscriptionStatus.ACTIVE)

    def cancel(self, subscription: Subscription) -> Subscription:
        return self._transition(subscription, SubscriptionStatus.CANCELLED)

    def expire(self, subscription: Subscription) -> Subscription:
        return self._transition(subscription, SubscriptionStatus.EXPIRED)

    def apply_invoice_outcome(self, invoice: Invoice) -> list[Subscription]:
        if invoice.status == InvoiceStatus.PAID:
            target = SubscriptionStatus.ACTIVE
        elif invoice.status == InvoiceStatus.CANCELLED:
            target = SubscriptionStatus.CANCELLED
        else:
            return []

        moved = []
        for subscription in self.store.subscriptions_for_invoice(invoice):
            if subscription.status == SubscriptionStatus.PENDING:
                moved.append(self._transition(subscription, target))
        return moved

    def refresh_payment(self, invoice_id) -> ReconciliationResult:
        invoice = self.store.get_invoice(invoice_id)
        result = self.reconciler.reconcile(invoice)
        if result.changed:
            self.apply_invoice_outcome(result.invoice)
        return result

    def confirm_manual_payment(self, invoice_id) -> PaymentTransaction:
        invoice = self.store.get_invoice(invoice_id)
        txn = self.reconciler.mark_paid_manually(invoice)
        self.apply_invoice_outcome(invoice)
        return txn

    def _attach_invoice(self, subscription: Subscription) -> LifecycleResult:
        try:
            generated = self.invoice_generator.generate_invoice(
                subscription.customer,
                subscription.price,
                subscription.currency,
                subscription.end_date,
                subscription.payment_method,
                subscription=subscription,
            )
        except ProviderError as exc:
            logger.warning("Invoice generation failed for subscription %s: %s", subscription.pk, exc)
            self.events.record_for("subscription.invoice_failed", subscription, payload={"error": str(exc)})
            raise InvoiceGenerationError(str(exc), subscription=subscription) from exc

        if subscription.payment_method == PaymentMethod.MANUAL:
            status = SubscriptionStatus.ACTIVE
        else:
            status = SubscriptionStatus.PENDING
        self.store.update_subscription(
            subscription,
            invoice=generated.invoice,
            external_agreement_id=generated.external_agreement_id,
            status=status,
        )
        self.events.record_for(
            "subscription.invoiced",
            subscription,
            payload={"invoice_id": generated.invoice.pk, "status": status},
        )
        return LifecycleResult(
            subscription=subscription,
            invoice=generated.invoice,
            payment_link=generated.payment_link,
            notification_error=generated.notification_error,
        )

    def _transition(self, subscription: Subscription, target: str) -> Subscription:
        previous = subscription.status
        check_transition(previous, target)
        if previous == target:
            return subscription
        self.store.update_subscription(subscription, status=target)
        self.events.record_for(
            f"subscription.{target}",
            subscription,
            payload={"from": previous},
        )
        logger.info("Subscription %s moved from %s to %s", subscription.pk, previous, target)
        return subscription

    def _clean_field(self, subscription: Subscription, name: str, value):
        if name == "start_date":
            return parse_start_date(value)
        if name == "duration_months":
            try:
                months = int(value)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid duration {value!r}.") from exc
            if months < 1:
                raise ValidationError("Duration must be at least one month.")
            return months
        if name == "price":
            try:
                price = Decimal(str(value))
            except (InvalidOperation, ValueError) as exc:
                raise ValidationError(f"Invalid price {value!r}.") from exc
            if not price.is_finite() or price < 0:
                raise ValidationError("Price cannot be negative.")
            return price
        if name == "product_name":
            if not str(value).strip():
                raise ValidationError("Product name cannot be blank.")
            return str(value).strip()
        if name == "status":
            try:
                target = SubscriptionStatus(value)
            except ValueError as exc:
                raise ValidationError(f"Unknown subscription status {value!r}.") from exc
            if target == SubscriptionStatus.ACTIVE and subscription.status != SubscriptionStatus.ACTIVE:
                raise ValidationError("Subscriptions are activated by confirming payment of their invoice.")
            check_transition(subscription.status, target)
            return target
        if name == "payment_method":
            method = coerce_payment_method(value)
            if subscription.invoice_id is not None and method != subscription.payment_method:
                raise ValidationError("Payment method cannot change once the subscription is invoiced.")
            return method
        raise ValidationError(f"Field {name} is not editable.")
