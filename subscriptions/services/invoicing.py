from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from django.core.exceptions import ImproperlyConfigured

from payments.providers import PaymentProvider, call_with_timeout, get_provider
from subscriptions.exceptions import NotificationError, ProviderError, ValidationError
from subscriptions.models import Invoice, InvoiceStatus, PaymentMethod, Subscription
from subscriptions.services.events import EventRecorder
from subscriptions.services.notification import NotificationDispatcher
from subscriptions.services.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class InvoiceResult:
    invoice: Invoice
    payment_link: Optional[str] = None
    external_agreement_id: Optional[str] = None
    notification_error: Optional[str] = None


def coerce_payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown payment method {value!r}.") from exc


class InvoiceGenerator:
    """Create invoices, requesting a payment link from the provider when the method needs one."""

    def __init__(
        self,
        *,
        store: Optional[RecordStore] = None,
        event_recorder: Optional[EventRecorder] = None,
        notification_dispatcher: Optional[NotificationDispatcher] = None,
        provider_resolver: Optional[Callable[[str], PaymentProvider]] = None,
    ):
        self.store = store or RecordStore()
        self.events = event_recorder or EventRecorder()
        self.notifications = notification_dispatcher or NotificationDispatcher()
        self._resolve_provider = provider_resolver or get_provider

    def generate_invoice(
        self,
        customer,
        amount,
        currency: str,
        due_date,
        payment_method,
        *,
        subscription: Optional[Subscription] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> InvoiceResult:
        method = coerce_payment_method(payment_method)
        amount = self._positive_amount(amount)
        if not currency:
            raise ValidationError("Invoice currency is required.")
        if due_date is None:
            raise ValidationError("Invoice due date is required.")

        invoice_metadata = self._build_metadata(customer, subscription, metadata)
        fields = {
            "customer": customer,
            "amount": amount,
            "currency": currency,
            "due_date": due_date,
            "payment_method": method,
            "status": InvoiceStatus.PENDING,
            "metadata": invoice_metadata,
        }

        if method == PaymentMethod.MANUAL:
            invoice = self.store.create_invoice(**fields)
            self._record_created(invoice)
            return InvoiceResult(invoice=invoice)

        if method in (PaymentMethod.PROVIDER_RECURRING, PaymentMethod.PROVIDER_MANUAL):
            recurring = method == PaymentMethod.PROVIDER_RECURRING
            payment_id, payment_link = self._request_payment(
                method,
                amount=amount,
                currency=currency,
                customer=customer,
                reference=self._reference(subscription),
                recurring=recurring,
            )
            invoice = self.store.create_invoice(
                external_payment_id=payment_id,
                payment_link=payment_link,
                **fields,
            )
            self._record_created(invoice)

            result = InvoiceResult(
                invoice=invoice,
                payment_link=payment_link,
                external_agreement_id=payment_id if recurring else None,
            )
            if recurring:
                result.notification_error = self._send_agreement_email(invoice, subscription)
            return result

        raise ValidationError(f"Unhandled payment method {method!r}.")

    def _request_payment(self, method: str, **request) -> tuple[str, str]:
        try:
            provider = self._resolve_provider(method)
        except ImproperlyConfigured as exc:
            logger.error("No payment provider configured for %s: %s", method, exc)
            raise ProviderError(str(exc)) from exc

        response = call_with_timeout(
            provider.create_payment_request,
            request.pop("amount"),
            request.pop("currency"),
            request.pop("customer"),
            **request,
        )
        if not isinstance(response, dict) or not response.get("id") or not response.get("link"):
            logger.warning("Payment provider for %s returned an unrecognised response: %r", method, response)
            raise ProviderError("Payment provider response is missing an id or link.")
        return str(response["id"]), str(response["link"])

    def _send_agreement_email(self, invoice: Invoice, subscription: Optional[Subscription]) -> Optional[str]:
        try:
            self.notifications.payment_agreement(
                invoice.customer,
                payment_link=invoice.payment_link,
                amount=invoice.amount,
                currency=invoice.currency,
                product_name=subscription.product_name if subscription else "",
                duration_months=subscription.duration_months if subscription else None,
            )
        except NotificationError as exc:
            logger.warning("Payment agreement email for invoice %s failed: %s", invoice.pk, exc)
            return str(exc)
        return None

    def _record_created(self, invoice: Invoice) -> None:
        self.events.record_for(
            "invoice.created",
            invoice,
            payload={
                "amount": str(invoice.amount),
                "currency": invoice.currency,
                "payment_method": invoice.payment_method,
            },
        )

    @staticmethod
    def _positive_amount(value) -> Decimal:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid invoice amount {value!r}.") from exc
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Invoice amount must be greater than zero.")
        return amount

    @staticmethod
    def _build_metadata(customer, subscription: Optional[Subscription], extra: Optional[dict]) -> dict:
        metadata = {
            "customer_name": customer.name,
            "customer_email": customer.email,
        }
        if subscription is not None:
            metadata.update(
                {
                    "subscription_id": subscription.pk,
                    "product_id": subscription.product_id,
                    "product_name": subscription.product_name,
                }
            )
        metadata.update(extra or {})
        return metadata

    @staticmethod
    def _reference(subscription: Optional[Subscription]) -> str:
        if subscription is not None:
            return f"SUB-{subscription.pk}"
        return f"INV-{uuid.uuid4().hex[:12].upper()}"
