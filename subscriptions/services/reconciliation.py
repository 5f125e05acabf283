"""
Pull payment state from the provider and apply it to invoices and transactions.

Reconciliation is safe to repeat: the invoice row is locked while it is
updated and the transaction is upserted on ``(invoice, transaction_id)``,
so a manual refresh racing a scheduled poll still leaves exactly one
transaction behind.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone

from payments.models import PaymentTransaction, TransactionStatus
from payments.providers import PaymentProvider, call_with_timeout, get_provider
from subscriptions.exceptions import ProviderError, ValidationError
from subscriptions.models import Invoice, InvoiceStatus, PaymentMethod
from subscriptions.services.events import EventRecorder
from subscriptions.services.store import RecordStore

logger = logging.getLogger(__name__)

OUTCOME_UPDATED = "updated"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_FAILED = "failed"

PROVIDER_STATE_MAP = {
    "COMPLETED": InvoiceStatus.PAID,
    "CANCELLED": InvoiceStatus.CANCELLED,
    "FAILED": InvoiceStatus.CANCELLED,
}

TRANSACTION_STATUS_MAP = {
    InvoiceStatus.PAID: TransactionStatus.PAID,
    InvoiceStatus.CANCELLED: TransactionStatus.FAILED,
}


@dataclass
class ReconciliationResult:
    invoice: Invoice
    outcome: str
    provider_state: Optional[str] = None
    transaction: Optional[PaymentTransaction] = None
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.outcome == OUTCOME_UPDATED

    @property
    def succeeded(self) -> bool:
        return self.outcome != OUTCOME_FAILED


def map_provider_state(state: Optional[str]) -> Optional[str]:
    if not isinstance(state, str):
        return None
    return PROVIDER_STATE_MAP.get(state.strip().upper())


class PaymentReconciler:
    def __init__(
        self,
        *,
        store: Optional[RecordStore] = None,
        event_recorder: Optional[EventRecorder] = None,
        provider_resolver: Optional[Callable[[str], PaymentProvider]] = None,
        now=None,
    ):
        self.store = store or RecordStore()
        self.events = event_recorder or EventRecorder()
        self._resolve_provider = provider_resolver or get_provider
        self._now = now or timezone.now

    def reconcile(self, invoice: Invoice) -> ReconciliationResult:
        if not invoice.is_provider_based:
            raise ValidationError(f"Invoice {invoice.pk} is not paid through a payment provider.")
        if not invoice.external_payment_id:
            raise ValidationError(f"Invoice {invoice.pk} has no external payment id.")
        if invoice.status != InvoiceStatus.PENDING:
            return ReconciliationResult(invoice=invoice, outcome=OUTCOME_UNCHANGED)

        try:
            payload = self._fetch_status(invoice)
        except ProviderError as exc:
            return self._failed(invoice, str(exc))

        state = payload["data"]["state"]
        target = map_provider_state(state)
        if target is None:
            logger.info("Invoice %s still %s at provider (state %s)", invoice.pk, invoice.status, state)
            return ReconciliationResult(invoice=invoice, outcome=OUTCOME_UNCHANGED, provider_state=state)

        with self.store.atomic():
            locked = self.store.lock_invoice(invoice.pk)
            if locked.status != InvoiceStatus.PENDING:
                invoice.status = locked.status
                return ReconciliationResult(invoice=invoice, outcome=OUTCOME_UNCHANGED, provider_state=state)

            self.store.update_invoice(locked, status=target)
            txn = self.store.upsert_transaction(
                locked,
                locked.external_payment_id,
                customer_id=locked.customer_id,
                payment_method=locked.payment_method,
                amount=locked.amount,
                currency=locked.currency,
                status=TRANSACTION_STATUS_MAP[target],
                provider_response=payload,
                transaction_date=self._now(),
            )
            self.events.record_for(
                f"invoice.{target}",
                locked,
                payload={"provider_state": state, "transaction_id": txn.transaction_id},
            )

        invoice.status = target
        logger.info("Invoice %s reconciled to %s (provider state %s)", invoice.pk, target, state)
        return ReconciliationResult(
            invoice=invoice,
            outcome=OUTCOME_UPDATED,
            provider_state=state,
            transaction=txn,
        )

    def mark_paid_manually(self, invoice: Invoice) -> PaymentTransaction:
        if invoice.payment_method != PaymentMethod.MANUAL:
            raise ValidationError(f"Invoice {invoice.pk} is not a manual invoice.")
        if invoice.status != InvoiceStatus.PENDING:
            raise ValidationError(f"Invoice {invoice.pk} is {invoice.status}, only pending invoices can be marked paid.")

        with self.store.atomic():
            locked = self.store.lock_invoice(invoice.pk)
            if locked.status != InvoiceStatus.PENDING:
                raise ValidationError(f"Invoice {invoice.pk} is {locked.status}, only pending invoices can be marked paid.")
            self.store.update_invoice(locked, status=InvoiceStatus.PAID)
            txn = self.store.create_transaction(
                invoice=locked,
                customer_id=locked.customer_id,
                payment_method=PaymentMethod.MANUAL,
                amount=locked.amount,
                currency=locked.currency,
                status=TransactionStatus.PAID,
                transaction_id=f"MANUAL-{uuid.uuid4().hex[:16].upper()}",
                provider_response={"manual": True},
                transaction_date=self._now(),
            )
            self.events.record_for("invoice.paid", locked, payload={"transaction_id": txn.transaction_id, "manual": True})

        invoice.status = InvoiceStatus.PAID
        return txn

    def _fetch_status(self, invoice: Invoice) -> dict[str, Any]:
        try:
            provider = self._resolve_provider(invoice.payment_method)
        except ImproperlyConfigured as exc:
            raise ProviderError(str(exc)) from exc

        response = call_with_timeout(provider.get_payment_status, invoice.external_payment_id)
        if not isinstance(response, dict):
            raise ProviderError("Payment provider returned an unrecognised status response.")
        if not response.get("success"):
            raise ProviderError(response.get("error") or "Payment provider reported an unsuccessful status check.")
        data = response.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("state"), str):
            raise ProviderError("Payment provider status response carries no state.")
        return response

    def _failed(self, invoice: Invoice, error: str) -> ReconciliationResult:
        logger.warning("Reconciliation of invoice %s failed: %s", invoice.pk, error)
        self.events.record_for("invoice.reconciliation_failed", invoice, payload={"error": error})
        return ReconciliationResult(invoice=invoice, outcome=OUTCOME_FAILED, error=error)
