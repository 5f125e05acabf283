# payments/models.py

from django.db import models
from django.utils import timezone

from subscriptions.models import PaymentMethod


class TransactionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


class PaymentTransaction(models.Model):
    invoice = models.ForeignKey("subscriptions.Invoice", on_delete=models.PROTECT, related_name="transactions")
    customer = models.ForeignKey("customers.Customer", on_delete=models.PROTECT, related_name="payment_transactions")
    payment_method = models.CharField(max_length=24, choices=PaymentMethod.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10)
    status = models.CharField(max_length=20, choices=TransactionStatus.choices, default=TransactionStatus.PENDING)
    transaction_id = models.CharField(max_length=128)
    provider_response = models.JSONField(default=dict, blank=True)
    transaction_date = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-transaction_date",)
        constraints = [
            models.UniqueConstraint(fields=("invoice", "transaction_id"), name="unique_invoice_transaction"),
        ]

    def __str__(self):
        return f"{self.transaction_id} - {self.amount} {self.currency} ({self.status})"
