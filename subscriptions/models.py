from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from customers.models import Customer


def default_currency() -> str:
    return settings.BILLING_BASE_CURRENCY


class SubscriptionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACTIVE = "active", "Active"
    EXPIRED = "expired", "Expired"
    CANCELLED = "cancelled", "Cancelled"


class InvoiceStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


class PaymentMethod(models.TextChoices):
    MANUAL = "manual", "Manual"
    PROVIDER_RECURRING = "provider-recurring", "Provider (recurring debit)"
    PROVIDER_MANUAL = "provider-manual", "Provider (payment request)"

    @classmethod
    def provider_methods(cls) -> frozenset:
        return frozenset({cls.PROVIDER_RECURRING, cls.PROVIDER_MANUAL})


class SubscriptionProduct(models.Model):
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))])
    duration_months = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("name",)

    def __str__(self) -> str:
        return f"{self.name} ({self.price} / {self.duration_months} mo)"


class Invoice(models.Model):
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="invoices")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default=default_currency)
    status = models.CharField(max_length=20, choices=InvoiceStatus.choices, default=InvoiceStatus.PENDING)
    payment_method = models.CharField(max_length=24, choices=PaymentMethod.choices)
    external_payment_id = models.CharField(max_length=128, null=True, blank=True, db_index=True)
    payment_link = models.URLField(max_length=500, null=True, blank=True)
    due_date = models.DateField()
    issued_date = models.DateTimeField(auto_now_add=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ("-issued_date",)
        indexes = [
            models.Index(fields=("status", "payment_method")),
        ]

    def __str__(self) -> str:
        return f"Invoice {self.pk} ({self.amount} {self.currency}, {self.status})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_terms = (instance.__dict__.get("amount"), instance.__dict__.get("currency"))
        return instance

    def save(self, *args, **kwargs):
        loaded = getattr(self, "_loaded_terms", None)
        if loaded is not None and None not in loaded:
            if Decimal(self.amount) != loaded[0] or self.currency != loaded[1]:
                raise ValueError("Invoice amount and currency cannot change after creation.")
        super().save(*args, **kwargs)
        self._loaded_terms = (Decimal(self.amount), self.currency)

    @property
    def is_provider_based(self) -> bool:
        return self.payment_method in PaymentMethod.provider_methods()


class Subscription(models.Model):
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="subscriptions")
    product = models.ForeignKey(
        SubscriptionProduct,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscriptions",
    )
    product_name = models.CharField(max_length=120)
    duration_months = models.PositiveIntegerField()
    start_date = models.DateField()
    end_date = models.DateField()
    price = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default=default_currency)
    status = models.CharField(max_length=20, choices=SubscriptionStatus.choices, default=SubscriptionStatus.PENDING)
    payment_method = models.CharField(max_length=24, choices=PaymentMethod.choices, default=PaymentMethod.MANUAL)
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscriptions",
    )
    external_agreement_id = models.CharField(max_length=128, null=True, blank=True)
    reminder_10_sent = models.BooleanField(default=False)
    reminder_5_sent = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("status", "end_date")),
        ]

    def __str__(self) -> str:
        return f"{self.customer.name} / {self.product_name}"

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class EventLog(models.Model):
    event_type = models.CharField(max_length=80)
    resource_type = models.CharField(max_length=80)
    resource_id = models.CharField(max_length=64)
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("event_type", "created_at")),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} @ {self.created_at.isoformat()}"
