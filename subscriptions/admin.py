from django.contrib import admin, messages

from .exceptions import BillingError
from .models import EventLog, Invoice, Subscription, SubscriptionProduct
from .services import SubscriptionLifecycleManager


@admin.register(SubscriptionProduct)
class SubscriptionProductAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "duration_months", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name",)


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "customer",
        "product_name",
        "status",
        "payment_method",
        "start_date",
        "end_date",
        "reminder_10_sent",
        "reminder_5_sent",
    )
    list_filter = ("status", "payment_method", "reminder_10_sent", "reminder_5_sent")
    search_fields = ("customer__name", "customer__email", "product_name", "external_agreement_id")
    readonly_fields = ("end_date", "invoice", "external_agreement_id", "reminder_10_sent", "reminder_5_sent", "created_at", "updated_at")
    actions = ["retry_invoice_action"]

    @admin.action(description="Create missing invoice")
    def retry_invoice_action(self, request, queryset):
        lifecycle = SubscriptionLifecycleManager()
        repaired = 0
        for subscription in queryset:
            try:
                lifecycle.retry_invoice(subscription.pk)
            except BillingError as exc:
                self.message_user(request, f"Subscription {subscription.pk}: {exc}", level=messages.WARNING)
                continue
            repaired += 1
        self.message_user(request, f"{repaired} subscription(s) invoiced.", level=messages.SUCCESS)


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "amount", "currency", "status", "payment_method", "due_date", "issued_date")
    list_filter = ("status", "payment_method", "currency")
    search_fields = ("customer__name", "external_payment_id")
    readonly_fields = ("amount", "currency", "external_payment_id", "payment_link", "issued_date", "metadata")
    actions = ["mark_paid_action", "reconcile_action"]

    @admin.action(description="Mark manual invoices as paid")
    def mark_paid_action(self, request, queryset):
        lifecycle = SubscriptionLifecycleManager()
        for invoice in queryset:
            try:
                lifecycle.confirm_manual_payment(invoice.pk)
            except BillingError as exc:
                self.message_user(request, f"Invoice {invoice.pk}: {exc}", level=messages.WARNING)

    @admin.action(description="Check payment status with provider")
    def reconcile_action(self, request, queryset):
        lifecycle = SubscriptionLifecycleManager()
        for invoice in queryset:
            try:
                result = lifecycle.refresh_payment(invoice.pk)
            except BillingError as exc:
                self.message_user(request, f"Invoice {invoice.pk}: {exc}", level=messages.WARNING)
                continue
            self.message_user(request, f"Invoice {invoice.pk}: {result.outcome}")


@admin.register(EventLog)
class EventLogAdmin(admin.ModelAdmin):
    list_display = ("event_type", "resource_type", "resource_id", "created_at")
    list_filter = ("event_type", "resource_type")
    search_fields = ("resource_id",)
    readonly_fields = ("event_type", "resource_type", "resource_id", "payload", "created_at")
