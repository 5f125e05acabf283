# payments/admin.py

from django.contrib import admin
from .models import PaymentTransaction

@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ("transaction_id", "invoice", "customer", "amount", "currency", "payment_method", "status", "transaction_date")
    list_filter = ("currency", "status", "payment_method")
    search_fields = ("transaction_id", "customer__email")
    readonly_fields = ("provider_response",)
    ordering = ("-transaction_date",)
