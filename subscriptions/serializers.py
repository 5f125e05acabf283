from rest_framework import serializers

from payments.models import PaymentTransaction

from .models import (
    EventLog,
    Invoice,
    PaymentMethod,
    Subscription,
    SubscriptionProduct,
    SubscriptionStatus,
)


class SubscriptionProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = SubscriptionProduct
        fields = ("id", "name", "description", "price", "duration_months", "is_active", "created_at", "updated_at")
        read_only_fields = ("created_at", "updated_at")


class InvoiceSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source="customer.name", read_only=True)

    class Meta:
        model = Invoice
        fields = (
            "id",
            "customer",
            "customer_name",
            "amount",
            "currency",
            "status",
            "payment_method",
            "external_payment_id",
            "payment_link",
            "due_date",
            "issued_date",
            "metadata",
        )
        read_only_fields = fields


class SubscriptionSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source="customer.name", read_only=True)

    class Meta:
        model = Subscription
        fields = (
            "id",
            "customer",
            "customer_name",
            "product",
            "product_name",
            "duration_months",
            "start_date",
            "end_date",
            "price",
            "currency",
            "status",
            "payment_method",
            "invoice",
            "external_agreement_id",
            "reminder_10_sent",
            "reminder_5_sent",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class SubscriptionCreateSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField()
    product_id = serializers.IntegerField()
    start_date = serializers.CharField()
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)


class SubscriptionUpdateSerializer(serializers.Serializer):
    start_date = serializers.CharField(required=False)
    duration_months = serializers.IntegerField(required=False, min_value=1)
    price = serializers.DecimalField(required=False, max_digits=12, decimal_places=2, min_value=0)
    product_name = serializers.CharField(required=False, max_length=120)
    status = serializers.ChoiceField(required=False, choices=SubscriptionStatus.choices)
    payment_method = serializers.ChoiceField(required=False, choices=PaymentMethod.choices)

    def to_internal_value(self, data):
        unknown = set(data) - set(self.fields)
        if unknown:
            raise serializers.ValidationError({name: ["This field cannot be edited."] for name in sorted(unknown)})
        return super().to_internal_value(data)


class ReminderStatusSerializer(serializers.Serializer):
    days_left = serializers.IntegerField()
    needs_reminder = serializers.BooleanField()
    reminder_type = serializers.CharField()
    is_urgent = serializers.BooleanField()


class PaymentTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentTransaction
        fields = (
            "id",
            "invoice",
            "customer",
            "payment_method",
            "amount",
            "currency",
            "status",
            "transaction_id",
            "provider_response",
            "transaction_date",
        )
        read_only_fields = fields


class EventLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = EventLog
        fields = ("id", "event_type", "resource_type", "resource_id", "payload", "created_at")
        read_only_fields = fields
