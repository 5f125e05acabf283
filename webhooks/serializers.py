from rest_framework import serializers


class PaymentWebhookSerializer(serializers.Serializer):
    payment_id = serializers.CharField(max_length=128)
    state = serializers.CharField(max_length=64, required=False, allow_blank=True)
    event = serializers.CharField(max_length=128, required=False, allow_blank=True)
