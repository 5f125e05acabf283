# webhooks/views.py
import hmac
from hashlib import sha256

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .models import WebhookLog
from .serializers import PaymentWebhookSerializer
from .tasks import reconcile_invoice_from_webhook


def _verify_signature(request):
    secret = getattr(settings, "WEBHOOK_SECRET", None)
    if not secret:
        return True

    signature = request.headers.get("X-Signature")
    if not signature:
        return False

    computed = hmac.new(secret.encode(), request.body, sha256).hexdigest()
    return hmac.compare_digest(signature, computed)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def payment_webhook(request):
    if not _verify_signature(request):
        return Response({"error": "Invalid signature"}, status=status.HTTP_401_UNAUTHORIZED)

    serializer = PaymentWebhookSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    payload = serializer.validated_data

    # one log row per payment and reported state
    external_id = f"{payload['payment_id']}:{payload.get('state') or payload.get('event') or ''}"
    log, created = WebhookLog.objects.get_or_create(
        endpoint="payments",
        external_id=external_id,
        defaults={
            "payload": dict(payload),
            "headers": {key: value for key, value in request.headers.items() if key.lower() != "cookie"},
        },
    )
    if not created and log.success:
        return Response({"detail": "Duplicate webhook ignored."}, status=status.HTTP_200_OK)

    reconcile_invoice_from_webhook.delay(log.id, payload["payment_id"])
    return Response({"detail": "Webhook received."}, status=status.HTTP_202_ACCEPTED)
