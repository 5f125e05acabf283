import base64
import io

import qrcode
from django.utils import timezone
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from payments.models import PaymentTransaction

from .exceptions import BillingError, InvoiceGenerationError, NotFoundError, ProviderError, ValidationError
from .models import EventLog, Invoice, Subscription, SubscriptionProduct
from .serializers import (
    EventLogSerializer,
    InvoiceSerializer,
    PaymentTransactionSerializer,
    ReminderStatusSerializer,
    SubscriptionCreateSerializer,
    SubscriptionProductSerializer,
    SubscriptionSerializer,
    SubscriptionUpdateSerializer,
)
from .services import SubscriptionLifecycleManager, evaluate

ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ProviderError, status.HTTP_502_BAD_GATEWAY),
)


def error_response(exc: BillingError, **extra) -> Response:
    code = status.HTTP_400_BAD_REQUEST
    for error_class, error_status in ERROR_STATUS:
        if isinstance(exc, error_class):
            code = error_status
            break
    return Response({"detail": str(exc), **extra}, status=code)


class SubscriptionProductViewSet(viewsets.ModelViewSet):
    queryset = SubscriptionProduct.objects.all()
    serializer_class = SubscriptionProductSerializer
    permission_classes = [permissions.IsAuthenticated]


class SubscriptionViewSet(viewsets.ModelViewSet):
    queryset = Subscription.objects.select_related("customer", "invoice")
    serializer_class = SubscriptionSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    lifecycle_class = SubscriptionLifecycleManager

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("customer"):
            queryset = queryset.filter(customer_id=params["customer"])
        return queryset

    def get_lifecycle(self) -> SubscriptionLifecycleManager:
        return self.lifecycle_class()

    def create(self, request, *args, **kwargs):
        serializer = SubscriptionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated = serializer.validated_data

        try:
            result = self.get_lifecycle().create_subscription(
                validated["customer_id"],
                validated["product_id"],
                validated["start_date"],
                validated["payment_method"],
            )
        except InvoiceGenerationError as exc:
            return error_response(exc, subscription=SubscriptionSerializer(exc.subscription).data)
        except BillingError as exc:
            return error_response(exc)

        return Response(self._lifecycle_payload(result), status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        serializer = SubscriptionUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            subscription = self.get_lifecycle().update_subscription(kwargs["pk"], dict(serializer.validated_data))
        except BillingError as exc:
            return error_response(exc)
        return Response(SubscriptionSerializer(subscription).data)

    def destroy(self, request, *args, **kwargs):
        try:
            self.get_lifecycle().delete_subscription(kwargs["pk"])
        except BillingError as exc:
            return error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="retry-invoice")
    def retry_invoice(self, request, pk=None):
        try:
            result = self.get_lifecycle().retry_invoice(pk)
        except BillingError as exc:
            return error_response(exc)
        return Response(self._lifecycle_payload(result))

    @action(detail=True, methods=["get"], url_path="reminder-status")
    def reminder_status(self, request, pk=None):
        subscription = self.get_object()
        reminder = evaluate(subscription, timezone.now())
        return Response(ReminderStatusSerializer(reminder).data)

    @staticmethod
    def _lifecycle_payload(result) -> dict:
        return {
            "subscription": SubscriptionSerializer(result.subscription).data,
            "invoice": InvoiceSerializer(result.invoice).data if result.invoice else None,
            "payment_link": result.payment_link,
            "notification_error": result.notification_error,
        }


class InvoiceViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Invoice.objects.select_related("customer")
    serializer_class = InvoiceSerializer
    permission_classes = [permissions.IsAuthenticated]
    lifecycle_class = SubscriptionLifecycleManager

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("payment_method"):
            queryset = queryset.filter(payment_method=params["payment_method"])
        return queryset

    @action(detail=True, methods=["post"])
    def reconcile(self, request, pk=None):
        try:
            result = self.lifecycle_class().refresh_payment(pk)
        except BillingError as exc:
            return error_response(exc)

        data = {
            "outcome": result.outcome,
            "provider_state": result.provider_state,
            "error": result.error,
            "invoice": InvoiceSerializer(result.invoice).data,
            "transaction": PaymentTransactionSerializer(result.transaction).data if result.transaction else None,
        }
        code = status.HTTP_502_BAD_GATEWAY if not result.succeeded else status.HTTP_200_OK
        return Response(data, status=code)

    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request, pk=None):
        try:
            txn = self.lifecycle_class().confirm_manual_payment(pk)
        except BillingError as exc:
            return error_response(exc)
        invoice = Invoice.objects.get(pk=pk)
        return Response(
            {
                "invoice": InvoiceSerializer(invoice).data,
                "transaction": PaymentTransactionSerializer(txn).data,
            }
        )

    @action(detail=True, methods=["get"], url_path="payment-qr")
    def payment_qr(self, request, pk=None):
        invoice = self.get_object()
        if not invoice.payment_link:
            return Response({"detail": "Invoice has no payment link."}, status=status.HTTP_400_BAD_REQUEST)

        qr = qrcode.QRCode(box_size=4, border=2)
        qr.add_data(invoice.payment_link)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        qr_base64 = base64.b64encode(buffer.getvalue()).decode("ascii")

        return Response(
            {
                "payment_link": invoice.payment_link,
                "qr_code": f"data:image/png;base64,{qr_base64}",
            }
        )


class PaymentTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = PaymentTransaction.objects.all()
    serializer_class = PaymentTransactionSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset()
        invoice_id = self.request.query_params.get("invoice")
        if invoice_id:
            queryset = queryset.filter(invoice_id=invoice_id)
        return queryset


class EventLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = EventLog.objects.all()
    serializer_class = EventLogSerializer
    permission_classes = [permissions.IsAdminUser]
