from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    EventLogViewSet,
    InvoiceViewSet,
    PaymentTransactionViewSet,
    SubscriptionProductViewSet,
    SubscriptionViewSet,
)

router = DefaultRouter()
router.register(r"products", SubscriptionProductViewSet, basename="product")
router.register(r"subscriptions", SubscriptionViewSet, basename="subscription")
router.register(r"invoices", InvoiceViewSet, basename="invoice")
router.register(r"transactions", PaymentTransactionViewSet, basename="transaction")
router.register(r"events", EventLogViewSet, basename="event")

urlpatterns = [
    path("", include(router.urls)),
]
