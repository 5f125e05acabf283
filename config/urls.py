from django.contrib import admin
from django.urls import path, include
from drf_yasg import openapi
from drf_yasg.views import get_schema_view
from rest_framework import permissions

schema_view = get_schema_view(
    openapi.Info(title="Billing API", default_version="v1"),
    public=False,
    permission_classes=[permissions.IsAdminUser],
)

urlpatterns = [
    path('admin/', admin.site.urls),

    # Subscriptions, invoices and payment transactions
    path("api/subscriptions/", include("subscriptions.urls")),

    # Exchange rates and conversion
    path("api/currency/", include("currency.urls")),

    # Payment provider callbacks
    path("api/webhooks/", include("webhooks.urls")),

    # Email templates and notification log
    path("api/notifications/", include("notifications.urls")),

    path("api/docs/", schema_view.with_ui("swagger", cache_timeout=0), name="api-docs"),
]
