from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import NotificationTemplateViewSet, NotificationViewSet, reminder_template_status

router = DefaultRouter()
router.register(r'templates', NotificationTemplateViewSet, basename='notification-templates')
router.register(r'log', NotificationViewSet, basename='notifications')

urlpatterns = [
    path("templates/reminder-status/", reminder_template_status, name="reminder-template-status"),
    path('', include(router.urls)),
]
