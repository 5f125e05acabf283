from unittest import mock

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from notifications.models import Notification, NotificationStatus, NotificationTemplate
from notifications.utils import send_notification_from_template, validate_reminder_templates
from subscriptions.exceptions import NotificationError
from subscriptions.services import NotificationDispatcher


class SendNotificationTests(TestCase):
    def setUp(self):
        self.override_email = self.settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
        self.override_email.enable()
        self.addCleanup(self.override_email.disable)
        NotificationTemplate.objects.create(
            trigger="welcome",
            name="Welcome",
            subject="Hello {{ name }}",
            message="Welcome to {{ company }} & friends",
        )

    def test_renders_and_logs(self):
        result = send_notification_from_template("welcome", "a@example.com", {"name": "Ann", "company": "Acme"})

        self.assertEqual(result, {"success": True, "error": None})
        self.assertEqual(mail.outbox[0].subject, "Hello Ann")
        self.assertEqual(mail.outbox[0].body, "Welcome to Acme & friends")
        notification = Notification.objects.get()
        self.assertEqual(notification.status, NotificationStatus.SENT)
        self.assertIsNotNone(notification.sent_at)

    def test_missing_template(self):
        result = send_notification_from_template("unknown", "a@example.com", {})
        self.assertFalse(result["success"])
        self.assertIn("unknown", result["error"])
        self.assertEqual(len(mail.outbox), 0)

    def test_inactive_template_is_missing(self):
        NotificationTemplate.objects.filter(trigger="welcome").update(is_active=False)
        self.assertFalse(send_notification_from_template("welcome", "a@example.com", {})["success"])

    def test_missing_recipient(self):
        self.assertFalse(send_notification_from_template("welcome", "", {})["success"])

    @mock.patch("notifications.utils.send_mail", side_effect=OSError("connection refused"))
    def test_send_failure_is_reported_and_logged(self, _send_mail):
        result = send_notification_from_template("welcome", "a@example.com", {"name": "Ann"})

        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "connection refused")
        notification = Notification.objects.get()
        self.assertEqual(notification.status, NotificationStatus.FAILED)
        self.assertEqual(notification.error_message, "connection refused")

    @mock.patch("notifications.utils.send_mail", side_effect=OSError("connection refused"))
    def test_dispatcher_deliver_raises(self, _send_mail):
        with self.assertRaises(NotificationError):
            NotificationDispatcher().deliver("a@example.com", "welcome", {"name": "Ann"})


class ReminderTemplateTests(TestCase):
    def test_validate_reports_missing(self):
        report = validate_reminder_templates()
        self.assertFalse(report["is_valid"])
        self.assertEqual(report["missing"], ["subscription_10_day_reminder", "subscription_5_day_reminder"])

    def test_seed_command_is_idempotent(self):
        call_command("seed_notifications", verbosity=0)
        call_command("seed_notifications", verbosity=0)

        self.assertEqual(NotificationTemplate.objects.count(), 3)
        self.assertTrue(validate_reminder_templates()["is_valid"])
        self.assertTrue(NotificationTemplate.objects.filter(trigger="subscription_payment_agreement").exists())


class NotificationAPITests(APITestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="admin", password="pass1234", is_staff=True)
        self.client.force_authenticate(user=self.user)

    def test_create_template(self):
        payload = {
            "trigger": "subscription_10_day_reminder",
            "name": "10 day",
            "subject": "Expiring soon",
            "message": "Dear {{ name }}",
        }

        response = self.client.post(reverse("notification-templates-list"), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        status_response = self.client.get(reverse("reminder-template-status"))
        self.assertEqual(status_response.data["missing"], ["subscription_5_day_reminder"])

    def test_log_is_read_only(self):
        response = self.client.post(reverse("notifications-list"), {"recipient": "a@example.com"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_requires_staff(self):
        regular = get_user_model().objects.create_user(username="regular", password="pass1234")
        self.client.force_authenticate(user=regular)
        self.assertEqual(self.client.get(reverse("notifications-list")).status_code, status.HTTP_403_FORBIDDEN)
