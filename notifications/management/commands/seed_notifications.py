from django.conf import settings
from django.core.management.base import BaseCommand

from notifications.models import NotificationTemplate
from notifications.utils import validate_reminder_templates

TEMPLATES = [
    {
        "trigger": "subscription_10_day_reminder",
        "name": "10-Day Subscription Reminder",
        "subject": "Your subscription expires in 10 days - {{ name }}",
        "message": (
            "Dear {{ name }},\n\n"
            "This is a friendly reminder that your subscription will expire in {{ days_left }} days.\n\n"
            "Subscription Details:\n"
            "- Service: {{ product_name }}\n"
            "- Expiry Date: {{ end_date }}\n\n"
            "To continue enjoying our services without interruption, please renew your subscription "
            "before the expiry date.\n\n"
            "Best regards,\n{{ company }} Team"
        ),
    },
    {
        "trigger": "subscription_5_day_reminder",
        "name": "5-Day Subscription Reminder",
        "subject": "URGENT: Your subscription expires in 5 days - {{ name }}",
        "message": (
            "Dear {{ name }},\n\n"
            "This is an urgent reminder that your subscription will expire in just {{ days_left }} days.\n\n"
            "Subscription Details:\n"
            "- Service: {{ product_name }}\n"
            "- Expiry Date: {{ end_date }}\n\n"
            "To avoid service interruption, please renew your subscription immediately.\n\n"
            "Best regards,\n{{ company }} Team"
        ),
    },
    {
        "trigger": "subscription_payment_agreement",
        "name": "Recurring Payment Agreement",
        "subject": "Subscription payment agreement for {{ product_name }}",
        "message": (
            "Dear {{ name }},\n\n"
            "To activate your subscription for {{ product_name }}, please approve the recurring "
            "payment agreement:\n{{ payment_link }}\n\n"
            "Amount: {{ amount }} {{ currency }}\n"
            "Frequency: every {{ duration_months }} month(s)\n\n"
            "Best regards,\n{{ company }} Team"
        ),
    },
]


class Command(BaseCommand):
    help = "Seed the reminder and payment agreement email templates"

    def handle(self, *args, **kwargs):
        created = 0
        for tpl in TEMPLATES:
            _, was_created = NotificationTemplate.objects.get_or_create(
                trigger=tpl["trigger"],
                defaults={
                    "name": tpl["name"],
                    "subject": tpl["subject"],
                    "message": tpl["message"],
                },
            )
            if was_created:
                created += 1
        self.stdout.write(self.style.SUCCESS(f"{created} notification templates created."))

        report = validate_reminder_templates()
        if not report["is_valid"]:
            self.stdout.write(self.style.WARNING(f"Missing reminder templates: {', '.join(report['missing'])}"))
        elif settings.DEBUG:
            self.stdout.write("Reminder templates ready.")
