import logging

from django.conf import settings
from django.core.mail import send_mail
from django.template import Context, Template, TemplateSyntaxError
from django.utils import timezone

from .models import Notification, NotificationStatus, NotificationTemplate

logger = logging.getLogger(__name__)

REMINDER_TRIGGERS = ("subscription_10_day_reminder", "subscription_5_day_reminder")


def render_template_text(text, context_dict):
    try:
        return Template(text).render(Context(context_dict, autoescape=False))
    except TemplateSyntaxError as exc:
        logger.warning("Template rendering failed, sending raw text: %s", exc)
        return text


def send_notification_from_template(trigger, recipient, context):
    """
    Render the active template for ``trigger`` and email it to ``recipient``.

    Returns ``{"success": True}`` or ``{"success": False, "error": "..."}``;
    every attempt is logged as a Notification row.
    """
    if not recipient:
        return {"success": False, "error": "Recipient has no email address."}

    try:
        tpl = NotificationTemplate.objects.get(trigger=trigger, is_active=True)
    except NotificationTemplate.DoesNotExist:
        logger.warning("No active notification template for trigger %s", trigger)
        return {"success": False, "error": f"Template not found for trigger {trigger}."}

    notification = Notification.objects.create(
        recipient=recipient,
        trigger=trigger,
        subject=render_template_text(tpl.subject, context) or tpl.name,
        message=render_template_text(tpl.message, context),
    )

    try:
        send_mail(
            subject=notification.subject,
            message=notification.message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            fail_silently=False,
        )
    except Exception as exc:
        notification.status = NotificationStatus.FAILED
        notification.error_message = str(exc)[:2000]
        notification.save(update_fields=["status", "error_message"])
        logger.error("Email error for notification %s (%s): %s", notification.id, trigger, exc)
        return {"success": False, "error": str(exc) or exc.__class__.__name__}

    notification.status = NotificationStatus.SENT
    notification.sent_at = timezone.now()
    notification.save(update_fields=["status", "sent_at"])
    logger.info("Email sent to %s for notification %s (%s)", recipient, notification.id, trigger)
    return {"success": True, "error": None}


def validate_reminder_templates():
    """Report which reminder triggers have an active template."""
    existing = set(
        NotificationTemplate.objects.filter(trigger__in=REMINDER_TRIGGERS, is_active=True).values_list("trigger", flat=True)
    )
    missing = [trigger for trigger in REMINDER_TRIGGERS if trigger not in existing]
    return {
        "is_valid": not missing,
        "missing": missing,
        "existing": [trigger for trigger in REMINDER_TRIGGERS if trigger in existing],
    }
