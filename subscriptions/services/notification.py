from __future__ import annotations

from typing import Any, Optional

from django.conf import settings

from notifications.utils import send_notification_from_template
from subscriptions.exceptions import NotificationError

REMINDER_10_DAY_TRIGGER = "subscription_10_day_reminder"
REMINDER_5_DAY_TRIGGER = "subscription_5_day_reminder"
PAYMENT_AGREEMENT_TRIGGER = "subscription_payment_agreement"


class NotificationDispatcher:
    """Send templated customer emails for subscription and invoice events."""

    def send(self, to: str, trigger: str, data: dict[str, Any]) -> dict[str, Any]:
        context = {"company": settings.BILLING_COMPANY_NAME, **data}
        return send_notification_from_template(trigger, to, context)

    def deliver(self, to: str, trigger: str, data: dict[str, Any]) -> None:
        """Like ``send`` but raises NotificationError when the email did not go out."""
        result = self.send(to, trigger, data)
        if not result.get("success"):
            raise NotificationError(result.get("error") or f"Notification {trigger} was not sent.")

    def subscription_reminder(self, subscription, trigger: str, days_left: int) -> None:
        self.deliver(
            subscription.customer.email,
            trigger,
            {
                "name": subscription.customer.name,
                "product_name": subscription.product_name,
                "end_date": subscription.end_date.isoformat(),
                "days_left": days_left,
            },
        )

    def payment_agreement(
        self,
        customer,
        *,
        payment_link: str,
        amount,
        currency: str,
        product_name: str = "",
        duration_months: Optional[int] = None,
    ) -> None:
        self.deliver(
            customer.email,
            PAYMENT_AGREEMENT_TRIGGER,
            {
                "name": customer.name,
                "product_name": product_name,
                "payment_link": payment_link,
                "amount": str(amount),
                "currency": currency,
                "duration_months": duration_months or "",
            },
        )
