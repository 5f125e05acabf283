from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Optional

from django.utils import timezone

from subscriptions.exceptions import NotificationError, ValidationError
from subscriptions.models import Subscription
from subscriptions.services.events import EventRecorder
from subscriptions.services.lifecycle import SubscriptionLifecycleManager
from subscriptions.services.notification import (
    REMINDER_5_DAY_TRIGGER,
    REMINDER_10_DAY_TRIGGER,
    NotificationDispatcher,
)
from subscriptions.services.store import RecordStore

logger = logging.getLogger(__name__)

REMINDER_10_DAY = "10-day"
REMINDER_5_DAY = "5-day"
REMINDER_EXPIRED = "expired"
REMINDER_NONE = "none"

SECONDS_PER_DAY = 86400

# reminder type -> (template trigger, flag on Subscription)
REMINDER_DISPATCH = {
    REMINDER_10_DAY: (REMINDER_10_DAY_TRIGGER, "reminder_10_sent"),
    REMINDER_5_DAY: (REMINDER_5_DAY_TRIGGER, "reminder_5_sent"),
}


@dataclass(frozen=True)
class ReminderStatus:
    days_left: int
    needs_reminder: bool
    reminder_type: str
    is_urgent: bool


def days_until(end_date, now: datetime) -> int:
    """Whole days from ``now`` until midnight of ``end_date``, rounded up."""
    tz = timezone.get_current_timezone()
    end = timezone.make_aware(datetime.combine(end_date, time.min), tz)
    if timezone.is_naive(now):
        now = timezone.make_aware(now, tz)
    return math.ceil((end - now).total_seconds() / SECONDS_PER_DAY)


def evaluate(subscription: Subscription, now: datetime) -> ReminderStatus:
    days_left = days_until(subscription.end_date, now)

    if days_left <= 0:
        return ReminderStatus(days_left, False, REMINDER_EXPIRED, True)
    if days_left <= 5 and not subscription.reminder_5_sent:
        return ReminderStatus(days_left, True, REMINDER_5_DAY, True)
    if 5 < days_left <= 10 and not subscription.reminder_10_sent:
        return ReminderStatus(days_left, True, REMINDER_10_DAY, False)
    return ReminderStatus(days_left, False, REMINDER_NONE, False)


@dataclass
class ReminderRunSummary:
    sent: int = 0
    failed: int = 0
    expired: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"sent": self.sent, "failed": self.failed, "expired": self.expired, "skipped": self.skipped}


class ReminderScheduler:
    """Send each renewal reminder at most once per threshold and expire lapsed subscriptions."""

    def __init__(
        self,
        *,
        store: Optional[RecordStore] = None,
        notification_dispatcher: Optional[NotificationDispatcher] = None,
        lifecycle: Optional[SubscriptionLifecycleManager] = None,
        event_recorder: Optional[EventRecorder] = None,
        now=None,
    ):
        self.store = store or RecordStore()
        self.events = event_recorder or EventRecorder()
        self.notifications = notification_dispatcher or NotificationDispatcher()
        self.lifecycle = lifecycle or SubscriptionLifecycleManager(store=self.store, event_recorder=self.events)
        self._now = now or timezone.now

    def run(self, now: Optional[datetime] = None) -> ReminderRunSummary:
        now = now or self._now()
        summary = ReminderRunSummary()
        for subscription in self.store.active_subscriptions():
            self.process(subscription, now, summary)
        logger.info("Reminder pass finished: %s", summary.as_dict())
        return summary

    def process(self, subscription: Subscription, now: datetime, summary: ReminderRunSummary) -> ReminderStatus:
        status = evaluate(subscription, now)

        if status.reminder_type == REMINDER_EXPIRED:
            try:
                self.lifecycle.expire(subscription)
            except ValidationError as exc:
                summary.errors.append(str(exc))
                logger.warning("Could not expire subscription %s: %s", subscription.pk, exc)
            else:
                summary.expired += 1
            return status

        if not status.needs_reminder:
            summary.skipped += 1
            return status

        trigger, flag = REMINDER_DISPATCH[status.reminder_type]
        try:
            self.notifications.subscription_reminder(subscription, trigger, status.days_left)
        except NotificationError as exc:
            # flag stays false so the next pass retries
            summary.failed += 1
            summary.errors.append(f"{subscription.pk}: {exc}")
            logger.warning("Reminder %s for subscription %s failed: %s", trigger, subscription.pk, exc)
            return status

        self.store.set_flag_if_unset(subscription, flag)
        self.events.record_for(
            "subscription.reminder_sent",
            subscription,
            payload={"reminder_type": status.reminder_type, "days_left": status.days_left},
        )
        summary.sent += 1
        logger.info("Sent %s reminder for subscription %s (%s days left)", status.reminder_type, subscription.pk, status.days_left)
        return status
