from django.core.management.base import BaseCommand
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from subscriptions.services import ReminderScheduler


class Command(BaseCommand):
    help = "Send 10-day and 5-day renewal reminders and expire lapsed subscriptions."

    def add_arguments(self, parser):
        parser.add_argument("--now", help="Evaluate as of this ISO timestamp instead of the current time.")

    def handle(self, *args, **options):
        now = timezone.now()
        if options.get("now"):
            now = parse_datetime(options["now"])
            if now is None:
                self.stderr.write(self.style.ERROR(f"Invalid --now value {options['now']!r}."))
                return
            if timezone.is_naive(now):
                now = timezone.make_aware(now)

        summary = ReminderScheduler().run(now)
        for error in summary.errors:
            self.stdout.write(self.style.WARNING(error))
        self.stdout.write(
            self.style.SUCCESS(
                f"Reminders sent: {summary.sent}, failed: {summary.failed}, "
                f"expired: {summary.expired}, skipped: {summary.skipped}."
            )
        )
