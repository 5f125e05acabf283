"""
WSGI config for the billing project.

It exposes the WSGI callable as a module-level variable named ``application``.
"""

import os

import django
from django.core.wsgi import get_wsgi_application


def _migrate_if_requested():
    """
    Hosts without a release phase cannot run `manage.py migrate`.
    Setting AUTO_MIGRATE applies pending migrations when the worker boots.
    """
    auto_migrate = os.getenv("AUTO_MIGRATE", "").strip().lower()
    if auto_migrate not in ("1", "true", "yes"):
        return

    from django.core.management import call_command

    call_command("migrate", interactive=False, run_syncdb=True, verbosity=1)
    print("[migrate] database up to date at startup")


def _seed_notifications_if_requested():
    """Seed the reminder templates on boot when AUTO_SEED_NOTIFICATIONS is set."""
    auto_seed = os.getenv("AUTO_SEED_NOTIFICATIONS", "").strip().lower()
    if auto_seed not in ("1", "true", "yes"):
        return

    from django.core.management import call_command

    call_command("seed_notifications")


os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
django.setup()
_migrate_if_requested()
_seed_notifications_if_requested()

application = get_wsgi_application()
