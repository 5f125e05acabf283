import json
import os
from pathlib import Path

from celery.schedules import crontab
from django.core.exceptions import ImproperlyConfigured

# 📁 BASE DIR
BASE_DIR = Path(__file__).resolve().parent.parent

# 🔐 SECURITY
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-secret-key")
DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"
allowed_hosts_env = os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1")
ALLOWED_HOSTS = [host.strip() for host in allowed_hosts_env.split(",") if host.strip()]

# 🧩 APPS
INSTALLED_APPS = [
    # Django
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # 3rd Party
    "rest_framework",
    "corsheaders",
    "drf_yasg",

    # Local apps
    "customers",
    "subscriptions",
    "payments",
    "currency",
    "webhooks",
    "notifications",
]

# 🧱 MIDDLEWARE
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# 🔗 URL + WSGI
ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

# 📦 TEMPLATES
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# 🗄️ DATABASE (SQLite by default, Postgres through DATABASE_URL)
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

DATABASE_URL = os.getenv("DATABASE_URL")
if DATABASE_URL:
    from urllib.parse import urlparse

    parsed_db_url = urlparse(DATABASE_URL)
    if parsed_db_url.scheme not in ("postgres", "postgresql"):
        raise ImproperlyConfigured("Unsupported database scheme in DATABASE_URL")

    DATABASES["default"] = {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": parsed_db_url.path.lstrip("/"),
        "USER": parsed_db_url.username,
        "PASSWORD": parsed_db_url.password,
        "HOST": parsed_db_url.hostname,
        "PORT": parsed_db_url.port or "",
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# 🌍 LOCALISATION
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

# 📁 STATIC & MEDIA
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
MEDIA_URL = "/media/"
MEDIA_ROOT = BASE_DIR / "media"

# 🌐 CORS
CORS_ALLOW_ALL_ORIGINS = DEBUG
if not DEBUG:
    allowed_origins = os.getenv("CORS_ALLOWED_ORIGINS", "")
    CORS_ALLOWED_ORIGINS = [
        origin.strip() for origin in allowed_origins.split(",") if origin.strip()
    ]

# 🔑 API
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
}

# 📧 EMAIL
EMAIL_BACKEND = os.getenv(
    "EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend"
)
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "no-reply@example.com")
EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", 15))
FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")

# 📚 SWAGGER
SWAGGER_SETTINGS = {
    "USE_SESSION_AUTH": True,
}

# 💰 BILLING
BILLING_BASE_CURRENCY = os.getenv("BILLING_BASE_CURRENCY", "DKK")
BILLING_COMPANY_NAME = os.getenv("BILLING_COMPANY_NAME", "Billing")
BILLING_SUPPORTED_CURRENCIES = ["DKK", "EUR", "USD", "GBP"]

_fallback_rates = os.getenv("FALLBACK_EXCHANGE_RATES", "")
try:
    FALLBACK_EXCHANGE_RATES = json.loads(_fallback_rates) if _fallback_rates else {
        "DKK": 1,
        "EUR": 0.134,
        "USD": 0.145,
        "GBP": 0.115,
    }
except json.JSONDecodeError as exc:
    raise ImproperlyConfigured("FALLBACK_EXCHANGE_RATES must be a JSON object") from exc

# 💳 PAYMENT PROVIDERS
# Dotted paths to provider adapter classes, one per provider-based payment method.
PAYMENT_PROVIDERS = {
    "provider-recurring": os.getenv("PAYMENT_PROVIDER_RECURRING", "payments.sandbox.SandboxPaymentProvider"),
    "provider-manual": os.getenv("PAYMENT_PROVIDER_MANUAL", "payments.sandbox.SandboxPaymentProvider"),
}
PAYMENT_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_PROVIDER_TIMEOUT_SECONDS", 10))

# 🪝 WEBHOOKS
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "")

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() == "true"
CELERY_BEAT_SCHEDULE = {
    "send-subscription-reminders": {
        "task": "subscriptions.tasks.send_subscription_reminders",
        "schedule": crontab(hour=8, minute=0),
    },
    "reconcile-pending-invoices": {
        "task": "subscriptions.tasks.reconcile_pending_invoices",
        "schedule": crontab(minute="*/30"),
    },
}

# ✅ LOGS
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
    },
}
