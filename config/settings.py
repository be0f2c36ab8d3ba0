"""
Django settings for the Contact Sync engine.

Confidence scoring, change detection and selective re-enrichment of
contact records. The engine runs from management commands and Prefect
flows; there are no public views.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(BASE_DIR / ".env")

# Environment variables (with defaults for development)
SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "django-insecure-dev-key-change-in-production"
)

DEBUG = os.environ.get("DEBUG", "True").lower() == "true"

ALLOWED_HOSTS = os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")

# API Keys (loaded from environment)
GOOGLE_MAPS_API_KEY = os.environ.get("GOOGLE_MAPS_API_KEY", "")
SLACK_WEBHOOK_URL = os.environ.get("SLACK_WEBHOOK_URL", "")

# Application definition
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    # Local apps
    "contacts.apps.ContactsConfig",
]

# Database
# Use PostgreSQL if DATABASE_URL is set, otherwise SQLite
DATABASE_URL = os.environ.get("DATABASE_URL")

if DATABASE_URL:
    import dj_database_url
    DATABASES = {
        "default": dj_database_url.parse(DATABASE_URL, conn_max_age=600)
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Logging: every line carries the correlation id of the sync run it belongs to
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "correlation_id": {"()": "config.logging_filters.CorrelationIdFilter"},
    },
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "filters": ["correlation_id"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "contacts": {"level": LOG_LEVEL, "propagate": True},
        "alerting": {"level": "INFO", "propagate": True},
    },
}

# Contact Sync engine configuration
CONTACT_SYNC = {
    # Bound on every external lookup (DNS MX, geocoding, profile scans)
    "LOOKUP_TIMEOUT_SECONDS": float(os.environ.get("SYNC_LOOKUP_TIMEOUT", "5.0")),
    "GEOCODING_CACHE_SIZE": 1024,
    "GEOCODING_CACHE_TTL_SECONDS": 24 * 60 * 60,
    # Window for change detection (contacts updated in the last N days)
    "DEFAULT_DAYS_BACK": 30,
    # Region used to parse phone numbers written without a +country prefix.
    # None means such numbers are unparsable.
    "PHONE_DEFAULT_REGION": os.environ.get("PHONE_DEFAULT_REGION") or None,
}
