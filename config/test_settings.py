"""
Test settings.

Uses the PostgreSQL database from DATABASE_URL when it is set (same engine
as production/Supabase); otherwise an in-memory SQLite database so the
ORM store tests run anywhere.
"""

from config.settings import *  # noqa: F401, F403

if not DATABASE_URL:  # noqa: F405
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": ":memory:",
        }
    }

# Keep test output readable
LOGGING["root"]["level"] = "WARNING"  # noqa: F405

CONTACT_SYNC = {
    **CONTACT_SYNC,  # noqa: F405
    "LOOKUP_TIMEOUT_SECONDS": 0.5,
}

# Never call the real Geocoding API from tests
GOOGLE_MAPS_API_KEY = ""
SLACK_WEBHOOK_URL = ""
