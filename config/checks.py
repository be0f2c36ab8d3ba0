"""
Django system checks for required configuration.

Runs automatically on `manage.py migrate`, `check` and every management
command that requires system checks.
"""
import os

from django.conf import settings
from django.core.checks import Error, Warning, register


@register()
def check_required_settings(app_configs, **kwargs):
    errors = []

    # E001: DATABASE_URL required in production
    if not settings.DEBUG and not os.environ.get("DATABASE_URL"):
        errors.append(Error(
            "DATABASE_URL not set in production.",
            hint="Set DATABASE_URL for the Supabase PostgreSQL connection.",
            id="sync.E001",
        ))

    # E002: Insecure SECRET_KEY in production
    if not settings.DEBUG and "insecure" in settings.SECRET_KEY:
        errors.append(Error(
            "SECRET_KEY contains 'insecure' and is not safe for production.",
            hint="Generate a secure SECRET_KEY.",
            id="sync.E002",
        ))

    # E003: engine settings must be a dict
    if not isinstance(getattr(settings, "CONTACT_SYNC", {}), dict):
        errors.append(Error(
            "CONTACT_SYNC must be a dict.",
            hint="See config/settings.py for the expected keys.",
            id="sync.E003",
        ))

    # W001: geocoding is optional but location scores are capped without it
    if not getattr(settings, "GOOGLE_MAPS_API_KEY", ""):
        errors.append(Warning(
            "GOOGLE_MAPS_API_KEY not configured.",
            hint="Location confidence will skip the geocoding bonus.",
            id="sync.W001",
        ))

    return errors
