"""Access to the CONTACT_SYNC settings dict with engine defaults."""
from django.conf import settings

DEFAULTS = {
    "LOOKUP_TIMEOUT_SECONDS": 5.0,
    "GEOCODING_CACHE_SIZE": 1024,
    "GEOCODING_CACHE_TTL_SECONDS": 24 * 60 * 60,
    "DEFAULT_DAYS_BACK": 30,
    "PHONE_DEFAULT_REGION": None,
}


def get_sync_setting(name):
    """Return CONTACT_SYNC[name], falling back to the engine default."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown CONTACT_SYNC setting: {name}")
    overrides = getattr(settings, "CONTACT_SYNC", None) or {}
    return overrides.get(name, DEFAULTS[name])
