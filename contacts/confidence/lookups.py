"""
External lookups used by the field validators and the smart enricher.

Every lookup is injected behind a small interface so tests (and offline
runs) can swap in fakes:

- MX records via dnspython's asyncio resolver
- Geocoding via the Google Geocoding API (httpx)
- Disposable-domain membership
- Social profile scans (no default implementation; the enricher degrades
  when none is configured)

Lookups raise ``LookupFailed`` for transient problems (timeouts, DNS
server failures, API errors) so callers can tell "the answer is no" apart
from "we could not find out".
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol

import dns.asyncresolver
import dns.exception
import dns.resolver
import httpx

from contacts.conf import get_sync_setting

logger = logging.getLogger(__name__)


class LookupFailed(Exception):
    """An external lookup could not produce an answer."""


async def bounded(awaitable: Awaitable, timeout: Optional[float] = None):
    """Await with the configured lookup timeout; timeouts become LookupFailed."""
    if timeout is None:
        timeout = get_sync_setting("LOOKUP_TIMEOUT_SECONDS")
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise LookupFailed(f"lookup timed out after {timeout}s") from exc


# ---------------------------------------------------------------------------
# MX records
# ---------------------------------------------------------------------------

class MxLookup(Protocol):
    async def has_mx(self, domain: str) -> bool: ...


class DnsMxLookup:
    """MX lookup through dnspython. NXDOMAIN, no answer or a malformed name means no MX."""

    def __init__(self, lifetime: Optional[float] = None):
        self._resolver = dns.asyncresolver.Resolver()
        self._resolver.lifetime = lifetime or get_sync_setting("LOOKUP_TIMEOUT_SECONDS")

    async def has_mx(self, domain: str) -> bool:
        try:
            answers = await self._resolver.resolve(domain, 'MX')
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return False
        except dns.exception.SyntaxError:
            # empty or over-long labels, e.g. "foo..com"
            return False
        except dns.exception.DNSException as exc:
            raise LookupFailed(f"MX lookup for {domain} failed: {exc}") from exc
        return len(answers) > 0


# ---------------------------------------------------------------------------
# Disposable domains
# ---------------------------------------------------------------------------

DEFAULT_DISPOSABLE_DOMAINS = frozenset({
    '10minutemail.com', '20minutemail.com', 'dispostable.com', 'emailondeck.com',
    'fakeinbox.com', 'getairmail.com', 'getnada.com', 'guerrillamail.com',
    'guerrillamail.net', 'guerrillamailblock.com', 'maildrop.cc', 'mailinator.com',
    'mailnesia.com', 'mintemail.com', 'mohmal.com', 'mytemp.email',
    'sharklasers.com', 'spamgourmet.com', 'temp-mail.org', 'tempail.com',
    'tempmail.com', 'tempmail.net', 'tempmail.org', 'tempmailo.com',
    'throwawaymail.com', 'trashmail.com', 'yopmail.com',
})


class DisposableDomains:
    """Membership test for throwaway mail providers (subdomains included)."""

    def __init__(self, domains: Optional[Iterable[str]] = None):
        self._domains = frozenset(
            d.lower() for d in (DEFAULT_DISPOSABLE_DOMAINS if domains is None else domains)
        )

    def __contains__(self, domain: str) -> bool:
        return self.is_disposable(domain)

    def is_disposable(self, domain: str) -> bool:
        parts = domain.lower().strip('.').split('.')
        return any('.'.join(parts[i:]) in self._domains for i in range(len(parts) - 1))


# ---------------------------------------------------------------------------
# Geocoding
# ---------------------------------------------------------------------------

@dataclass
class GeocodeResult:
    formatted_address: str
    place_id: Optional[str] = None
    location_type: Optional[str] = None
    types: List[str] = field(default_factory=list)
    lat: Optional[float] = None
    lng: Optional[float] = None


class Geocoder(Protocol):
    async def geocode(self, address: str) -> Optional[GeocodeResult]: ...


class GoogleGeocoder:
    """Google Geocoding API client. Returns None when nothing matched."""

    URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(self, api_key: str, client: Optional[httpx.AsyncClient] = None,
                 timeout: Optional[float] = None):
        self.api_key = api_key
        self._client = client
        self._timeout = timeout or get_sync_setting("LOOKUP_TIMEOUT_SECONDS")

    async def geocode(self, address: str) -> Optional[GeocodeResult]:
        params = {"address": address, "key": self.api_key}
        try:
            if self._client is not None:
                response = await self._client.get(self.URL, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self.URL, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise LookupFailed(f"geocoding request failed: {exc}") from exc

        status = payload.get("status")
        if status == "ZERO_RESULTS":
            return None
        if status != "OK" or not payload.get("results"):
            raise LookupFailed(f"geocoding returned status {status}")

        top = payload["results"][0]
        geometry = top.get("geometry") or {}
        location = geometry.get("location") or {}
        return GeocodeResult(
            formatted_address=top.get("formatted_address", ""),
            place_id=top.get("place_id"),
            location_type=geometry.get("location_type"),
            types=list(top.get("types") or []),
            lat=location.get("lat"),
            lng=location.get("lng"),
        )


MISSING = object()


class GeocodingCache:
    """
    Bounded LRU cache with a TTL, keyed by normalized location text.

    ``None`` is a legitimate cached value (the address did not geocode), so
    misses are signalled with the module-level ``MISSING`` sentinel.
    """

    def __init__(self, max_size: Optional[int] = None, ttl_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.max_size = max_size if max_size is not None else get_sync_setting("GEOCODING_CACHE_SIZE")
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None
            else get_sync_setting("GEOCODING_CACHE_TTL_SECONDS")
        )
        self._clock = clock
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()

    @staticmethod
    def normalize(location: str) -> str:
        return ' '.join(location.lower().split())

    def get(self, location: str, default: Any = MISSING) -> Any:
        key = self.normalize(location)
        entry = self._entries.get(key)
        if entry is None:
            return default
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return default
        self._entries.move_to_end(key)
        return value

    def set(self, location: str, value: Any) -> None:
        key = self.normalize(location)
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __len__(self):
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


def default_geocoder() -> Optional[GoogleGeocoder]:
    """A Google geocoder when GOOGLE_MAPS_API_KEY is configured, else None."""
    from django.conf import settings

    api_key = getattr(settings, "GOOGLE_MAPS_API_KEY", "")
    return GoogleGeocoder(api_key) if api_key else None


# ---------------------------------------------------------------------------
# Social profile scans
# ---------------------------------------------------------------------------

class ProfileScanner(Protocol):
    async def scan(self, username: str, platform: str) -> Dict[str, Any]:
        """Return at least ``exists`` and optionally ``verified``,
        ``follower_count``, ``post_count``, ``last_active``."""
        ...
