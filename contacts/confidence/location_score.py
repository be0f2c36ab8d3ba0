"""
Location confidence.

Text heuristics first; a location that already looks plausible (score of
at least 0.6) is then confirmed against the geocoder, with a bonus that
depends on how precisely the geocoder could place it. Geocoder answers
are cached per validator instance by normalized location text.
"""

import logging
import re
from typing import Optional

from contacts.confidence.lookups import (
    MISSING,
    Geocoder,
    GeocodingCache,
    LookupFailed,
    bounded,
)
from contacts.confidence.types import ValidationResult

logger = logging.getLogger(__name__)

BASE_SCORE = 0.4
GEOCODE_MIN_SCORE = 0.6

CAPITALIZED_RE = re.compile(r'[A-Z][a-z]+')
DIGIT_RE = re.compile(r'\d')

PLACE_INDICATORS = (
    'street', 'avenue', 'road', 'blvd', 'city', 'town', 'village', 'district',
    'county', 'state', 'province', 'country', 'region',
)
MAJOR_LOCATIONS = (
    'new york', 'london', 'tokyo', 'paris', 'berlin', 'sydney', 'los angeles',
    'chicago', 'beijing', 'moscow', 'toronto', 'dubai', 'usa', 'uk', 'canada',
    'australia', 'germany', 'france', 'japan', 'china',
)

# Bonus by geocoder precision, most precise first.
PRECISION_BONUS = {
    'ROOFTOP': 0.3,
    'RANGE_INTERPOLATED': 0.2,
    'GEOMETRIC_CENTER': 0.15,
}
APPROXIMATE_BONUS = 0.1


class LocationValidator:
    method = 'geo_validation'

    def __init__(self, geocoder: Optional[Geocoder] = None,
                 cache: Optional[GeocodingCache] = None,
                 timeout: Optional[float] = None):
        self.geocoder = geocoder
        self.cache = cache if cache is not None else GeocodingCache()
        self.timeout = timeout

    async def validate(self, location: str) -> ValidationResult:
        if not location or len(location.strip()) < 3:
            return ValidationResult.rejected(error='too short')

        text = location.strip()
        lowered = text.lower()
        details = {
            'has_comma': ',' in text,
            'is_capitalized': bool(CAPITALIZED_RE.search(text)),
            'has_digits': bool(DIGIT_RE.search(text)),
            'has_place_indicator': any(t in lowered for t in PLACE_INDICATORS),
            'is_major_location': any(t in lowered for t in MAJOR_LOCATIONS),
        }

        score = BASE_SCORE
        if details['has_comma']:
            score += 0.1
        if details['is_capitalized']:
            score += 0.1
        if not details['has_digits']:
            score += 0.05
        if details['has_place_indicator']:
            score += 0.05
        if details['is_major_location']:
            score += 0.1

        if self.geocoder is not None and score >= GEOCODE_MIN_SCORE:
            score += await self._geocoding_bonus(text, details)

        return ValidationResult.from_score(score, details)

    async def _geocoding_bonus(self, text: str, details: dict) -> float:
        result = self.cache.get(text)
        details['geocoding_cached'] = result is not MISSING
        if result is MISSING:
            try:
                result = await bounded(self.geocoder.geocode(text), self.timeout)
            except LookupFailed as exc:
                logger.debug("Geocoding failed for %r: %s", text, exc)
                details['geocoding_failed'] = True
                return 0.0
            self.cache.set(text, result)

        if result is None:
            return 0.0
        details['geocoding'] = {
            'formatted_address': result.formatted_address,
            'place_id': result.place_id,
            'location_type': result.location_type,
            'types': result.types,
        }
        return PRECISION_BONUS.get(result.location_type, APPROXIMATE_BONUS)

    async def score(self, location: str) -> float:
        return (await self.validate(location)).score
