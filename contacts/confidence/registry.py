"""
Field name -> validator table.

The aggregator never switches on field names; it asks the registry. A
validator is any object with a ``validate(raw)`` method returning a
``ValidationResult`` (or an awaitable of one) and a ``method`` label used
in confidence logs.
"""

import inspect
from typing import Any, Dict, Iterator, Optional

from contacts.confidence.bio_score import BioValidator
from contacts.confidence.email_score import EmailValidator
from contacts.confidence.location_score import LocationValidator
from contacts.confidence.lookups import (
    DisposableDomains,
    Geocoder,
    GeocodingCache,
    MxLookup,
    default_geocoder,
)
from contacts.confidence.name_score import NameValidator
from contacts.confidence.phone_score import PhoneValidator
from contacts.confidence.types import ValidationResult
from contacts.confidence.username_score import UsernameValidator


class ValidatorRegistry:
    def __init__(self):
        self._validators: Dict[str, Any] = {}

    def register(self, field_name: str, validator: Any) -> None:
        self._validators[field_name] = validator

    def get(self, field_name: str) -> Optional[Any]:
        return self._validators.get(field_name)

    def method_for(self, field_name: str) -> str:
        return getattr(self._validators[field_name], 'method', f'{field_name}_validation')

    def __contains__(self, field_name: str) -> bool:
        return field_name in self._validators

    def __iter__(self) -> Iterator[str]:
        return iter(self._validators)

    async def validate(self, field_name: str, raw: Any) -> ValidationResult:
        """Run the validator registered for ``field_name``; KeyError if none."""
        outcome = self._validators[field_name].validate(raw)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome


def default_registry(
    mx_lookup: Optional[MxLookup] = None,
    geocoder: Optional[Geocoder] = None,
    disposable_domains: Optional[DisposableDomains] = None,
    geocoding_cache: Optional[GeocodingCache] = None,
    phone_region: Optional[str] = None,
) -> ValidatorRegistry:
    """The six standard contact-field validators, wired to the given ports.

    Without an explicit geocoder, a Google geocoder is used when
    GOOGLE_MAPS_API_KEY is configured; otherwise location scoring skips
    the geocoding step.
    """
    registry = ValidatorRegistry()
    registry.register('email', EmailValidator(mx_lookup, disposable_domains))
    registry.register('name', NameValidator())
    registry.register('bio', BioValidator())
    registry.register('phone', PhoneValidator(phone_region))
    registry.register('username', UsernameValidator())
    registry.register('location', LocationValidator(
        geocoder if geocoder is not None else default_geocoder(),
        geocoding_cache,
    ))
    return registry
