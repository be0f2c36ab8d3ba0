"""Phone number confidence via the phonenumbers library."""

import re
from typing import Optional

import phonenumbers

from contacts.conf import get_sync_setting
from contacts.confidence.types import ValidationResult, clamp_score

BASE_SCORE = 0.3
TOLL_FREE_RE = re.compile(r'^(800|844|855|866|877|888)')
BOGUS_PREFIX = '555'


class PhoneValidator:
    method = 'phone_validation'

    def __init__(self, default_region: Optional[str] = None):
        self.default_region = default_region or get_sync_setting("PHONE_DEFAULT_REGION")

    def validate(self, phone: str) -> ValidationResult:
        if not phone or not phone.strip():
            return ValidationResult.rejected(error='empty')

        details = {'original': phone}
        try:
            parsed = phonenumbers.parse(phone.strip(), self.default_region)
        except phonenumbers.NumberParseException as exc:
            details['parse_error'] = str(exc)
            return ValidationResult(is_valid=False, score=clamp_score(BASE_SCORE), details=details)

        national = str(parsed.national_number)
        details['parsed'] = {
            'country_code': parsed.country_code,
            'national_number': national,
            'formats': {
                'e164': phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164),
                'international': phonenumbers.format_number(
                    parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL
                ),
                'national': phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.NATIONAL),
            },
        }
        details['is_valid'] = phonenumbers.is_valid_number(parsed)
        if not details['is_valid']:
            return ValidationResult(is_valid=False, score=clamp_score(BASE_SCORE), details=details)

        details['has_country_code'] = bool(parsed.country_code)
        details['is_possible'] = phonenumbers.is_possible_number(parsed)
        details['is_toll_free'] = bool(TOLL_FREE_RE.match(national))
        details['has_bogus_prefix'] = national.startswith(BOGUS_PREFIX)

        score = BASE_SCORE + 0.3
        if details['has_country_code']:
            score += 0.1
        if details['is_possible']:
            score += 0.1
        if details['has_bogus_prefix']:
            score -= 0.2

        return ValidationResult.from_score(score, details)

    def score(self, phone: str) -> float:
        return self.validate(phone).score
