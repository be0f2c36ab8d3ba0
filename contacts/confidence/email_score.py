"""
Email address confidence.

Starts from a low base and moves with what can be learned about the
address: disposable providers are penalised, business domains rewarded
over free mail, and a domain with MX records gets a bonus. A failed MX
lookup is not the same as "no MX": the bonus is simply withheld and the
failure recorded in the details.
"""

import logging
import re
from typing import Optional

from contacts.confidence.lookups import (
    DisposableDomains,
    DnsMxLookup,
    LookupFailed,
    MxLookup,
    bounded,
)
from contacts.confidence.types import ValidationResult

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
USERNAME_CHARS_RE = re.compile(r'^[a-z0-9._-]+$')
LONG_DIGIT_RUN_RE = re.compile(r'\d{4,}')

COMMON_DOMAINS = frozenset({
    'gmail.com', 'outlook.com', 'yahoo.com', 'hotmail.com', 'icloud.com',
})

BASE_SCORE = 0.4
DISPOSABLE_PENALTY = 0.3
COMMON_DOMAIN_BONUS = 0.1
BUSINESS_DOMAIN_BONUS = 0.2
MX_BONUS = 0.2
SMALL_CHECK_BONUS = 0.05
MAX_SMALL_CHECKS = 4


class EmailValidator:
    method = 'email_validation'

    def __init__(self, mx_lookup: Optional[MxLookup] = None,
                 disposable_domains: Optional[DisposableDomains] = None,
                 timeout: Optional[float] = None):
        self.mx_lookup = mx_lookup if mx_lookup is not None else DnsMxLookup()
        self.disposable_domains = disposable_domains or DisposableDomains()
        self.timeout = timeout

    async def validate(self, email: str) -> ValidationResult:
        if not email or not email.strip():
            return ValidationResult.rejected(error='empty')

        email = email.strip().lower()
        if not EMAIL_RE.match(email):
            return ValidationResult.rejected(error='invalid format')

        username, domain = email.rsplit('@', 1)
        details = {
            'domain': domain,
            'username': username,
            'is_disposable': self.disposable_domains.is_disposable(domain),
            'is_common_domain': domain in COMMON_DOMAINS,
        }
        details['is_business_email'] = not details['is_common_domain'] and not details['is_disposable']

        score = BASE_SCORE
        if details['is_disposable']:
            score -= DISPOSABLE_PENALTY
        if details['is_common_domain']:
            score += COMMON_DOMAIN_BONUS
        elif details['is_business_email']:
            score += BUSINESS_DOMAIN_BONUS

        details['has_mx_records'] = False
        details['mx_lookup_failed'] = False
        try:
            details['has_mx_records'] = await bounded(self.mx_lookup.has_mx(domain), self.timeout)
        except LookupFailed as exc:
            logger.debug("MX lookup failed for %s: %s", domain, exc)
            details['mx_lookup_failed'] = True
        if details['has_mx_records']:
            score += MX_BONUS

        checks = [
            '+' not in username,
            '.test' not in domain and '.example' not in domain,
            len(email) < 50,
            len(username) >= 4,
            bool(USERNAME_CHARS_RE.match(username)),
            not LONG_DIGIT_RUN_RE.search(username),
        ]
        passed = sum(checks)
        details['checks_passed'] = passed
        score += min(passed, MAX_SMALL_CHECKS) * SMALL_CHECK_BONUS

        return ValidationResult.from_score(score, details)

    async def score(self, email: str) -> float:
        return (await self.validate(email)).score
