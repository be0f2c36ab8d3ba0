"""Person-name confidence: shape, casing, character set and placeholder names."""

import re

from rapidfuzz.distance import Levenshtein

from contacts.confidence.types import ValidationResult

TITLE_CASE_RE = re.compile(r'^[A-Z][a-z]+(\s+[A-Z][a-z]+)+$')
ALLOWED_CHARS_RE = re.compile(r"^[a-zA-Z\s\-'.]+$")
DIGIT_RE = re.compile(r'\d')

# Placeholder names people type into forms; near misses count too.
PLACEHOLDER_NAMES = (
    'john doe', 'jane doe', 'test user', 'test name', 'admin', 'user',
    'fake name', 'anonymous', 'unknown', 'no name',
)
PLACEHOLDER_MAX_DISTANCE = 2

BASE_SCORE = 0.3


def is_placeholder_name(name: str) -> bool:
    normalized = ' '.join(name.lower().split())
    return any(
        Levenshtein.distance(normalized, placeholder) <= PLACEHOLDER_MAX_DISTANCE
        for placeholder in PLACEHOLDER_NAMES
    )


class NameValidator:
    method = 'name_validation'

    def validate(self, name: str) -> ValidationResult:
        if not name or len(name.strip()) < 2:
            return ValidationResult.rejected(error='too short')

        name = name.strip()
        parts = name.split()
        details = {
            'length': len(name),
            'part_count': len(parts),
            'has_space': ' ' in name,
            'is_title_case': bool(TITLE_CASE_RE.match(name)),
            'has_digits': bool(DIGIT_RE.search(name)),
            'has_only_allowed_chars': bool(ALLOWED_CHARS_RE.match(name)),
            'is_placeholder': is_placeholder_name(name),
        }

        score = BASE_SCORE
        if details['has_space']:
            score += 0.2

        if len(parts) == 2:
            score += 0.05
        elif len(parts) == 3:
            score += 0.1
        elif len(parts) > 3:
            score += 0.05

        if details['is_title_case']:
            score += 0.1
        if 4 <= len(name) <= 40:
            score += 0.1
        if details['has_digits']:
            score -= 0.2
        if details['has_only_allowed_chars']:
            score += 0.1
        else:
            score -= 0.1
        if details['is_placeholder']:
            score -= 0.3

        return ValidationResult.from_score(score, details)

    def score(self, name: str) -> float:
        return self.validate(name).score
