"""Social handle confidence."""

import re

from contacts.confidence.types import ValidationResult

BASE_SCORE = 0.4
HANDLE_CHARS_RE = re.compile(r'^[a-zA-Z0-9._-]+$')
LEADING_LETTER_RE = re.compile(r'^[a-zA-Z]')
DIGIT_RE = re.compile(r'[0-9]')
SPAM_PATTERNS = tuple(re.compile(p, re.IGNORECASE | re.ASCII) for p in (
    r'^\d+$', r'^admin', r'^test', r'^user\d+$', r'^guest\d*$', r'^bot\d*$',
))


def normalize_username(username: str) -> str:
    return username.strip().lstrip('@')


class UsernameValidator:
    method = 'username_validation'

    def validate(self, username: str) -> ValidationResult:
        if not username:
            return ValidationResult.rejected(error='empty')
        handle = normalize_username(username)
        if len(handle) < 2:
            return ValidationResult.rejected(error='too short')

        digits = len(DIGIT_RE.findall(handle))
        details = {
            'normalized': handle,
            'valid_chars': bool(HANDLE_CHARS_RE.match(handle)),
            'has_whitespace': any(c.isspace() for c in handle),
            'is_alphanumeric': handle.isalnum() and handle.isascii(),
            'starts_with_letter': bool(LEADING_LETTER_RE.match(handle)),
            'digit_ratio': round(digits / len(handle), 4),
            'matches_spam_pattern': any(p.search(handle) for p in SPAM_PATTERNS),
        }

        score = BASE_SCORE
        if len(handle) >= 3:
            score += 0.1
        if len(handle) <= 20:
            score += 0.05
        if details['valid_chars']:
            score += 0.15
        score += -0.2 if details['has_whitespace'] else 0.1
        if details['is_alphanumeric']:
            score += 0.05
        if details['starts_with_letter']:
            score += 0.05
        if details['digit_ratio'] > 0.5:
            score -= 0.1
        if details['matches_spam_pattern']:
            score -= 0.2

        return ValidationResult.from_score(score, details)

    def score(self, username: str) -> float:
        return self.validate(username).score
