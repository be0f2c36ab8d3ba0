"""
Profile bio confidence.

Content heuristics only: length, links, professional vs spam vocabulary,
emoji usage, sentence structure and whether the bio reads as written by
the person it describes.
"""

import re

from contacts.confidence.types import ValidationResult

BASE_SCORE = 0.4

PROFESSIONAL_TERMS = (
    'professional', 'specialist', 'expert', 'founder', 'ceo', 'manager',
    'director', 'graduate', 'phd', 'award', 'certified', 'licensed', 'author',
)
SPAM_TERMS = (
    'lorem ipsum', 'click here', 'buy now', 'free', 'discount', 'sale',
    'best price', 'earn money', 'make money', 'contact me for',
    'bio goes here', 'test bio',
)
FIRST_PERSON_PHRASES = (
    'i am', "i'm", 'my', 'i have', 'i work', 'i create', 'i love', 'i enjoy',
)

PROFESSIONAL_BONUS, PROFESSIONAL_CAP = 0.05, 0.15
SPAM_PENALTY, SPAM_CAP = 0.1, 0.3

LINK_RE = re.compile(
    r'(?:https?://|www\.)\S+'
    r'|\b[a-z0-9-]+(?:\.[a-z0-9-]+)*\.(?:com|org|net|io|co|me|dev|app|ai|ly|tv|bio|link)\b(?:/\S*)?',
    re.IGNORECASE,
)
EMOJI_RE = re.compile(
    '[\U0001F600-\U0001F64F'
    '\U0001F300-\U0001F5FF'
    '\U0001F680-\U0001F6FF'
    '\U0001F700-\U0001F77F'
    '\U0001F780-\U0001F7FF'
    '\U0001F800-\U0001F8FF'
    '\U0001F900-\U0001F9FF'
    '\U0001FA00-\U0001FA6F'
    '\u2600-\u26FF'
    '\u2700-\u27BF]'
)
SENTENCE_BREAK_RE = re.compile(r'([.!?])\s*(?=[A-Za-z])')


def count_sentences(text: str) -> int:
    marked = SENTENCE_BREAK_RE.sub(r'\1|', text)
    return len([s for s in marked.split('|') if s.strip()])


class BioValidator:
    method = 'content_analysis'

    def validate(self, bio: str) -> ValidationResult:
        if not bio or len(bio.strip()) < 10:
            return ValidationResult.rejected(error='too short')

        text = bio.strip()
        lowered = text.lower()
        word_count = len(text.split())
        links = LINK_RE.findall(text)
        emoji_count = len(EMOJI_RE.findall(text))
        emoji_density = emoji_count / len(text)
        professional = [t for t in PROFESSIONAL_TERMS if t in lowered]
        spam = [t for t in SPAM_TERMS if t in lowered]
        sentences = count_sentences(text)
        first_person = any(p in lowered for p in FIRST_PERSON_PHRASES)

        score = BASE_SCORE
        if word_count >= 5:
            score += 0.05
        if word_count >= 10:
            score += 0.05
        if word_count >= 20:
            score += 0.1
        if word_count > 100:
            score -= 0.05

        if links:
            score += 0.1
        if len(links) > 3:
            score -= 0.05

        score += min(len(professional) * PROFESSIONAL_BONUS, PROFESSIONAL_CAP)
        score -= min(len(spam) * SPAM_PENALTY, SPAM_CAP)

        if 1 <= emoji_count <= 3:
            score += 0.05
        elif emoji_density > 0.1:
            score -= min(0.2, emoji_density)

        if sentences >= 2:
            score += 0.1
        if first_person:
            score += 0.1

        details = {
            'word_count': word_count,
            'link_count': len(links),
            'professional_terms': professional,
            'spam_terms': spam,
            'emoji_count': emoji_count,
            'emoji_density': round(emoji_density, 4),
            'sentence_count': sentences,
            'first_person': first_person,
        }
        return ValidationResult.from_score(score, details)

    def score(self, bio: str) -> float:
        return self.validate(bio).score
