"""
Value types shared by the field validators, the aggregator and the
merge strategies.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


def clamp_score(score: float) -> float:
    """Clamp to [0, 1] and drop float noise from summed adjustments."""
    return round(max(0.0, min(float(score), 1.0)), 4)


@dataclass(frozen=True)
class FieldData:
    """A single candidate value for a field, as offered to a merge strategy."""

    value: Any
    confidence: float
    source: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass
class ValidationResult:
    """Outcome of one field validator. ``score`` is always within [0, 1]."""

    is_valid: bool
    score: float
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def rejected(cls, **details) -> 'ValidationResult':
        return cls(is_valid=False, score=0.0, details=details)

    @classmethod
    def from_score(cls, score: float, details: Dict[str, Any],
                   valid_at: float = 0.5) -> 'ValidationResult':
        score = clamp_score(score)
        return cls(is_valid=score >= valid_at, score=score, details=details)


@dataclass
class ConfidenceScore:
    value: float
    method: str
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class ContactConfidence:
    """Current confidence of a stored contact: overall plus per field."""

    overall: ConfidenceScore
    fields: Dict[str, ConfidenceScore] = field(default_factory=dict)

    def get(self, field_name: str) -> Optional[ConfidenceScore]:
        return self.fields.get(field_name)


class ConfidenceLevel(str, enum.Enum):
    HIGH = 'high'
    MODERATE = 'moderate'
    LOW = 'low'


class MergeStrategy(str, enum.Enum):
    MAX = 'max'
    WEIGHTED = 'weighted'
    AVERAGE = 'average'
    FIRST = 'first'
    LAST = 'last'
