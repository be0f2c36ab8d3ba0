"""
Resolve conflicting values for one field.

``merge_confidence`` picks a winner from several candidate observations;
``choose_value`` decides whether a single new observation should replace
the stored one. Which strategy applies is a fixed per-field policy:
identity fields (email, phone, location) keep the most confident source,
bios follow the newest observation, names and usernames blend.
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from contacts.confidence.types import FieldData, MergeStrategy

FIELD_MERGE_STRATEGIES: Dict[str, MergeStrategy] = {
    'email': MergeStrategy.MAX,
    'name': MergeStrategy.WEIGHTED,
    'bio': MergeStrategy.LAST,
    'location': MergeStrategy.MAX,
    'phone': MergeStrategy.MAX,
    'username': MergeStrategy.WEIGHTED,
}

WEIGHTED_REPLACE_MARGIN = 0.15
AVERAGE_TIE_MARGIN = 0.1


def get_merge_strategy_for_field(field_name: str) -> MergeStrategy:
    return FIELD_MERGE_STRATEGIES.get(field_name, MergeStrategy.MAX)


def _most_confident(values: Sequence[FieldData]) -> FieldData:
    # max() keeps the first of equal candidates
    return max(values, key=lambda v: v.confidence)


def merge_confidence(values: Sequence[FieldData], strategy=MergeStrategy.MAX) -> FieldData:
    """
    Pick one FieldData out of ``values`` according to ``strategy``.

    - max: most confident candidate, unchanged
    - weighted: most confident value, confidence sum(c^2) / sum(c)
    - average: most confident value, mean confidence
    - first / last: earliest / latest timestamped candidate; falls back to
      max when no candidate carries a timestamp

    A single candidate is returned as is, whatever the strategy.
    """
    if not values:
        raise ValueError("merge_confidence needs at least one candidate")
    if len(values) == 1:
        return values[0]

    strategy = MergeStrategy(strategy)
    best = _most_confident(values)

    if strategy is MergeStrategy.WEIGHTED:
        total = sum(v.confidence for v in values)
        if total <= 0:
            return best
        return replace(best, confidence=sum(v.confidence ** 2 for v in values) / total)

    if strategy is MergeStrategy.AVERAGE:
        return replace(best, confidence=sum(v.confidence for v in values) / len(values))

    if strategy in (MergeStrategy.FIRST, MergeStrategy.LAST):
        dated = [v for v in values if v.timestamp is not None]
        if not dated:
            return best
        pick = min if strategy is MergeStrategy.FIRST else max
        return pick(dated, key=lambda v: v.timestamp)

    return best


def choose_value(existing: Any, existing_confidence: float,
                 new: Any, new_confidence: float,
                 strategy) -> Tuple[Any, float]:
    """Return the (value, confidence) pair that should be kept."""
    strategy = MergeStrategy(strategy)
    keep = (existing, existing_confidence)
    take = (new, new_confidence)

    # nothing stored yet
    if not existing:
        return take

    if strategy is MergeStrategy.MAX:
        return take if new_confidence > existing_confidence else keep
    if strategy is MergeStrategy.WEIGHTED:
        return take if new_confidence - existing_confidence > WEIGHTED_REPLACE_MARGIN else keep
    if strategy is MergeStrategy.LAST:
        return take
    if strategy is MergeStrategy.FIRST:
        return keep
    # average
    if abs(new_confidence - existing_confidence) < AVERAGE_TIE_MARGIN:
        return keep
    return take if new_confidence > existing_confidence else keep


def merge_field_values(
    candidates: Dict[str, List[FieldData]],
    strategies: Optional[Dict[str, MergeStrategy]] = None,
) -> Dict[str, FieldData]:
    """Merge candidates for several fields at once using the per-field policy."""
    strategies = strategies or {}
    merged = {}
    for field_name, values in candidates.items():
        if not values:
            continue
        strategy = strategies.get(field_name) or get_merge_strategy_for_field(field_name)
        merged[field_name] = merge_confidence(values, strategy)
    return merged
