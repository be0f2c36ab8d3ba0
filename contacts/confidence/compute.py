"""
Record-level confidence.

Scores every present field through the validator registry (concurrently),
combines them into one overall score with fixed field weights, and queues
a re-enrichment job when the record, or any single field, falls below
its threshold.

Weighting is renormalized over the fields actually present: a record
with only email and name is scored as
``(email * 0.25 + name * 0.20) / 0.45``, absent fields never count as
zeros.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from django.utils import timezone

from contacts.confidence.registry import ValidatorRegistry, default_registry
from contacts.confidence.types import (
    ConfidenceLevel,
    ConfidenceScore,
    ContactConfidence,
)
from contacts.sync.schemas import ContactRecord, EnrichmentJobRecord, Priority
from contacts.sync.store import SyncStore

logger = logging.getLogger(__name__)

CONFIDENCE_FIELDS = ('email', 'name', 'location', 'bio', 'phone', 'username')

FIELD_WEIGHTS = {
    'email': 0.25,
    'name': 0.20,
    'location': 0.15,
    'bio': 0.15,
    'phone': 0.15,
    'username': 0.10,
}

CONFIDENCE_THRESHOLDS = {
    'email': 0.5,
    'name': 0.6,
    'location': 0.4,
    'bio': 0.5,
    'phone': 0.6,
    'username': 0.5,
}
OVERALL_THRESHOLD = 0.5

REENRICHMENT_JOB_TYPE = 'confidence_reenrichment'


# ---------------------------------------------------------------------------
# Pure policy helpers
# ---------------------------------------------------------------------------

def weighted_overall(scores: Mapping[str, float]) -> float:
    """Weighted mean over the weighted fields present in ``scores`` (0 if none)."""
    present = [f for f in scores if f in FIELD_WEIGHTS]
    total_weight = sum(FIELD_WEIGHTS[f] for f in present)
    if not total_weight:
        return 0.0
    return sum(scores[f] * FIELD_WEIGHTS[f] for f in present) / total_weight


def fields_below_threshold(scores: Mapping[str, float]) -> List[str]:
    return [
        f for f in CONFIDENCE_FIELDS
        if f in scores and scores[f] < CONFIDENCE_THRESHOLDS[f]
    ]


def should_trigger_reenrichment(scores: Mapping[str, float], overall: float) -> bool:
    return overall < OVERALL_THRESHOLD or bool(fields_below_threshold(scores))


def get_confidence_level(score: float) -> ConfidenceLevel:
    if score >= 0.9:
        return ConfidenceLevel.HIGH
    if score >= 0.7:
        return ConfidenceLevel.MODERATE
    return ConfidenceLevel.LOW


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class ConfidenceAggregator:
    """
    Computes and persists contact confidence.

    Args:
        store: SyncStore used for confidence logs, jobs and contact reads.
        registry: field -> validator table; defaults to the six standard
            validators with production lookups.
    """

    def __init__(self, store: SyncStore, registry: Optional[ValidatorRegistry] = None):
        self.store = store
        self.registry = registry if registry is not None else default_registry()

    async def compute_confidence(self, record: Mapping[str, Any], source_type: str,
                                 user_id: str) -> Dict[str, Any]:
        """
        Score ``record`` and return a copy carrying the results.

        The copy has ``confidence_<field>`` for every scored field,
        ``contact_score`` (overall), and in ``metadata``:
        ``confidence_scores`` (per-field map) and ``confidence_calculation``
        (timestamp, source, overall). Confidence log writes are advisory;
        queuing the re-enrichment job is not.
        """
        contact_id = record.get('id')
        fields = [f for f in CONFIDENCE_FIELDS if f in self.registry and record.get(f)]

        results = await asyncio.gather(*(
            self._score_field(user_id, contact_id, f, record[f]) for f in fields
        ))
        scores = dict(zip(fields, results))

        overall = weighted_overall(scores)
        scored = dict(record)
        for field_name, score in scores.items():
            scored[f'confidence_{field_name}'] = score
        scored['contact_score'] = overall

        metadata = dict(record.get('metadata') or {})
        metadata['confidence_scores'] = scores
        metadata['confidence_calculation'] = {
            'timestamp': timezone.now().isoformat(),
            'source': source_type,
            'overall': overall,
        }
        scored['metadata'] = metadata

        if should_trigger_reenrichment(scores, overall):
            if contact_id:
                await self.queue_reenrichment(user_id, contact_id, scores, overall)
            else:
                logger.warning("Low confidence record has no id; re-enrichment not queued")

        return scored

    async def _score_field(self, user_id: str, contact_id: Optional[str],
                           field_name: str, raw: Any) -> float:
        result = await self.registry.validate(field_name, raw)
        if contact_id:
            logged = await self.store.insert_confidence_log(user_id, {
                'contact_id': contact_id,
                'field_name': field_name,
                'confidence': result.score,
                'calc_method': self.registry.method_for(field_name),
            })
            if not logged.ok:
                logger.warning("Could not log %s confidence for %s: %s",
                               field_name, contact_id, logged.error)
        return result.score

    async def queue_reenrichment(self, user_id: str, contact_id: str,
                                 scores: Mapping[str, float], overall: float) -> EnrichmentJobRecord:
        """Create one confidence_reenrichment job for the under-threshold fields."""
        low_fields = fields_below_threshold(scores)
        priority = Priority.HIGH if 'email' in low_fields else Priority.NORMAL
        job = (await self.store.create_enrichment_job(user_id, {
            'job_type': REENRICHMENT_JOB_TYPE,
            'status': 'pending',
            'target_table': 'contacts',
            'target_id': contact_id,
            'parameters': {
                'kind': REENRICHMENT_JOB_TYPE,
                'fields_to_enrich': low_fields,
                'current_scores': dict(scores),
                'overall_confidence': overall,
                'trigger': 'low_confidence',
                'priority': priority.value,
            },
            'progress': 0,
        })).unwrap()
        logger.info("Queued re-enrichment %s for contact %s (overall %.2f, fields %s)",
                    job.id, contact_id, overall, low_fields)
        return job

    async def score_contact(self, user_id: str, contact_id: str,
                            source_type: str = 'rescore') -> ContactRecord:
        """Load a stored contact, score it, and write the scores back."""
        contact = (await self.store.get_contact(user_id, contact_id)).unwrap()
        scored = await self.compute_confidence(contact.model_dump(mode='json'), source_type, user_id)
        scores = scored['metadata']['confidence_scores']
        changes = {f'confidence_{f}': scores.get(f) for f in CONFIDENCE_FIELDS}
        changes['contact_score'] = scored['contact_score']
        changes['metadata'] = scored['metadata']
        return (await self.store.update_contact(user_id, contact_id, changes)).unwrap()

    async def get_contact_confidence(self, user_id: str, contact_id: str) -> Optional[ContactConfidence]:
        """Current stored confidence of a contact, or None if it was never scored."""
        result = await self.store.get_contact(user_id, contact_id)
        if not result.ok:
            logger.warning("Could not load contact %s: %s", contact_id, result.error)
            return None
        contact = result.value
        calculation = contact.metadata.confidence_calculation
        if contact.contact_score is None and calculation is None:
            return None

        stamp = calculation.timestamp if calculation else (contact.updated_at or timezone.now())
        source = calculation.source if calculation else 'unknown'
        fields = {}
        for field_name in CONFIDENCE_FIELDS:
            value = getattr(contact, f'confidence_{field_name}')
            if value is None:
                value = contact.metadata.confidence_scores.get(field_name)
            if value is None:
                continue
            fields[field_name] = ConfidenceScore(
                value=value,
                method=self.registry.method_for(field_name) if field_name in self.registry
                else f'{field_name}_validation',
                timestamp=stamp,
            )
        overall = contact.contact_score
        if overall is None:
            overall = calculation.overall
        return ContactConfidence(
            overall=ConfidenceScore(value=overall, method='weighted_average', timestamp=stamp,
                                    metadata={'source': source}),
            fields=fields,
        )

    async def get_field_confidence_history(self, user_id: str, contact_id: str,
                                           field_name: str, limit: int = 10) -> List[ConfidenceScore]:
        """Logged confidence values for one field, newest first."""
        result = await self.store.list_confidence_log(user_id, contact_id, field_name, limit)
        if not result.ok:
            logger.warning("Could not read confidence history for %s.%s: %s",
                           contact_id, field_name, result.error)
            return []
        return [
            ConfidenceScore(value=row.confidence, method=row.calc_method, timestamp=row.created_at)
            for row in result.value
        ]
