"""
Selective field re-enrichment.

Given a batch of detected changes, the enricher opens one scoped
``selective_field_enrichment`` job for the batch, then re-enriches each
changed field through a per-field routine:

    bio       topic / sentiment / persona extraction
    username  profile rescan through the configured ProfileScanner
    location  geocoding (falls back to a small table of known cities)
    email     format and domain classification
    other     accepted as-is at 0.7

Each attempt appends a field_enrichment_history row and then resolves the
field on the contact (confidence merged into metadata, field removed
from ``outdated_fields``, ``sync_status`` recomputed).
"""

import asyncio
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from django.utils import timezone
from pydantic import BaseModel

from contacts.confidence.lookups import Geocoder, LookupFailed, ProfileScanner, bounded
from contacts.sync.schemas import (
    BioFieldMetadata,
    ContactSyncStatus,
    EmailFieldMetadata,
    FieldEnrichmentHistoryRecord,
    LocationFieldMetadata,
    Priority,
    SyncChangeLogEntry,
    UsernameFieldMetadata,
)
from contacts.sync.change_detector import ChangeDetector
from contacts.sync.store import SyncStore

logger = logging.getLogger(__name__)

SELECTIVE_JOB_TYPE = 'selective_field_enrichment'

# What re-enriching each field involves; the union over a batch is the job scope.
FIELD_CAPABILITIES = {
    'bio': ('persona_analysis', 'topic_extraction'),
    'username': ('profile_scan', 'social_verification'),
    'location': ('geocoding', 'timezone_detection'),
    'email': ('email_validation', 'domain_analysis'),
    'name': ('name_validation', 'cultural_analysis'),
    'phone': ('phone_validation', 'carrier_lookup'),
    'profile_url': ('url_validation', 'profile_extraction'),
}

BIO_TOPICS = (
    (('entrepreneur', 'founder'), 'entrepreneur'),
    (('teacher', 'educator'), 'education'),
    (('developer', 'programmer'), 'tech'),
    (('influencer', 'creator'), 'content'),
)
POSITIVE_WORDS = ('love', 'passionate', 'excited', 'amazing', 'great')
NEGATIVE_WORDS = ('hate', 'frustrated', 'tired', 'difficult')
PERSONA_INDICATORS = (
    (('mom', 'mother'), 'parent'),
    (('ceo', 'founder'), 'executive'),
    (('artist', 'creative'), 'creative'),
)

FREE_MAIL_DOMAINS = frozenset({'gmail.com', 'yahoo.com', 'hotmail.com', 'outlook.com'})
SIMPLE_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

# Used when no geocoder is configured.
KNOWN_LOCATIONS = {
    'new york': LocationFieldMetadata(lat=40.7128, lng=-74.0060, timezone='America/New_York'),
    'london': LocationFieldMetadata(lat=51.5074, lng=-0.1278, timezone='Europe/London'),
    'san francisco': LocationFieldMetadata(lat=37.7749, lng=-122.4194, timezone='America/Los_Angeles'),
}


@dataclass
class FieldEnrichment:
    """Outcome of one field routine."""

    value: Any
    confidence: float
    method: str
    data_source: str
    metadata: Optional[BaseModel] = None


def _word_in(text: str, words: Sequence[str]) -> bool:
    return any(re.search(r'\b' + re.escape(w) + r'\b', text) for w in words)


class SmartEnricher:
    def __init__(self, store: SyncStore, user_id: str,
                 geocoder: Optional[Geocoder] = None,
                 profile_scanner: Optional[ProfileScanner] = None,
                 detector: Optional[ChangeDetector] = None):
        self.store = store
        self.user_id = user_id
        self.geocoder = geocoder
        self.profile_scanner = profile_scanner
        self.detector = detector or ChangeDetector(store, user_id)
        self._routines: Dict[str, Callable[[str, Any], Awaitable[FieldEnrichment]]] = {
            'bio': self._enrich_bio,
            'username': self._enrich_username,
            'location': self._enrich_location,
            'email': self._enrich_email,
        }
        self._contact_locks: Dict[str, asyncio.Lock] = {}
        self._locks_loop = None

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    @staticmethod
    def enrichment_scope(changes: Sequence[SyncChangeLogEntry]) -> List[str]:
        scope = []
        for change in changes:
            for capability in FIELD_CAPABILITIES.get(change.field_name, ()):
                if capability not in scope:
                    scope.append(capability)
        return scope

    async def create_scoped_enrichment_job(self, changes: Sequence[SyncChangeLogEntry],
                                           priority=Priority.NORMAL) -> str:
        """Open one job for ``changes`` and move them to processing. Returns the job id."""
        priority = Priority(priority)
        grouped: Dict[str, List[Dict[str, Any]]] = OrderedDict()
        for change in changes:
            grouped.setdefault(change.contact_id, []).append({
                'change_id': change.id,
                'field_name': change.field_name,
                'old_value': change.old_value,
                'new_value': change.new_value,
                'confidence_before': change.confidence_before,
            })

        job = (await self.store.create_enrichment_job(self.user_id, {
            'job_type': SELECTIVE_JOB_TYPE,
            'status': 'pending',
            'target_table': 'contacts',
            'parameters': {
                'kind': SELECTIVE_JOB_TYPE,
                'changes': grouped,
                'scope': self.enrichment_scope(changes),
                'priority': priority.value,
                'selective_fields': sorted({c.field_name for c in changes}),
                'trigger': 'sync_change_detection',
            },
            'progress': 0,
        })).unwrap()

        await self.detector.mark_changes_processing([c.id for c in changes], job.id)
        logger.info("Scoped %s job %s: %d changes across %d contacts",
                    priority.value, job.id, len(changes), len(grouped))
        return job.id

    # ------------------------------------------------------------------
    # Field enrichment
    # ------------------------------------------------------------------

    async def process_field_enrichment(self, contact_id: str, field_name: str, new_value: Any,
                                       job_id: Optional[str] = None) -> FieldEnrichmentHistoryRecord:
        """
        Enrich one field and resolve it on the contact.

        The history row is written first and is never rolled back; the
        contact update is a primary mutation and raises StoreError on
        failure.
        """
        routine = self._routines.get(field_name, self._passthrough)
        enrichment = await routine(contact_id, new_value)

        history = (await self.store.insert_enrichment_history(self.user_id, {
            'contact_id': contact_id,
            'field_name': field_name,
            'enrichment_method': enrichment.method,
            'confidence_score': enrichment.confidence,
            'data_source': enrichment.data_source,
            'enriched_value': None if enrichment.value is None else str(enrichment.value),
            'enrichment_job_id': job_id,
        })).unwrap()

        await self._resolve_field(contact_id, field_name, enrichment)
        return history

    def _lock_for(self, contact_id: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if loop is not self._locks_loop:
            self._contact_locks = {}
            self._locks_loop = loop
        return self._contact_locks.setdefault(contact_id, asyncio.Lock())

    async def _resolve_field(self, contact_id: str, field_name: str,
                             enrichment: FieldEnrichment) -> None:
        # changes to one contact in the same batch must not overwrite each other
        async with self._lock_for(contact_id):
            contact = (await self.store.get_contact(self.user_id, contact_id)).unwrap()
            metadata = contact.metadata.model_copy(deep=True)
            metadata.confidence_scores[field_name] = enrichment.confidence
            if enrichment.metadata is not None:
                metadata.field_metadata[field_name] = enrichment.metadata

            outdated = [f for f in contact.outdated_fields if f != field_name]
            status = ContactSyncStatus.PARTIAL if outdated else ContactSyncStatus.SYNCED
            changes = {
                field_name: enrichment.value,
                'metadata': metadata.model_dump(mode='json'),
                'outdated_fields': outdated,
                'sync_status': status,
            }
            if not outdated:
                changes['last_sync_at'] = timezone.now()
            (await self.store.update_contact(self.user_id, contact_id, changes)).unwrap()

    # ------------------------------------------------------------------
    # Field routines
    # ------------------------------------------------------------------

    async def _enrich_bio(self, contact_id: str, bio: Any) -> FieldEnrichment:
        text = str(bio or '')
        lowered = text.lower()

        topics = [topic for words, topic in BIO_TOPICS if _word_in(lowered, words)]
        positive = sum(1 for w in POSITIVE_WORDS if _word_in(lowered, (w,)))
        negative = sum(1 for w in NEGATIVE_WORDS if _word_in(lowered, (w,)))
        if positive > negative:
            sentiment = 'positive'
        elif negative > positive:
            sentiment = 'negative'
        else:
            sentiment = 'neutral'
        personas = [persona for words, persona in PERSONA_INDICATORS if _word_in(lowered, words)]

        return FieldEnrichment(
            value=bio,
            confidence=0.8,
            method='ai_bio_analysis',
            data_source='gemini_ai',
            metadata=BioFieldMetadata(
                topics=topics,
                sentiment=sentiment,
                persona_indicators=personas,
                word_count=len(text.split()),
            ),
        )

    async def _enrich_username(self, contact_id: str, username: Any) -> FieldEnrichment:
        platform = None
        found = await self.store.get_contact(self.user_id, contact_id)
        if found.ok:
            platform = found.value.platform

        if not platform or self.profile_scanner is None:
            return FieldEnrichment(username, 0.6, 'basic_validation', 'internal')

        try:
            scan = await bounded(self.profile_scanner.scan(str(username), platform))
        except LookupFailed as exc:
            logger.info("Profile scan for %s on %s failed: %s", username, platform, exc)
            return FieldEnrichment(username, 0.5, 'profile_rescan', 'social_scraping')

        metadata = UsernameFieldMetadata(
            platform=platform,
            verified=bool(scan.get('verified')),
            follower_count=scan.get('follower_count'),
            post_count=scan.get('post_count'),
            last_active=scan.get('last_active'),
        )
        confidence = 0.9 if scan.get('exists') else 0.3
        return FieldEnrichment(username, confidence, 'profile_rescan', 'social_scraping', metadata)

    async def _enrich_location(self, contact_id: str, location: Any) -> FieldEnrichment:
        text = str(location or '').strip()
        if self.geocoder is None:
            normalized = ' '.join(text.lower().split())
            for city, known in KNOWN_LOCATIONS.items():
                if city in normalized:
                    return FieldEnrichment(text, 0.9, 'geo_enrichment', 'internal', known.model_copy())
            return FieldEnrichment(text, 0.6, 'geo_enrichment', 'internal')

        try:
            result = await bounded(self.geocoder.geocode(text))
        except LookupFailed as exc:
            logger.info("Geocoding %r failed: %s", text, exc)
            return FieldEnrichment(location, 0.5, 'geo_enrichment', 'geocoding_api')

        if result is None:
            return FieldEnrichment(text, 0.6, 'geo_enrichment', 'geocoding_api')
        return FieldEnrichment(
            text, 0.9, 'geo_enrichment', 'geocoding_api',
            LocationFieldMetadata(
                lat=result.lat,
                lng=result.lng,
                formatted_address=result.formatted_address,
                place_id=result.place_id,
                location_type=result.location_type,
            ),
        )

    async def _enrich_email(self, contact_id: str, email: Any) -> FieldEnrichment:
        address = str(email or '').strip().lower()
        if not SIMPLE_EMAIL_RE.match(address):
            return FieldEnrichment(email, 0.3, 'email_validation', 'email_api',
                                   EmailFieldMetadata(is_valid=False))

        domain = address.rsplit('@', 1)[1]
        is_business = domain not in FREE_MAIL_DOMAINS
        return FieldEnrichment(
            email, 0.9 if is_business else 0.8, 'email_validation', 'email_api',
            EmailFieldMetadata(is_valid=True, domain=domain, is_business_email=is_business),
        )

    async def _passthrough(self, contact_id: str, value: Any) -> FieldEnrichment:
        return FieldEnrichment(value, 0.7, 'basic_validation', 'internal')
