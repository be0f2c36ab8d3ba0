"""
Tests for record-level confidence (contacts.confidence.compute).

Covers:
- weighted overall score renormalized over present fields
- thresholds and the re-enrichment trigger
- compute_confidence: per-field scores, metadata, confidence logs, queued jobs
- score_contact persistence and read-back helpers
- advisory vs primary store failures
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from contacts.confidence.compute import (
    REENRICHMENT_JOB_TYPE,
    fields_below_threshold,
    get_confidence_level,
    should_trigger_reenrichment,
    weighted_overall,
)
from contacts.confidence.types import ConfidenceLevel
from contacts.sync.schemas import Priority, ReenrichmentParameters
from contacts.sync.store import StoreError, StoreResult


# ===================================================================
# Pure helpers
# ===================================================================

class TestWeightedOverall:

    def test_renormalized_over_present_fields(self):
        overall = weighted_overall({'email': 0.8, 'name': 0.6})
        assert overall == pytest.approx((0.8 * 0.25 + 0.6 * 0.20) / 0.45)

    def test_all_fields(self):
        scores = {f: 1.0 for f in ('email', 'name', 'location', 'bio', 'phone', 'username')}
        assert weighted_overall(scores) == pytest.approx(1.0)

    def test_no_fields_is_zero(self):
        assert weighted_overall({}) == 0.0

    def test_unweighted_fields_ignored(self):
        assert weighted_overall({'email': 0.4, 'profile_url': 1.0}) == pytest.approx(0.4)


class TestThresholds:

    def test_fields_below_threshold_in_field_order(self):
        scores = {'phone': 0.5, 'email': 0.3, 'name': 0.9, 'location': 0.39}
        assert fields_below_threshold(scores) == ['email', 'location', 'phone']

    def test_threshold_is_exclusive(self):
        assert fields_below_threshold({'email': 0.5, 'name': 0.6}) == []

    def test_trigger(self):
        assert should_trigger_reenrichment({'email': 0.45}, 0.6) is True
        assert should_trigger_reenrichment({'email': 0.9}, 0.49) is True
        assert should_trigger_reenrichment({'email': 0.9}, 0.9) is False

    def test_confidence_level(self):
        assert get_confidence_level(0.95) is ConfidenceLevel.HIGH
        assert get_confidence_level(0.9) is ConfidenceLevel.HIGH
        assert get_confidence_level(0.7) is ConfidenceLevel.MODERATE
        assert get_confidence_level(0.69) is ConfidenceLevel.LOW


# ===================================================================
# compute_confidence
# ===================================================================

class TestComputeConfidence:

    def test_low_quality_import_queues_high_priority_job(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, email='x@tempmail.org', name='Test User')
        record = contact.model_dump(mode='json')

        scored = asyncio.run(aggregator.compute_confidence(record, 'import', user_id))

        assert scored['confidence_email'] == pytest.approx(0.3)
        assert scored['confidence_name'] == pytest.approx(0.55)
        assert scored['contact_score'] == pytest.approx((0.3 * 0.25 + 0.55 * 0.2) / 0.45)
        assert scored['contact_score'] < 0.5

        jobs = list(store.enrichment_jobs.values())
        assert len(jobs) == 1
        job = jobs[0]
        assert job.job_type == REENRICHMENT_JOB_TYPE
        assert job.target_id == contact.id
        assert isinstance(job.parameters, ReenrichmentParameters)
        assert job.parameters.fields_to_enrich == ['email', 'name']
        assert job.parameters.priority is Priority.HIGH
        assert job.parameters.trigger == 'low_confidence'

    def test_clean_contact_queues_nothing(self, store, aggregator, user_id, sample_contact_data):
        data = dict(sample_contact_data)
        data.pop('phone')
        contact = store.add_contact(user_id, **data)

        scored = asyncio.run(aggregator.compute_confidence(
            contact.model_dump(mode='json'), 'scrape', user_id,
        ))

        assert scored['contact_score'] > 0.8
        assert set(scored['metadata']['confidence_scores']) == {
            'email', 'name', 'location', 'bio', 'username',
        }
        assert store.enrichment_jobs == {}

    def test_absent_fields_not_scored(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, email='jane.smith@acmecorp.com', name='Jane Smith')
        scored = asyncio.run(aggregator.compute_confidence(
            contact.model_dump(mode='json'), 'import', user_id,
        ))
        assert 'confidence_phone' not in scored
        assert scored['contact_score'] == pytest.approx((1.0 * 0.25 + 0.85 * 0.2) / 0.45)

    def test_metadata_calculation_and_extra_keys(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, name='Jane Smith', metadata={'source_note': 'csv'})
        scored = asyncio.run(aggregator.compute_confidence(
            contact.model_dump(mode='json'), 'import', user_id,
        ))
        metadata = scored['metadata']
        assert metadata['source_note'] == 'csv'
        assert metadata['confidence_calculation']['source'] == 'import'
        assert metadata['confidence_calculation']['overall'] == scored['contact_score']

    def test_each_scored_field_is_logged(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, email='x@tempmail.org', name='Test User')
        asyncio.run(aggregator.compute_confidence(contact.model_dump(mode='json'), 'import', user_id))
        logged = {(row.field_name, row.calc_method) for row in store.confidence_log}
        assert logged == {('email', 'email_validation'), ('name', 'name_validation')}

    def test_record_without_id_is_scored_but_not_logged(self, store, aggregator, user_id):
        scored = asyncio.run(aggregator.compute_confidence(
            {'email': 'x@tempmail.org', 'name': 'Test User'}, 'import', user_id,
        ))
        assert scored['contact_score'] < 0.5
        assert store.confidence_log == []
        assert store.enrichment_jobs == {}

    def test_confidence_log_failure_is_advisory(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, email='x@tempmail.org', name='Test User')
        failing = AsyncMock(return_value=StoreResult.failure('log table unavailable'))
        with patch.object(store, 'insert_confidence_log', failing):
            scored = asyncio.run(aggregator.compute_confidence(
                contact.model_dump(mode='json'), 'import', user_id,
            ))
        assert failing.await_count == 2
        assert scored['confidence_email'] == pytest.approx(0.3)
        assert len(store.enrichment_jobs) == 1

    def test_job_creation_failure_propagates(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, email='x@tempmail.org', name='Test User')
        failing = AsyncMock(return_value=StoreResult.failure('jobs table unavailable'))
        with patch.object(store, 'create_enrichment_job', failing):
            with pytest.raises(StoreError, match='jobs table unavailable'):
                asyncio.run(aggregator.compute_confidence(
                    contact.model_dump(mode='json'), 'import', user_id,
                ))


# ===================================================================
# Stored contacts
# ===================================================================

class TestScoreContact:

    def test_scores_written_back(self, store, aggregator, user_id, sample_contact_data):
        contact = store.add_contact(user_id, **sample_contact_data)
        updated = asyncio.run(aggregator.score_contact(user_id, contact.id))

        assert updated.confidence_email == pytest.approx(1.0)
        assert updated.confidence_name == pytest.approx(0.85)
        assert updated.contact_score is not None
        assert updated.metadata.confidence_calculation.source == 'rescore'
        assert store.contacts[contact.id].contact_score == updated.contact_score

    def test_absent_field_confidence_cleared(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, name='Jane Smith', confidence_phone=0.9)
        updated = asyncio.run(aggregator.score_contact(user_id, contact.id))
        assert updated.confidence_phone is None
        assert 'phone' not in updated.metadata.confidence_scores

    def test_unknown_contact_raises(self, aggregator, user_id):
        with pytest.raises(StoreError):
            asyncio.run(aggregator.score_contact(user_id, 'missing'))

    def test_get_contact_confidence(self, store, aggregator, user_id, sample_contact_data):
        contact = store.add_contact(user_id, **sample_contact_data)
        updated = asyncio.run(aggregator.score_contact(user_id, contact.id))

        confidence = asyncio.run(aggregator.get_contact_confidence(user_id, contact.id))
        assert confidence.overall.value == updated.contact_score
        assert confidence.overall.metadata == {'source': 'rescore'}
        assert confidence.get('email').method == 'email_validation'
        assert confidence.get('email').value == pytest.approx(1.0)

    def test_never_scored_contact_has_no_confidence(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, name='Jane Smith')
        assert asyncio.run(aggregator.get_contact_confidence(user_id, contact.id)) is None

    def test_other_users_contact_is_invisible(self, store, aggregator, user_id):
        contact = store.add_contact('someone-else', name='Jane Smith', contact_score=0.9)
        assert asyncio.run(aggregator.get_contact_confidence(user_id, contact.id)) is None

    def test_field_history_newest_first(self, store, aggregator, user_id):
        contact = store.add_contact(user_id, email='jane.smith@acmecorp.com')
        asyncio.run(aggregator.score_contact(user_id, contact.id))
        store.contacts[contact.id] = store.contacts[contact.id].model_copy(
            update={'email': 'x@tempmail.org'},
        )
        asyncio.run(aggregator.score_contact(user_id, contact.id))

        history = asyncio.run(aggregator.get_field_confidence_history(user_id, contact.id, 'email'))
        assert [h.value for h in history] == [pytest.approx(0.3), pytest.approx(1.0)]
        assert all(h.method == 'email_validation' for h in history)
