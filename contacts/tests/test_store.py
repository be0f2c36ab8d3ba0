"""Tests for StoreResult and the in-memory SyncStore."""

import asyncio
from datetime import timedelta

import pytest
from django.utils import timezone

from contacts.sync.schemas import ContactSyncStatus, SyncStatus
from contacts.sync.store import InvalidTransition, StoreError, StoreResult


class TestStoreResult:

    def test_success(self):
        result = StoreResult.success(5)
        assert result.ok
        assert result.unwrap() == 5

    def test_failure_wraps_message(self):
        result = StoreResult.failure('boom')
        assert not result.ok
        assert isinstance(result.error, StoreError)
        with pytest.raises(StoreError, match='boom'):
            result.unwrap()

    def test_failure_keeps_subclass(self):
        result = StoreResult.failure(InvalidTransition('backwards'))
        with pytest.raises(InvalidTransition):
            result.unwrap()


class TestContacts:

    def test_update_and_read(self, store, user_id):
        contact = store.add_contact(user_id, name='Jane Smith')
        updated = asyncio.run(store.update_contact(user_id, contact.id, {
            'sync_status': 'outdated', 'outdated_fields': ['bio'],
        })).unwrap()
        assert updated.sync_status is ContactSyncStatus.OUTDATED
        assert asyncio.run(store.get_contact(user_id, contact.id)).value.outdated_fields == ['bio']

    def test_update_keeps_updated_at(self, store, user_id):
        contact = store.add_contact(user_id, name='Jane Smith')
        updated = asyncio.run(store.update_contact(user_id, contact.id, {'bio': 'new'})).unwrap()
        assert updated.updated_at == contact.updated_at

    def test_unknown_column_rejected(self, store, user_id):
        contact = store.add_contact(user_id, name='Jane Smith')
        result = asyncio.run(store.update_contact(user_id, contact.id, {'favourite_colour': 'red'}))
        assert not result.ok
        assert 'unknown columns' in str(result.error)

    def test_invalid_metadata_rejected(self, store, user_id):
        contact = store.add_contact(user_id, name='Jane Smith')
        result = asyncio.run(store.update_contact(user_id, contact.id, {
            'metadata': {'confidence_scores': {'email': 'very high'}},
        }))
        assert not result.ok
        assert store.contacts[contact.id].metadata.confidence_scores == {}

    def test_other_tenant_cannot_read_or_write(self, store, user_id):
        contact = store.add_contact('other-user', name='Jane Smith')
        assert not asyncio.run(store.get_contact(user_id, contact.id)).ok
        assert not asyncio.run(store.update_contact(user_id, contact.id, {'bio': 'x'})).ok
        assert asyncio.run(store.list_contact_ids(user_id)).value == []

    def test_count_by_status(self, store, user_id):
        store.add_contact(user_id, sync_status='outdated')
        store.add_contact(user_id)
        assert asyncio.run(store.count_contacts(user_id)).value == 2
        assert asyncio.run(store.count_contacts(user_id, 'outdated')).value == 1


class TestChangeLog:

    def _entry(self, store, user_id, contact_id, field='bio'):
        return asyncio.run(store.insert_change_log(user_id, {
            'contact_id': contact_id, 'field_name': field, 'new_value': 'x',
            'change_source': 'scrape',
        })).unwrap()

    def test_insert_requires_owned_contact(self, store, user_id):
        contact = store.add_contact('other-user')
        result = asyncio.run(store.insert_change_log(user_id, {
            'contact_id': contact.id, 'field_name': 'bio', 'change_source': 'scrape',
        }))
        assert not result.ok

    def test_invalid_source_rejected(self, store, user_id):
        contact = store.add_contact(user_id)
        result = asyncio.run(store.insert_change_log(user_id, {
            'contact_id': contact.id, 'field_name': 'bio', 'change_source': 'carrier_pigeon',
        }))
        assert not result.ok

    def test_forward_transitions(self, store, user_id):
        contact = store.add_contact(user_id)
        entry = self._entry(store, user_id, contact.id)
        asyncio.run(store.update_change_status(user_id, [entry.id], 'processing',
                                               enrichment_job_id='job-1')).unwrap()
        asyncio.run(store.update_change_status(user_id, [entry.id], 'completed')).unwrap()
        stored = store.change_logs[entry.id]
        assert stored.sync_status is SyncStatus.COMPLETED
        assert stored.enrichment_job_id == 'job-1'

    def test_regression_rejected_for_whole_batch(self, store, user_id):
        contact = store.add_contact(user_id)
        done = self._entry(store, user_id, contact.id)
        fresh = self._entry(store, user_id, contact.id, 'email')
        asyncio.run(store.update_change_status(user_id, [done.id], 'failed')).unwrap()

        result = asyncio.run(store.update_change_status(user_id, [fresh.id, done.id], 'processing'))
        assert isinstance(result.error, InvalidTransition)
        assert store.change_logs[fresh.id].sync_status is SyncStatus.PENDING

    def test_list_filters_and_order(self, store, user_id):
        contact = store.add_contact(user_id)
        other = store.add_contact(user_id)
        now = timezone.now()
        older = asyncio.run(store.insert_change_log(user_id, {
            'contact_id': contact.id, 'field_name': 'bio', 'change_source': 'scrape',
            'detected_at': now - timedelta(minutes=5),
        })).unwrap()
        newer = asyncio.run(store.insert_change_log(user_id, {
            'contact_id': contact.id, 'field_name': 'email', 'change_source': 'scrape',
            'detected_at': now,
        })).unwrap()
        self._entry(store, user_id, other.id)

        listed = asyncio.run(store.list_change_logs(user_id, contact_id=contact.id, newest_first=True)).value
        assert [e.id for e in listed] == [newer.id, older.id]
        limited = asyncio.run(store.list_change_logs(user_id, contact_id=contact.id, limit=1)).value
        assert [e.id for e in limited] == [older.id]
        assert asyncio.run(store.count_change_logs(user_id, 'pending')).value == 3
        recent = asyncio.run(store.count_change_logs(user_id, since=now - timedelta(minutes=1))).value
        assert recent == 2

    def test_confidence_after(self, store, user_id):
        contact = store.add_contact(user_id)
        entry = self._entry(store, user_id, contact.id)
        asyncio.run(store.set_change_confidence_after(user_id, entry.id, 0.8)).unwrap()
        assert store.change_logs[entry.id].confidence_after == 0.8


class TestJobs:

    def test_progress_never_decreases(self, store, user_id):
        job = asyncio.run(store.create_enrichment_job(user_id, {'job_type': 'x'})).unwrap()
        asyncio.run(store.update_enrichment_job(user_id, job.id, {'progress': 60})).unwrap()
        updated = asyncio.run(store.update_enrichment_job(user_id, job.id, {'progress': 20})).unwrap()
        assert updated.progress == 60

    def test_progress_out_of_range_rejected(self, store, user_id):
        job = asyncio.run(store.create_enrichment_job(user_id, {'job_type': 'x'})).unwrap()
        assert not asyncio.run(store.update_enrichment_job(user_id, job.id, {'progress': 150})).ok

    def test_list_by_type(self, store, user_id):
        asyncio.run(store.create_enrichment_job(user_id, {'job_type': 'a'}))
        asyncio.run(store.create_enrichment_job(user_id, {'job_type': 'b'}))
        asyncio.run(store.create_enrichment_job('other-user', {'job_type': 'a'}))
        assert len(asyncio.run(store.list_enrichment_jobs(user_id, 'a')).value) == 1

    def test_next_active_sync_job(self, store, user_id):
        now = timezone.now()
        asyncio.run(store.create_sync_job(user_id, {
            'job_name': 'later', 'sync_type': 'cron', 'next_run_at': now + timedelta(hours=6),
        }))
        soon = asyncio.run(store.create_sync_job(user_id, {
            'job_name': 'soon', 'sync_type': 'cron', 'next_run_at': now + timedelta(hours=1),
        })).unwrap()
        asyncio.run(store.create_sync_job(user_id, {
            'job_name': 'paused', 'sync_type': 'cron', 'status': 'paused', 'next_run_at': now,
        }))
        assert asyncio.run(store.next_active_sync_job(user_id)).value.id == soon.id

    def test_no_active_sync_job(self, store, user_id):
        assert asyncio.run(store.next_active_sync_job(user_id)).value is None
