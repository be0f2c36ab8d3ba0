"""
Tests for field-level change detection (contacts.sync.change_detector).

Covers:
- one pending change per differing syncable field, contact marked outdated
- confidence_before resolution order and default
- empty-vs-empty and unchanged fields are skipped
- detection window and last_sync_at filtering
- forward-only status helpers
"""

import asyncio
from datetime import timedelta

import pytest
from django.utils import timezone

from contacts.sync.change_detector import ChangeDetector
from contacts.sync.schemas import ContactSyncStatus, SyncStatus
from contacts.sync.store import InvalidTransition


@pytest.fixture
def detector(store, user_id):
    return ChangeDetector(store, user_id)


def _log(detector, contact, new_data, source='scrape'):
    current = contact.model_dump(mode='json')
    return asyncio.run(detector.compare_and_log_changes(contact.id, current, new_data, source))


class TestCompareAndLogChanges:

    def test_logs_each_changed_field(self, store, detector, user_id):
        contact = store.add_contact(user_id, name='Jane Smith', bio='old bio', email='jane@old.com')
        changes = _log(detector, contact, {
            'name': 'Jane Smith', 'bio': 'new bio', 'email': 'jane@acmecorp.com',
        })

        assert [(c.field_name, c.old_value, c.new_value) for c in changes] == [
            ('bio', 'old bio', 'new bio'),
            ('email', 'jane@old.com', 'jane@acmecorp.com'),
        ]
        assert all(c.sync_status is SyncStatus.PENDING for c in changes)
        stored = store.contacts[contact.id]
        assert stored.sync_status is ContactSyncStatus.OUTDATED
        assert stored.outdated_fields == ['bio', 'email']
        assert stored.last_sync_at is None

    def test_unchanged_payload_logs_nothing(self, store, detector, user_id):
        contact = store.add_contact(user_id, name='Jane Smith', bio='bio')
        assert _log(detector, contact, contact.model_dump(mode='json')) == []
        assert store.change_logs == {}
        assert store.contacts[contact.id].sync_status is ContactSyncStatus.SYNCED

    def test_empty_to_empty_skipped(self, store, detector, user_id):
        contact = store.add_contact(user_id, name='Jane Smith', bio=None)
        assert _log(detector, contact, {'name': 'Jane Smith', 'bio': ''}) == []

    def test_cleared_field_is_a_change(self, store, detector, user_id):
        contact = store.add_contact(user_id, name='Jane Smith', location='London, UK')
        changes = _log(detector, contact, {'name': 'Jane Smith', 'location': None})
        assert [(c.field_name, c.new_value) for c in changes] == [('location', None)]

    def test_repeated_change_logs_again_without_duplicate_outdated(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='old bio')
        _log(detector, contact, {'bio': 'new bio'})
        _log(detector, contact, {'bio': 'new bio'})
        assert len(store.change_logs) == 2
        assert store.contacts[contact.id].outdated_fields == ['bio']

    def test_confidence_before_resolution(self, store, detector, user_id):
        contact = store.add_contact(
            user_id, email='a@old.com', name='Old Name', bio='old bio',
            confidence_name=0.65, metadata={'confidence_scores': {'email': 0.8}},
        )
        changes = _log(detector, contact, {
            'email': 'a@new.com', 'name': 'New Name', 'bio': 'new bio',
        })
        before = {c.field_name: c.confidence_before for c in changes}
        assert before == {'email': 0.8, 'name': 0.65, 'bio': 0.5}

    def test_invalid_source_rejected(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='old bio')
        with pytest.raises(ValueError):
            _log(detector, contact, {'bio': 'new'}, source='rumour')

    def test_non_syncable_fields_ignored(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='bio text')
        assert _log(detector, contact, {'bio': 'bio text', 'platform': 'twitter'}) == []


class TestDetectChanges:

    def test_window_and_sync_filters(self, store, detector, user_id):
        now = timezone.now()
        fresh, synced, stale = (store.add_contact(user_id, bio='old') for _ in range(3))
        store.add_contact('other-user', bio='old')
        for contact in (fresh, synced, stale):
            _log(detector, contact, {'bio': 'new'})
        # backdate as if these were touched earlier
        for contact, timestamps in (
            (synced, {'updated_at': now - timedelta(hours=2), 'last_sync_at': now - timedelta(hours=1)}),
            (stale, {'updated_at': now - timedelta(days=60)}),
        ):
            store.contacts[contact.id] = store.contacts[contact.id].model_copy(update=timestamps)

        detected = asyncio.run(detector.detect_changes(30))
        assert [c.contact_id for c in detected] == [fresh.id]

    def test_new_change_on_synced_contact_is_included(self, store, detector, user_id):
        now = timezone.now()
        contact = store.add_contact(user_id, bio='old', updated_at=now - timedelta(days=2),
                                    last_sync_at=now - timedelta(days=1))
        _log(detector, contact, {'bio': 'new'})
        assert store.contacts[contact.id].updated_at > contact.last_sync_at
        assert len(asyncio.run(detector.detect_changes(7))) == 1

    def test_only_pending_changes_reported(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='old', email='a@old.com')
        changes = _log(detector, contact, {'bio': 'new', 'email': 'a@new.com'})
        asyncio.run(detector.mark_change_failed(changes[0].id, 'gone'))
        detected = asyncio.run(detector.detect_changes())
        assert [c.field_name for c in detected] == ['email']

    def test_contact_changes_newest_first(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='old', email='a@old.com')
        older, newer = _log(detector, contact, {'bio': 'new', 'email': 'a@new.com'})
        store.change_logs[older.id] = older.model_copy(
            update={'detected_at': older.detected_at - timedelta(minutes=5)},
        )
        found = asyncio.run(detector.detect_contact_changes(contact.id))
        assert [c.id for c in found] == [newer.id, older.id]


class TestStatusHelpers:

    def test_processing_then_processed(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='old')
        change = _log(detector, contact, {'bio': 'new'})[0]

        asyncio.run(detector.mark_changes_processing([change.id], 'job-1'))
        assert store.change_logs[change.id].sync_status is SyncStatus.PROCESSING
        asyncio.run(detector.mark_changes_processed([change.id], 'job-1'))

        stored = store.change_logs[change.id]
        assert stored.sync_status is SyncStatus.COMPLETED
        assert stored.processed_at is not None

    def test_processed_with_no_ids_is_noop(self, detector):
        assert asyncio.run(detector.mark_changes_processed([])) == 0

    def test_completed_cannot_regress(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='old')
        change = _log(detector, contact, {'bio': 'new'})[0]
        asyncio.run(detector.mark_changes_processing([change.id], 'job-1'))
        asyncio.run(detector.mark_changes_processed([change.id]))
        with pytest.raises(InvalidTransition):
            asyncio.run(detector.mark_changes_processing([change.id], 'job-2'))

    def test_pending_changes_oldest_first(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='old')
        first = _log(detector, contact, {'bio': 'a'})[0]
        second = _log(detector, contact, {'bio': 'b'})[0]
        pending = asyncio.run(detector.get_pending_changes(contact.id))
        assert {p.id for p in pending} == {first.id, second.id}
        assert pending[0].detected_at <= pending[1].detected_at
        assert len(asyncio.run(detector.get_pending_changes(limit=1))) == 1

    def test_count_outdated(self, store, detector, user_id):
        contact = store.add_contact(user_id, bio='old')
        store.add_contact(user_id, bio='fine')
        _log(detector, contact, {'bio': 'new'})
        assert asyncio.run(detector.count_outdated_contacts()) == 1
