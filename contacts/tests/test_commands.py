"""Tests for the contacts management commands."""

from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import call_command

from contacts.models import Contact, SyncChangeLog, SyncJob

pytestmark = pytest.mark.django_db


def _call(*args, **kwargs):
    out, err = StringIO(), StringIO()
    call_command(*args, stdout=out, stderr=err, **kwargs)
    return out.getvalue(), err.getvalue()


class TestCreateSyncJob:

    def test_cron_job(self, user_id):
        out, _ = _call('create_sync_job', user_id, 'nightly')
        job = SyncJob.objects.get(user_id=user_id)
        assert job.job_name == 'nightly'
        assert job.schedule_expression == '0 0 * * *'
        assert job.next_run_at.hour == 0
        assert 'Created sync job' in out

    def test_manual_job(self, user_id):
        _call('create_sync_job', user_id, 'ad hoc', '--type', 'manual')
        assert SyncJob.objects.get(user_id=user_id).next_run_at is None


class TestRunSync:

    def test_processes_pending_changes(self, user_id):
        contact = Contact.objects.create(user_id=user_id, bio='old bio', outdated_fields=['bio'],
                                         sync_status='outdated')
        SyncChangeLog.objects.create(
            user_id=user_id, contact=contact, field_name='bio', old_value='old bio',
            new_value='A developer and founder', confidence_before=0.5, change_source='manual',
        )

        out, _ = _call('run_sync', user_id, '--no-rescore')

        assert 'Sync: 1 processed, 0 failed' in out
        contact.refresh_from_db()
        assert contact.bio == 'A developer and founder'
        assert contact.sync_status == 'synced'


class TestScoreContacts:

    def test_scores_every_contact(self, user_id, registry):
        Contact.objects.create(user_id=user_id, name='Jane Smith', email='jane.smith@acmecorp.com')
        Contact.objects.create(user_id=user_id, name='Test User', email='x@tempmail.org')

        with patch("contacts.confidence.compute.default_registry", return_value=registry):
            out, err = _call('score_contacts', user_id)

        assert 'Scored 2 contacts, 0 failed' in out
        assert err == ''
        assert not Contact.objects.filter(user_id=user_id, contact_score__isnull=True).exists()

    def test_unknown_contact_reported(self, user_id, registry):
        with patch("contacts.confidence.compute.default_registry", return_value=registry):
            out, err = _call('score_contacts', user_id, '--contact-id', 'not-a-uuid')
        assert 'Scored 0 contacts, 1 failed' in out
        assert 'not-a-uuid' in err


class TestSyncStats:

    def test_prints_counts(self, user_id):
        contact = Contact.objects.create(user_id=user_id, name='Jane Smith')
        SyncChangeLog.objects.create(user_id=user_id, contact=contact, field_name='bio',
                                     change_source='scrape')
        out, _ = _call('sync_stats', user_id, '--days', '7')
        assert 'Last 7 days:' in out
        assert 'pending:           1' in out
        assert 'Outdated contacts:   0' in out
        assert 'Next sync run:       not scheduled' in out
