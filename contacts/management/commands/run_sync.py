"""Run one contact sync pass for a user."""
import json

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from contacts.sync.django_store import DjangoSyncStore
from contacts.sync.store import StoreError
from contacts.sync.sync_manager import SyncManager


class Command(BaseCommand):
    help = "Detect pending contact changes for a user and re-enrich them by priority."

    def add_arguments(self, parser):
        parser.add_argument('user_id', type=str, help='Owning user id (UUID).')
        parser.add_argument('--job-id', type=str, default=None,
                            help='Sync job whose statistics should be updated.')
        parser.add_argument('--days-back', type=int, default=None,
                            help='Detection window in days (default: CONTACT_SYNC DEFAULT_DAYS_BACK).')
        parser.add_argument('--no-rescore', action='store_true',
                            help='Skip recomputing contact confidence after enrichment.')

    def handle(self, *args, **options):
        kwargs = {'days_back': options['days_back']}
        if options['no_rescore']:
            kwargs['aggregator'] = None
        manager = SyncManager(DjangoSyncStore(), options['user_id'], **kwargs)

        try:
            stats = async_to_sync(manager.run_sync)(options['job_id'])
        except StoreError as exc:
            raise CommandError(f"Sync failed: {exc}") from exc

        self.stdout.write(json.dumps(stats.model_dump(mode='json'), indent=2))
        style = self.style.SUCCESS if not stats.failed_changes else self.style.WARNING
        self.stdout.write(style(
            f"Sync: {stats.completed_changes} processed, {stats.failed_changes} failed"
        ))
