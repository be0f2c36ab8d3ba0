"""Show change-log statistics for a user."""
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from contacts.sync.django_store import DjangoSyncStore
from contacts.sync.store import StoreError
from contacts.sync.sync_manager import SyncManager


class Command(BaseCommand):
    help = "Print change counts over a trailing window, the outdated-contact backlog and the next run."

    def add_arguments(self, parser):
        parser.add_argument('user_id', type=str, help='Owning user id (UUID).')
        parser.add_argument('--days', type=int, default=30, help='Window in days (default: 30).')

    def handle(self, *args, **options):
        manager = SyncManager(DjangoSyncStore(), options['user_id'], aggregator=None)
        try:
            stats = async_to_sync(manager.get_sync_stats)(options['days'])
        except StoreError as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(f"Last {stats.days} days:")
        self.stdout.write(f"  total changes:     {stats.total_changes}")
        self.stdout.write(f"  pending:           {stats.pending_changes}")
        self.stdout.write(f"  completed:         {stats.completed_changes}")
        self.stdout.write(f"  failed:            {stats.failed_changes}")
        self.stdout.write(f"Outdated contacts:   {stats.outdated_contacts}")
        next_run = stats.next_sync_run.isoformat() if stats.next_sync_run else "not scheduled"
        self.stdout.write(f"Next sync run:       {next_run}")
