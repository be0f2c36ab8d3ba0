"""Create a recurring or manual sync job for a user."""
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from contacts.sync.django_store import DjangoSyncStore
from contacts.sync.schemas import SyncType
from contacts.sync.store import StoreError
from contacts.sync.sync_manager import SyncManager


class Command(BaseCommand):
    help = "Create a sync job (cron jobs get their first next_run_at computed)."

    def add_arguments(self, parser):
        parser.add_argument('user_id', type=str, help='Owning user id (UUID).')
        parser.add_argument('job_name', type=str)
        parser.add_argument('--type', dest='sync_type', default=SyncType.CRON.value,
                            choices=[t.value for t in SyncType])
        parser.add_argument('--schedule', type=str, default='0 0 * * *',
                            help="Schedule expression: '0 0 * * *' (daily) or '0 */6 * * *'.")

    def handle(self, *args, **options):
        manager = SyncManager(DjangoSyncStore(), options['user_id'], aggregator=None)
        try:
            job = async_to_sync(manager.create_sync_job)(
                options['job_name'],
                sync_type=options['sync_type'],
                schedule_expression=options['schedule'],
            )
        except StoreError as exc:
            raise CommandError(f"Could not create sync job: {exc}") from exc
        self.stdout.write(self.style.SUCCESS(
            f"Created sync job {job.id} ({job.sync_type.value}), next run {job.next_run_at}"
        ))
