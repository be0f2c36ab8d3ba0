"""Compute and store confidence scores for a user's contacts."""
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from contacts.confidence.compute import ConfidenceAggregator, get_confidence_level
from contacts.sync.django_store import DjangoSyncStore
from contacts.sync.store import StoreError


class Command(BaseCommand):
    help = "Score contact fields, store the confidence, and queue re-enrichment for weak records."

    def add_arguments(self, parser):
        parser.add_argument('user_id', type=str, help='Owning user id (UUID).')
        parser.add_argument('--contact-id', type=str, default=None,
                            help='Score a single contact instead of all of them.')
        parser.add_argument('--source', type=str, default='manual',
                            help='Source label stored with the calculation (default: manual).')
        parser.add_argument('--limit', type=int, default=0, help='Max contacts to score (0 = all).')

    def handle(self, *args, **options):
        store = DjangoSyncStore()
        aggregator = ConfidenceAggregator(store)
        user_id = options['user_id']

        if options['contact_id']:
            contact_ids = [options['contact_id']]
        else:
            try:
                contact_ids = async_to_sync(store.list_contact_ids)(user_id).unwrap()
            except StoreError as exc:
                raise CommandError(str(exc)) from exc
        if options['limit']:
            contact_ids = contact_ids[:options['limit']]

        scored = failed = 0
        for contact_id in contact_ids:
            try:
                contact = async_to_sync(aggregator.score_contact)(user_id, contact_id, options['source'])
            except StoreError as exc:
                failed += 1
                self.stderr.write(f"{contact_id}: {exc}")
                continue
            scored += 1
            level = get_confidence_level(contact.contact_score or 0.0)
            self.stdout.write(f"{contact_id}: {contact.contact_score:.2f} ({level.value})")

        self.stdout.write(self.style.SUCCESS(f"Scored {scored} contacts, {failed} failed"))
