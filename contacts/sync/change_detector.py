"""
Field-level change detection for contacts.

Two entry points:

- ``compare_and_log_changes`` diffs an incoming payload against the stored
  values, writes one pending change-log row per differing syncable field
  and marks the contact outdated.
- ``detect_changes`` reports the pending change-log rows of every contact
  touched within a window that has not been synced since.

Change-log rows move pending -> processing -> completed / failed and are
never deleted; the status helpers here only ever move them forward.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Iterable, List, Mapping, Optional

from django.utils import timezone

from contacts.conf import get_sync_setting
from contacts.sync.schemas import (
    SYNCABLE_FIELDS,
    ChangeSource,
    ContactSyncStatus,
    SyncChangeLogEntry,
    SyncStatus,
)
from contacts.sync.store import SyncStore

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_BEFORE = 0.5


def _is_empty(value: Any) -> bool:
    return value is None or value == ''


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class ChangeDetector:
    def __init__(self, store: SyncStore, user_id: str):
        self.store = store
        self.user_id = user_id

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def detect_changes(self, days_back: Optional[int] = None) -> List[SyncChangeLogEntry]:
        """Pending changes of contacts updated in the last ``days_back`` days and not yet synced."""
        if days_back is None:
            days_back = get_sync_setting("DEFAULT_DAYS_BACK")
        since = timezone.now() - timedelta(days=days_back)
        contacts = (await self.store.list_contacts_needing_sync(self.user_id, since)).unwrap()
        logger.info("Checking %d contacts updated since %s", len(contacts), since.isoformat())

        per_contact = await asyncio.gather(
            *(self.detect_contact_changes(contact.id) for contact in contacts)
        )
        return [change for changes in per_contact for change in changes]

    async def detect_contact_changes(self, contact_id: str) -> List[SyncChangeLogEntry]:
        return (await self.store.list_change_logs(
            self.user_id, contact_id=contact_id, sync_status=SyncStatus.PENDING, newest_first=True,
        )).unwrap()

    async def compare_and_log_changes(self, contact_id: str, current_data: Mapping[str, Any],
                                      new_data: Mapping[str, Any],
                                      source: str) -> List[SyncChangeLogEntry]:
        """
        Log one pending change per syncable field whose value differs.

        Fields are handled one at a time so the contact's
        ``outdated_fields`` list is read and written without interleaving.
        ``confidence_before`` comes from the stored per-field confidence
        (metadata scores first, then the ``confidence_<field>`` column),
        defaulting to 0.5.
        """
        source = ChangeSource(source)
        contact = (await self.store.get_contact(self.user_id, contact_id)).unwrap()
        stored_scores = contact.metadata.confidence_scores

        logged = []
        for field_name in SYNCABLE_FIELDS:
            old_value = current_data.get(field_name)
            new_value = new_data.get(field_name)
            if old_value == new_value or (_is_empty(old_value) and _is_empty(new_value)):
                continue

            before = stored_scores.get(field_name)
            if before is None:
                before = getattr(contact, f'confidence_{field_name}', None)
            if before is None:
                before = DEFAULT_CONFIDENCE_BEFORE

            entry = (await self.store.insert_change_log(self.user_id, {
                'contact_id': contact_id,
                'field_name': field_name,
                'old_value': _as_text(old_value),
                'new_value': _as_text(new_value),
                'confidence_before': before,
                'change_source': source,
                'sync_status': SyncStatus.PENDING,
            })).unwrap()
            await self._mark_contact_outdated(contact_id, field_name)
            logged.append(entry)

        if logged:
            logger.info("Logged %d changes for contact %s from %s",
                        len(logged), contact_id, source.value)
        return logged

    async def _mark_contact_outdated(self, contact_id: str, field_name: str) -> None:
        contact = (await self.store.get_contact(self.user_id, contact_id)).unwrap()
        outdated = list(contact.outdated_fields)
        if field_name not in outdated:
            outdated.append(field_name)
        (await self.store.update_contact(self.user_id, contact_id, {
            'sync_status': ContactSyncStatus.OUTDATED,
            'outdated_fields': outdated,
            'updated_at': timezone.now(),
        })).unwrap()

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def get_pending_changes(self, contact_id: Optional[str] = None,
                                  limit: Optional[int] = 100) -> List[SyncChangeLogEntry]:
        """Pending changes in detection order, oldest first."""
        return (await self.store.list_change_logs(
            self.user_id, contact_id=contact_id, sync_status=SyncStatus.PENDING,
            limit=limit,
        )).unwrap()

    async def mark_changes_processing(self, change_ids: Iterable[str], job_id: str) -> int:
        return (await self.store.update_change_status(
            self.user_id, change_ids, SyncStatus.PROCESSING, enrichment_job_id=job_id,
        )).unwrap()

    async def mark_changes_processed(self, change_ids: Iterable[str],
                                     job_id: Optional[str] = None) -> int:
        change_ids = list(change_ids)
        if not change_ids:
            return 0
        return (await self.store.update_change_status(
            self.user_id, change_ids, SyncStatus.COMPLETED,
            enrichment_job_id=job_id, processed_at=timezone.now(),
        )).unwrap()

    async def mark_change_failed(self, change_id: str, error: str = '') -> None:
        (await self.store.update_change_status(
            self.user_id, [change_id], SyncStatus.FAILED, processed_at=timezone.now(),
        )).unwrap()
        logger.warning("Change %s failed: %s", change_id, error)

    async def count_outdated_contacts(self) -> int:
        return (await self.store.count_contacts(self.user_id, ContactSyncStatus.OUTDATED)).unwrap()
