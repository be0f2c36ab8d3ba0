"""
Persistence interface for the sync engine.

Every store call returns a ``StoreResult`` instead of raising, and every
call is scoped to one owning user id. Callers decide per call site what a
failure means:

- primary mutations (contact updates, change-log status flips, job
  creation) call ``.unwrap()`` so the failure propagates
- advisory writes (confidence logs, history, statistics) log the error
  and carry on

``InMemorySyncStore`` is the reference implementation used by tests and
offline tooling; ``contacts.sync.django_store.DjangoSyncStore`` backs the
real tables.
"""

import abc
import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar, Union

from django.utils import timezone
from pydantic import BaseModel, ValidationError

from contacts.sync.schemas import (
    ContactRecord,
    EnrichmentJobRecord,
    FieldConfidenceLogRecord,
    FieldEnrichmentHistoryRecord,
    SyncChangeLogEntry,
    SyncJobRecord,
    SyncJobStatus,
    SyncStatus,
    is_allowed_transition,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


class StoreError(Exception):
    """A store call failed."""


class InvalidTransition(StoreError):
    """A change-log status update would move an entry backwards."""


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> 'StoreResult[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: Union[str, StoreError]) -> 'StoreResult[T]':
        if not isinstance(error, StoreError):
            error = StoreError(error)
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


def check_transition(current, new) -> None:
    if not is_allowed_transition(current, new):
        raise InvalidTransition(
            f"sync_status cannot move from {SyncStatus(current).value} to {SyncStatus(new).value}"
        )


class SyncStore(abc.ABC):
    """Data-store operations the engine needs. All queries are per user."""

    # -- contacts ----------------------------------------------------------

    @abc.abstractmethod
    async def get_contact(self, user_id: str, contact_id: str) -> StoreResult[ContactRecord]:
        ...

    @abc.abstractmethod
    async def update_contact(self, user_id: str, contact_id: str,
                             changes: Dict[str, Any]) -> StoreResult[ContactRecord]:
        """Apply column changes. ``updated_at`` only moves when passed explicitly."""

    @abc.abstractmethod
    async def list_contacts_needing_sync(self, user_id: str,
                                         updated_since: datetime) -> StoreResult[List[ContactRecord]]:
        """Contacts updated after ``updated_since`` whose last sync is missing or older."""

    @abc.abstractmethod
    async def list_contact_ids(self, user_id: str) -> StoreResult[List[str]]:
        ...

    @abc.abstractmethod
    async def count_contacts(self, user_id: str,
                             sync_status: Optional[str] = None) -> StoreResult[int]:
        ...

    # -- change log --------------------------------------------------------

    @abc.abstractmethod
    async def insert_change_log(self, user_id: str,
                                entry: Dict[str, Any]) -> StoreResult[SyncChangeLogEntry]:
        ...

    @abc.abstractmethod
    async def list_change_logs(self, user_id: str, contact_id: Optional[str] = None,
                               sync_status: Optional[str] = None,
                               newest_first: bool = False,
                               limit: Optional[int] = None) -> StoreResult[List[SyncChangeLogEntry]]:
        ...

    @abc.abstractmethod
    async def count_change_logs(self, user_id: str, sync_status: Optional[str] = None,
                                since: Optional[datetime] = None,
                                since_field: str = 'detected_at') -> StoreResult[int]:
        ...

    @abc.abstractmethod
    async def update_change_status(self, user_id: str, change_ids: Iterable[str], status: str,
                                   enrichment_job_id: Optional[str] = None,
                                   processed_at: Optional[datetime] = None) -> StoreResult[int]:
        """Move entries to ``status``; fails with InvalidTransition on regression."""

    @abc.abstractmethod
    async def set_change_confidence_after(self, user_id: str, change_id: str,
                                          confidence: float) -> StoreResult[None]:
        ...

    # -- append-only history -----------------------------------------------

    @abc.abstractmethod
    async def insert_enrichment_history(
            self, user_id: str, entry: Dict[str, Any]) -> StoreResult[FieldEnrichmentHistoryRecord]:
        ...

    @abc.abstractmethod
    async def insert_confidence_log(
            self, user_id: str, entry: Dict[str, Any]) -> StoreResult[FieldConfidenceLogRecord]:
        ...

    @abc.abstractmethod
    async def list_confidence_log(self, user_id: str, contact_id: str, field_name: str,
                                  limit: int = 10) -> StoreResult[List[FieldConfidenceLogRecord]]:
        """Newest first."""

    # -- enrichment jobs ---------------------------------------------------

    @abc.abstractmethod
    async def create_enrichment_job(self, user_id: str,
                                    job: Dict[str, Any]) -> StoreResult[EnrichmentJobRecord]:
        ...

    @abc.abstractmethod
    async def get_enrichment_job(self, user_id: str, job_id: str) -> StoreResult[EnrichmentJobRecord]:
        ...

    @abc.abstractmethod
    async def update_enrichment_job(self, user_id: str, job_id: str,
                                    changes: Dict[str, Any]) -> StoreResult[EnrichmentJobRecord]:
        """Progress never decreases: a lower value is ignored."""

    @abc.abstractmethod
    async def list_enrichment_jobs(self, user_id: str,
                                   job_type: Optional[str] = None) -> StoreResult[List[EnrichmentJobRecord]]:
        ...

    # -- sync jobs ---------------------------------------------------------

    @abc.abstractmethod
    async def create_sync_job(self, user_id: str, job: Dict[str, Any]) -> StoreResult[SyncJobRecord]:
        ...

    @abc.abstractmethod
    async def get_sync_job(self, user_id: str, job_id: str) -> StoreResult[SyncJobRecord]:
        ...

    @abc.abstractmethod
    async def update_sync_job(self, user_id: str, job_id: str,
                              changes: Dict[str, Any]) -> StoreResult[SyncJobRecord]:
        ...

    @abc.abstractmethod
    async def next_active_sync_job(self, user_id: str) -> StoreResult[Optional[SyncJobRecord]]:
        """Active job with the earliest ``next_run_at``, or None."""


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


def _apply(record: BaseModel, changes: Dict[str, Any]) -> BaseModel:
    """Return a re-validated copy of ``record`` with ``changes`` applied."""
    data = record.model_dump()
    unknown = set(changes) - set(type(record).model_fields)
    if unknown:
        raise StoreError(f"unknown columns: {sorted(unknown)}")
    data.update(changes)
    return type(record).model_validate(data)


class InMemorySyncStore(SyncStore):
    """Dict-backed store. Records are kept as validated pydantic models."""

    def __init__(self):
        self.contacts: Dict[str, ContactRecord] = {}
        self.change_logs: Dict[str, SyncChangeLogEntry] = {}
        self.enrichment_history: List[FieldEnrichmentHistoryRecord] = []
        self.confidence_log: List[FieldConfidenceLogRecord] = []
        self.enrichment_jobs: Dict[str, EnrichmentJobRecord] = {}
        self.sync_jobs: Dict[str, SyncJobRecord] = {}

    def add_contact(self, user_id: str, **fields) -> ContactRecord:
        """Seed a contact directly (tests, fixtures, imports)."""
        now = timezone.now()
        fields.setdefault('id', _new_id())
        fields.setdefault('created_at', now)
        fields.setdefault('updated_at', now)
        record = ContactRecord.model_validate({**fields, 'user_id': user_id})
        self.contacts[record.id] = record
        return record

    def _owned(self, table: Dict[str, Any], user_id: str, key: str, label: str):
        record = table.get(key)
        if record is None or record.user_id != user_id:
            raise StoreError(f"{label} {key} not found")
        return record

    # -- contacts ----------------------------------------------------------

    async def get_contact(self, user_id, contact_id):
        try:
            return StoreResult.success(self._owned(self.contacts, user_id, contact_id, 'contact'))
        except StoreError as exc:
            return StoreResult.failure(exc)

    async def update_contact(self, user_id, contact_id, changes):
        try:
            current = self._owned(self.contacts, user_id, contact_id, 'contact')
            updated = _apply(current, copy.deepcopy(changes))
        except StoreError as exc:
            return StoreResult.failure(exc)
        except ValidationError as exc:
            return StoreResult.failure(f"invalid contact update: {exc}")
        self.contacts[contact_id] = updated
        return StoreResult.success(updated)

    async def list_contacts_needing_sync(self, user_id, updated_since):
        found = [
            c for c in self.contacts.values()
            if c.user_id == user_id
            and c.updated_at is not None and c.updated_at >= updated_since
            and (c.last_sync_at is None or c.last_sync_at < c.updated_at)
        ]
        return StoreResult.success(found)

    async def list_contact_ids(self, user_id):
        return StoreResult.success([c.id for c in self.contacts.values() if c.user_id == user_id])

    async def count_contacts(self, user_id, sync_status=None):
        return StoreResult.success(sum(
            1 for c in self.contacts.values()
            if c.user_id == user_id and (sync_status is None or c.sync_status == sync_status)
        ))

    # -- change log --------------------------------------------------------

    async def insert_change_log(self, user_id, entry):
        try:
            self._owned(self.contacts, user_id, entry.get('contact_id'), 'contact')
            record = SyncChangeLogEntry.model_validate({
                'id': _new_id(),
                'detected_at': timezone.now(),
                **entry,
                'user_id': user_id,
            })
        except StoreError as exc:
            return StoreResult.failure(exc)
        except ValidationError as exc:
            return StoreResult.failure(f"invalid change log entry: {exc}")
        self.change_logs[record.id] = record
        return StoreResult.success(record)

    async def list_change_logs(self, user_id, contact_id=None, sync_status=None,
                               newest_first=False, limit=None):
        entries = [
            e for e in self.change_logs.values()
            if e.user_id == user_id
            and (contact_id is None or e.contact_id == contact_id)
            and (sync_status is None or e.sync_status == sync_status)
        ]
        entries.sort(key=lambda e: e.detected_at, reverse=newest_first)
        if limit is not None:
            entries = entries[:limit]
        return StoreResult.success(entries)

    async def count_change_logs(self, user_id, sync_status=None, since=None,
                                since_field='detected_at'):
        count = 0
        for entry in self.change_logs.values():
            if entry.user_id != user_id:
                continue
            if sync_status is not None and entry.sync_status != sync_status:
                continue
            if since is not None:
                stamp = getattr(entry, since_field)
                if stamp is None or stamp < since:
                    continue
            count += 1
        return StoreResult.success(count)

    async def update_change_status(self, user_id, change_ids, status, enrichment_job_id=None,
                                   processed_at=None):
        change_ids = list(change_ids)
        try:
            entries = [self._owned(self.change_logs, user_id, cid, 'change') for cid in change_ids]
            for entry in entries:
                check_transition(entry.sync_status, status)
        except StoreError as exc:
            return StoreResult.failure(exc)

        changes: Dict[str, Any] = {'sync_status': status}
        if enrichment_job_id is not None:
            changes['enrichment_job_id'] = enrichment_job_id
        if processed_at is not None:
            changes['processed_at'] = processed_at
        for entry in entries:
            self.change_logs[entry.id] = _apply(entry, changes)
        return StoreResult.success(len(entries))

    async def set_change_confidence_after(self, user_id, change_id, confidence):
        try:
            entry = self._owned(self.change_logs, user_id, change_id, 'change')
        except StoreError as exc:
            return StoreResult.failure(exc)
        self.change_logs[change_id] = _apply(entry, {'confidence_after': confidence})
        return StoreResult.success()

    # -- append-only history -----------------------------------------------

    async def insert_enrichment_history(self, user_id, entry):
        try:
            record = FieldEnrichmentHistoryRecord.model_validate({
                'id': _new_id(), 'enriched_at': timezone.now(), **entry, 'user_id': user_id,
            })
        except ValidationError as exc:
            return StoreResult.failure(f"invalid enrichment history entry: {exc}")
        self.enrichment_history.append(record)
        return StoreResult.success(record)

    async def insert_confidence_log(self, user_id, entry):
        try:
            record = FieldConfidenceLogRecord.model_validate({
                'id': _new_id(), 'created_at': timezone.now(), **entry, 'user_id': user_id,
            })
        except ValidationError as exc:
            return StoreResult.failure(f"invalid confidence log entry: {exc}")
        self.confidence_log.append(record)
        return StoreResult.success(record)

    async def list_confidence_log(self, user_id, contact_id, field_name, limit=10):
        rows = [
            r for r in self.confidence_log
            if r.user_id == user_id and r.contact_id == contact_id and r.field_name == field_name
        ]
        # stable sort keeps insertion order for equal timestamps; newest first
        rows = sorted(reversed(rows), key=lambda r: r.created_at, reverse=True)
        return StoreResult.success(rows[:limit])

    # -- enrichment jobs ---------------------------------------------------

    async def create_enrichment_job(self, user_id, job):
        try:
            record = EnrichmentJobRecord.model_validate({
                'id': _new_id(), 'created_at': timezone.now(), **job, 'user_id': user_id,
            })
        except ValidationError as exc:
            return StoreResult.failure(f"invalid enrichment job: {exc}")
        self.enrichment_jobs[record.id] = record
        return StoreResult.success(record)

    async def get_enrichment_job(self, user_id, job_id):
        try:
            return StoreResult.success(self._owned(self.enrichment_jobs, user_id, job_id, 'job'))
        except StoreError as exc:
            return StoreResult.failure(exc)

    async def update_enrichment_job(self, user_id, job_id, changes):
        try:
            current = self._owned(self.enrichment_jobs, user_id, job_id, 'job')
            changes = dict(changes)
            if 'progress' in changes:
                changes['progress'] = max(current.progress, changes['progress'])
            updated = _apply(current, changes)
        except StoreError as exc:
            return StoreResult.failure(exc)
        except ValidationError as exc:
            return StoreResult.failure(f"invalid job update: {exc}")
        self.enrichment_jobs[job_id] = updated
        return StoreResult.success(updated)

    async def list_enrichment_jobs(self, user_id, job_type=None):
        return StoreResult.success([
            j for j in self.enrichment_jobs.values()
            if j.user_id == user_id and (job_type is None or j.job_type == job_type)
        ])

    # -- sync jobs ---------------------------------------------------------

    async def create_sync_job(self, user_id, job):
        now = timezone.now()
        try:
            record = SyncJobRecord.model_validate({
                'id': _new_id(), 'created_at': now, 'updated_at': now, **job, 'user_id': user_id,
            })
        except ValidationError as exc:
            return StoreResult.failure(f"invalid sync job: {exc}")
        self.sync_jobs[record.id] = record
        return StoreResult.success(record)

    async def get_sync_job(self, user_id, job_id):
        try:
            return StoreResult.success(self._owned(self.sync_jobs, user_id, job_id, 'sync job'))
        except StoreError as exc:
            return StoreResult.failure(exc)

    async def update_sync_job(self, user_id, job_id, changes):
        try:
            current = self._owned(self.sync_jobs, user_id, job_id, 'sync job')
            updated = _apply(current, {**changes, 'updated_at': timezone.now()})
        except StoreError as exc:
            return StoreResult.failure(exc)
        except ValidationError as exc:
            return StoreResult.failure(f"invalid sync job update: {exc}")
        self.sync_jobs[job_id] = updated
        return StoreResult.success(updated)

    async def next_active_sync_job(self, user_id):
        active = [
            j for j in self.sync_jobs.values()
            if j.user_id == user_id and j.status == SyncJobStatus.ACTIVE and j.next_run_at is not None
        ]
        if not active:
            return StoreResult.success(None)
        return StoreResult.success(min(active, key=lambda j: j.next_run_at))
