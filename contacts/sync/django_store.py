"""
SyncStore backed by the Django ORM (async query API).

Rows are converted to the pydantic records in ``contacts.sync.schemas``
on the way out, and every write is validated through the same records on
the way in, so JSON columns never hold a shape the engine cannot read.
"""

import functools
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from django.core.exceptions import ObjectDoesNotExist
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError
from django.db.models import F, Q
from django.utils import timezone
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from contacts.models import (
    Contact,
    EnrichmentJob,
    FieldConfidenceLog,
    FieldEnrichmentHistory,
    SyncChangeLog,
    SyncJob,
)
from contacts.sync.schemas import (
    ContactRecord,
    EnrichmentJobRecord,
    FieldConfidenceLogRecord,
    FieldEnrichmentHistoryRecord,
    SyncChangeLogEntry,
    SyncJobRecord,
    SyncJobStatus,
)
from contacts.sync.store import StoreError, StoreResult, SyncStore, check_transition

logger = logging.getLogger(__name__)


def _row(obj) -> Dict[str, Any]:
    return {f.attname: getattr(obj, f.attname) for f in obj._meta.concrete_fields}


def _columns(record: BaseModel, names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Column values for ``record``: JSON-ready, except datetimes stay datetimes."""
    dumped = record.model_dump(mode='json')
    columns = {}
    for name in (names if names is not None else dumped):
        value = getattr(record, name)
        columns[name] = value if isinstance(value, datetime) else dumped[name]
    return columns


def _merged_columns(record: BaseModel, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Validate ``changes`` applied to ``record``; return the changed columns."""
    unknown = set(changes) - set(type(record).model_fields)
    if unknown:
        raise StoreError(f"unknown columns: {sorted(unknown)}")
    data = record.model_dump()
    data.update(changes)
    return _columns(type(record).model_validate(data), changes)


def _guarded(operation):
    """Turn ORM and validation errors into failed StoreResults."""

    @functools.wraps(operation)
    async def wrapper(self, *args, **kwargs):
        try:
            return await operation(self, *args, **kwargs)
        except StoreError as exc:
            return StoreResult.failure(exc)
        except ObjectDoesNotExist as exc:
            return StoreResult.failure(f"{operation.__name__}: not found ({exc})")
        except (DatabaseError, DjangoValidationError, PydanticValidationError, ValueError) as exc:
            logger.warning("Store call %s failed: %s", operation.__name__, exc)
            return StoreResult.failure(f"{operation.__name__}: {exc}")

    return wrapper


def _status_value(status):
    return getattr(status, 'value', status)


class DjangoSyncStore(SyncStore):

    # -- contacts ----------------------------------------------------------

    @_guarded
    async def get_contact(self, user_id, contact_id):
        obj = await Contact.objects.aget(user_id=user_id, id=contact_id)
        return StoreResult.success(ContactRecord.model_validate(_row(obj)))

    @_guarded
    async def update_contact(self, user_id, contact_id, changes):
        obj = await Contact.objects.aget(user_id=user_id, id=contact_id)
        columns = _merged_columns(ContactRecord.model_validate(_row(obj)), changes)
        if columns:
            # queryset update leaves auto_now updated_at alone unless passed explicitly
            await Contact.objects.filter(user_id=user_id, id=contact_id).aupdate(**columns)
        obj = await Contact.objects.aget(user_id=user_id, id=contact_id)
        return StoreResult.success(ContactRecord.model_validate(_row(obj)))

    @_guarded
    async def list_contacts_needing_sync(self, user_id, updated_since):
        qs = Contact.objects.filter(user_id=user_id, updated_at__gte=updated_since).filter(
            Q(last_sync_at__isnull=True) | Q(last_sync_at__lt=F('updated_at'))
        )
        return StoreResult.success([ContactRecord.model_validate(_row(obj)) async for obj in qs])

    @_guarded
    async def list_contact_ids(self, user_id):
        qs = Contact.objects.filter(user_id=user_id).values_list('id', flat=True)
        return StoreResult.success([str(pk) async for pk in qs])

    @_guarded
    async def count_contacts(self, user_id, sync_status=None):
        qs = Contact.objects.filter(user_id=user_id)
        if sync_status is not None:
            qs = qs.filter(sync_status=_status_value(sync_status))
        return StoreResult.success(await qs.acount())

    # -- change log --------------------------------------------------------

    @_guarded
    async def insert_change_log(self, user_id, entry):
        contact_id = entry.get('contact_id')
        if not await Contact.objects.filter(user_id=user_id, id=contact_id).aexists():
            raise StoreError(f"contact {contact_id} not found")
        record = SyncChangeLogEntry.model_validate({
            'id': str(uuid.uuid4()),
            'detected_at': timezone.now(),
            **entry,
            'user_id': user_id,
        })
        obj = await SyncChangeLog.objects.acreate(**_columns(record))
        return StoreResult.success(SyncChangeLogEntry.model_validate(_row(obj)))

    @_guarded
    async def list_change_logs(self, user_id, contact_id=None, sync_status=None,
                               newest_first=False, limit=None):
        qs = SyncChangeLog.objects.filter(user_id=user_id)
        if contact_id is not None:
            qs = qs.filter(contact_id=contact_id)
        if sync_status is not None:
            qs = qs.filter(sync_status=_status_value(sync_status))
        qs = qs.order_by('-detected_at' if newest_first else 'detected_at')
        if limit is not None:
            qs = qs[:limit]
        return StoreResult.success([SyncChangeLogEntry.model_validate(_row(obj)) async for obj in qs])

    @_guarded
    async def count_change_logs(self, user_id, sync_status=None, since=None,
                                since_field='detected_at'):
        qs = SyncChangeLog.objects.filter(user_id=user_id)
        if sync_status is not None:
            qs = qs.filter(sync_status=_status_value(sync_status))
        if since is not None:
            qs = qs.filter(**{f'{since_field}__gte': since})
        return StoreResult.success(await qs.acount())

    @_guarded
    async def update_change_status(self, user_id, change_ids, status, enrichment_job_id=None,
                                   processed_at=None):
        change_ids = set(str(cid) for cid in change_ids)
        status = _status_value(status)
        qs = SyncChangeLog.objects.filter(user_id=user_id, id__in=change_ids)
        current = [s async for s in qs.values_list('sync_status', flat=True)]
        if len(current) != len(change_ids):
            raise StoreError("one or more changes not found")
        for existing in current:
            check_transition(existing, status)

        columns: Dict[str, Any] = {'sync_status': status}
        if enrichment_job_id is not None:
            columns['enrichment_job_id'] = enrichment_job_id
        if processed_at is not None:
            columns['processed_at'] = processed_at
        return StoreResult.success(await qs.aupdate(**columns))

    @_guarded
    async def set_change_confidence_after(self, user_id, change_id, confidence):
        updated = await SyncChangeLog.objects.filter(user_id=user_id, id=change_id).aupdate(
            confidence_after=confidence
        )
        if not updated:
            raise StoreError(f"change {change_id} not found")
        return StoreResult.success()

    # -- append-only history -----------------------------------------------

    @_guarded
    async def insert_enrichment_history(self, user_id, entry):
        record = FieldEnrichmentHistoryRecord.model_validate({
            'id': str(uuid.uuid4()), 'enriched_at': timezone.now(), **entry, 'user_id': user_id,
        })
        obj = await FieldEnrichmentHistory.objects.acreate(**_columns(record))
        return StoreResult.success(FieldEnrichmentHistoryRecord.model_validate(_row(obj)))

    @_guarded
    async def insert_confidence_log(self, user_id, entry):
        record = FieldConfidenceLogRecord.model_validate({
            'id': str(uuid.uuid4()), 'created_at': timezone.now(), **entry, 'user_id': user_id,
        })
        obj = await FieldConfidenceLog.objects.acreate(**_columns(record))
        return StoreResult.success(FieldConfidenceLogRecord.model_validate(_row(obj)))

    @_guarded
    async def list_confidence_log(self, user_id, contact_id, field_name, limit=10):
        qs = FieldConfidenceLog.objects.filter(
            user_id=user_id, contact_id=contact_id, field_name=field_name,
        ).order_by('-created_at')[:limit]
        return StoreResult.success([FieldConfidenceLogRecord.model_validate(_row(obj)) async for obj in qs])

    # -- enrichment jobs ---------------------------------------------------

    @_guarded
    async def create_enrichment_job(self, user_id, job):
        record = EnrichmentJobRecord.model_validate({
            'id': str(uuid.uuid4()), **job, 'user_id': user_id,
        })
        obj = await EnrichmentJob.objects.acreate(**_columns(record))
        return StoreResult.success(EnrichmentJobRecord.model_validate(_row(obj)))

    @_guarded
    async def get_enrichment_job(self, user_id, job_id):
        obj = await EnrichmentJob.objects.aget(user_id=user_id, id=job_id)
        return StoreResult.success(EnrichmentJobRecord.model_validate(_row(obj)))

    @_guarded
    async def update_enrichment_job(self, user_id, job_id, changes):
        obj = await EnrichmentJob.objects.aget(user_id=user_id, id=job_id)
        changes = dict(changes)
        if 'progress' in changes:
            changes['progress'] = max(obj.progress, changes['progress'])
        columns = _merged_columns(EnrichmentJobRecord.model_validate(_row(obj)), changes)
        for name, value in columns.items():
            setattr(obj, name, value)
        await obj.asave(update_fields=list(columns))
        return StoreResult.success(EnrichmentJobRecord.model_validate(_row(obj)))

    @_guarded
    async def list_enrichment_jobs(self, user_id, job_type=None):
        qs = EnrichmentJob.objects.filter(user_id=user_id)
        if job_type is not None:
            qs = qs.filter(job_type=job_type)
        return StoreResult.success([EnrichmentJobRecord.model_validate(_row(obj)) async for obj in qs])

    # -- sync jobs ---------------------------------------------------------

    @_guarded
    async def create_sync_job(self, user_id, job):
        record = SyncJobRecord.model_validate({'id': str(uuid.uuid4()), **job, 'user_id': user_id})
        obj = await SyncJob.objects.acreate(**_columns(record))
        return StoreResult.success(SyncJobRecord.model_validate(_row(obj)))

    @_guarded
    async def get_sync_job(self, user_id, job_id):
        obj = await SyncJob.objects.aget(user_id=user_id, id=job_id)
        return StoreResult.success(SyncJobRecord.model_validate(_row(obj)))

    @_guarded
    async def update_sync_job(self, user_id, job_id, changes):
        obj = await SyncJob.objects.aget(user_id=user_id, id=job_id)
        columns = _merged_columns(SyncJobRecord.model_validate(_row(obj)), changes)
        columns.pop('updated_at', None)
        for name, value in columns.items():
            setattr(obj, name, value)
        await obj.asave(update_fields=[*columns, 'updated_at'])
        return StoreResult.success(SyncJobRecord.model_validate(_row(obj)))

    @_guarded
    async def next_active_sync_job(self, user_id) -> StoreResult[Optional[SyncJobRecord]]:
        obj = await SyncJob.objects.filter(
            user_id=user_id, status=SyncJobStatus.ACTIVE.value, next_run_at__isnull=False,
        ).order_by('next_run_at').afirst()
        return StoreResult.success(SyncJobRecord.model_validate(_row(obj)) if obj else None)
