"""
One full sync pass for a user.

    detect -> bucket by priority -> per bucket: scoped job, enrich every
    change independently, mark completed / failed, close the job
    -> rescore touched contacts -> update the scheduled sync job's stats

Buckets run strictly in order (high, normal, low). Inside a bucket every
change is enriched concurrently and a failure only fails that change.
``run_sync`` raises only when change detection itself fails; everything
after that is reported through the returned statistics.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from django.utils import timezone

from config.logging_filters import correlation_scope
from contacts.confidence.compute import ConfidenceAggregator
from contacts.sync.change_detector import ChangeDetector
from contacts.sync.schemas import (
    JobStatus,
    Priority,
    SyncChangeLogEntry,
    SyncJobRecord,
    SyncJobStats,
    SyncRunStats,
    SyncStatus,
    SyncType,
    SyncWindowStats,
)
from contacts.sync.smart_enricher import SmartEnricher
from contacts.sync.store import StoreError, SyncStore

logger = logging.getLogger(__name__)

HIGH_PRIORITY_FIELDS = ('email', 'username')
LOW_PRIORITY_FIELDS = ('bio', 'location')
BUCKET_ORDER = (Priority.HIGH, Priority.NORMAL, Priority.LOW)

DAILY_AT_MIDNIGHT = '0 0 * * *'
EVERY_SIX_HOURS = '0 */6 * * *'


def classify_priority(change: SyncChangeLogEntry) -> Priority:
    before = change.confidence_before
    if change.field_name in HIGH_PRIORITY_FIELDS and before is not None and before > 0.7:
        return Priority.HIGH
    if change.field_name in LOW_PRIORITY_FIELDS and before is not None and before < 0.5:
        return Priority.LOW
    return Priority.NORMAL


def prioritize_changes(changes: Sequence[SyncChangeLogEntry]) -> Dict[Priority, List[SyncChangeLogEntry]]:
    buckets: Dict[Priority, List[SyncChangeLogEntry]] = {p: [] for p in BUCKET_ORDER}
    for change in changes:
        buckets[classify_priority(change)].append(change)
    return buckets


def calculate_next_run(schedule_expression: Optional[str],
                       now: Optional[datetime] = None) -> datetime:
    """
    Next run time for the supported schedules.

    '0 0 * * *' runs at the next midnight, '0 */6 * * *' six hours from now
    on the hour; anything else (including no schedule) runs a day later.
    """
    now = now or timezone.now()
    if schedule_expression == DAILY_AT_MIDNIGHT:
        return (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    if schedule_expression == EVERY_SIX_HOURS:
        return (now + timedelta(hours=6)).replace(minute=0, second=0, microsecond=0)
    return now + timedelta(days=1)


class SyncManager:
    """
    Orchestrates sync passes for one user.

    Args:
        store: persistence backend.
        user_id: every read and write is scoped to this user.
        aggregator: rescoring after enrichment; None disables the rescore
            step (the default builds one with production validators).
        enricher / detector: injectable for tests.
        days_back: detection window, defaults to CONTACT_SYNC DEFAULT_DAYS_BACK.
    """

    _DEFAULT = object()

    def __init__(self, store: SyncStore, user_id: str,
                 aggregator=_DEFAULT,
                 enricher: Optional[SmartEnricher] = None,
                 detector: Optional[ChangeDetector] = None,
                 days_back: Optional[int] = None):
        self.store = store
        self.user_id = user_id
        self.detector = detector or ChangeDetector(store, user_id)
        self.enricher = enricher or SmartEnricher(store, user_id, detector=self.detector)
        self.aggregator = ConfidenceAggregator(store) if aggregator is self._DEFAULT else aggregator
        self.days_back = days_back

    # ------------------------------------------------------------------
    # Sync pass
    # ------------------------------------------------------------------

    async def run_sync(self, job_id: Optional[str] = None) -> SyncRunStats:
        with correlation_scope("sync"):
            started = time.monotonic()
            logger.info("Sync started for user %s (job %s)", self.user_id, job_id or '-')

            try:
                changes = await self.detector.detect_changes(self.days_back)
            except StoreError:
                logger.exception("Change detection failed for user %s", self.user_id)
                raise

            if not changes:
                logger.info("No pending changes")
                stats = await self.generate_stats(0, 0, 0)
                await self._record_job_run(job_id, stats, started)
                return stats

            buckets = prioritize_changes(changes)
            processed = failed = 0
            touched: List[str] = []
            for priority in BUCKET_ORDER:
                bucket = buckets[priority]
                if not bucket:
                    continue
                try:
                    succeeded, bucket_failed = await self._process_bucket(priority, bucket)
                except StoreError as exc:
                    logger.error("%s bucket aborted (%d changes): %s",
                                 priority.value, len(bucket), exc)
                    failed += len(bucket)
                    continue
                processed += len(succeeded)
                failed += bucket_failed
                touched.extend(c.contact_id for c in succeeded if c.contact_id not in touched)

            await self._rescore(touched)

            stats = await self.generate_stats(len(changes), processed, failed)
            await self._record_job_run(job_id, stats, started)
            logger.info("Sync finished: %d processed, %d failed of %d changes",
                        processed, failed, len(changes))
            return stats

    async def _process_bucket(self, priority: Priority,
                              bucket: List[SyncChangeLogEntry]) -> Tuple[List[SyncChangeLogEntry], int]:
        job_id = await self.enricher.create_scoped_enrichment_job(bucket, priority)
        await self._update_job(job_id, {'status': JobStatus.RUNNING, 'started_at': timezone.now()})

        outcomes = await asyncio.gather(
            *(self.process_change(change, job_id) for change in bucket),
            return_exceptions=True,
        )
        succeeded = [c for c, outcome in zip(bucket, outcomes) if not isinstance(outcome, BaseException)]
        failures = [(c, o) for c, o in zip(bucket, outcomes) if isinstance(o, BaseException)]
        for change, error in failures:
            # re-raise anything that is not an ordinary failure (e.g. cancellation)
            if not isinstance(error, Exception):
                raise error

        await self.detector.mark_changes_processed([c.id for c in succeeded], job_id)

        await self._update_job(job_id, {
            'status': JobStatus.COMPLETED if not failures else JobStatus.PARTIAL,
            'progress': 100,
            'completed_at': timezone.now(),
            'results': {
                'processed': len(succeeded),
                'failed': len(failures),
                'errors': [{'change_id': c.id, 'error': str(e)} for c, e in failures],
            },
        })
        logger.info("%s bucket: %d processed, %d failed",
                    priority.value, len(succeeded), len(failures))
        return succeeded, len(failures)

    async def process_change(self, change: SyncChangeLogEntry, job_id: str):
        """Enrich one change; on any failure mark it failed and re-raise."""
        try:
            history = await self.enricher.process_field_enrichment(
                change.contact_id, change.field_name, change.new_value, job_id=job_id,
            )
        except Exception as exc:
            logger.warning("Enrichment of %s.%s failed: %s",
                           change.contact_id, change.field_name, exc)
            try:
                await self.detector.mark_change_failed(change.id, str(exc))
            except StoreError as mark_exc:
                logger.error("Could not mark change %s failed: %s", change.id, mark_exc)
            raise

        recorded = await self.store.set_change_confidence_after(
            self.user_id, change.id, history.confidence_score,
        )
        if not recorded.ok:
            logger.warning("Could not record confidence_after for %s: %s", change.id, recorded.error)
        return history

    async def _rescore(self, contact_ids: Sequence[str]) -> None:
        """Recompute record confidence after enrichment; may queue follow-up jobs."""
        if self.aggregator is None or not contact_ids:
            return
        outcomes = await asyncio.gather(
            *(self.aggregator.score_contact(self.user_id, cid, 'sync') for cid in contact_ids),
            return_exceptions=True,
        )
        for contact_id, outcome in zip(contact_ids, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("Rescoring contact %s failed: %s", contact_id, outcome)
            elif isinstance(outcome, BaseException):
                raise outcome

    async def _update_job(self, job_id: str, changes: dict) -> None:
        result = await self.store.update_enrichment_job(self.user_id, job_id, changes)
        if not result.ok:
            logger.warning("Could not update enrichment job %s: %s", job_id, result.error)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def generate_stats(self, total: int, processed: int, failed: int,
                             pending: Optional[int] = None) -> SyncRunStats:
        """Run summary; ``pending`` defaults to what is still pending in the store."""
        if pending is None:
            still_pending = await self.store.count_change_logs(self.user_id, SyncStatus.PENDING)
            pending = still_pending.value if still_pending.ok else 0
        stats = SyncRunStats(
            total_changes=total,
            pending_changes=pending,
            completed_changes=processed,
            failed_changes=failed,
            last_sync_run=timezone.now(),
        )
        outdated = await self.store.count_contacts(self.user_id, 'outdated')
        if outdated.ok:
            stats.outdated_contacts = outdated.value
        else:
            logger.warning("Could not count outdated contacts: %s", outdated.error)

        next_job = await self.store.next_active_sync_job(self.user_id)
        if next_job.ok and next_job.value is not None:
            stats.next_sync_run = next_job.value.next_run_at
        return stats

    async def _record_job_run(self, job_id: Optional[str], stats: SyncRunStats,
                              started: float) -> None:
        if not job_id:
            return
        found = await self.store.get_sync_job(self.user_id, job_id)
        if not found.ok:
            logger.warning("Sync job %s not found; stats not recorded: %s", job_id, found.error)
            return

        duration_ms = int((time.monotonic() - started) * 1000)
        previous = found.value.stats
        runs = previous.total_runs + 1
        updated = SyncJobStats(**{
            **previous.model_dump(),
            'total_runs': runs,
            'successful_runs': previous.successful_runs + (1 if stats.failed_changes == 0 else 0),
            'failed_runs': previous.failed_runs + (1 if stats.failed_changes > 0 else 0),
            'avg_duration_ms': round((previous.avg_duration_ms * previous.total_runs + duration_ms) / runs),
            'last_processed': stats.completed_changes,
            'last_failed': stats.failed_changes,
            'last_run_duration_ms': duration_ms,
        })
        result = await self.store.update_sync_job(self.user_id, job_id, {
            'last_run_at': timezone.now(),
            'stats': updated.model_dump(),
        })
        if not result.ok:
            logger.warning("Could not update sync job %s stats: %s", job_id, result.error)

    async def get_sync_stats(self, days: int = 30) -> SyncWindowStats:
        """
        Change counts over the last ``days`` days.

        Pending changes, outdated contacts and the next scheduled run are
        current totals, not limited to the window.
        """
        since = timezone.now() - timedelta(days=days)

        async def count(status=None, since_field='detected_at', windowed=True):
            return (await self.store.count_change_logs(
                self.user_id, sync_status=status, since=since if windowed else None,
                since_field=since_field,
            )).unwrap()

        total, pending, completed, failed, outdated, next_job = await asyncio.gather(
            count(),
            count(SyncStatus.PENDING, windowed=False),
            count(SyncStatus.COMPLETED, since_field='processed_at'),
            count(SyncStatus.FAILED),
            self.detector.count_outdated_contacts(),
            self.store.next_active_sync_job(self.user_id),
        )
        next_job = next_job.unwrap()
        return SyncWindowStats(
            days=days,
            total_changes=total,
            pending_changes=pending,
            completed_changes=completed,
            failed_changes=failed,
            outdated_contacts=outdated,
            next_sync_run=next_job.next_run_at if next_job is not None else None,
        )

    # ------------------------------------------------------------------
    # Scheduled jobs
    # ------------------------------------------------------------------

    async def create_sync_job(self, job_name: str, sync_type=SyncType.CRON,
                              schedule_expression: Optional[str] = None,
                              config: Optional[dict] = None) -> SyncJobRecord:
        sync_type = SyncType(sync_type)
        next_run = calculate_next_run(schedule_expression) if sync_type is SyncType.CRON else None
        job = (await self.store.create_sync_job(self.user_id, {
            'job_name': job_name,
            'sync_type': sync_type,
            'schedule_expression': schedule_expression,
            'next_run_at': next_run,
            'status': 'active',
            'config': config or {},
            'stats': SyncJobStats().model_dump(),
        })).unwrap()
        logger.info("Created %s sync job %s (%s), next run %s",
                    sync_type.value, job.id, job_name, next_run)
        return job

    async def schedule_next_run(self, job_id: str, now: Optional[datetime] = None) -> SyncJobRecord:
        job = (await self.store.get_sync_job(self.user_id, job_id)).unwrap()
        next_run = calculate_next_run(job.schedule_expression, now)
        return (await self.store.update_sync_job(self.user_id, job_id, {'next_run_at': next_run})).unwrap()
