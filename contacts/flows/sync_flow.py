"""
Contact sync pipelines -- Prefect @flow.

Two entry points:

- ``contact_sync_flow``: one sync pass for one user (manual or ad hoc).
- ``scheduled_sync_flow``: runs every active cron sync job that is due,
  then moves each job's ``next_run_at`` forward. Failing users are
  alerted and skipped; the remaining jobs still run.

Usage:
    from contacts.flows.sync_flow import scheduled_sync_flow
    scheduled_sync_flow()
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from asgiref.sync import async_to_sync
from django.utils import timezone
from prefect import flow, get_run_logger, task

from config.alerting import send_alert
from contacts.models import SyncJob
from contacts.sync.django_store import DjangoSyncStore
from contacts.sync.schemas import SyncJobStatus, SyncType
from contacts.sync.sync_manager import SyncManager, calculate_next_run


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class ScheduledSyncResult:
    """Summary of a scheduled sync run."""

    jobs_due: int = 0
    jobs_succeeded: int = 0
    jobs_failed: int = 0
    changes_processed: int = 0
    changes_failed: int = 0
    failed_job_ids: list[str] = field(default_factory=list)
    runtime_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@task(name="run-user-sync", retries=0)
def run_user_sync(user_id: str, job_id: Optional[str] = None,
                  days_back: Optional[int] = None) -> dict:
    """Run one sync pass against the database and return its statistics."""
    log = get_run_logger()
    manager = SyncManager(DjangoSyncStore(), user_id, days_back=days_back)
    stats = async_to_sync(manager.run_sync)(job_id)
    log.info(
        "User %s: %d processed, %d failed, %d outdated contacts",
        user_id, stats.completed_changes, stats.failed_changes, stats.outdated_contacts,
    )
    return stats.model_dump(mode="json")


def _select_due_jobs(limit: int = 0) -> list[SyncJob]:
    qs = SyncJob.objects.filter(
        status=SyncJobStatus.ACTIVE.value,
        sync_type=SyncType.CRON.value,
        next_run_at__lte=timezone.now(),
    ).order_by("next_run_at")
    if limit:
        qs = qs[:limit]
    return list(qs)


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------

@flow(
    name="contact-sync",
    description="Detect contact changes, re-enrich them by priority, rescore",
    retries=0,
    timeout_seconds=3600,
)
def contact_sync_flow(user_id: str, job_id: Optional[str] = None,
                      days_back: Optional[int] = None) -> dict:
    """One sync pass for ``user_id``; returns the run statistics as a dict."""
    return run_user_sync(user_id, job_id=job_id, days_back=days_back)


@flow(
    name="scheduled-contact-sync",
    description="Run every due cron sync job and schedule its next run",
    retries=0,
    timeout_seconds=3600,
)
def scheduled_sync_flow(limit: int = 0) -> ScheduledSyncResult:
    """Run all due cron sync jobs.

    Parameters
    ----------
    limit:
        Maximum jobs to run in this pass; 0 = all due jobs.
    """
    log = get_run_logger()
    start_time = time.time()
    result = ScheduledSyncResult()

    jobs = _select_due_jobs(limit)
    result.jobs_due = len(jobs)
    log.info("%d sync jobs due", len(jobs))

    for job in jobs:
        job_id = str(job.id)
        try:
            stats = run_user_sync(str(job.user_id), job_id=job_id)
        except Exception as exc:
            log.error("Sync job %s (%s) failed: %s", job_id, job.job_name, exc)
            result.jobs_failed += 1
            result.failed_job_ids.append(job_id)
            send_alert(
                "warning",
                f"Sync job failed: {job.job_name}",
                f"job={job_id} user={job.user_id} error={exc}",
            )
        else:
            result.jobs_succeeded += 1
            result.changes_processed += stats.get("completed_changes", 0)
            result.changes_failed += stats.get("failed_changes", 0)

        SyncJob.objects.filter(id=job.id).update(
            next_run_at=calculate_next_run(job.schedule_expression),
        )

    result.runtime_seconds = round(time.time() - start_time, 2)
    if result.jobs_failed:
        send_alert(
            "critical" if result.jobs_failed == result.jobs_due else "warning",
            "Scheduled contact sync had failures",
            f"{result.jobs_failed}/{result.jobs_due} jobs failed",
        )
    log.info(
        "Scheduled sync done: %d/%d jobs ok, %d changes processed, %d failed (%.1fs)",
        result.jobs_succeeded, result.jobs_due,
        result.changes_processed, result.changes_failed, result.runtime_seconds,
    )
    return result
