import uuid

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from contacts.sync.schemas import (
    ChangeSource,
    ContactSyncStatus,
    JobStatus,
    SyncJobStatus,
    SyncStatus,
    SyncType,
)


def _choices(enum_cls):
    return [(member.value, member.value.replace('_', ' ').title()) for member in enum_cls]


class Contact(models.Model):
    """
    A contact record owned by a single user.

    ``confidence_<field>`` columns and ``contact_score`` are written by the
    confidence aggregator; ``sync_status``/``outdated_fields`` by the change
    detector and smart enricher.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.UUIDField(db_index=True)

    name = models.CharField(max_length=255, null=True, blank=True)
    email = models.CharField(max_length=255, null=True, blank=True)
    phone = models.CharField(max_length=64, null=True, blank=True)
    username = models.CharField(max_length=255, null=True, blank=True)
    bio = models.TextField(null=True, blank=True)
    location = models.CharField(max_length=255, null=True, blank=True)
    profile_url = models.URLField(max_length=500, null=True, blank=True)
    platform = models.CharField(max_length=50, null=True, blank=True)

    contact_score = models.FloatField(null=True, blank=True)
    confidence_email = models.FloatField(null=True, blank=True)
    confidence_name = models.FloatField(null=True, blank=True)
    confidence_phone = models.FloatField(null=True, blank=True)
    confidence_bio = models.FloatField(null=True, blank=True)
    confidence_username = models.FloatField(null=True, blank=True)
    confidence_location = models.FloatField(null=True, blank=True)

    metadata = models.JSONField(default=dict, blank=True)
    outdated_fields = models.JSONField(default=list, blank=True)
    sync_status = models.CharField(
        max_length=20,
        choices=_choices(ContactSyncStatus),
        default=ContactSyncStatus.SYNCED.value,
    )
    last_sync_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'contacts'
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['user_id', 'updated_at'], name='contacts_user_updated_idx'),
            models.Index(fields=['user_id', 'sync_status'], name='contacts_user_status_idx'),
        ]

    def __str__(self):
        return self.name or self.email or str(self.id)


class EnrichmentJob(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.UUIDField(db_index=True)
    job_type = models.CharField(max_length=50)
    status = models.CharField(
        max_length=20,
        choices=_choices(JobStatus),
        default=JobStatus.PENDING.value,
    )
    target_table = models.CharField(max_length=50, default='contacts')
    target_id = models.CharField(max_length=64, null=True, blank=True)
    parameters = models.JSONField(default=dict, blank=True)
    progress = models.IntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    results = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'enrichment_jobs'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.job_type} ({self.status})"


class SyncChangeLog(models.Model):
    """One detected field change. Rows are never deleted; status only moves forward."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.UUIDField(db_index=True)
    contact = models.ForeignKey(
        Contact, on_delete=models.CASCADE, related_name='change_logs'
    )
    field_name = models.CharField(max_length=50)
    old_value = models.TextField(null=True, blank=True)
    new_value = models.TextField(null=True, blank=True)
    confidence_before = models.FloatField(null=True, blank=True)
    confidence_after = models.FloatField(null=True, blank=True)
    change_source = models.CharField(max_length=20, choices=_choices(ChangeSource))
    sync_status = models.CharField(
        max_length=20,
        choices=_choices(SyncStatus),
        default=SyncStatus.PENDING.value,
    )
    enrichment_job = models.ForeignKey(
        EnrichmentJob,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='changes',
    )
    detected_at = models.DateTimeField(default=timezone.now)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'sync_change_log'
        ordering = ['detected_at']
        indexes = [
            models.Index(fields=['user_id', 'sync_status'], name='changelog_user_status_idx'),
            models.Index(fields=['contact', 'field_name'], name='changelog_contact_field_idx'),
        ]

    def __str__(self):
        return f"{self.contact_id}.{self.field_name} ({self.sync_status})"


class SyncJob(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.UUIDField(db_index=True)
    job_name = models.CharField(max_length=255)
    sync_type = models.CharField(max_length=20, choices=_choices(SyncType))
    schedule_expression = models.CharField(max_length=100, null=True, blank=True)
    last_run_at = models.DateTimeField(null=True, blank=True)
    next_run_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=_choices(SyncJobStatus),
        default=SyncJobStatus.ACTIVE.value,
    )
    config = models.JSONField(default=dict, blank=True)
    stats = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sync_jobs'
        ordering = ['next_run_at']

    def __str__(self):
        return self.job_name


class FieldEnrichmentHistory(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.UUIDField(db_index=True)
    contact = models.ForeignKey(
        Contact, on_delete=models.CASCADE, related_name='enrichment_history'
    )
    field_name = models.CharField(max_length=50)
    enrichment_method = models.CharField(max_length=50)
    confidence_score = models.FloatField(null=True, blank=True)
    data_source = models.CharField(max_length=50)
    enriched_value = models.TextField(null=True, blank=True)
    enrichment_job_id = models.UUIDField(null=True, blank=True)
    enriched_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'field_enrichment_history'
        ordering = ['-enriched_at']


class FieldConfidenceLog(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.UUIDField(db_index=True)
    contact = models.ForeignKey(
        Contact, on_delete=models.CASCADE, related_name='confidence_log'
    )
    field_name = models.CharField(max_length=50)
    confidence = models.FloatField()
    calc_method = models.CharField(max_length=50)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'field_confidence_log'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['contact', 'field_name', 'created_at'], name='conflog_contact_field_idx'),
        ]
