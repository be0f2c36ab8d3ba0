import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Contact',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.UUIDField(db_index=True)),
                ('name', models.CharField(blank=True, max_length=255, null=True)),
                ('email', models.CharField(blank=True, max_length=255, null=True)),
                ('phone', models.CharField(blank=True, max_length=64, null=True)),
                ('username', models.CharField(blank=True, max_length=255, null=True)),
                ('bio', models.TextField(blank=True, null=True)),
                ('location', models.CharField(blank=True, max_length=255, null=True)),
                ('profile_url', models.URLField(blank=True, max_length=500, null=True)),
                ('platform', models.CharField(blank=True, max_length=50, null=True)),
                ('contact_score', models.FloatField(blank=True, null=True)),
                ('confidence_email', models.FloatField(blank=True, null=True)),
                ('confidence_name', models.FloatField(blank=True, null=True)),
                ('confidence_phone', models.FloatField(blank=True, null=True)),
                ('confidence_bio', models.FloatField(blank=True, null=True)),
                ('confidence_username', models.FloatField(blank=True, null=True)),
                ('confidence_location', models.FloatField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('outdated_fields', models.JSONField(blank=True, default=list)),
                ('sync_status', models.CharField(
                    choices=[('synced', 'Synced'), ('outdated', 'Outdated'), ('partial', 'Partial')],
                    default='synced', max_length=20,
                )),
                ('last_sync_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'contacts',
                'ordering': ['-updated_at'],
                'indexes': [
                    models.Index(fields=['user_id', 'updated_at'], name='contacts_user_updated_idx'),
                    models.Index(fields=['user_id', 'sync_status'], name='contacts_user_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EnrichmentJob',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.UUIDField(db_index=True)),
                ('job_type', models.CharField(max_length=50)),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'), ('running', 'Running'), ('completed', 'Completed'),
                        ('partial', 'Partial'), ('failed', 'Failed'), ('cancelled', 'Cancelled'),
                    ],
                    default='pending', max_length=20,
                )),
                ('target_table', models.CharField(default='contacts', max_length=50)),
                ('target_id', models.CharField(blank=True, max_length=64, null=True)),
                ('parameters', models.JSONField(blank=True, default=dict)),
                ('progress', models.IntegerField(default=0, validators=[
                    django.core.validators.MinValueValidator(0),
                    django.core.validators.MaxValueValidator(100),
                ])),
                ('results', models.JSONField(blank=True, default=dict)),
                ('error_message', models.TextField(blank=True, null=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'enrichment_jobs',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='SyncJob',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.UUIDField(db_index=True)),
                ('job_name', models.CharField(max_length=255)),
                ('sync_type', models.CharField(
                    choices=[('cron', 'Cron'), ('event_triggered', 'Event Triggered'), ('manual', 'Manual')],
                    max_length=20,
                )),
                ('schedule_expression', models.CharField(blank=True, max_length=100, null=True)),
                ('last_run_at', models.DateTimeField(blank=True, null=True)),
                ('next_run_at', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(
                    choices=[('active', 'Active'), ('paused', 'Paused'), ('disabled', 'Disabled')],
                    default='active', max_length=20,
                )),
                ('config', models.JSONField(blank=True, default=dict)),
                ('stats', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'sync_jobs',
                'ordering': ['next_run_at'],
            },
        ),
        migrations.CreateModel(
            name='SyncChangeLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.UUIDField(db_index=True)),
                ('field_name', models.CharField(max_length=50)),
                ('old_value', models.TextField(blank=True, null=True)),
                ('new_value', models.TextField(blank=True, null=True)),
                ('confidence_before', models.FloatField(blank=True, null=True)),
                ('confidence_after', models.FloatField(blank=True, null=True)),
                ('change_source', models.CharField(
                    choices=[('scrape', 'Scrape'), ('import', 'Import'), ('webhook', 'Webhook'), ('manual', 'Manual')],
                    max_length=20,
                )),
                ('sync_status', models.CharField(
                    choices=[
                        ('pending', 'Pending'), ('processing', 'Processing'),
                        ('completed', 'Completed'), ('failed', 'Failed'),
                    ],
                    default='pending', max_length=20,
                )),
                ('detected_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('contact', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='change_logs', to='contacts.contact',
                )),
                ('enrichment_job', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name='changes', to='contacts.enrichmentjob',
                )),
            ],
            options={
                'db_table': 'sync_change_log',
                'ordering': ['detected_at'],
                'indexes': [
                    models.Index(fields=['user_id', 'sync_status'], name='changelog_user_status_idx'),
                    models.Index(fields=['contact', 'field_name'], name='changelog_contact_field_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FieldEnrichmentHistory',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.UUIDField(db_index=True)),
                ('field_name', models.CharField(max_length=50)),
                ('enrichment_method', models.CharField(max_length=50)),
                ('confidence_score', models.FloatField(blank=True, null=True)),
                ('data_source', models.CharField(max_length=50)),
                ('enriched_value', models.TextField(blank=True, null=True)),
                ('enrichment_job_id', models.UUIDField(blank=True, null=True)),
                ('enriched_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('contact', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='enrichment_history', to='contacts.contact',
                )),
            ],
            options={
                'db_table': 'field_enrichment_history',
                'ordering': ['-enriched_at'],
            },
        ),
        migrations.CreateModel(
            name='FieldConfidenceLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.UUIDField(db_index=True)),
                ('field_name', models.CharField(max_length=50)),
                ('confidence', models.FloatField()),
                ('calc_method', models.CharField(max_length=50)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('contact', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='confidence_log', to='contacts.contact',
                )),
            ],
            options={
                'db_table': 'field_confidence_log',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['contact', 'field_name', 'created_at'], name='conflog_contact_field_idx'),
                ],
            },
        ),
    ]
