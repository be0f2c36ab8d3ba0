"""
Pydantic models for every record the sync engine reads or writes.

Each store validates at its boundary: rows coming out of the database
and payloads going into it pass through these models, so a malformed
``metadata`` blob or job ``parameters`` dict is rejected where it enters
the engine rather than deep inside enrichment.

The two open-ended JSON columns are modelled as tagged unions:

- ``field_metadata`` entries use ``kind`` (bio / username / location /
  email, anything else falls back to ``generic``)
- enrichment job ``parameters`` use ``kind`` (confidence_reenrichment /
  selective_field_enrichment, anything else falls back to ``generic``)
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class SyncStatus(str, enum.Enum):
    """Lifecycle of a single change-log entry."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ChangeSource(str, enum.Enum):
    SCRAPE = "scrape"
    IMPORT = "import"
    WEBHOOK = "webhook"
    MANUAL = "manual"


class ContactSyncStatus(str, enum.Enum):
    SYNCED = "synced"
    OUTDATED = "outdated"
    PARTIAL = "partial"


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncType(str, enum.Enum):
    CRON = "cron"
    EVENT_TRIGGERED = "event_triggered"
    MANUAL = "manual"


class SyncJobStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DISABLED = "disabled"


class Priority(str, enum.Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


# Fields the change detector tracks on a contact.
SYNCABLE_FIELDS = (
    'username', 'bio', 'location', 'profile_url', 'email', 'name', 'phone',
)

# A change moves forward only: pending -> processing -> completed/failed,
# or straight from pending to failed. Re-applying the current status is
# allowed so retries stay idempotent.
ALLOWED_TRANSITIONS = {
    SyncStatus.PENDING: {SyncStatus.PENDING, SyncStatus.PROCESSING, SyncStatus.FAILED},
    SyncStatus.PROCESSING: {SyncStatus.PROCESSING, SyncStatus.COMPLETED, SyncStatus.FAILED},
    SyncStatus.COMPLETED: {SyncStatus.COMPLETED},
    SyncStatus.FAILED: {SyncStatus.FAILED},
}


def is_allowed_transition(current, new) -> bool:
    return SyncStatus(new) in ALLOWED_TRANSITIONS[SyncStatus(current)]


# ---------------------------------------------------------------------------
# Base record
# ---------------------------------------------------------------------------

_ID_FIELDS = ('id', 'user_id', 'contact_id', 'target_id', 'enrichment_job_id')


class _Record(BaseModel):
    """Common config: ids are strings whatever the backing column type."""

    @field_validator(*_ID_FIELDS, mode='before', check_fields=False)
    @classmethod
    def _stringify_id(cls, value):
        if isinstance(value, uuid.UUID):
            return str(value)
        return value


# ---------------------------------------------------------------------------
# Per-field enrichment metadata (tagged union on ``kind``)
# ---------------------------------------------------------------------------

class BioFieldMetadata(BaseModel):
    kind: str = 'bio'
    topics: List[str] = Field(default_factory=list)
    sentiment: str = 'neutral'
    persona_indicators: List[str] = Field(default_factory=list)
    word_count: int = 0


class UsernameFieldMetadata(BaseModel):
    kind: str = 'username'
    platform: Optional[str] = None
    verified: bool = False
    follower_count: Optional[int] = None
    post_count: Optional[int] = None
    last_active: Optional[str] = None


class LocationFieldMetadata(BaseModel):
    kind: str = 'location'
    lat: Optional[float] = None
    lng: Optional[float] = None
    timezone: Optional[str] = None
    formatted_address: Optional[str] = None
    place_id: Optional[str] = None
    location_type: Optional[str] = None


class EmailFieldMetadata(BaseModel):
    kind: str = 'email'
    is_valid: bool = False
    domain: Optional[str] = None
    is_business_email: Optional[bool] = None


class GenericFieldMetadata(BaseModel):
    """Anything without a dedicated shape; extra keys are preserved."""

    model_config = ConfigDict(extra='allow')

    kind: str = 'generic'


_FIELD_METADATA_KINDS = {'bio', 'username', 'location', 'email'}


def _field_metadata_kind(value: Any) -> str:
    kind = value.get('kind') if isinstance(value, dict) else getattr(value, 'kind', None)
    return kind if kind in _FIELD_METADATA_KINDS else 'generic'


FieldMetadata = Annotated[
    Union[
        Annotated[BioFieldMetadata, Tag('bio')],
        Annotated[UsernameFieldMetadata, Tag('username')],
        Annotated[LocationFieldMetadata, Tag('location')],
        Annotated[EmailFieldMetadata, Tag('email')],
        Annotated[GenericFieldMetadata, Tag('generic')],
    ],
    Discriminator(_field_metadata_kind),
]


class ConfidenceCalculation(BaseModel):
    timestamp: datetime
    source: str
    overall: float


class ContactMetadata(BaseModel):
    """The ``metadata`` JSON column of a contact. Unknown keys survive."""

    model_config = ConfigDict(extra='allow')

    confidence_scores: Dict[str, float] = Field(default_factory=dict)
    field_metadata: Dict[str, FieldMetadata] = Field(default_factory=dict)
    confidence_calculation: Optional[ConfidenceCalculation] = None


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

class ContactRecord(_Record):
    id: str
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    profile_url: Optional[str] = None
    platform: Optional[str] = None

    contact_score: Optional[float] = None
    confidence_email: Optional[float] = None
    confidence_name: Optional[float] = None
    confidence_phone: Optional[float] = None
    confidence_bio: Optional[float] = None
    confidence_username: Optional[float] = None
    confidence_location: Optional[float] = None

    metadata: ContactMetadata = Field(default_factory=ContactMetadata)
    outdated_fields: List[str] = Field(default_factory=list)
    sync_status: ContactSyncStatus = ContactSyncStatus.SYNCED
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('metadata', mode='before')
    @classmethod
    def _metadata_default(cls, value):
        return {} if value is None else value

    @field_validator('outdated_fields', mode='before')
    @classmethod
    def _outdated_default(cls, value):
        return [] if value is None else value


# ---------------------------------------------------------------------------
# Change log / history
# ---------------------------------------------------------------------------

class SyncChangeLogEntry(_Record):
    id: str
    user_id: str
    contact_id: str
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    confidence_before: Optional[float] = None
    confidence_after: Optional[float] = None
    change_source: ChangeSource
    sync_status: SyncStatus = SyncStatus.PENDING
    enrichment_job_id: Optional[str] = None
    detected_at: datetime
    processed_at: Optional[datetime] = None


class FieldEnrichmentHistoryRecord(_Record):
    id: str
    user_id: str
    contact_id: str
    field_name: str
    enrichment_method: str
    confidence_score: Optional[float] = None
    data_source: str
    enriched_value: Optional[str] = None
    enrichment_job_id: Optional[str] = None
    enriched_at: datetime


class FieldConfidenceLogRecord(_Record):
    id: str
    user_id: str
    contact_id: str
    field_name: str
    confidence: float
    calc_method: str
    created_at: datetime


# ---------------------------------------------------------------------------
# Enrichment jobs (parameters are a tagged union on ``kind``)
# ---------------------------------------------------------------------------

class ReenrichmentParameters(BaseModel):
    """Queued by the confidence aggregator for a low-scoring contact."""

    kind: str = 'confidence_reenrichment'
    fields_to_enrich: List[str] = Field(default_factory=list)
    current_scores: Dict[str, float] = Field(default_factory=dict)
    overall_confidence: float = 0.0
    trigger: str = 'low_confidence'
    priority: Priority = Priority.NORMAL


class SelectiveEnrichmentParameters(BaseModel):
    """Queued by the smart enricher for one priority bucket of changes."""

    kind: str = 'selective_field_enrichment'
    changes: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    scope: List[str] = Field(default_factory=list)
    priority: Priority = Priority.NORMAL
    selective_fields: List[str] = Field(default_factory=list)
    trigger: str = 'sync_change_detection'


class GenericJobParameters(BaseModel):
    model_config = ConfigDict(extra='allow')

    kind: str = 'generic'


_JOB_PARAMETER_KINDS = {'confidence_reenrichment', 'selective_field_enrichment'}


def _job_parameters_kind(value: Any) -> str:
    kind = value.get('kind') if isinstance(value, dict) else getattr(value, 'kind', None)
    return kind if kind in _JOB_PARAMETER_KINDS else 'generic'


JobParameters = Annotated[
    Union[
        Annotated[ReenrichmentParameters, Tag('confidence_reenrichment')],
        Annotated[SelectiveEnrichmentParameters, Tag('selective_field_enrichment')],
        Annotated[GenericJobParameters, Tag('generic')],
    ],
    Discriminator(_job_parameters_kind),
]


class EnrichmentJobRecord(_Record):
    id: str
    user_id: str
    job_type: str
    status: JobStatus = JobStatus.PENDING
    target_table: str = 'contacts'
    target_id: Optional[str] = None
    parameters: JobParameters = Field(default_factory=GenericJobParameters)
    progress: int = Field(default=0, ge=0, le=100)
    results: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator('parameters', 'results', mode='before')
    @classmethod
    def _empty_dict(cls, value):
        return {} if value is None else value


# ---------------------------------------------------------------------------
# Recurring sync jobs
# ---------------------------------------------------------------------------

class SyncJobStats(BaseModel):
    model_config = ConfigDict(extra='allow')

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    avg_duration_ms: int = 0
    last_processed: int = 0
    last_failed: int = 0
    last_run_duration_ms: int = 0


class SyncJobRecord(_Record):
    id: str
    user_id: str
    job_name: str
    sync_type: SyncType
    schedule_expression: Optional[str] = None
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    status: SyncJobStatus = SyncJobStatus.ACTIVE
    config: Dict[str, Any] = Field(default_factory=dict)
    stats: SyncJobStats = Field(default_factory=SyncJobStats)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('config', 'stats', mode='before')
    @classmethod
    def _empty_dict(cls, value):
        return {} if value is None else value


# ---------------------------------------------------------------------------
# Run summaries
# ---------------------------------------------------------------------------

class SyncRunStats(BaseModel):
    """Result of one sync run."""

    total_changes: int = 0
    pending_changes: int = 0
    completed_changes: int = 0
    failed_changes: int = 0
    outdated_contacts: int = 0
    last_sync_run: Optional[datetime] = None
    next_sync_run: Optional[datetime] = None


class SyncWindowStats(BaseModel):
    """Per-user change counts over a trailing window, plus current backlog and schedule."""

    days: int
    total_changes: int = 0
    pending_changes: int = 0
    completed_changes: int = 0
    failed_changes: int = 0
    outdated_contacts: int = 0
    next_sync_run: Optional[datetime] = None
