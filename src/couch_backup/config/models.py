"""
Configuration and result models for the couch backup system using Pydantic.

This module defines the configuration models that validate and parse the
YAML configuration file, and the models exchanged between the components
of a backup cycle.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

SequenceToken = Union[int, str]


class RevisionMode(str, Enum):
    """Which revisions of a changed document are copied."""

    LATEST = "latest"
    HISTORY = "history"


class CopyStatus(str, Enum):
    """Outcome of copying one change entry."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class CouchConnectionConfig(BaseModel):
    """Configuration for the source/backup deployment."""

    root_url: str
    vhost: Optional[str] = None

    @field_validator("root_url")
    @classmethod
    def validate_root_url(cls, v):
        """Validate the root endpoint."""
        if not v or not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid root endpoint: {v!r}. Must be an http(s) URL")
        return v.rstrip("/")


class CatalogConfig(BaseModel):
    """Configuration for the dataset catalog."""

    database: str = "datacouch"
    view: str = "_design/datacouch/_view/by_user"


class BackupConfig(BaseModel):
    """Configuration for backup operations."""

    suffix: str = "-backup"
    bootstrap_app_path: Optional[str] = None
    revision_mode: RevisionMode = RevisionMode.LATEST
    advance_past_failures: bool = False
    include_datasets: Optional[List[str]] = None
    exclude_datasets: Optional[List[str]] = None
    changes_style: str = "main_only"
    changes_limit: Optional[int] = Field(default=None, ge=1)

    @field_validator("suffix")
    @classmethod
    def validate_suffix(cls, v):
        """An empty suffix would make the backup store the source store."""
        if not v:
            raise ValueError("Backup suffix must not be empty")
        return v

    @field_validator("changes_style")
    @classmethod
    def validate_changes_style(cls, v):
        """Validate change feed style."""
        valid_styles = ["main_only", "all_docs"]
        if v not in valid_styles:
            raise ValueError(
                f"Invalid changes style: {v}. Must be one of {valid_styles}"
            )
        return v


class SchedulerConfig(BaseModel):
    """Configuration for the poll loop."""

    poll_interval_seconds: float = Field(default=5.0, ge=0)


class ConcurrencyConfig(BaseModel):
    """Configuration for concurrency settings."""

    max_workers: int = Field(default=4, ge=1, le=32)
    max_copy_workers: int = Field(default=8, ge=1, le=64)
    timeout_seconds: int = Field(default=3600, ge=1)


class HttpConfig(BaseModel):
    """Configuration for HTTP requests against the stores."""

    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    read_timeout_seconds: float = Field(default=120.0, gt=0)
    stream_chunk_size: int = Field(default=64 * 1024, ge=1024)


class CheckpointConfig(BaseModel):
    """Configuration for checkpoint persistence."""

    max_conflict_retries: int = Field(default=5, ge=0, le=50)


class LoggingConfig(BaseModel):
    """Configuration for logging settings."""

    level: str = Field(default="INFO")
    format: str = Field(default="json")  # "text" or "json"
    log_to_file: bool = Field(default=False)
    log_file_path: Optional[str] = None

    @field_validator("level")
    @classmethod
    def validate_level(cls, v):
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(
                f"Invalid logging level: {v}. Must be one of {valid_levels}"
            )
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v):
        """Validate logging format."""
        valid_formats = ["text", "json"]
        if v.lower() not in valid_formats:
            raise ValueError(
                f"Invalid logging format: {v}. Must be one of {valid_formats}"
            )
        return v.lower()

    @model_validator(mode="after")
    def validate_log_file(self):
        """A log file path is required when file logging is enabled."""
        if self.log_to_file and not self.log_file_path:
            raise ValueError("log_file_path is required when log_to_file is enabled")
        return self


class RetryConfig(BaseModel):
    """Configuration for retry settings."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay_seconds: float = Field(default=1.0, ge=0)


class AuditConfig(BaseModel):
    """Configuration for the audit trail"""

    audit_db: Optional[str] = None


class BackupSystemConfig(BaseModel):
    """Root configuration model for the backup system."""

    version: str = "1.0"
    couch: CouchConnectionConfig
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    checkpoint: CheckpointConfig = Field(default_factory=CheckpointConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    audit_config: AuditConfig = Field(default_factory=AuditConfig)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v):
        """Validate configuration version."""
        if v != "1.0":
            raise ValueError(f"Unsupported configuration version: {v}")
        return v


class Dataset(BaseModel):
    """A dataset listed by the catalog."""

    id: str
    user: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def last_backup_seq(self) -> Optional[SequenceToken]:
        return self.metadata.get("lastBackupSeq")


class ChangeEntry(BaseModel):
    """One change reported by a change feed."""

    doc_id: str
    seq: SequenceToken
    revisions: List[str]
    deleted: bool = False

    @field_validator("revisions")
    @classmethod
    def validate_revisions(cls, v):
        """Every change carries at least one revision descriptor."""
        if not v:
            raise ValueError("A change entry must list at least one revision")
        return v

    @property
    def latest_revision(self) -> str:
        return self.revisions[0]


class CopyResult(BaseModel):
    """Model for the outcome of copying one change entry."""

    doc_id: str
    seq: SequenceToken
    status: CopyStatus
    revisions_copied: List[str] = Field(default_factory=list)
    start_time: str
    end_time: str
    error_message: Optional[str] = None
    attempt_number: Optional[int] = None
    max_attempts: Optional[int] = None


class DatasetResult(BaseModel):
    """Model for the outcome of one dataset batch."""

    operation_type: str = "backup"
    dataset_id: str
    target_db: str
    status: str  # success, idle, partial, failed
    start_time: str
    end_time: str
    previous_checkpoint: Optional[SequenceToken] = None
    checkpoint: Optional[SequenceToken] = None
    target_created: bool = False
    entries_total: int = 0
    entries_copied: int = 0
    retryable_failures: int = 0
    fatal_failures: int = 0
    unresolved: List[ChangeEntry] = Field(default_factory=list)
    error_message: Optional[str] = None


class DatasetState(BaseModel):
    """Per-dataset state owned by the scheduler."""

    dataset_id: str
    checkpoint: Optional[SequenceToken] = None
    unresolved: List[ChangeEntry] = Field(default_factory=list)
    consecutive_failures: int = 0
    last_status: Optional[str] = None
    last_run_id: Optional[str] = None


class CycleSummary(BaseModel):
    """Model for poll cycle summary logging."""

    run_id: str
    cycle: int
    start_time: str
    end_time: Optional[str] = None
    duration: Optional[float] = None
    status: str  # completed, completed_with_failures, failed
    total_datasets: int = 0
    successful_datasets: int = 0
    idle_datasets: int = 0
    failed_datasets: int = 0
    entries_copied: int = 0
    entries_failed: int = 0
    summary: Optional[str] = None
    error_message: Optional[str] = None
