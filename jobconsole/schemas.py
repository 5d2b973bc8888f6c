from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

JobStatus = Literal["pending", "running", "completed", "failed", "cancelled"]
LogLevel = Literal["debug", "info", "warning", "error"]

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

JOB_STATUSES = (PENDING, RUNNING, COMPLETED, FAILED, CANCELLED)
LOG_LEVELS = ("debug", "info", "warning", "error")

JOB_STATUS_LABELS = {
    PENDING: "Pending",
    RUNNING: "Running",
    COMPLETED: "Completed",
    FAILED: "Failed",
    CANCELLED: "Cancelled",
}


class Job(BaseModel):
    id: int = Field(gt=0)
    type: str = Field(min_length=1)
    status: JobStatus
    priority: int = 0
    progress: int = Field(default=0, ge=0, le=100)
    progress_message: str = ""
    total_items: int = Field(default=0, ge=0)
    processed_items: int = Field(default=0, ge=0)
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=0, ge=0)
    error: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("progress_message", mode="before")
    @classmethod
    def _none_message(cls, value):
        return "" if value is None else value


class JobLog(BaseModel):
    id: int
    level: LogLevel
    message: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class JobDetail(Job):
    payload: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    logs: Optional[List[JobLog]] = None


# Payload field descriptors: one variant per input kind, tagged by `type`.

class SelectOption(BaseModel):
    label: str
    value: str


class _PayloadFieldBase(BaseModel):
    name: str
    label: str
    required: bool = False
    placeholder: Optional[str] = None
    description: Optional[str] = None


class StringField(_PayloadFieldBase):
    type: Literal["string"]
    default: Optional[str] = None


class NumberField(_PayloadFieldBase):
    type: Literal["number"]
    default: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None


class BooleanField(_PayloadFieldBase):
    type: Literal["boolean"]
    default: Optional[bool] = None


class SelectField(_PayloadFieldBase):
    type: Literal["select"]
    default: Optional[str] = None
    options: List[SelectOption] = Field(default_factory=list)


PayloadField = Annotated[
    Union[StringField, NumberField, BooleanField, SelectField],
    Field(discriminator="type"),
]


class JobType(BaseModel):
    type: str
    display_name: str
    description: str = ""
    max_retries: int = 0
    timeout: str = ""
    payload_fields: Optional[List[PayloadField]] = None

    @field_validator("timeout", mode="before")
    @classmethod
    def _timeout_as_text(cls, value):
        # backend may send a number of seconds or a duration string
        if value is None:
            return ""
        return str(value)


class JobStatusCounts(BaseModel):
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0

    @field_validator("pending", "running", "completed", "failed", "cancelled", mode="before")
    @classmethod
    def _null_as_zero(cls, value):
        return 0 if value is None else value


class JobTypeStats(JobStatusCounts):
    type: str = ""
    display_name: str = ""
    avg_duration_seconds: float = 0.0
    success_rate: float = 0.0

    @field_validator("type", "display_name", mode="before")
    @classmethod
    def _null_as_blank(cls, value):
        return "" if value is None else value

    @field_validator("avg_duration_seconds", "success_rate", mode="before")
    @classmethod
    def _null_rate_as_zero(cls, value):
        return 0.0 if value is None else value


class JobStats(BaseModel):
    by_type: Dict[str, JobTypeStats] = Field(default_factory=dict)
    total: JobStatusCounts = Field(default_factory=JobStatusCounts)

    @field_validator("by_type", "total", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return {} if value is None else value


class CreateJobRequest(BaseModel):
    type: str = Field(min_length=1)
    payload: Optional[Dict[str, Any]] = None
    priority: int = Field(default=0, ge=0, le=100)
    max_retries: Optional[int] = Field(default=None, ge=0, le=10)
    scheduled_at: Optional[str] = None  # ISO-8601; if set, backend defers the job


class BulkRequest(BaseModel):
    ids: List[int]


class BulkOutcome(BaseModel):
    succeeded: List[int] = Field(default_factory=list)
    failed: List[int] = Field(default_factory=list)


# Filter and sort catalogue for the job list.
FILTER_FIELDS = {
    "status": ("eq",),
    "type": ("eq",),
    "priority": ("eq", "gte", "lte"),
    "created_at": ("eq", "between", "gte", "lte"),
}
SORT_FIELDS = ("created_at", "started_at", "completed_at", "priority", "progress")
