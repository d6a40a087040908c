"""Job data models."""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStatus(str, enum.Enum):
    pending = "pending"
    active = "active"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed, JobStatus.cancelled})


class JobType(str, enum.Enum):
    """Kinds of task body a job can carry."""

    generate_response = "generate_response"
    select_experts = "select_experts"
    extract_topics = "extract_topics"
    process_document = "process_document"
    generate_summary = "generate_summary"


class JobRecord(BaseModel):
    """Persistent representation of a trackable unit of work.

    ``version`` is bumped by every successful write and is the token the
    store compares on ``compare_and_set``.
    """

    job_id: str
    job_type: str
    owner_id: str
    debate_id: Optional[str] = None
    status: JobStatus = JobStatus.pending
    progress: float = 0.0
    params: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error_message: Optional[str] = None
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def public_dict(self) -> Dict[str, Any]:
        """Fields exposed over the job control API."""
        return self.model_dump(mode="json", exclude={"version", "params"})


class EventKind(str, enum.Enum):
    update = "update"
    complete = "complete"
    error = "error"
    timeout = "timeout"


class StatusEvent(BaseModel):
    """One frame of a status subscription."""

    kind: EventKind
    job_id: str
    status: Optional[JobStatus] = None
    progress: Optional[float] = None
    result: Optional[Any] = None
    error_message: Optional[str] = None
    message: Optional[str] = None
    emitted_at: str = Field(default_factory=utc_now)

    @classmethod
    def from_record(cls, kind: EventKind, rec: JobRecord) -> "StatusEvent":
        return cls(
            kind=kind,
            job_id=rec.job_id,
            status=rec.status,
            progress=rec.progress,
            result=rec.result if rec.status == JobStatus.completed else None,
            error_message=rec.error_message if rec.status == JobStatus.failed else None,
        )


class KeepAlive:
    """Marker for a non-semantic keep-alive frame."""

    def __repr__(self) -> str:
        return "KEEPALIVE"


KEEPALIVE = KeepAlive()
