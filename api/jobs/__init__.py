"""Job lifecycle tracking and status streaming for long-running work."""
from .models import EventKind, JobRecord, JobStatus, JobType, StatusEvent
from .manager import (
    AlreadyTerminalError,
    ContentionError,
    InvalidProgressError,
    InvalidTransitionError,
    JobManager,
    JobNotFoundError,
    UnauthorizedError,
)
from .store import InMemoryJobStore, JobStore, StoreUnavailableError
from .stream import StatusStream
from .runner import JobCancelled, JobContext, JobQueueFullError, JobRunner

__all__ = [
    "AlreadyTerminalError",
    "ContentionError",
    "EventKind",
    "InMemoryJobStore",
    "InvalidProgressError",
    "InvalidTransitionError",
    "JobCancelled",
    "JobContext",
    "JobManager",
    "JobNotFoundError",
    "JobQueueFullError",
    "JobRecord",
    "JobRunner",
    "JobStatus",
    "JobStore",
    "JobType",
    "StatusEvent",
    "StatusStream",
    "StoreUnavailableError",
    "UnauthorizedError",
]
