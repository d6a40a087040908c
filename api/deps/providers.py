"""Singleton dependency providers for FastAPI ``Depends()``."""
from __future__ import annotations

from functools import lru_cache

from ..config import ApiSettings


@lru_cache
def get_settings() -> ApiSettings:
    return ApiSettings()


# Lazy singletons - initialised at first call rather than import time
# so the event loop is already running when async resources are needed.

_job_store = None
_job_manager = None
_job_runner = None
_status_stream = None


def get_job_store():
    """Return the singleton job store (SQLite, or in-process when no path is set)."""
    global _job_store
    if _job_store is None:
        from ..jobs.store import InMemoryJobStore, JobStore

        settings = get_settings()
        if settings.job_db_path:
            _job_store = JobStore(settings.job_db_path, timeout=settings.store_timeout)
        else:
            _job_store = InMemoryJobStore()
    return _job_store


def get_job_manager():
    """Return the singleton ``JobManager``."""
    global _job_manager
    if _job_manager is None:
        from ..jobs.manager import JobManager

        _job_manager = JobManager(get_job_store())
    return _job_manager


def get_job_runner():
    """Return the singleton ``JobRunner``."""
    global _job_runner
    if _job_runner is None:
        from ...config import JOB_MAX_CONCURRENT, JOB_MAX_QUEUED
        from ..jobs.runner import JobRunner

        _job_runner = JobRunner(
            get_job_manager(), max_concurrent=JOB_MAX_CONCURRENT, max_queued=JOB_MAX_QUEUED
        )
    return _job_runner


def get_status_stream():
    """Return the shared ``StatusStream`` bridge."""
    global _status_stream
    if _status_stream is None:
        from ..jobs.stream import StatusStream

        _status_stream = StatusStream(get_job_manager())
    return _status_stream
