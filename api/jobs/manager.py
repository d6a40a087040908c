"""Job lifecycle manager: the single writer of job records.

Every mutation is a read-modify-write against the store guarded by
``compare_and_set`` on the record version.  A lost race re-reads and
re-applies the mutation; after ``max_retries`` lost races the call fails
with :class:`ContentionError`.
"""
from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any, Callable, Dict, List, Optional

from ...config import JOB_CAS_MAX_RETRIES, JOB_CAS_RETRY_DELAY, JOB_PROGRESS_MAX
from .models import JobRecord, JobStatus, JobType, utc_now
from .store import StoreUnavailableError

logger = logging.getLogger(__name__)


# ── Exceptions ───────────────────────────────────────────────────────


class JobNotFoundError(Exception):
    """Requested job ID does not exist."""


class UnauthorizedError(Exception):
    """Requester is not the owner of the job."""


class InvalidTransitionError(Exception):
    """The requested status change is not allowed from the current status."""


class AlreadyTerminalError(InvalidTransitionError):
    """The job already reached completed, failed or cancelled."""


class InvalidProgressError(Exception):
    """Progress is out of range or lower than the stored value."""


class ContentionError(Exception):
    """Compare-and-set kept losing to concurrent writers."""


_Mutation = Callable[[JobRecord], Optional[JobRecord]]


class JobManager:
    """Owns the job state machine on top of a :class:`JobStore`."""

    def __init__(
        self,
        store,
        *,
        max_retries: int = JOB_CAS_MAX_RETRIES,
        retry_delay: float = JOB_CAS_RETRY_DELAY,
    ) -> None:
        self._store = store
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    @property
    def store(self):
        return self._store

    # ── Reads ────────────────────────────────────────────────────────

    async def get_status(self, job_id: str) -> JobRecord:
        rec = await self._store.get(job_id)
        if rec is None:
            raise JobNotFoundError(f"Job '{job_id}' not found")
        return rec

    async def list_jobs(
        self,
        *,
        debate_id: str | None = None,
        owner_id: str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> List[JobRecord]:
        return await self._store.list_jobs(
            debate_id=debate_id, owner_id=owner_id, status=status, limit=limit
        )

    # ── Creation ─────────────────────────────────────────────────────

    async def create(
        self,
        owner_id: str,
        job_type: JobType | str = JobType.generate_response,
        *,
        debate_id: str | None = None,
        params: Dict[str, Any] | None = None,
    ) -> JobRecord:
        """Allocate a fresh id and persist a ``pending`` record at progress 0."""
        rec = JobRecord(
            job_id=uuid.uuid4().hex,
            job_type=JobType(job_type).value,
            owner_id=owner_id,
            debate_id=debate_id,
            params=params or {},
        )
        await self._store.create(rec)
        logger.info("Created job %s (%s) for owner %s", rec.job_id, rec.job_type, owner_id)
        return rec

    # ── Transitions ──────────────────────────────────────────────────

    async def mark_active(self, job_id: str) -> JobRecord:
        """``pending -> active``.  A no-op when the job is already active."""

        def _activate(rec: JobRecord) -> Optional[JobRecord]:
            if rec.is_terminal:
                raise InvalidTransitionError(
                    f"Cannot activate job {job_id}: status is {rec.status.value}"
                )
            if rec.status == JobStatus.active:
                return None
            now = utc_now()
            return rec.model_copy(update={
                "status": JobStatus.active,
                "started_at": rec.started_at or now,
                "updated_at": now,
            })

        return await self._mutate(job_id, _activate)

    async def update_progress(self, job_id: str, progress: float) -> JobRecord:
        """Record forward progress; lower values than the stored one are rejected."""

        def _advance(rec: JobRecord) -> JobRecord:
            if rec.is_terminal:
                raise AlreadyTerminalError(
                    f"Cannot update progress of job {job_id}: status is {rec.status.value}"
                )
            if not 0 <= progress <= JOB_PROGRESS_MAX:
                raise InvalidProgressError(
                    f"Progress {progress} for job {job_id} is outside [0, {JOB_PROGRESS_MAX:g}]"
                )
            if progress < rec.progress:
                raise InvalidProgressError(
                    f"Progress for job {job_id} cannot go from {rec.progress:g} to {progress:g}"
                )
            return rec.model_copy(update={"progress": float(progress), "updated_at": utc_now()})

        return await self._mutate(job_id, _advance)

    async def complete(self, job_id: str, result: Any = None) -> JobRecord:
        """Terminal success.  A second completion signal is an error, not a no-op."""

        def _finish(rec: JobRecord) -> JobRecord:
            if rec.is_terminal:
                raise AlreadyTerminalError(
                    f"Cannot complete job {job_id}: already {rec.status.value}"
                )
            now = utc_now()
            return rec.model_copy(update={
                "status": JobStatus.completed,
                "progress": JOB_PROGRESS_MAX,
                "result": result,
                "error_message": None,
                "updated_at": now,
                "completed_at": now,
            })

        rec = await self._mutate(job_id, _finish)
        logger.info("Job %s completed", job_id)
        return rec

    async def fail(self, job_id: str, error_message: str) -> JobRecord:
        """Terminal failure, symmetric to :meth:`complete`."""

        def _fail(rec: JobRecord) -> JobRecord:
            if rec.is_terminal:
                raise AlreadyTerminalError(
                    f"Cannot fail job {job_id}: already {rec.status.value}"
                )
            now = utc_now()
            return rec.model_copy(update={
                "status": JobStatus.failed,
                "result": None,
                "error_message": error_message,
                "updated_at": now,
                "completed_at": now,
            })

        rec = await self._mutate(job_id, _fail)
        logger.info("Job %s failed: %s", job_id, error_message)
        return rec

    async def cancel(self, job_id: str, requester_id: str) -> bool:
        """Request cancellation on behalf of ``requester_id``.

        Returns ``True`` if this call moved the job to ``cancelled`` and
        ``False`` if the job had already finished.  Raises
        :class:`UnauthorizedError` for non-owners regardless of status.
        """
        cancelled = False

        def _cancel(rec: JobRecord) -> Optional[JobRecord]:
            nonlocal cancelled
            cancelled = False
            if rec.owner_id != requester_id:
                raise UnauthorizedError(
                    f"Principal {requester_id} may not cancel job {job_id}"
                )
            if rec.is_terminal:
                return None
            cancelled = True
            now = utc_now()
            return rec.model_copy(update={
                "status": JobStatus.cancelled,
                "updated_at": now,
                "completed_at": now,
            })

        await self._mutate(job_id, _cancel)
        if cancelled:
            logger.info("Job %s cancelled by %s", job_id, requester_id)
        else:
            logger.info("Cancel of job %s by %s had no effect (already finished)", job_id, requester_id)
        return cancelled

    # ── CAS loop ─────────────────────────────────────────────────────

    async def _mutate(self, job_id: str, mutation: _Mutation) -> JobRecord:
        """Apply ``mutation`` under compare-and-set, retrying on lost races.

        ``mutation`` returns the new record, ``None`` for "nothing to write",
        or raises to reject the change.
        """
        for attempt in range(self._max_retries):
            current = await self.get_status(job_id)
            try:
                updated = mutation(current)
            except (InvalidTransitionError, InvalidProgressError) as exc:
                logger.warning("Rejected mutation of job %s: %s", job_id, exc)
                raise
            if updated is None:
                return current

            updated = updated.model_copy(update={"version": current.version + 1})
            if await self._store.compare_and_set(job_id, current.version, updated):
                return updated

            logger.debug(
                "CAS conflict on job %s (attempt %d/%d)", job_id, attempt + 1, self._max_retries
            )
            if self._retry_delay > 0:
                await asyncio.sleep(self._retry_delay * random.uniform(0.5, 1.5))

        logger.error("Job %s: compare-and-set lost %d times in a row", job_id, self._max_retries)
        raise ContentionError(
            f"Job {job_id} is being modified concurrently; retry the request"
        )


__all__ = [
    "AlreadyTerminalError",
    "ContentionError",
    "InvalidProgressError",
    "InvalidTransitionError",
    "JobManager",
    "JobNotFoundError",
    "StoreUnavailableError",
    "UnauthorizedError",
]
