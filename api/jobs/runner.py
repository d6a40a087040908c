"""Async job runner with bounded concurrency and cooperative cancellation."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

from .manager import AlreadyTerminalError, InvalidTransitionError, JobManager
from .models import JobStatus

logger = logging.getLogger(__name__)


class JobCancelled(Exception):
    """Raised inside task bodies when cooperative cancellation is detected."""


class JobQueueFullError(Exception):
    """Raised when the job queue is at capacity."""


class JobContext:
    """Handle given to a task body for reporting progress about its own job."""

    def __init__(self, job_id: str, manager: JobManager) -> None:
        self.job_id = job_id
        self._manager = manager

    async def is_cancelled(self) -> bool:
        rec = await self._manager.get_status(self.job_id)
        return rec.status == JobStatus.cancelled

    async def report_progress(self, progress: float) -> None:
        """Checkpoint: stop with :class:`JobCancelled` if the job was cancelled."""
        if await self.is_cancelled():
            raise JobCancelled(self.job_id)
        try:
            await self._manager.update_progress(self.job_id, progress)
        except AlreadyTerminalError as exc:
            # Cancelled between the check and the write.
            raise JobCancelled(self.job_id) from exc


TaskBody = Callable[..., Awaitable[Any]]


class JobRunner:
    """Executes task bodies as asyncio tasks, one per job."""

    def __init__(self, manager: JobManager, max_concurrent: int = 2, max_queued: int = 20) -> None:
        self._manager = manager
        self._sem = asyncio.Semaphore(max_concurrent)
        self._active_tasks: Dict[str, asyncio.Task] = {}
        self._max_queued = max_queued

    # ── Submit & Run ─────────────────────────────────────────────────

    @property
    def pending_count(self) -> int:
        """Number of jobs queued or running."""
        return len(self._active_tasks)

    async def submit(self, job_id: str, fn: TaskBody, *args: Any, **kwargs: Any) -> None:
        """Schedule ``fn(ctx, *args, **kwargs)`` for *job_id*.

        Raises
        ------
        JobQueueFullError
            If the number of pending jobs reaches ``max_queued``.
        ValueError
            If *job_id* is already queued or running on this runner.
        """
        live = self._active_tasks.get(job_id)
        if live is not None and not live.done():
            raise ValueError(f"Job {job_id} is already queued or running")
        if len(self._active_tasks) >= self._max_queued:
            raise JobQueueFullError(
                f"Job queue full. {self._max_queued} jobs pending. Try again later."
            )
        task = asyncio.create_task(self._run(job_id, fn, *args, **kwargs))
        self._active_tasks[job_id] = task

    async def _run(self, job_id: str, fn: TaskBody, *args: Any, **kwargs: Any) -> None:
        try:
            try:
                async with self._sem:
                    if await self._start(job_id):
                        await self._execute(job_id, fn, *args, **kwargs)
            except asyncio.CancelledError:
                # Covers jobs still waiting on the semaphore as well as running bodies.
                await self._settle(self._manager.fail(job_id, "Job interrupted by server shutdown"))
                raise
        finally:
            if self._active_tasks.get(job_id) is asyncio.current_task():
                del self._active_tasks[job_id]

    async def _start(self, job_id: str) -> bool:
        """Move the job to ``active``; ``False`` means the body must not run."""
        try:
            await self._manager.mark_active(job_id)
        except InvalidTransitionError:
            logger.info("Job %s finished before it started; skipping", job_id)
            return False
        except Exception as exc:
            logger.exception("Could not start job %s: %s", job_id, exc)
            await self._settle(self._manager.fail(job_id, f"Could not start job: {exc}"))
            return False
        return True

    async def _execute(self, job_id: str, fn: TaskBody, *args: Any, **kwargs: Any) -> None:
        ctx = JobContext(job_id, self._manager)
        try:
            result = await fn(ctx, *args, **kwargs)
        except JobCancelled:
            logger.info("Job %s stopped after cancellation", job_id)
            return
        except Exception as exc:
            logger.exception("Job %s failed: %s", job_id, exc)
            await self._settle(self._manager.fail(job_id, str(exc)))
            return

        await self._settle(self._manager.complete(job_id, result))

    async def _settle(self, transition: Awaitable[Any]) -> None:
        """Apply a terminal write, discarding it if the job is already terminal."""
        try:
            await transition
        except AlreadyTerminalError as exc:
            logger.info("Discarding outcome: %s", exc)
        except Exception:  # noqa: BLE001
            logger.exception("Could not record job outcome")

    async def shutdown(self) -> None:
        """Cancel in-flight task bodies and wait for them to settle."""
        tasks = list(self._active_tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
