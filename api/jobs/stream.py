"""Status streaming: turn periodic status reads into an ordered event feed.

A subscription samples the job record on a fixed cadence, emits an
``update`` when ``(status, progress)`` changes, and ends with exactly one
of ``complete``, ``error`` or ``timeout``.  Keep-alive markers are
interleaved on a slower cadence and do not count toward the poll budget.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from ...config import STREAM_KEEPALIVE_INTERVAL, STREAM_MAX_POLLS, STREAM_POLL_INTERVAL
from .manager import JobManager, JobNotFoundError
from .models import KEEPALIVE, EventKind, JobRecord, StatusEvent, KeepAlive
from .store import StoreUnavailableError

logger = logging.getLogger(__name__)

StreamItem = Union[StatusEvent, KeepAlive]


class StatusStream:
    """Per-subscriber polling bridge over :meth:`JobManager.get_status`.

    Holds no shared mutable state; each :meth:`subscribe` call owns its
    own counters, so any number of subscribers can watch the same job.
    """

    def __init__(
        self,
        manager: JobManager,
        *,
        poll_interval: float = STREAM_POLL_INTERVAL,
        keepalive_interval: float = STREAM_KEEPALIVE_INTERVAL,
        max_polls: int = STREAM_MAX_POLLS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._manager = manager
        self.poll_interval = poll_interval
        self.keepalive_interval = keepalive_interval
        self.max_polls = max_polls
        self._sleep = sleep
        self._clock = clock

    async def _sample(self, job_id: str) -> Union[JobRecord, StatusEvent]:
        """Read the record, or build the ``error`` event that ends the stream."""
        try:
            return await self._manager.get_status(job_id)
        except JobNotFoundError as exc:
            return StatusEvent(kind=EventKind.error, job_id=job_id, message=str(exc))
        except StoreUnavailableError as exc:
            logger.warning("Status stream for job %s aborted: %s", job_id, exc)
            return StatusEvent(kind=EventKind.error, job_id=job_id, message=str(exc))

    async def subscribe(self, job_id: str) -> AsyncIterator[StreamItem]:
        """Yield status events for ``job_id`` until it terminates or the budget runs out."""
        last_key: Optional[tuple] = None
        polls = 0
        last_keepalive = self._clock()

        while True:
            sample = await self._sample(job_id)
            polls += 1
            if isinstance(sample, StatusEvent):
                yield sample
                return

            if sample.is_terminal:
                yield StatusEvent.from_record(EventKind.complete, sample)
                return

            key = (sample.status, sample.progress)
            if key != last_key:
                last_key = key
                yield StatusEvent.from_record(EventKind.update, sample)

            if polls >= self.max_polls:
                logger.info("Status stream for job %s timed out after %d polls", job_id, polls)
                yield StatusEvent(
                    kind=EventKind.timeout,
                    job_id=job_id,
                    status=sample.status,
                    progress=sample.progress,
                    message=f"Timeout waiting for job after {polls} polls",
                )
                return

            await self._sleep(self.poll_interval)

            now = self._clock()
            if now - last_keepalive >= self.keepalive_interval:
                last_keepalive = now
                yield KEEPALIVE
