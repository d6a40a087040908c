"""Tests for the job runner: execution, failure capture, cooperative cancellation."""
import asyncio

import pytest

from debate_jobs.api.jobs.manager import JobManager
from debate_jobs.api.jobs.models import JobStatus
from debate_jobs.api.jobs.runner import JobCancelled, JobQueueFullError, JobRunner
from debate_jobs.api.jobs.store import InMemoryJobStore, StoreUnavailableError


async def _run_to_end(runner, job_id, fn, *args, **kwargs):
    await runner.submit(job_id, fn, *args, **kwargs)
    task = runner._active_tasks.get(job_id)
    if task is not None:
        await asyncio.wait_for(task, timeout=5)


@pytest.mark.asyncio
async def test_job_completes_with_result(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1", "extract_topics", params={"text": "a b c"})

    async def body(ctx, text):
        await ctx.report_progress(50)
        return {"topics": text.split()}

    await _run_to_end(runner, rec.job_id, body, "a b c")
    done = await job_manager.get_status(rec.job_id)
    assert done.status == JobStatus.completed
    assert done.result == {"topics": ["a", "b", "c"]}
    assert done.progress == 100.0
    assert done.started_at is not None
    assert runner.pending_count == 0


@pytest.mark.asyncio
async def test_job_exception_marks_failed(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1")

    async def body(ctx):
        await ctx.report_progress(25)
        raise RuntimeError("upstream model refused")

    await _run_to_end(runner, rec.job_id, body)
    failed = await job_manager.get_status(rec.job_id)
    assert failed.status == JobStatus.failed
    assert failed.error_message == "upstream model refused"
    assert failed.progress == 25.0


@pytest.mark.asyncio
async def test_cooperative_cancellation(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1")
    started = asyncio.Event()
    release = asyncio.Event()
    reached = []

    async def body(ctx):
        await ctx.report_progress(10)
        started.set()
        await release.wait()
        await ctx.report_progress(60)
        reached.append("after-checkpoint")
        return "should not be stored"

    await runner.submit(rec.job_id, body)
    task = runner._active_tasks[rec.job_id]
    await asyncio.wait_for(started.wait(), timeout=5)

    assert await job_manager.cancel(rec.job_id, "u1") is True
    release.set()
    await asyncio.wait_for(task, timeout=5)

    final = await job_manager.get_status(rec.job_id)
    assert final.status == JobStatus.cancelled
    assert final.progress == 10.0
    assert final.result is None
    assert reached == []


@pytest.mark.asyncio
async def test_body_ignoring_cancellation_cannot_complete(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1")
    started = asyncio.Event()
    release = asyncio.Event()

    async def body(ctx):
        started.set()
        await release.wait()
        return "late result"

    await runner.submit(rec.job_id, body)
    task = runner._active_tasks[rec.job_id]
    await asyncio.wait_for(started.wait(), timeout=5)
    await job_manager.cancel(rec.job_id, "u1")
    release.set()
    await asyncio.wait_for(task, timeout=5)

    final = await job_manager.get_status(rec.job_id)
    assert final.status == JobStatus.cancelled
    assert final.result is None


@pytest.mark.asyncio
async def test_job_cancelled_before_start_never_runs(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1")
    await job_manager.cancel(rec.job_id, "u1")
    calls = []

    async def body(ctx):
        calls.append(ctx.job_id)

    await _run_to_end(runner, rec.job_id, body)
    assert calls == []
    assert (await job_manager.get_status(rec.job_id)).status == JobStatus.cancelled


@pytest.mark.asyncio
async def test_is_cancelled_checkpoint(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1")
    seen = []

    async def body(ctx):
        seen.append(await ctx.is_cancelled())
        await job_manager.cancel(ctx.job_id, "u1")
        seen.append(await ctx.is_cancelled())
        raise JobCancelled(ctx.job_id)

    await _run_to_end(runner, rec.job_id, body)
    assert seen == [False, True]
    assert (await job_manager.get_status(rec.job_id)).status == JobStatus.cancelled


@pytest.mark.asyncio
async def test_concurrency_limit(job_manager):
    runner = JobRunner(job_manager, max_concurrent=1)
    running = 0
    peak = 0

    async def body(ctx):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    recs = [await job_manager.create("u1") for _ in range(3)]
    for rec in recs:
        await runner.submit(rec.job_id, body)
    await asyncio.wait_for(
        asyncio.gather(*list(runner._active_tasks.values())), timeout=5
    )

    assert peak == 1
    for rec in recs:
        assert (await job_manager.get_status(rec.job_id)).status == JobStatus.completed


@pytest.mark.asyncio
async def test_queue_full(job_manager):
    runner = JobRunner(job_manager, max_concurrent=1, max_queued=2)
    gate = asyncio.Event()

    async def body(ctx):
        await gate.wait()

    recs = [await job_manager.create("u1") for _ in range(3)]
    await runner.submit(recs[0].job_id, body)
    await runner.submit(recs[1].job_id, body)
    with pytest.raises(JobQueueFullError):
        await runner.submit(recs[2].job_id, body)
    assert runner.pending_count == 2

    gate.set()
    await asyncio.wait_for(
        asyncio.gather(*list(runner._active_tasks.values())), timeout=5
    )
    assert runner.pending_count == 0


@pytest.mark.asyncio
async def test_shutdown_fails_in_flight_jobs(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1")
    started = asyncio.Event()

    async def body(ctx):
        started.set()
        await asyncio.Event().wait()

    await runner.submit(rec.job_id, body)
    await asyncio.wait_for(started.wait(), timeout=5)
    await runner.shutdown()

    final = await job_manager.get_status(rec.job_id)
    assert final.status == JobStatus.failed
    assert final.error_message == "Job interrupted by server shutdown"
    assert runner.pending_count == 0


@pytest.mark.asyncio
async def test_shutdown_fails_queued_jobs(job_manager):
    runner = JobRunner(job_manager, max_concurrent=1)
    running = await job_manager.create("u1")
    queued = await job_manager.create("u1")
    started = asyncio.Event()

    async def body(ctx):
        started.set()
        await asyncio.Event().wait()

    await runner.submit(running.job_id, body)
    await runner.submit(queued.job_id, body)
    await asyncio.wait_for(started.wait(), timeout=5)
    await runner.shutdown()

    for rec in (running, queued):
        final = await job_manager.get_status(rec.job_id)
        assert final.status == JobStatus.failed
        assert final.error_message == "Job interrupted by server shutdown"
    assert runner.pending_count == 0


class _FirstWriteFailsStore(InMemoryJobStore):
    """The first compare-and-set hits a store outage; later writes go through."""

    def __init__(self):
        super().__init__()
        self.outages = 1

    async def compare_and_set(self, job_id, expected_version, rec):
        if self.outages:
            self.outages -= 1
            raise StoreUnavailableError("Job store compare_and_set timed out after 5.0s")
        return await super().compare_and_set(job_id, expected_version, rec)


@pytest.mark.asyncio
async def test_store_error_on_start_fails_job():
    manager = JobManager(_FirstWriteFailsStore(), retry_delay=0)
    runner = JobRunner(manager)
    rec = await manager.create("u1")
    calls = []

    async def body(ctx):
        calls.append(ctx.job_id)

    await _run_to_end(runner, rec.job_id, body)

    assert calls == []
    final = await manager.get_status(rec.job_id)
    assert final.status == JobStatus.failed
    assert "timed out" in final.error_message
    assert runner.pending_count == 0


@pytest.mark.asyncio
async def test_start_of_deleted_job_is_contained(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1")
    await job_manager.store.delete(rec.job_id)

    async def body(ctx):
        raise AssertionError("body must not run")

    await runner.submit(rec.job_id, body)
    task = runner._active_tasks[rec.job_id]
    await asyncio.wait_for(task, timeout=5)
    assert task.exception() is None
    assert runner.pending_count == 0


@pytest.mark.asyncio
async def test_duplicate_submit_rejected_while_live(job_manager):
    runner = JobRunner(job_manager)
    rec = await job_manager.create("u1")
    gate = asyncio.Event()

    async def body(ctx):
        await gate.wait()

    await runner.submit(rec.job_id, body)
    first = runner._active_tasks[rec.job_id]
    with pytest.raises(ValueError):
        await runner.submit(rec.job_id, body)
    assert runner._active_tasks[rec.job_id] is first
    assert runner.pending_count == 1

    gate.set()
    await asyncio.wait_for(first, timeout=5)
    assert runner.pending_count == 0
    assert (await job_manager.get_status(rec.job_id)).status == JobStatus.completed
