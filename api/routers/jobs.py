"""Job control and status streaming endpoints."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sse_starlette.sse import EventSourceResponse, ServerSentEvent

from ..deps.auth import require_principal
from ..deps.providers import get_job_manager, get_status_stream
from ..jobs.manager import JobManager
from ..jobs.models import KEEPALIVE, JobStatus
from ..jobs.stream import StatusStream
from ..schemas.envelope import ApiResponse
from ..schemas.jobs import CancelJobResponse

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("")
async def list_jobs(
    debate_id: Optional[str] = None,
    status: Optional[JobStatus] = None,
    limit: int = Query(default=50, ge=1, le=200),
    manager: JobManager = Depends(get_job_manager),
) -> ApiResponse:
    jobs = await manager.list_jobs(debate_id=debate_id, status=status, limit=limit)
    return ApiResponse.success([j.public_dict() for j in jobs])


@router.get("/{job_id}")
async def get_job(
    job_id: str,
    manager: JobManager = Depends(get_job_manager),
) -> ApiResponse:
    rec = await manager.get_status(job_id)
    return ApiResponse.success(rec.public_dict())


@router.get("/{job_id}/stream")
async def stream_job(
    job_id: str,
    stream: StatusStream = Depends(get_status_stream),
):
    """Server-Sent Events feed of status changes.

    The connection closes after a ``complete``, ``error`` or ``timeout`` event.
    """

    async def _generate():
        async for item in stream.subscribe(job_id):
            if item is KEEPALIVE:
                yield ServerSentEvent(comment="keep-alive")
            else:
                yield ServerSentEvent(event=item.kind.value, data=item.model_dump_json())

    return EventSourceResponse(
        _generate(),
        headers={"Cache-Control": "no-cache, no-transform", "X-Accel-Buffering": "no"},
    )


@router.delete("/{job_id}")
async def cancel_job(
    job_id: str,
    principal: str = Depends(require_principal),
    manager: JobManager = Depends(get_job_manager),
) -> ApiResponse:
    cancelled = await manager.cancel(job_id, principal)
    message = "Job cancelled" if cancelled else "Job already finished; cancellation had no effect"
    resp = CancelJobResponse(cancelled=cancelled, message=message, job_id=job_id)
    return ApiResponse.success(resp.model_dump())
