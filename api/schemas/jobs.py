"""Request/response models for the job control endpoints."""
from __future__ import annotations

from pydantic import BaseModel


class CancelJobResponse(BaseModel):
    """Outcome of a cancel request.

    ``success`` is true whenever the request was accepted; ``cancelled``
    tells whether it changed the job or found it already finished.
    """

    success: bool = True
    cancelled: bool
    message: str
    job_id: str
