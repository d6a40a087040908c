"""Response envelope shared by every JSON endpoint: ``{ok, data, error, meta}``."""
from __future__ import annotations

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from ..jobs.models import utc_now

T = TypeVar("T")


class ResponseMeta(BaseModel):
    generated_at: str = Field(default_factory=utc_now)
    warnings: List[str] = Field(default_factory=list)
    elapsed_ms: Optional[float] = None


class ApiResponse(BaseModel, Generic[T]):
    """Either ``data`` (``ok`` true) or a short ``error`` message, never a traceback."""

    ok: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    meta: ResponseMeta = Field(default_factory=ResponseMeta)

    @classmethod
    def success(cls, data: Any, *, meta: Optional[ResponseMeta] = None, **meta_kwargs) -> "ApiResponse":
        return cls(data=data, meta=meta or ResponseMeta(**meta_kwargs))

    @classmethod
    def fail(cls, error: str, *, warnings: Optional[List[str]] = None) -> "ApiResponse":
        return cls(ok=False, error=error, meta=ResponseMeta(warnings=list(warnings or [])))
