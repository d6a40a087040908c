"""Pydantic schemas for API request/response models."""
from .envelope import ApiResponse, ResponseMeta
from .jobs import CancelJobResponse

__all__ = ["ApiResponse", "CancelJobResponse", "ResponseMeta"]
