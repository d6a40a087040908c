"""Dependency injection providers."""
from .auth import require_principal
from .providers import (
    get_job_manager,
    get_job_runner,
    get_job_store,
    get_settings,
    get_status_stream,
)

__all__ = [
    "get_job_manager",
    "get_job_runner",
    "get_job_store",
    "get_settings",
    "get_status_stream",
    "require_principal",
]
