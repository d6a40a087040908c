"""Deployment settings for the API layer."""
from __future__ import annotations

from pydantic_settings import BaseSettings

from ..config import LOG_LEVEL


class ApiSettings(BaseSettings):
    """Immutable settings loaded from environment / .env file.

    An empty ``job_db_path`` selects the in-process job store.
    """

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:8000"
    job_db_path: str = "debate_jobs.db"
    store_timeout: float = 5.0
    log_level: str = LOG_LEVEL

    model_config = {"env_prefix": "DEBATE_JOBS_API_", "env_file": ".env", "extra": "ignore"}
