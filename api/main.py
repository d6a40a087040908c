"""FastAPI application factory and server entry point."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import JOB_CLEANUP_INTERVAL, JOB_RETENTION_HOURS, LOG_FORMAT, validate_config
from .config import ApiSettings
from .deps.providers import get_job_runner, get_job_store, get_settings
from .errors import register_error_handlers

logger = logging.getLogger(__name__)


async def _retention_loop() -> None:
    """Background task that purges terminal jobs past the retention window."""
    while True:
        await asyncio.sleep(JOB_CLEANUP_INTERVAL)
        try:
            cutoff = datetime.now(timezone.utc) - timedelta(hours=JOB_RETENTION_HOURS)
            purged = await get_job_store().purge_terminal(cutoff)
            if purged:
                logger.info("Purged %d finished jobs older than %sh", purged, JOB_RETENTION_HOURS)
        except Exception:  # noqa: BLE001
            logger.warning("Job retention sweep failed", exc_info=True)


def configure_logging(level_name: str) -> None:
    effective_level = getattr(logging, level_name.upper(), logging.INFO)
    if LOG_FORMAT == "json":
        fmt = '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
    else:
        fmt = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

    logging.basicConfig(
        level=effective_level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings: ApiSettings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting debate_jobs API on %s:%s", settings.host, settings.port)

    issues = validate_config()
    for issue in issues:
        if issue.get("level") == "ERROR":
            logger.error("Config validation: %s", issue.get("message", ""))
        else:
            logger.warning("Config validation: %s", issue.get("message", ""))
    if not issues:
        logger.info("Config validation: all checks passed")

    # Initialise async resources
    store = get_job_store()
    await store.initialize()

    retention_task = asyncio.create_task(_retention_loop())

    yield

    # Cleanup
    retention_task.cancel()
    await get_job_runner().shutdown()
    await store.close()
    logger.info("Shutting down debate_jobs API")


def _cors_options(raw_origins: str) -> dict:
    """CORS middleware kwargs; a wildcard origin turns credentials off."""
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    if "*" in origins:
        logger.warning(
            "CORS origins include '*'; credentialed cross-origin requests are disabled. "
            "List the frontend origins explicitly to allow them."
        )
    return {
        "allow_origins": origins,
        "allow_credentials": "*" not in origins,
        "allow_methods": ["GET", "DELETE", "OPTIONS"],
        "allow_headers": ["Authorization", "X-API-Key", "X-User-Id", "Content-Type"],
    }


def create_app(settings: ApiSettings | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Debate Jobs API",
        description="Job lifecycle tracking and live status streaming for debate and document jobs.",
        version=__version__,
        lifespan=_lifespan,
    )
    app.add_middleware(CORSMiddleware, **_cors_options(settings.cors_origins))
    register_error_handlers(app)

    from .routers import ROUTERS

    for router in ROUTERS:
        app.include_router(router)
    return app


def run_server() -> None:
    """Console entry point (``debate-jobs-server``)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run_server()
