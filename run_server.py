"""API server entry point.

Usage:
    python run_server.py

    # Custom host/port and an in-process job store:
    python run_server.py --host 0.0.0.0 --port 9000 --db-path ""
"""
from __future__ import annotations

import argparse
import logging
import os

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Debate Jobs API Server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument(
        "--db-path",
        default=None,
        help="SQLite job database path; empty string keeps jobs in memory",
    )
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # ApiSettings reads DEBATE_JOBS_API_* on first use, so export before importing.
    os.environ["DEBATE_JOBS_API_HOST"] = args.host
    os.environ["DEBATE_JOBS_API_PORT"] = str(args.port)
    os.environ["DEBATE_JOBS_API_LOG_LEVEL"] = args.log_level
    if args.db_path is not None:
        os.environ["DEBATE_JOBS_API_JOB_DB_PATH"] = args.db_path

    import uvicorn

    from debate_jobs.api.main import create_app

    app = create_app()

    logger.info("Starting Debate Jobs API on %s:%s", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
