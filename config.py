"""
Central configuration for the debate job service.

Flat-constant interface for engine defaults.  Deployment settings that
vary per environment (host, port, database path, auth) live in
``api/config.py`` and are read from ``DEBATE_JOBS_API_*`` variables.

Config Status Legend
====================
Each constant is annotated with one of the following statuses:

  ACTIVE      - Imported and used by running code.  Changing the value
                affects live behaviour.

Search for ``# STATUS:`` to locate all annotations.
"""

# ── Status Streaming ──────────────────────────────────────────────────
STREAM_POLL_INTERVAL = 1.0                        # STATUS: ACTIVE - api/jobs/stream.py; seconds between status samples
STREAM_KEEPALIVE_INTERVAL = 15.0                  # STATUS: ACTIVE - api/jobs/stream.py; seconds between keep-alive frames
STREAM_MAX_POLLS = 300                            # STATUS: ACTIVE - api/jobs/stream.py; poll budget (~5 minutes at 1s)

# ── Job Lifecycle ─────────────────────────────────────────────────────
JOB_CAS_MAX_RETRIES = 5                           # STATUS: ACTIVE - api/jobs/manager.py; compare-and-set attempts before Contention
JOB_CAS_RETRY_DELAY = 0.01                        # STATUS: ACTIVE - api/jobs/manager.py; base pause between CAS attempts (seconds)
JOB_PROGRESS_MAX = 100.0                          # STATUS: ACTIVE - api/jobs/manager.py; upper bound for progress values

# ── Job Runner ────────────────────────────────────────────────────────
JOB_MAX_CONCURRENT = 2                            # STATUS: ACTIVE - api/deps/providers.py; task bodies executing at once
JOB_MAX_QUEUED = 20                               # STATUS: ACTIVE - api/deps/providers.py; pending task bodies before 429

# ── Retention ─────────────────────────────────────────────────────────
JOB_RETENTION_HOURS = 24                          # STATUS: ACTIVE - api/main.py; terminal jobs older than this are purged
JOB_CLEANUP_INTERVAL = 3600                       # STATUS: ACTIVE - api/main.py; seconds between purge sweeps

# ── Log Configuration ──────────────────────────────────────────────
LOG_LEVEL = "INFO"                                # STATUS: ACTIVE - api/config.py; "DEBUG", "INFO", "WARNING", "ERROR"
LOG_FORMAT = "structured"                         # STATUS: ACTIVE - api/main.py; "structured" or "json"


def validate_config() -> list:
    """Check config for common misconfigurations.

    Returns a list of dicts: [{"level": "WARNING"|"ERROR", "message": str}].
    Called on server startup.
    """
    issues = []

    # 1. Poll cadence must be positive
    if STREAM_POLL_INTERVAL <= 0:
        issues.append({
            "level": "ERROR",
            "message": (
                f"STREAM_POLL_INTERVAL={STREAM_POLL_INTERVAL} must be > 0, "
                "otherwise status streams busy-wait."
            ),
        })

    # 2. Keep-alive only makes sense on a longer cadence than polling
    if STREAM_KEEPALIVE_INTERVAL <= STREAM_POLL_INTERVAL:
        issues.append({
            "level": "WARNING",
            "message": (
                f"STREAM_KEEPALIVE_INTERVAL={STREAM_KEEPALIVE_INTERVAL} is not longer than "
                f"STREAM_POLL_INTERVAL={STREAM_POLL_INTERVAL}. Keep-alive frames will "
                "accompany every poll."
            ),
        })

    # 3. Budgets must allow at least one attempt
    if STREAM_MAX_POLLS < 1:
        issues.append({
            "level": "ERROR",
            "message": f"STREAM_MAX_POLLS={STREAM_MAX_POLLS} must be >= 1.",
        })
    if JOB_CAS_MAX_RETRIES < 1:
        issues.append({
            "level": "ERROR",
            "message": f"JOB_CAS_MAX_RETRIES={JOB_CAS_MAX_RETRIES} must be >= 1.",
        })

    # 4. Runner capacity
    if JOB_MAX_QUEUED < JOB_MAX_CONCURRENT:
        issues.append({
            "level": "WARNING",
            "message": (
                f"JOB_MAX_QUEUED={JOB_MAX_QUEUED} is below JOB_MAX_CONCURRENT="
                f"{JOB_MAX_CONCURRENT}; the runner will never reach full concurrency."
            ),
        })

    # 5. Retention
    if JOB_RETENTION_HOURS <= 0:
        issues.append({
            "level": "WARNING",
            "message": (
                f"JOB_RETENTION_HOURS={JOB_RETENTION_HOURS} purges terminal jobs "
                "immediately; clients may get 404 right after completion."
            ),
        })

    if LOG_FORMAT not in ("structured", "json"):
        issues.append({
            "level": "WARNING",
            "message": f"LOG_FORMAT={LOG_FORMAT!r} is unknown; falling back to structured.",
        })

    return issues
