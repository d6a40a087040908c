"""Shared test fixtures for the debate_jobs test suite."""
from __future__ import annotations

import pytest

from debate_jobs.api.jobs.manager import JobManager
from debate_jobs.api.jobs.store import InMemoryJobStore


def pytest_sessionfinish(session, exitstatus):
    """Spawn a watchdog that force-exits if the process hangs at shutdown.

    aiosqlite runs each connection on its own thread; a connection left
    open by a failing test can keep the interpreter alive after the run.
    """
    import os
    import threading
    import time

    def _watchdog():
        time.sleep(5)
        os._exit(exitstatus)

    t = threading.Thread(target=_watchdog, daemon=True)
    t.start()


# ── Token table used by the auth-enabled app fixture ────────────────

TEST_TOKENS = {"token-u1": "u1", "token-u2": "u2"}


@pytest.fixture
def u1_headers():
    return {"Authorization": "Bearer token-u1"}


@pytest.fixture
def u2_headers():
    return {"X-API-Key": "token-u2"}


# ── Job fixtures ─────────────────────────────────────────────────────


@pytest.fixture
async def memory_store():
    store = InMemoryJobStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def job_manager(memory_store):
    """Manager over a fresh in-process store, with no pause between CAS retries."""
    return JobManager(memory_store, retry_delay=0)


# ── API fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def app(job_manager, memory_store):
    """Create a test FastAPI app sharing ``job_manager`` with the test body."""
    import debate_jobs.api.deps.auth as _auth
    import debate_jobs.api.deps.providers as _prov
    from debate_jobs.api.config import ApiSettings
    from debate_jobs.api.jobs.runner import JobRunner
    from debate_jobs.api.jobs.stream import StatusStream
    from debate_jobs.api.main import create_app
    from sse_starlette.sse import AppStatus

    # sse-starlette binds its exit event to the first loop that streams;
    # every test gets a fresh loop.
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None

    _orig_auth_enabled = _auth.API_AUTH_ENABLED
    _orig_tokens = _auth.API_TOKENS
    _auth.API_AUTH_ENABLED = True
    _auth.API_TOKENS = dict(TEST_TOKENS)

    # Inject into the provider module
    _prov._job_store = memory_store
    _prov._job_manager = job_manager
    _prov._job_runner = JobRunner(job_manager)
    _prov._status_stream = StatusStream(job_manager, poll_interval=0.01, max_polls=50)

    application = create_app(ApiSettings(job_db_path=""))
    yield application

    # Cleanup
    _auth.API_AUTH_ENABLED = _orig_auth_enabled
    _auth.API_TOKENS = _orig_tokens
    _prov._job_store = None
    _prov._job_manager = None
    _prov._job_runner = None
    _prov._status_stream = None
    _prov.get_settings.cache_clear()


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac
