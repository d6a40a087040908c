"""Job record persistence: SQLite-backed store and an in-process variant.

Both stores expose the same async surface.  Writes after creation go
through ``compare_and_set``, which only succeeds when the stored
``version`` still matches what the caller read.
"""
from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional

import aiosqlite

from .models import TERMINAL_STATUSES, JobRecord, JobStatus


class StoreUnavailableError(Exception):
    """The underlying job storage failed or timed out."""


_COLUMNS = (
    "job_id", "job_type", "owner_id", "debate_id", "status", "progress", "params",
    "result", "error_message", "created_at", "updated_at", "started_at",
    "completed_at", "version",
)


class JobStore:
    """Async SQLite store for job lifecycle tracking."""

    def __init__(self, db_path: str = "debate_jobs.db", timeout: float = 5.0) -> None:
        self.db_path = db_path
        self.timeout = timeout
        self._db: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Create the jobs table if it doesn't exist."""
        async def _init() -> None:
            self._db = await aiosqlite.connect(self.db_path)
            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    job_id TEXT PRIMARY KEY,
                    job_type TEXT NOT NULL,
                    owner_id TEXT NOT NULL,
                    debate_id TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    progress REAL DEFAULT 0.0,
                    params TEXT DEFAULT '{}',
                    result TEXT,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    started_at TEXT,
                    completed_at TEXT,
                    version INTEGER NOT NULL DEFAULT 0
                )
            """)
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_jobs_debate ON jobs(debate_id)"
            )
            await self._db.commit()

        await self._guard("initialize", _init())

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.initialize()
        return self._db

    async def _guard(self, op: str, coro: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(coro, self.timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError(f"Job store {op} timed out after {self.timeout}s") from exc
        except (aiosqlite.Error, OSError) as exc:
            raise StoreUnavailableError(f"Job store {op} failed: {exc}") from exc
        except ValueError as exc:
            # Stored row no longer decodes into a JobRecord.
            raise StoreUnavailableError(f"Job store {op} returned an unreadable record: {exc}") from exc

    # ── CRUD ─────────────────────────────────────────────────────────

    async def create(self, rec: JobRecord) -> JobRecord:
        """Insert a new record; the id must not exist yet."""
        async def _insert() -> None:
            db = await self._conn()
            placeholders = ",".join("?" for _ in _COLUMNS)
            await db.execute(
                f"INSERT INTO jobs ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                self._record_to_row(rec),
            )
            await db.commit()

        await self._guard("create", _insert())
        return rec

    async def get(self, job_id: str) -> Optional[JobRecord]:
        """Fetch a single job by ID."""
        async def _fetch() -> Optional[JobRecord]:
            db = await self._conn()
            async with db.execute("SELECT * FROM jobs WHERE job_id = ?", (job_id,)) as cur:
                row = await cur.fetchone()
                desc = cur.description
            if row is None:
                return None
            return self._row_to_record(row, desc)

        return await self._guard("get", _fetch())

    async def compare_and_set(self, job_id: str, expected_version: int, rec: JobRecord) -> bool:
        """Replace the stored record only if its version is still ``expected_version``."""
        async def _swap() -> bool:
            db = await self._conn()
            row = self._record_to_row(rec)
            sets = ", ".join(f"{col} = ?" for col in _COLUMNS[1:])
            cur = await db.execute(
                f"UPDATE jobs SET {sets} WHERE job_id = ? AND version = ?",
                (*row[1:], job_id, expected_version),
            )
            await db.commit()
            return cur.rowcount == 1

        return await self._guard("compare_and_set", _swap())

    async def delete(self, job_id: str) -> bool:
        async def _delete() -> bool:
            db = await self._conn()
            cur = await db.execute("DELETE FROM jobs WHERE job_id = ?", (job_id,))
            await db.commit()
            return cur.rowcount > 0

        return await self._guard("delete", _delete())

    async def list_jobs(
        self,
        *,
        debate_id: str | None = None,
        owner_id: str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> List[JobRecord]:
        """List jobs ordered by creation time (newest first)."""
        clauses = []
        vals: list = []
        if debate_id is not None:
            clauses.append("debate_id = ?")
            vals.append(debate_id)
        if owner_id is not None:
            clauses.append("owner_id = ?")
            vals.append(owner_id)
        if status is not None:
            clauses.append("status = ?")
            vals.append(status.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        vals.append(limit)

        async def _list() -> List[JobRecord]:
            db = await self._conn()
            async with db.execute(
                f"SELECT * FROM jobs {where} ORDER BY created_at DESC LIMIT ?", vals
            ) as cur:
                rows = await cur.fetchall()
                desc = cur.description
            return [self._row_to_record(r, desc) for r in rows]

        return await self._guard("list_jobs", _list())

    async def purge_terminal(self, older_than: datetime) -> int:
        """Delete terminal jobs whose ``completed_at`` precedes ``older_than``."""
        statuses = [s.value for s in TERMINAL_STATUSES]

        async def _purge() -> int:
            db = await self._conn()
            cur = await db.execute(
                "DELETE FROM jobs WHERE completed_at IS NOT NULL AND completed_at < ? "
                f"AND status IN ({','.join('?' for _ in statuses)})",
                (older_than.isoformat(), *statuses),
            )
            await db.commit()
            return cur.rowcount

        return await self._guard("purge_terminal", _purge())

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _record_to_row(rec: JobRecord) -> tuple:
        d = rec.model_dump(mode="json")
        d["params"] = json.dumps(d["params"])
        d["result"] = json.dumps(d["result"]) if d["result"] is not None else None
        return tuple(d[col] for col in _COLUMNS)

    @staticmethod
    def _row_to_record(row, description) -> JobRecord:
        cols = [d[0] for d in description]
        d = dict(zip(cols, row))
        d["params"] = json.loads(d.get("params") or "{}")
        d["result"] = json.loads(d["result"]) if d.get("result") is not None else None
        return JobRecord(**d)


class InMemoryJobStore:
    """In-process job store for tests and single-worker deployments."""

    def __init__(self) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        self._jobs.clear()

    async def create(self, rec: JobRecord) -> JobRecord:
        async with self._lock:
            if rec.job_id in self._jobs:
                raise StoreUnavailableError(f"Job {rec.job_id} already exists")
            self._jobs[rec.job_id] = rec.model_copy(deep=True)
        return rec

    async def get(self, job_id: str) -> Optional[JobRecord]:
        async with self._lock:
            rec = self._jobs.get(job_id)
            return rec.model_copy(deep=True) if rec else None

    async def compare_and_set(self, job_id: str, expected_version: int, rec: JobRecord) -> bool:
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.version != expected_version:
                return False
            self._jobs[job_id] = rec.model_copy(deep=True)
            return True

    async def delete(self, job_id: str) -> bool:
        async with self._lock:
            return self._jobs.pop(job_id, None) is not None

    async def list_jobs(
        self,
        *,
        debate_id: str | None = None,
        owner_id: str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> List[JobRecord]:
        async with self._lock:
            jobs = [
                j.model_copy(deep=True)
                for j in self._jobs.values()
                if (debate_id is None or j.debate_id == debate_id)
                and (owner_id is None or j.owner_id == owner_id)
                and (status is None or j.status == status)
            ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    async def purge_terminal(self, older_than: datetime) -> int:
        cutoff = older_than.isoformat()
        async with self._lock:
            stale = [
                job_id
                for job_id, j in self._jobs.items()
                if j.is_terminal and j.completed_at is not None and j.completed_at < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        return len(stale)
