# ═══════════════════════════════════════════════════════════════════
# FILE: core/chronicle/repository.py
# PURPOSE: SQLite persistence for generation jobs, their book state
#          blob and the per-job tick lease
# ═══════════════════════════════════════════════════════════════════

import logging
import os
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .book_state import BookState
from .config import GenerationMode
from .exceptions import JobNotFoundError, LeaseLostError
from .models import ACTIVE_STATUSES, JobRecord, JobStatus, decode_step, encode_step

logger = logging.getLogger("Chronicle.Repository")

_ACTIVE = tuple(s.value for s in ACTIVE_STATUSES)
_ACTIVE_SQL = "status IN ('queued', 'running')"

_JOB_COLUMNS = """
    id, book_id, owner_id, genre, prompt, preview, target_pages, mode,
    status, step, progress, error, auto_resume_attempts,
    created_at, updated_at, lease_expires_at
"""


def _ts(value: datetime) -> str:
    """Fixed-width UTC timestamp so string order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class JobRepository:
    """
    SQLite-based persistence for Chronicle jobs.

    Each row holds the job record columns, the BookState as JSON and an
    optional lease. Writes made by a tick are conditional on its lease
    token so two ticks can never both persist against the same job.
    """

    def __init__(self, db_path: str = "data/chronicle.db"):
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=30)

    def _init_db(self):
        """Create tables if not exist."""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chronicle_jobs (
                    id TEXT PRIMARY KEY,
                    book_id TEXT NOT NULL,
                    owner_id TEXT,
                    genre TEXT,
                    prompt TEXT,
                    preview TEXT,
                    target_pages INTEGER DEFAULT 30,
                    mode TEXT NOT NULL DEFAULT 'polished',
                    status TEXT NOT NULL DEFAULT 'queued',
                    step TEXT,
                    progress INTEGER DEFAULT 0,
                    error TEXT,
                    auto_resume_attempts INTEGER DEFAULT 0,
                    state JSON NOT NULL,
                    lease_token TEXT,
                    lease_expires_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_chronicle_status_updated
                ON chronicle_jobs(status, updated_at)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_chronicle_owner_created
                ON chronicle_jobs(owner_id, created_at)
            """)
            conn.commit()

    def _row_to_job(self, row) -> JobRecord:
        return JobRecord(
            id=row[0],
            book_id=row[1],
            owner_id=row[2],
            genre=row[3] or "",
            prompt=row[4] or "",
            preview=row[5] or "",
            target_pages=row[6] or 30,
            mode=GenerationMode(row[7]),
            status=JobStatus(row[8]),
            step=decode_step(row[9]),
            progress=row[10] or 0,
            error=row[11],
            auto_resume_attempts=row[12] or 0,
            created_at=_parse_ts(row[13]),
            updated_at=_parse_ts(row[14]),
            lease_expires_at=_parse_ts(row[15]),
        )

    # === Jobs ===

    def create(self, job: JobRecord, state: Optional[BookState] = None):
        """Insert a new job with its initial state."""
        state = state or BookState()
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO chronicle_jobs (id, book_id, owner_id, genre, prompt, preview,
                                            target_pages, mode, status, step, progress, error,
                                            auto_resume_attempts, state, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                job.id,
                job.book_id,
                job.owner_id,
                job.genre,
                job.prompt,
                job.preview,
                job.target_pages,
                job.mode.value,
                job.status.value,
                encode_step(job.step),
                job.progress,
                job.error,
                job.auto_resume_attempts,
                state.model_dump_json(),
                _ts(job.created_at),
                _ts(job.updated_at),
            ))
            conn.commit()
        logger.info(f"Created job {job.id} for book {job.book_id}")

    def get(self, job_id: str) -> Optional[JobRecord]:
        """Load a job by ID."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_JOB_COLUMNS} FROM chronicle_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        return self._row_to_job(row) if row else None

    def get_or_raise(self, job_id: str) -> JobRecord:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def load_state(self, job_id: str) -> BookState:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT state FROM chronicle_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        if not row:
            raise JobNotFoundError(job_id)
        return BookState.model_validate_json(row[0])

    def is_cancelled(self, job_id: str) -> bool:
        """True once the job has left the active statuses."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT status FROM chronicle_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        return row is None or row[0] not in _ACTIVE

    # === Lease ===

    def acquire_lease(self, job_id: str, token: str, now: datetime, seconds: float) -> bool:
        """
        Take the tick lease if the job is active and nobody holds it.

        Does not touch updated_at.
        """
        expires = now + timedelta(seconds=seconds)
        with self._connect() as conn:
            cursor = conn.execute(f"""
                UPDATE chronicle_jobs
                SET lease_token = ?, lease_expires_at = ?
                WHERE id = ? AND {_ACTIVE_SQL}
                  AND (lease_token IS NULL OR lease_expires_at < ?)
            """, (token, _ts(expires), job_id, _ts(now)))
            conn.commit()
            return cursor.rowcount == 1

    def release_lease(self, job_id: str, token: str):
        with self._connect() as conn:
            conn.execute("""
                UPDATE chronicle_jobs
                SET lease_token = NULL, lease_expires_at = NULL
                WHERE id = ? AND lease_token = ?
            """, (job_id, token))
            conn.commit()

    def save_tick(self, job: JobRecord, state: BookState, token: str):
        """
        Persist the outcome of one tick and release its lease.

        Raises LeaseLostError when the lease expired or the job was
        cancelled while the tick ran; nothing is written in that case.
        """
        with self._connect() as conn:
            cursor = conn.execute(f"""
                UPDATE chronicle_jobs
                SET status = ?, step = ?, progress = ?, error = ?, state = ?,
                    updated_at = ?, lease_token = NULL, lease_expires_at = NULL
                WHERE id = ? AND lease_token = ? AND {_ACTIVE_SQL}
            """, (
                job.status.value,
                encode_step(job.step),
                job.progress,
                job.error,
                state.model_dump_json(),
                _ts(job.updated_at),
                job.id,
                token,
            ))
            conn.commit()
            if cursor.rowcount != 1:
                raise LeaseLostError(job.id)

    def mark_failed(
        self,
        job_id: str,
        error: str,
        now: datetime,
        token: Optional[str] = None,
    ) -> bool:
        """
        Move an active job to failed.

        With a token the write only lands while that lease is held.
        Returns False if the job was not active (or the lease was lost).
        """
        query = f"""
            UPDATE chronicle_jobs
            SET status = 'failed', error = ?, updated_at = ?,
                lease_token = NULL, lease_expires_at = NULL
            WHERE id = ? AND {_ACTIVE_SQL}
        """
        params = [error, _ts(now), job_id]
        if token is not None:
            query += " AND lease_token = ?"
            params.append(token)

        with self._connect() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            failed = cursor.rowcount == 1
        if failed:
            logger.info(f"Job {job_id} failed: {error}")
        return failed

    def increment_auto_resume(self, job_id: str) -> int:
        """Count one watchdog resume. Does not touch updated_at."""
        with self._connect() as conn:
            conn.execute("""
                UPDATE chronicle_jobs
                SET auto_resume_attempts = auto_resume_attempts + 1
                WHERE id = ?
            """, (job_id,))
            conn.commit()
            row = conn.execute(
                "SELECT auto_resume_attempts FROM chronicle_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        if not row:
            raise JobNotFoundError(job_id)
        return row[0]

    # === Queries ===

    def list_active(self, updated_before: Optional[datetime] = None) -> List[JobRecord]:
        """Active jobs, oldest update first; optionally only those idle since a cutoff."""
        query = f"SELECT {_JOB_COLUMNS} FROM chronicle_jobs WHERE {_ACTIVE_SQL}"
        params = []
        if updated_before is not None:
            query += " AND updated_at < ?"
            params.append(_ts(updated_before))
        query += " ORDER BY updated_at ASC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        jobs = []
        for row in rows:
            try:
                jobs.append(self._row_to_job(row))
            except Exception as e:
                logger.warning(f"Skipping invalid job row {row[0]}: {e}")
        return jobs

    def count_created_since(self, owner_id: str, since: datetime) -> int:
        with self._connect() as conn:
            row = conn.execute("""
                SELECT COUNT(*) FROM chronicle_jobs
                WHERE owner_id = ? AND created_at >= ?
            """, (owner_id, _ts(since))).fetchone()
        return row[0]

    def set_updated_at(self, job_id: str, updated_at: datetime):
        """Backdate or touch a job's updated_at (maintenance and tests)."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE chronicle_jobs SET updated_at = ? WHERE id = ?",
                (_ts(updated_at), job_id),
            )
            conn.commit()
