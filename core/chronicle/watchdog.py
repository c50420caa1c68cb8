"""
Stuck-Job Watchdog

Finds active jobs that have not been updated within the staleness
threshold and either resumes them with exactly one tick or, once their
auto-resume budget is spent, fails them for good. Runs independently of
client ticks and only touches jobs those ticks have abandoned.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from .config import ChronicleConfig
from .models import HealthStatus, JobRecord, WatchdogAction, utcnow
from .progress import status_message
from .repository import JobRepository
from .tick import TickDriver, TickOutcome

logger = logging.getLogger("Chronicle.Watchdog")


def staleness_minutes(job: JobRecord, now: datetime) -> float:
    return (now - job.updated_at).total_seconds() / 60


def is_stuck(job: JobRecord, now: datetime, config: ChronicleConfig) -> bool:
    """Active and idle for strictly longer than the stale timeout."""
    if not job.is_active:
        return False
    return now - job.updated_at > timedelta(minutes=config.stale_timeout_minutes)


def is_exhausted(job: JobRecord, config: ChronicleConfig) -> bool:
    return job.auto_resume_attempts >= config.max_auto_resume_attempts


def exhausted_message(config: ChronicleConfig) -> str:
    return (
        f"Generation failed after {config.max_auto_resume_attempts} automatic resume attempts. "
        "Please try creating a new story."
    )


@dataclass
class SweepEntry:
    job_id: str
    action: WatchdogAction
    success: bool = True
    error: Optional[str] = None
    status: Optional[str] = None
    step: Optional[str] = None
    progress: Optional[int] = None
    auto_resume_attempts: int = 0

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "action": self.action.value,
            "success": self.success,
            "error": self.error,
            "status": self.status,
            "step": self.step,
            "progress": self.progress,
            "auto_resume_attempts": self.auto_resume_attempts,
        }


@dataclass
class SweepReport:
    results: List[SweepEntry] = field(default_factory=list)
    duration_ms: int = 0

    def _count(self, action: WatchdogAction) -> int:
        return sum(1 for r in self.results if r.action == action)

    @property
    def resumed_count(self) -> int:
        return self._count(WatchdogAction.RESUME)

    @property
    def failed_count(self) -> int:
        return self._count(WatchdogAction.FAIL)

    @property
    def skipped_count(self) -> int:
        return self._count(WatchdogAction.SKIP)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.results if r.action == WatchdogAction.RESUME and r.success)

    @property
    def message(self) -> str:
        if not self.results:
            return "No stuck jobs found"
        return (
            f"Processed {len(self.results)} stuck job(s): {self.resumed_count} resumed, "
            f"{self.failed_count} failed, {self.skipped_count} skipped"
        )

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "resumed_count": self.resumed_count,
            "failed_count": self.failed_count,
            "processed": len(self.results),
            "succeeded": self.succeeded_count,
            "skipped": self.skipped_count,
            "duration_ms": self.duration_ms,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class StuckJob:
    job: JobRecord
    stale_minutes: float
    recoverable: bool

    def to_dict(self) -> dict:
        return {
            "id": self.job.id,
            "book_id": self.job.book_id,
            "status": self.job.status.value,
            "step": self.job.step.encode(),
            "progress": self.job.progress,
            "auto_resume_attempts": self.job.auto_resume_attempts,
            "stale_minutes": round(self.stale_minutes, 1),
            "recoverable": self.recoverable,
            "message": status_message(self.job, stuck=True, exhausted=not self.recoverable),
        }


@dataclass
class HealthReport:
    status: HealthStatus
    timestamp: datetime
    total: int
    recoverable: int
    permanently_failed: int
    oldest_stale_minutes: Optional[float]
    stale_timeout_minutes: int
    max_auto_resume_attempts: int

    @property
    def message(self) -> str:
        if self.status == HealthStatus.CRITICAL:
            return "Stuck jobs are not being resumed; the watchdog may not be running"
        if self.status == HealthStatus.DEGRADED:
            return f"{self.recoverable} stuck job(s) awaiting auto-resume"
        return "All jobs progressing"

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "stuck_jobs": {
                "total": self.total,
                "recoverable": self.recoverable,
                "permanently_failed": self.permanently_failed,
                "oldest_stale_minutes": (
                    round(self.oldest_stale_minutes, 1) if self.oldest_stale_minutes is not None else None
                ),
            },
            "config": {
                "stale_timeout_minutes": self.stale_timeout_minutes,
                "max_auto_resume_attempts": self.max_auto_resume_attempts,
            },
        }


class Watchdog:
    """
    Periodic sweep over stuck jobs.

    Usage:
        watchdog = Watchdog(repository, driver, config)
        report = await watchdog.sweep()
    """

    def __init__(self, repository: JobRepository, driver: TickDriver, config: Optional[ChronicleConfig] = None):
        self.repository = repository
        self.driver = driver
        self.config = config or ChronicleConfig()

    def _stale_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(minutes=self.config.stale_timeout_minutes)

    def list_stuck(self, now: Optional[datetime] = None) -> List[StuckJob]:
        now = now or utcnow()
        jobs = self.repository.list_active(updated_before=self._stale_cutoff(now))
        return [
            StuckJob(
                job=job,
                stale_minutes=staleness_minutes(job, now),
                recoverable=not is_exhausted(job, self.config),
            )
            for job in jobs
            if is_stuck(job, now, self.config)
        ]

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """
        One pass: fail exhausted jobs, resume up to ``max_jobs_per_run``
        others with a single tick each, skip jobs inside a tick.
        """
        started = time.monotonic()
        now = now or utcnow()
        report = SweepReport()
        resumed = 0

        for stuck in self.list_stuck(now):
            job = stuck.job

            if job.is_leased(now):
                report.results.append(SweepEntry(job.id, WatchdogAction.SKIP, status=job.status.value))
                continue

            if not stuck.recoverable:
                failed = self.repository.mark_failed(job.id, exhausted_message(self.config), now)
                logger.warning(
                    f"Job {job.id} stuck for {stuck.stale_minutes:.1f} min after "
                    f"{job.auto_resume_attempts} resumes; marked failed"
                )
                report.results.append(SweepEntry(
                    job.id,
                    WatchdogAction.FAIL,
                    success=failed,
                    status="failed",
                    auto_resume_attempts=job.auto_resume_attempts,
                ))
                continue

            if resumed >= self.config.max_jobs_per_run:
                continue
            resumed += 1

            logger.info(f"Resuming job {job.id} (stale {stuck.stale_minutes:.1f} min)")
            result = await self.driver.tick(job.id, now=now)

            # A tick that found the job leased or finished did not resume it
            attempts = job.auto_resume_attempts
            if result.outcome != TickOutcome.SKIPPED:
                attempts = self.repository.increment_auto_resume(job.id)
            transient = result.outcome in (TickOutcome.TRANSIENT, TickOutcome.SKIPPED)
            report.results.append(SweepEntry(
                job.id,
                WatchdogAction.RESUME,
                success=not transient,
                error=(result.detail or None) if transient else result.job.error,
                status=result.job.status.value,
                step=result.job.step.encode(),
                progress=result.job.progress,
                auto_resume_attempts=attempts,
            ))

        report.duration_ms = int((time.monotonic() - started) * 1000)
        if report.results:
            logger.info(report.message)
        return report

    def health(self, now: Optional[datetime] = None) -> HealthReport:
        """
        Aggregate view of stuck jobs.

        Critical when a resumable job has been stuck longer than the
        critical multiple of the stale timeout, i.e. nobody is sweeping.
        """
        now = now or utcnow()
        stuck = self.list_stuck(now)
        recoverable = [s for s in stuck if s.recoverable]
        oldest = max((s.stale_minutes for s in stuck), default=None)
        oldest_recoverable = max((s.stale_minutes for s in recoverable), default=None)

        if oldest_recoverable is not None and oldest_recoverable > self.config.critical_staleness_minutes:
            status = HealthStatus.CRITICAL
        elif recoverable:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        return HealthReport(
            status=status,
            timestamp=now,
            total=len(stuck),
            recoverable=len(recoverable),
            permanently_failed=len(stuck) - len(recoverable),
            oldest_stale_minutes=oldest,
            stale_timeout_minutes=self.config.stale_timeout_minutes,
            max_auto_resume_attempts=self.config.max_auto_resume_attempts,
        )

    def cleanup_stale(self, now: Optional[datetime] = None) -> List[str]:
        """Fail active jobs idle for longer than ``stale_job_cleanup_hours``."""
        now = now or utcnow()
        hours = self.config.stale_job_cleanup_hours
        cutoff = now - timedelta(hours=hours)
        message = f"Job timed out after {hours} hour(s) of inactivity"

        cleaned = []
        for job in self.repository.list_active(updated_before=cutoff):
            if job.is_leased(now):
                continue
            if self.repository.mark_failed(job.id, message, now):
                cleaned.append(job.id)
        if cleaned:
            logger.warning(f"Cleaned up {len(cleaned)} stale job(s)")
        return cleaned
