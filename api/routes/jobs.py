"""
Chronicle Job API Routes

Job control surface: create, tick, status, cancel, manuscript, plus the
cron-only watchdog endpoints.
"""

import logging

from fastapi import APIRouter, HTTPException, Depends, Request

from api.rate_limiter import limiter, rate_limit_config
from api.schemas.jobs import (
    JobCreateRequest,
    JobCreateResponse,
    JobSnapshot,
    JobStatusResponse,
    SweepResponse,
    StuckJobsResponse,
    CleanupResponse,
    ManuscriptResponse,
)
from api.security import verify_cron_secret
from api.services.chronicle_service import get_chronicle_service, ChronicleService
from core.chronicle import DailyLimitExceededError, JobNotFoundError

logger = logging.getLogger("API.Jobs")

router = APIRouter(
    prefix="/job",
    tags=["Chronicle Jobs"],
)


def get_service() -> ChronicleService:
    """Dependency injection for the service."""
    return get_chronicle_service()


# === Watchdog Endpoints (cron) ===

@router.post("/auto-resume", response_model=SweepResponse, dependencies=[Depends(verify_cron_secret)])
async def auto_resume(service: ChronicleService = Depends(get_service)):
    """Run one watchdog sweep: resume stuck jobs once each, fail exhausted ones."""
    try:
        report = await service.sweep()
    except Exception as e:
        logger.error(f"Auto-resume sweep failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return SweepResponse(**report.to_dict())


@router.get("/auto-resume", response_model=StuckJobsResponse, dependencies=[Depends(verify_cron_secret)])
async def list_stuck_jobs(service: ChronicleService = Depends(get_service)):
    """List stuck jobs with their staleness and resume attempts."""
    stuck = service.list_stuck()
    return StuckJobsResponse(
        count=len(stuck),
        stale_timeout_minutes=service.config.stale_timeout_minutes,
        max_auto_resume_attempts=service.config.max_auto_resume_attempts,
        jobs=[s.to_dict() for s in stuck],
    )


@router.post("/cleanup", response_model=CleanupResponse, dependencies=[Depends(verify_cron_secret)])
async def cleanup_stale_jobs(service: ChronicleService = Depends(get_service)):
    """Fail jobs that have been idle far beyond any chance of resuming."""
    cleaned = service.cleanup()
    return CleanupResponse(
        message=f"Cleaned up {len(cleaned)} stale job(s)",
        cleaned_count=len(cleaned),
        job_ids=cleaned,
    )


# === Job Endpoints ===

@router.post("", response_model=JobCreateResponse, status_code=201)
@limiter.limit(rate_limit_config.get_limit("job_create"))
async def create_job(
    request: Request,
    body: JobCreateRequest,
    service: ChronicleService = Depends(get_service),
):
    """
    Create a generation job.

    The job does nothing until ticked; poll POST /job/{id}/tick.
    """
    try:
        job = service.create_job(
            genre=body.genre,
            prompt=body.prompt,
            preview=body.preview,
            length=body.length,
            mode=body.mode,
            owner_id=body.owner_id,
        )
    except DailyLimitExceededError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create job: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return JobCreateResponse(
        job_id=job.id,
        book_id=job.book_id,
        status=job.status.value,
        message="Job created",
    )


@router.post("/{job_id}/tick", response_model=JobSnapshot)
@limiter.limit(rate_limit_config.get_limit("job_tick"))
async def tick_job(
    request: Request,
    job_id: str,
    service: ChronicleService = Depends(get_service),
):
    """Execute exactly one step. Safe to call on finished jobs."""
    try:
        result = await service.tick(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobSnapshot(**result.snapshot())


@router.get("/{job_id}/status", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    service: ChronicleService = Depends(get_service),
):
    """Read-only snapshot of the job."""
    try:
        job, message = service.status(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(
        job_id=job.id,
        book_id=job.book_id,
        message=message,
        auto_resume_attempts=job.auto_resume_attempts,
        **job.snapshot(),
    )


@router.post("/{job_id}/cancel", response_model=JobSnapshot)
@limiter.limit(rate_limit_config.get_limit("job_cancel"))
async def cancel_job(
    request: Request,
    job_id: str,
    service: ChronicleService = Depends(get_service),
):
    """Cancel an active job. Finished jobs are returned unchanged."""
    try:
        job = service.cancel(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobSnapshot(**job.snapshot())


@router.get("/{job_id}/manuscript", response_model=ManuscriptResponse)
async def get_manuscript(
    job_id: str,
    service: ChronicleService = Depends(get_service),
):
    """The finished book. 404 until the job is complete."""
    try:
        job, book = service.manuscript(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    if book is None:
        raise HTTPException(status_code=404, detail="Manuscript not ready")

    return ManuscriptResponse(
        job_id=job.id,
        book_id=book.id,
        title=book.title,
        blurb=book.blurb,
        word_count=book.word_count,
        quality_score=book.quality_score,
        manuscript=book.manuscript(),
    )
