"""
Chronicle Service Layer

Handles business logic between API and the generation engine.
"""

import logging
from datetime import datetime
from typing import Optional, Any, List, Tuple

from config.settings import settings
from core.chronicle import (
    BookStore,
    ChronicleConfig,
    DailyLimitExceededError,
    GenerationMode,
    JobRecord,
    JobRepository,
    StoredBook,
    TickDriver,
    TickResult,
    Watchdog,
    SweepReport,
    HealthReport,
)
from core.chronicle.ai_adapter import AIClientAdapter, HTTPCompletionClient, MockAIClient
from core.chronicle.models import utcnow
from core.chronicle.progress import status_message
from core.chronicle.watchdog import StuckJob, is_exhausted, is_stuck


logger = logging.getLogger("Chronicle.Service")


class ChronicleService:
    """
    Service layer for Chronicle.

    Owns the repository, book store, tick driver and watchdog for one
    database. Jobs are advanced only by ticks; nothing runs in the
    background here.
    """

    def __init__(
        self,
        ai_client: Any = None,
        db_path: Optional[str] = None,
        config: Optional[ChronicleConfig] = None,
    ):
        self.config = config or settings.to_engine_config()
        db_path = db_path or settings.chronicle_db_path

        if ai_client is not None:
            self.ai_client = ai_client if hasattr(ai_client, "generate") else AIClientAdapter(ai_client)
        elif settings.llm_base_url:
            self.ai_client = AIClientAdapter(HTTPCompletionClient(
                base_url=settings.llm_base_url,
                api_key=settings.llm_api_key or None,
                timeout=settings.llm_timeout_seconds,
            ))
        else:
            logger.warning("No AI client provided, using mock client")
            self.ai_client = MockAIClient()

        self.repository = JobRepository(db_path)
        self.book_store = BookStore(db_path)
        self.driver = TickDriver(self.repository, self.book_store, self.ai_client, self.config)
        self.watchdog = Watchdog(self.repository, self.driver, self.config)

    # === Jobs ===

    def create_job(
        self,
        genre: str,
        prompt: str,
        preview: Optional[str] = None,
        length: int = 30,
        mode: Optional[GenerationMode] = None,
        owner_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> JobRecord:
        """Create a queued job and the empty book it writes into."""
        now = now or utcnow()
        if owner_id:
            day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
            created_today = self.repository.count_created_since(owner_id, day_start)
            if created_today >= self.config.daily_job_limit:
                raise DailyLimitExceededError(owner_id, self.config.daily_job_limit)

        book = self.book_store.create_shell(owner_id, genre)
        job = JobRecord(
            book_id=book.id,
            genre=genre,
            prompt=prompt,
            preview=preview or "",
            target_pages=length,
            mode=mode or self.config.default_mode,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        self.repository.create(job)
        logger.info(f"Job {job.id} queued ({length} pages, {job.mode.value})")
        return job

    def get_job(self, job_id: str) -> JobRecord:
        return self.repository.get_or_raise(job_id)

    async def tick(self, job_id: str) -> TickResult:
        return await self.driver.tick(job_id)

    def cancel(self, job_id: str) -> JobRecord:
        """Fail an active job; terminal jobs are returned unchanged."""
        job = self.repository.get_or_raise(job_id)
        if job.is_active:
            self.repository.mark_failed(job_id, "Cancelled by user", utcnow())
            logger.info(f"Job {job_id} cancelled by user")
        return self.repository.get_or_raise(job_id)

    def status(self, job_id: str, now: Optional[datetime] = None) -> Tuple[JobRecord, str]:
        """The job plus a message for polling clients."""
        now = now or utcnow()
        job = self.repository.get_or_raise(job_id)
        stuck = is_stuck(job, now, self.config)
        message = status_message(job, stuck=stuck, exhausted=stuck and is_exhausted(job, self.config))
        return job, message

    def manuscript(self, job_id: str) -> Tuple[JobRecord, Optional[StoredBook]]:
        job = self.repository.get_or_raise(job_id)
        book = self.book_store.get(job.book_id)
        if book is None or book.status != "complete":
            return job, None
        return job, book

    # === Watchdog ===

    async def sweep(self) -> SweepReport:
        return await self.watchdog.sweep()

    def list_stuck(self) -> List[StuckJob]:
        return self.watchdog.list_stuck()

    def health(self) -> HealthReport:
        return self.watchdog.health()

    def cleanup(self) -> List[str]:
        return self.watchdog.cleanup_stale()


# Singleton
_service: Optional[ChronicleService] = None


def get_chronicle_service(ai_client: Any = None) -> ChronicleService:
    """Get or create the global service instance."""
    global _service
    if _service is None:
        _service = ChronicleService(ai_client=ai_client)
    return _service
