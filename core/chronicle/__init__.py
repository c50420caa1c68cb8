"""
Chronicle - Resumable Narrative Generation Engine

Generates long-form fiction one bounded step ("tick") at a time so a book
survives restarts, timeouts and flaky models.

Key Features:
- Typed, persisted job state machine advanced one step per tick
- Narrative state with escalation budget and character arcs
- Scene fingerprints for deterministic redundancy detection
- Editor loop (ACCEPT/REWRITE/MERGE/REGENERATE/DROP) with a per-scene retry budget
- Act and book validation with bounded rollback
- Watchdog that auto-resumes stuck jobs a bounded number of times

Usage:
    from core.chronicle import JobRepository, BookStore, TickDriver, MockAIClient

    repo = JobRepository("data/chronicle.db")
    driver = TickDriver(repo, BookStore("data/chronicle.db"), MockAIClient())

    result = await driver.tick(job_id)
    print(result.job.snapshot())
"""

from .config import ChronicleConfig, GenerationMode, BookLength, BOOK_LENGTHS, get_book_length
from .models import (
    JobRecord,
    JobStatus,
    Step,
    Created,
    Constitution,
    Plan,
    Write,
    Finalize,
    Complete,
    encode_step,
    decode_step,
    EditorDecision,
    RegenerationScope,
    WatchdogAction,
    HealthStatus,
)
from .exceptions import (
    ChronicleError,
    AgentError,
    StepDecodeError,
    JobNotFoundError,
    JobCancelledError,
    LeaseLostError,
    RetryBudgetExceededError,
    ValidationRejectedError,
    DailyLimitExceededError,
)
from .ai_adapter import AIClientAdapter, HTTPCompletionClient, MockAIClient
from .repository import JobRepository
from .book_store import BookStore, StoredBook
from .tick import TickDriver, TickResult, TickOutcome
from .watchdog import Watchdog, SweepReport, HealthReport
from .progress import compute_progress, status_message

__version__ = "1.0.0"
__all__ = [
    # Config
    "ChronicleConfig",
    "GenerationMode",
    "BookLength",
    "BOOK_LENGTHS",
    "get_book_length",
    # Models
    "JobRecord",
    "JobStatus",
    "Step",
    "Created",
    "Constitution",
    "Plan",
    "Write",
    "Finalize",
    "Complete",
    "encode_step",
    "decode_step",
    "EditorDecision",
    "RegenerationScope",
    "WatchdogAction",
    "HealthStatus",
    # Exceptions
    "ChronicleError",
    "AgentError",
    "StepDecodeError",
    "JobNotFoundError",
    "JobCancelledError",
    "LeaseLostError",
    "RetryBudgetExceededError",
    "ValidationRejectedError",
    "DailyLimitExceededError",
    # Engine
    "AIClientAdapter",
    "HTTPCompletionClient",
    "MockAIClient",
    "JobRepository",
    "BookStore",
    "StoredBook",
    "TickDriver",
    "TickResult",
    "TickOutcome",
    "Watchdog",
    "SweepReport",
    "HealthReport",
    "compute_progress",
    "status_message",
]
