"""
Chronicle Data Models

Job record, typed pipeline steps and the enums shared across the engine.

Steps are plain in-process values. The ``write_ch{c}_s{s}`` string form only
exists at the persistence boundary (``encode_step`` / ``decode_step``).
"""

from dataclasses import dataclass, field
from typing import ClassVar, Dict, Optional, Union
from enum import Enum
from datetime import datetime, timezone
import re
import uuid

from .config import GenerationMode
from .exceptions import StepDecodeError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(Enum):
    """Job lifecycle status"""
    QUEUED = "queued"
    RUNNING = "running"
    FAILED = "failed"
    COMPLETE = "complete"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FAILED, JobStatus.COMPLETE)


ACTIVE_STATUSES = (JobStatus.RUNNING, JobStatus.QUEUED)


# === STEPS ===

@dataclass(frozen=True)
class Step:
    """Position of a job in the generation pipeline."""
    tag: ClassVar[str] = ""

    def encode(self) -> str:
        return self.tag


@dataclass(frozen=True)
class Created(Step):
    tag: ClassVar[str] = "created"


@dataclass(frozen=True)
class Constitution(Step):
    tag: ClassVar[str] = "constitution"


@dataclass(frozen=True)
class Plan(Step):
    tag: ClassVar[str] = "plan"


@dataclass(frozen=True)
class Write(Step):
    """Chapter ``chapter``, scene ``scene`` is the latest accepted position."""
    tag: ClassVar[str] = "write"
    chapter: int = 0
    scene: int = 0

    def __post_init__(self):
        if self.chapter < 0 or self.scene < 0:
            raise ValueError(f"Negative write position: ch{self.chapter} s{self.scene}")

    def encode(self) -> str:
        return f"write_ch{self.chapter}_s{self.scene}"


@dataclass(frozen=True)
class Finalize(Step):
    tag: ClassVar[str] = "finalize"


@dataclass(frozen=True)
class Complete(Step):
    tag: ClassVar[str] = "complete"


AnyStep = Union[Created, Constitution, Plan, Write, Finalize, Complete]

_WRITE_PATTERN = re.compile(r"^write_ch(\d+)_s(\d+)$")

_FIXED_STEPS: Dict[str, Step] = {
    step.tag: step
    for step in (Created(), Constitution(), Plan(), Finalize(), Complete())
}


def encode_step(step: Step) -> str:
    """Serialize a step for storage."""
    return step.encode()


def decode_step(value: Optional[str]) -> Step:
    """
    Parse a stored step tag.

    A missing step means the job was never ticked.
    """
    if value is None or value == "":
        return Created()

    fixed = _FIXED_STEPS.get(value)
    if fixed is not None:
        return fixed

    match = _WRITE_PATTERN.match(value)
    if match:
        return Write(chapter=int(match.group(1)), scene=int(match.group(2)))

    raise StepDecodeError(value)


# === DECISIONS ===

class EditorDecision(Enum):
    """Editor verdict for one scene attempt"""
    ACCEPT = "ACCEPT"
    REWRITE = "REWRITE"
    MERGE = "MERGE"
    REGENERATE = "REGENERATE"
    DROP = "DROP"

    @property
    def mutates_words(self) -> bool:
        return self in (EditorDecision.ACCEPT, EditorDecision.MERGE)

    @property
    def counts_against_budget(self) -> bool:
        return self in (EditorDecision.REWRITE, EditorDecision.REGENERATE, EditorDecision.DROP)


class NarrativeFunction(Enum):
    """Semantic role a scene plays"""
    DISCOVERY = "discovery"
    CONFIRMATION = "confirmation"
    ESCALATION = "escalation"
    CONSEQUENCE = "consequence"
    REVERSAL = "reversal"
    SURRENDER = "surrender"
    RESOLUTION = "resolution"


class Boundary(Enum):
    """Where the Validator runs"""
    ACT = "act"
    BOOK = "book"


class RegenerationScope(Enum):
    """How much accepted content a structural rejection rolls back"""
    LAST_15_PERCENT = "last_15_percent"
    LAST_CHAPTER = "last_chapter"
    FINAL_ACT_TAIL = "final_act_tail"
    FINAL_CHAPTER = "final_chapter"

    @property
    def boundary(self) -> Boundary:
        if self in (RegenerationScope.LAST_15_PERCENT, RegenerationScope.LAST_CHAPTER):
            return Boundary.ACT
        return Boundary.BOOK


class WatchdogAction(Enum):
    """What a sweep did with one stuck job"""
    RESUME = "resume"
    FAIL = "fail"
    SKIP = "skip"


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


# === JOB RECORD ===

@dataclass
class JobRecord:
    """
    One book generation job.

    The record is the single source of truth polled by clients; the
    narrative state lives beside it in the repository.
    """
    book_id: str
    genre: str = ""
    prompt: str = ""
    preview: str = ""
    target_pages: int = 30
    mode: GenerationMode = GenerationMode.POLISHED
    owner_id: Optional[str] = None

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.QUEUED
    step: Step = field(default_factory=Created)
    progress: int = 0
    error: Optional[str] = None
    auto_resume_attempts: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    lease_expires_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_leased(self, now: datetime) -> bool:
        """A tick currently holds this job."""
        return self.lease_expires_at is not None and self.lease_expires_at > now

    def snapshot(self) -> dict:
        """Shape shared by tick and status responses."""
        return {
            "status": self.status.value,
            "step": encode_step(self.step),
            "progress": self.progress,
            "error": self.error,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "genre": self.genre,
            "target_pages": self.target_pages,
            "mode": self.mode.value,
            "owner_id": self.owner_id,
            "auto_resume_attempts": self.auto_resume_attempts,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            **self.snapshot(),
        }
