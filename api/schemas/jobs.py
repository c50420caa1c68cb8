"""
Chronicle Job API Schemas

Pydantic models for request/response validation.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from core.chronicle.config import GenerationMode


# === REQUEST SCHEMAS ===

class JobCreateRequest(BaseModel):
    genre: str = Field(..., min_length=1, max_length=100, description="Book genre")
    prompt: str = Field(..., min_length=1, max_length=5000, description="What the book is about")
    preview: Optional[str] = Field(None, max_length=20000, description="Outline or opening to build on")
    length: int = Field(30, ge=10, le=1000, description="Target number of pages")
    mode: Optional[GenerationMode] = Field(None, description="draft or polished")
    owner_id: Optional[str] = Field(None, max_length=200)

    class Config:
        json_schema_extra = {
            "example": {
                "genre": "literary thriller",
                "prompt": "A lighthouse keeper discovers the ships she guides are not arriving anywhere.",
                "length": 30,
                "mode": "polished",
            }
        }


# === RESPONSE SCHEMAS ===

class JobCreateResponse(BaseModel):
    job_id: str
    book_id: str
    status: str
    message: str


class JobSnapshot(BaseModel):
    """Shape shared by tick and status"""
    status: str
    step: Optional[str] = None
    progress: int = 0
    error: Optional[str] = None


class JobStatusResponse(JobSnapshot):
    job_id: str
    book_id: str
    message: str
    auto_resume_attempts: int = 0


class SweepResponse(BaseModel):
    message: str
    resumed_count: int
    failed_count: int
    processed: int
    succeeded: int
    skipped: int
    duration_ms: int
    results: List[Dict[str, Any]] = Field(default_factory=list)


class StuckJobsResponse(BaseModel):
    count: int
    stale_timeout_minutes: int
    max_auto_resume_attempts: int
    jobs: List[Dict[str, Any]] = Field(default_factory=list)


class CleanupResponse(BaseModel):
    message: str
    cleaned_count: int
    job_ids: List[str] = Field(default_factory=list)


class ManuscriptResponse(BaseModel):
    job_id: str
    book_id: str
    title: Optional[str] = None
    blurb: str = ""
    word_count: int
    quality_score: Optional[int] = None
    manuscript: str
