"""
Chronicle Engine Configuration

Central configuration for the tick-driven generation engine.
"""

from dataclasses import dataclass
from typing import Dict
from enum import Enum


class GenerationMode(Enum):
    """How much editorial control a job gets"""
    DRAFT = "draft"
    POLISHED = "polished"


@dataclass(frozen=True)
class BookLength:
    """Shape of a book for a requested page count."""
    target_pages: int
    target_words: int
    chapters: int
    sections_per_chapter: int
    words_per_section: int

    @property
    def total_sections(self) -> int:
        return self.chapters * self.sections_per_chapter


BOOK_LENGTHS: Dict[int, BookLength] = {
    30: BookLength(30, 8500, 7, 2, 600),
    60: BookLength(60, 17000, 12, 2, 700),
    120: BookLength(120, 34000, 20, 2, 850),
    300: BookLength(300, 85000, 35, 3, 800),
}


def get_book_length(target_pages: int) -> BookLength:
    """
    Resolve a page count to a preset.

    Uses the smallest preset that is at least as long as the request,
    or the largest preset when the request exceeds all of them.
    """
    for pages in sorted(BOOK_LENGTHS):
        if target_pages <= pages:
            return BOOK_LENGTHS[pages]
    return BOOK_LENGTHS[max(BOOK_LENGTHS)]


@dataclass
class ChronicleConfig:
    """
    Configuration for the Chronicle engine.

    All settings that control tick execution, editorial budgets and
    job recovery.
    """

    # === AI MODEL SETTINGS ===

    primary_model: str = "claude-sonnet-4-20250514"
    """Primary model for all agents"""

    fallback_model: str = "gpt-4o"
    """Fallback model if primary fails"""

    max_tokens_per_call: int = 4096
    """Maximum tokens per API call"""

    temperature: float = 0.8
    """Temperature for creative content"""

    temperature_editing: float = 0.3
    """Lower temperature for editorial decisions"""

    temperature_validation: float = 0.2
    """Validator runs near-deterministic"""

    # === TIMEOUTS & RETRIES ===

    agent_timeout_seconds: float = 120.0
    """Timeout for a single agent call"""

    agent_max_retries: int = 2
    """Local retries for transient agent failures within one tick"""

    retry_base_delay: float = 1.0
    """Base delay for exponential backoff between local retries"""

    tick_timeout_seconds: float = 240.0
    """Upper bound on one tick's total duration"""

    tick_lease_seconds: float = 270.0
    """In-tick marker lifetime; longer than a tick, shorter than staleness"""

    # === EDITORIAL BUDGETS ===

    max_scene_retries: int = 3
    """REWRITE/REGENERATE/DROP verdicts tolerated per scene slot"""

    max_merges_per_scene: int = 2
    """Merges into one slot before the scene must stand on its own"""

    max_act_tail_regenerations: int = 2
    """Rollback rounds per act boundary"""

    max_final_tail_regenerations: int = 2
    """Rollback rounds at the book boundary"""

    editor_context_fingerprints: int = 5
    """Recent fingerprints shown to the Editor"""

    # === FINGERPRINTS ===

    fingerprint_window_size: int = 20
    """Recent fingerprints consulted for redundancy"""

    jaccard_duplicate_threshold: float = 0.65
    """Similarity above which new information counts as duplicate"""

    motif_density_per_1000: float = 6.0
    """Motif uses per 1000 words before it counts as overuse"""

    assumed_scene_words: int = 1500
    """Scene length assumed when estimating motif density"""

    # === SCENE LENGTH ===

    min_scene_word_ratio: float = 0.5
    """Scenes shorter than this share of their target are retried"""

    # === BOUNDARY ROLLBACK ===

    act_tail_percent: float = 0.15
    """Share of an act's scenes redone for last_15_percent"""

    final_tail_percent: float = 0.20
    """Share of the final act's scenes redone for final_act_tail"""

    # === JOB RECOVERY ===

    stale_timeout_minutes: int = 5
    """Active jobs idle longer than this are stuck"""

    max_auto_resume_attempts: int = 20
    """Watchdog resumes per job before it is failed"""

    max_jobs_per_run: int = 10
    """Jobs resumed per sweep"""

    critical_staleness_multiplier: int = 3
    """Health turns critical past this multiple of the stale timeout"""

    stale_job_cleanup_hours: int = 1
    """Cleanup fails active jobs idle this long"""

    # === JOBS ===

    default_mode: GenerationMode = GenerationMode.POLISHED
    """Mode used when a request does not name one"""

    daily_job_limit: int = 5
    """Jobs per owner per UTC day"""

    @property
    def critical_staleness_minutes(self) -> int:
        return self.stale_timeout_minutes * self.critical_staleness_multiplier

    def min_scene_words(self, target_words: int) -> int:
        """Shortest acceptable scene for a section target."""
        return int(target_words * self.min_scene_word_ratio)
