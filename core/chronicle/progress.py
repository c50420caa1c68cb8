"""
Progress accounting for generation jobs.
"""

from .book_state import BookState
from .models import Complete, Constitution, Created, Finalize, JobRecord, JobStatus, Plan, Step, Write


STAGE_PROGRESS = {
    Created: 0,
    Constitution: 5,
    Plan: 10,
    Finalize: 95,
    Complete: 100,
}

WRITE_FLOOR = 15
WRITE_SPAN = 75
WRITE_CEILING = 90


def compute_progress(step: Step, book: BookState) -> int:
    """
    Percentage for a job at ``step``.

    Write steps interpolate between 15 and 90 on whichever is further
    along: scenes accepted against scenes planned, or words written
    against the target.
    """
    fixed = STAGE_PROGRESS.get(type(step))
    if fixed is not None:
        return fixed

    if not isinstance(step, Write):
        return 0

    scene_ratio = 0.0
    if book.plan and book.plan.total_sections:
        scene_ratio = book.scenes_done / book.plan.total_sections

    word_ratio = 0.0
    if book.narrative and book.narrative.target_length_words:
        word_ratio = book.narrative.structure.words_written / book.narrative.target_length_words

    ratio = min(1.0, max(scene_ratio, word_ratio))
    return min(WRITE_CEILING, WRITE_FLOOR + int(WRITE_SPAN * ratio))


def next_progress(previous: int, step: Step, book: BookState) -> int:
    """Progress never moves backwards within a job."""
    return max(previous, compute_progress(step, book))


STAGE_MESSAGES = {
    Created: "Creating story foundation...",
    Constitution: "Planning chapters...",
    Finalize: "Finalizing...",
}


def status_message(job: JobRecord, stuck: bool = False, exhausted: bool = False) -> str:
    """Human-readable line for polling clients."""
    if job.status == JobStatus.COMPLETE:
        return "Completed"
    if job.status == JobStatus.FAILED:
        return job.error or "Generation failed"
    if exhausted:
        return "Generation failed after multiple attempts"
    if stuck:
        return "Generation appears stuck - will auto-resume shortly"

    step = job.step
    if isinstance(step, Plan):
        return "Writing chapter 1, section 1..."
    if isinstance(step, Write):
        return f"Writing chapter {step.chapter + 1}, section {step.scene + 1}..."
    return STAGE_MESSAGES.get(type(step), "Generating...")
