"""
Tests for pipeline steps and job records
"""

import pytest
from datetime import timedelta

from core.chronicle.config import GenerationMode, get_book_length
from core.chronicle.exceptions import StepDecodeError
from core.chronicle.models import (
    Complete,
    Constitution,
    Created,
    EditorDecision,
    Finalize,
    JobRecord,
    JobStatus,
    Plan,
    RegenerationScope,
    Boundary,
    Write,
    decode_step,
    encode_step,
)


class TestStepEncoding:
    """Tests for the persisted step tags"""

    @pytest.mark.parametrize("step,tag", [
        (Created(), "created"),
        (Constitution(), "constitution"),
        (Plan(), "plan"),
        (Write(0, 0), "write_ch0_s0"),
        (Write(6, 1), "write_ch6_s1"),
        (Finalize(), "finalize"),
        (Complete(), "complete"),
    ])
    def test_encode(self, step, tag):
        assert encode_step(step) == tag
        assert decode_step(tag) == step

    def test_missing_step_is_created(self):
        assert decode_step(None) == Created()
        assert decode_step("") == Created()

    @pytest.mark.parametrize("value", ["write", "write_ch1", "write_chx_s0", "drafting", "WRITE_CH0_S0"])
    def test_unknown_tag_raises(self, value):
        with pytest.raises(StepDecodeError):
            decode_step(value)

    def test_negative_position_rejected(self):
        with pytest.raises(ValueError):
            Write(-1, 0)

    def test_write_steps_compare_by_position(self):
        assert Write(2, 1) == Write(2, 1)
        assert Write(2, 1) != Write(2, 0)
        assert Write(0, 0) != Plan()


class TestEnums:
    def test_terminal_statuses(self):
        assert JobStatus.COMPLETE.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert not JobStatus.RUNNING.is_terminal
        assert not JobStatus.QUEUED.is_terminal

    def test_only_accept_and_merge_add_words(self):
        assert {d for d in EditorDecision if d.mutates_words} == {EditorDecision.ACCEPT, EditorDecision.MERGE}

    def test_budget_decisions(self):
        assert {d for d in EditorDecision if d.counts_against_budget} == {
            EditorDecision.REWRITE, EditorDecision.REGENERATE, EditorDecision.DROP,
        }

    def test_scope_boundaries(self):
        assert RegenerationScope.LAST_15_PERCENT.boundary == Boundary.ACT
        assert RegenerationScope.LAST_CHAPTER.boundary == Boundary.ACT
        assert RegenerationScope.FINAL_ACT_TAIL.boundary == Boundary.BOOK
        assert RegenerationScope.FINAL_CHAPTER.boundary == Boundary.BOOK


class TestJobRecord:
    def test_defaults(self):
        job = JobRecord(book_id="book-1")
        assert job.status == JobStatus.QUEUED
        assert job.step == Created()
        assert job.progress == 0
        assert job.auto_resume_attempts == 0
        assert job.mode == GenerationMode.POLISHED
        assert job.is_active

    def test_snapshot(self):
        job = JobRecord(book_id="book-1", step=Write(3, 1), progress=42, status=JobStatus.RUNNING)
        assert job.snapshot() == {
            "status": "running",
            "step": "write_ch3_s1",
            "progress": 42,
            "error": None,
        }

    def test_lease(self):
        job = JobRecord(book_id="book-1")
        now = job.updated_at
        assert not job.is_leased(now)
        job.lease_expires_at = now + timedelta(seconds=30)
        assert job.is_leased(now)
        assert not job.is_leased(now + timedelta(seconds=31))


class TestBookLengths:
    @pytest.mark.parametrize("pages,chapters,sections,words", [
        (10, 7, 2, 600),
        (30, 7, 2, 600),
        (31, 12, 2, 700),
        (120, 20, 2, 850),
        (300, 35, 3, 800),
        (1000, 35, 3, 800),
    ])
    def test_presets(self, pages, chapters, sections, words):
        length = get_book_length(pages)
        assert length.chapters == chapters
        assert length.sections_per_chapter == sections
        assert length.words_per_section == words

    def test_thirty_pages(self):
        length = get_book_length(30)
        assert length.target_words == 8500
        assert length.total_sections == 14
