"""
Tests for the tick driver
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.chronicle.config import ChronicleConfig, GenerationMode
from core.chronicle.editorial import EditorVerdict, ValidationResult
from core.chronicle.exceptions import AgentError, JobNotFoundError
from core.chronicle.models import EditorDecision, JobStatus, RegenerationScope
from core.chronicle.tick import TickDriver, TickOutcome


FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

THIRTY_PAGE_STEPS = (
    ["constitution", "plan"]
    + [f"write_ch{c}_s{s}" for c in range(7) for s in range(2)]
    + ["finalize", "complete"]
)


async def run_ticks(driver, job_id, count, start=FIXED_NOW):
    results = []
    for i in range(count):
        results.append(await driver.tick(job_id, now=start + timedelta(minutes=i + 1)))
    return results


def _verdicts(*decisions):
    """Editor side effect returning the given decisions in order, then ACCEPT."""
    queue = list(decisions)

    async def execute(input_data, context):
        decision = queue.pop(0) if queue else EditorDecision.ACCEPT
        return EditorVerdict(decision=decision, reason=f"{decision.value.lower()} for test")

    return execute


class TestFullRun:
    @pytest.mark.asyncio
    async def test_thirty_pages_in_eighteen_ticks(self, driver, make_job, repository, book_store):
        job = make_job()

        results = await run_ticks(driver, job.id, 18)

        assert [r.job.step.encode() for r in results] == THIRTY_PAGE_STEPS
        assert all(r.outcome == TickOutcome.ADVANCED for r in results)
        final = results[-1].job
        assert final.status == JobStatus.COMPLETE
        assert final.progress == 100
        assert final.error is None

        book = book_store.get(job.book_id)
        assert book.status == "complete"
        assert book.title == "The Cost of Knowing"
        assert book.word_count == 14 * 600
        assert book.quality_score == 80
        assert len(book.sections) == 14
        assert book.manuscript().startswith("# The Cost of Knowing\n\n## Chapter 1")

    @pytest.mark.asyncio
    async def test_progress_and_words_never_decrease(self, driver, make_job, repository):
        job = make_job()
        progress, words = [], []

        for i in range(18):
            result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=i + 1))
            progress.append(result.job.progress)
            state = repository.load_state(job.id)
            words.append(state.narrative.structure.words_written if state.narrative else 0)

        assert progress == sorted(progress)
        assert words == sorted(words)
        assert 0 < progress[0] < 100
        assert words[-1] == 8400

    @pytest.mark.asyncio
    async def test_first_tick_persists_constitution(self, driver, make_job, repository):
        job = make_job()

        result = await driver.tick(job.id, now=FIXED_NOW)

        assert result.snapshot() == {"status": "running", "step": "constitution", "progress": 5, "error": None}
        state = repository.load_state(job.id)
        assert state.constitution.protagonist_name == "Mara"
        assert state.narrative.structure.acts_total == 3
        assert state.narrative.protagonist_name == "Mara"

    @pytest.mark.asyncio
    async def test_terminal_ticks_are_no_ops(self, driver, make_job, repository, mock_client):
        job = make_job()
        await run_ticks(driver, job.id, 18)
        before = repository.get(job.id)
        calls = mock_client.call_count

        for _ in range(3):
            result = await driver.tick(job.id)
            assert result.outcome == TickOutcome.SKIPPED
            assert result.snapshot() == before.snapshot()

        assert repository.get(job.id).updated_at == before.updated_at
        assert mock_client.call_count == calls

    @pytest.mark.asyncio
    async def test_draft_mode_skips_editor_and_validator(self, driver, make_job):
        job = make_job(mode=GenerationMode.DRAFT)
        driver.editor.execute = AsyncMock()
        driver.validator.execute = AsyncMock()

        results = await run_ticks(driver, job.id, 18)

        assert results[-1].job.status == JobStatus.COMPLETE
        driver.editor.execute.assert_not_called()
        driver.validator.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_job(self, driver):
        with pytest.raises(JobNotFoundError):
            await driver.tick("missing")


class TestEditorVerdicts:
    @pytest.mark.asyncio
    async def test_rejection_keeps_position(self, driver, make_job, repository):
        job = make_job()
        await run_ticks(driver, job.id, 2)
        driver.editor.execute = _verdicts(EditorDecision.REGENERATE)

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=5))

        assert result.outcome == TickOutcome.RETRIED
        assert result.job.step.encode() == "plan"
        state = repository.load_state(job.id)
        assert state.scenes == []
        assert state.narrative.structure.words_written == 0
        assert state.slot.attempts == 1
        assert state.slot.brief is None
        assert state.slot.constraints == ["regenerate for test"]

    @pytest.mark.asyncio
    async def test_rewrite_keeps_brief(self, driver, make_job, repository):
        job = make_job()
        await run_ticks(driver, job.id, 2)
        driver.editor.execute = _verdicts(EditorDecision.REWRITE)

        await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=5))
        state = repository.load_state(job.id)
        assert state.slot.brief
        assert state.slot.rewrite_instructions == "rewrite for test"
        assert state.slot.rejected_text

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=6))
        assert result.job.step.encode() == "write_ch0_s0"
        assert repository.load_state(job.id).slot is None

    @pytest.mark.asyncio
    async def test_merge_folds_into_previous_scene(self, driver, make_job, repository):
        job = make_job()
        await run_ticks(driver, job.id, 3)
        driver.editor.execute = _verdicts(EditorDecision.MERGE)

        merged = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=5))
        assert merged.outcome == TickOutcome.RETRIED
        assert merged.job.step.encode() == "write_ch0_s0"

        state = repository.load_state(job.id)
        assert len(state.scenes) == 1
        assert state.scenes[0].word_count == 1200
        assert len(state.fingerprints) == 1
        assert state.narrative.structure.words_written == 1200
        assert state.slot.merges == 1
        assert state.slot.attempts == 0

        accepted = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=6))
        assert accepted.job.step.encode() == "write_ch0_s1"
        assert repository.load_state(job.id).narrative.structure.words_written == 1800

    @pytest.mark.asyncio
    async def test_retry_budget_fails_job(self, repository, book_store, mock_client, make_job):
        config = ChronicleConfig(retry_base_delay=0, max_scene_retries=20)
        driver = TickDriver(repository, book_store, mock_client, config)
        job = make_job()
        await run_ticks(driver, job.id, 2)
        driver.editor.execute = _verdicts(*[EditorDecision.REGENERATE] * 21)

        results = await run_ticks(driver, job.id, 21, start=FIXED_NOW + timedelta(minutes=10))

        assert all(r.outcome == TickOutcome.RETRIED for r in results[:20])
        assert results[-1].outcome == TickOutcome.FAILED
        failed = results[-1].job
        assert failed.status == JobStatus.FAILED
        assert "rejected 21 times" in failed.error
        state = repository.load_state(job.id)
        assert state.narrative.structure.scene_index == 0
        assert state.narrative.structure.words_written == 0
        assert state.scenes == []


class TestBoundaries:
    @pytest.mark.asyncio
    async def test_act_rejection_revises_tail(self, driver, make_job, repository):
        job = make_job()
        rejections = [ValidationResult(
            valid=False,
            issues=["Act one closes without a turn"],
            regeneration_scope=RegenerationScope.LAST_15_PERCENT,
            regeneration_constraints=["End on a reversal"],
        )]

        async def validate(input_data, context):
            return rejections.pop(0) if rejections else ValidationResult(valid=True, quality_score=75)

        driver.validator.execute = validate
        await run_ticks(driver, job.id, 8)
        words_before = repository.load_state(job.id).narrative.structure.words_written

        rejected = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=20))
        assert rejected.outcome == TickOutcome.RETRIED
        assert rejected.job.step.encode() == "write_ch2_s1"
        state = repository.load_state(job.id)
        assert [(r.chapter, r.scene) for r in state.revisions] == [(2, 1)]
        assert state.regeneration_rounds == {"act1": 1}

        revised = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=21))
        assert revised.job.step.encode() == "write_ch2_s1"
        state = repository.load_state(job.id)
        assert state.revisions == []
        assert state.narrative.structure.words_written >= words_before

        advanced = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=22))
        assert advanced.job.step.encode() == "write_ch3_s0"
        state = repository.load_state(job.id)
        assert state.validated_acts == [1]
        assert state.narrative.structure.act_index == 2

        results = await run_ticks(driver, job.id, 9, start=FIXED_NOW + timedelta(minutes=30))
        assert results[-1].job.status == JobStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_revisions_do_not_count_twice(self, driver, make_job, repository):
        job = make_job()
        rejections = [ValidationResult(
            valid=False,
            issues=["Act one closes without a turn"],
            regeneration_scope=RegenerationScope.LAST_CHAPTER,
        )]

        async def validate(input_data, context):
            return rejections.pop(0) if rejections else ValidationResult(valid=True)

        driver.validator.execute = validate
        await run_ticks(driver, job.id, 8)
        accepted = repository.load_state(job.id)
        assert accepted.scenes[0].contribution.escalation_spent == 1
        before = accepted.narrative
        mara_before = before.characters["Mara"]

        await run_ticks(driver, job.id, 3, start=FIXED_NOW + timedelta(minutes=20))

        state = repository.load_state(job.id)
        assert state.revisions == []
        assert len(state.scenes) == 6
        mara = state.narrative.characters["Mara"]
        assert state.narrative.escalation_budget.remaining == before.escalation_budget.remaining == 2
        assert len(mara.costs_incurred) == len(mara_before.costs_incurred)
        assert mara.transformation == pytest.approx(mara_before.transformation)
        assert state.narrative.structure.words_written == before.structure.words_written

    @pytest.mark.asyncio
    async def test_rollback_budget_exhausted(self, repository, book_store, mock_client, make_job):
        config = ChronicleConfig(retry_base_delay=0, max_act_tail_regenerations=1)
        driver = TickDriver(repository, book_store, mock_client, config)
        driver.validator.execute = AsyncMock(return_value=ValidationResult(
            valid=False,
            issues=["Nothing changes"],
            regeneration_scope=RegenerationScope.LAST_CHAPTER,
        ))
        job = make_job()

        results = await run_ticks(driver, job.id, 12)

        assert results[8].outcome == TickOutcome.RETRIED
        failed = results[-1].job
        assert failed.status == JobStatus.FAILED
        assert "act failed validation after 1 regeneration round(s)" in failed.error


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_failure_leaves_job_untouched(self, repository, book_store, config, make_job):
        client = MagicMock()
        client.generate = AsyncMock(side_effect=RuntimeError("upstream 503"))
        driver = TickDriver(repository, book_store, client, config)
        job = make_job()

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=1))

        assert result.outcome == TickOutcome.TRANSIENT
        stored = repository.get(job.id)
        assert stored.status == JobStatus.QUEUED
        assert stored.step.encode() == "created"
        assert stored.updated_at == FIXED_NOW
        assert stored.lease_expires_at is None

    @pytest.mark.asyncio
    async def test_non_recoverable_agent_error_fails(self, driver, make_job):
        job = make_job()
        driver.constitution.execute = AsyncMock(side_effect=AgentError("Constitution", "contract broken", recoverable=False))

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=1))

        assert result.outcome == TickOutcome.FAILED
        assert result.job.status == JobStatus.FAILED
        assert "contract broken" in result.job.error

    @pytest.mark.asyncio
    async def test_unexpected_error_fails(self, driver, make_job):
        job = make_job()
        driver.constitution.execute = AsyncMock(side_effect=KeyError("central_thesis"))

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=1))

        assert result.outcome == TickOutcome.FAILED
        assert result.job.error.startswith("Unexpected error")

    @pytest.mark.asyncio
    async def test_tick_timeout_is_transient(self, repository, book_store, mock_client, make_job):
        config = ChronicleConfig(retry_base_delay=0, tick_timeout_seconds=0.01)
        driver = TickDriver(repository, book_store, mock_client, config)

        async def slow(input_data, context):
            await asyncio.sleep(1)

        driver.constitution.execute = slow
        job = make_job()

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=1))

        assert result.outcome == TickOutcome.TRANSIENT
        assert repository.get(job.id).step.encode() == "created"


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_leased_job_is_skipped(self, driver, make_job, repository, mock_client):
        job = make_job()
        now = FIXED_NOW + timedelta(minutes=1)
        assert repository.acquire_lease(job.id, "other-tick", now, 270)

        result = await driver.tick(job.id, now=now)

        assert result.outcome == TickOutcome.SKIPPED
        assert result.job.step.encode() == "created"
        assert mock_client.call_count == 0

        later = await driver.tick(job.id, now=now + timedelta(seconds=300))
        assert later.outcome == TickOutcome.ADVANCED

    @pytest.mark.asyncio
    async def test_dispatches_on_record_read_under_lease(self, driver, make_job, repository, monkeypatch):
        job = make_job()
        await run_ticks(driver, job.id, 2)
        stale = repository.get(job.id)
        await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=3))
        assert repository.get(job.id).step.encode() == "write_ch0_s0"

        # First read sees the record as it was before the other tick finished
        real_get = repository.get_or_raise
        reads = []

        def get_or_raise(job_id):
            reads.append(job_id)
            return stale if len(reads) == 1 else real_get(job_id)

        monkeypatch.setattr(repository, "get_or_raise", get_or_raise)

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=4))

        assert result.job.step.encode() == "write_ch0_s1"
        state = repository.load_state(job.id)
        assert [(s.chapter, s.scene) for s in state.scenes] == [(0, 0), (0, 1)]
        assert state.narrative.structure.words_written == 1200

    @pytest.mark.asyncio
    async def test_job_finished_before_lease(self, driver, make_job, repository, monkeypatch, mock_client):
        job = make_job()
        real_acquire = repository.acquire_lease

        def acquire_lease(job_id, token, now, seconds):
            acquired = real_acquire(job_id, token, now, seconds)
            repository.mark_failed(job_id, "Cancelled by user", now)
            return acquired

        monkeypatch.setattr(repository, "acquire_lease", acquire_lease)

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=1))

        assert result.outcome == TickOutcome.SKIPPED
        assert result.job.error == "Cancelled by user"
        assert mock_client.call_count == 0
        assert repository.get(job.id).lease_expires_at is None
        assert repository.get(job.id).step.encode() == "created"

    @pytest.mark.asyncio
    async def test_cancel_during_tick(self, driver, make_job, repository, mock_client):
        job = make_job()
        await run_ticks(driver, job.id, 2)
        original = mock_client.generate

        async def cancelling_generate(**kwargs):
            repository.mark_failed(job.id, "Cancelled by user", FIXED_NOW)
            return await original(**kwargs)

        mock_client.generate = cancelling_generate

        result = await driver.tick(job.id, now=FIXED_NOW + timedelta(minutes=5))

        assert result.outcome == TickOutcome.CANCELLED
        assert result.job.status == JobStatus.FAILED
        assert result.job.error == "Cancelled by user"
        assert result.job.step.encode() == "plan"
        assert repository.load_state(job.id).scenes == []
