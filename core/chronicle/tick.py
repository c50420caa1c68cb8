"""
Chronicle Tick Driver

Advances one job by exactly one pipeline step per call.

Usage:
    driver = TickDriver(repository, book_store, ai_client, config)
    result = await driver.tick(job_id)
    result.job.snapshot()  # {status, step, progress, error}

A tick takes the job's lease, loads its BookState, runs one step and
persists the result with a write conditional on that lease. Transient
failures leave the job exactly as it was for the next tick or the
watchdog; budget exhaustion and contract violations fail the job.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple

from .agents import (
    AgentContext,
    ArchitectAgent,
    ConstitutionAgent,
    EditorAgent,
    FinalizerAgent,
    FingerprintAgent,
    PlannerAgent,
    ValidatorAgent,
    WriterAgent,
)
from .book_state import AcceptedScene, BookState, Revision, SlotState
from .book_store import BookStore
from .config import ChronicleConfig, GenerationMode, get_book_length
from .editorial import (
    EditorVerdict,
    ValidationResult,
    charge_attempt,
    decide_scene,
    scenes_for_scope,
    words_delta,
)
from .exceptions import (
    AgentError,
    ChronicleError,
    JobCancelledError,
    LeaseLostError,
    RetryBudgetExceededError,
    ValidationRejectedError,
)
from .models import (
    Boundary,
    Complete,
    Constitution,
    Created,
    EditorDecision,
    Finalize,
    JobRecord,
    JobStatus,
    Plan,
    Step,
    Write,
    utcnow,
)
from .narrative.fingerprint import make_scene_id, merge_fingerprints, patch_from_fingerprint
from .narrative.state import (
    advance_position,
    apply_revision,
    apply_state_patch,
    begin_act,
    combine_patches,
    create_initial_state,
    validate_state_mutation,
)
from .progress import next_progress
from .repository import JobRepository


class TickOutcome(Enum):
    """What one tick call did"""
    ADVANCED = "advanced"      # step moved forward
    RETRIED = "retried"        # work persisted, step unchanged (rejection, revision)
    FAILED = "failed"          # job moved to failed
    TRANSIENT = "transient"    # nothing persisted, job left for the next tick
    CANCELLED = "cancelled"
    SKIPPED = "skipped"        # terminal job or another tick holds the lease


@dataclass
class TickResult:
    job: JobRecord
    outcome: TickOutcome
    detail: str = ""

    @property
    def executed(self) -> bool:
        """A pipeline step ran and its result was persisted."""
        return self.outcome in (TickOutcome.ADVANCED, TickOutcome.RETRIED, TickOutcome.FAILED)

    def snapshot(self) -> dict:
        return self.job.snapshot()


class TickDriver:
    """
    The job state machine.

    Step means "last completed stage":
        created -> constitution -> plan -> write_ch{c}_s{s} ... -> finalize -> complete
    """

    def __init__(
        self,
        repository: JobRepository,
        book_store: BookStore,
        ai_client: Any,
        config: Optional[ChronicleConfig] = None,
    ):
        self.repository = repository
        self.book_store = book_store
        self.config = config or ChronicleConfig()
        self.logger = logging.getLogger("Chronicle.Tick")

        self.constitution = ConstitutionAgent(self.config, ai_client)
        self.architect = ArchitectAgent(self.config, ai_client)
        self.planner = PlannerAgent(self.config, ai_client)
        self.writer = WriterAgent(self.config, ai_client)
        self.fingerprinter = FingerprintAgent(self.config, ai_client)
        self.editor = EditorAgent(self.config, ai_client)
        self.validator = ValidatorAgent(self.config, ai_client)
        self.finalizer = FinalizerAgent(self.config, ai_client)

    # === Entry point ===

    async def tick(self, job_id: str, now: Optional[datetime] = None) -> TickResult:
        """
        Execute exactly one step of ``job_id``.

        Raises JobNotFoundError for unknown jobs; every other failure is
        reflected in the returned job record.
        """
        job = self.repository.get_or_raise(job_id)
        if job.is_terminal:
            return TickResult(job, TickOutcome.SKIPPED, "Job already finished")

        now = now or utcnow()
        token = uuid.uuid4().hex
        if not self.repository.acquire_lease(job_id, token, now, self.config.tick_lease_seconds):
            self.logger.warning(f"Job {job_id}: another tick is in progress")
            return TickResult(self.repository.get_or_raise(job_id), TickOutcome.SKIPPED, "Tick in progress")

        # Another tick may have finished between the first read and the lease
        job = self.repository.get_or_raise(job_id)
        if job.is_terminal:
            self.repository.release_lease(job_id, token)
            return TickResult(job, TickOutcome.SKIPPED, "Job already finished")

        context = AgentContext(
            job_id=job_id,
            config=self.config,
            cancel_check=lambda: self.repository.is_cancelled(job_id),
            progress_callback=lambda msg, pct: self.logger.debug(f"Job {job_id}: {msg} ({pct:.0f}%)"),
        )

        try:
            state = self.repository.load_state(job_id)
            step, state = await asyncio.wait_for(
                self._advance(job, state, context),
                timeout=self.config.tick_timeout_seconds,
            )

        except asyncio.TimeoutError:
            return self._transient(job_id, token, f"Tick timed out after {self.config.tick_timeout_seconds}s")

        except JobCancelledError:
            self.repository.release_lease(job_id, token)
            self.logger.info(f"Job {job_id}: cancelled, tick abandoned")
            return TickResult(self.repository.get_or_raise(job_id), TickOutcome.CANCELLED)

        except AgentError as e:
            if e.recoverable:
                return self._transient(job_id, token, str(e))
            return self._fail(job_id, token, str(e))

        except (RetryBudgetExceededError, ValidationRejectedError) as e:
            return self._fail(job_id, token, str(e))

        except ChronicleError as e:
            return self._fail(job_id, token, str(e))

        except Exception as e:
            self.logger.exception(f"Job {job_id}: unexpected error during tick")
            return self._fail(job_id, token, f"Unexpected error: {e}")

        previous_step = job.step
        job.step = step
        if isinstance(step, Complete):
            job.status = JobStatus.COMPLETE
            job.progress = 100
        else:
            job.status = JobStatus.RUNNING
            job.progress = next_progress(job.progress, step, state)
        job.updated_at = now

        try:
            self.repository.save_tick(job, state, token)
        except LeaseLostError:
            self.logger.warning(f"Job {job_id}: lease lost, discarding tick result")
            return TickResult(self.repository.get_or_raise(job_id), TickOutcome.SKIPPED, "Lease lost")

        outcome = TickOutcome.ADVANCED if step != previous_step else TickOutcome.RETRIED
        self.logger.info(
            f"Job {job_id}: {previous_step.encode()} -> {step.encode()} "
            f"({outcome.value}, {job.progress}%)"
        )
        return TickResult(self.repository.get_or_raise(job_id), outcome)

    def _transient(self, job_id: str, token: str, detail: str) -> TickResult:
        self.repository.release_lease(job_id, token)
        self.logger.warning(f"Job {job_id}: transient failure, will retry: {detail}")
        return TickResult(self.repository.get_or_raise(job_id), TickOutcome.TRANSIENT, detail)

    def _fail(self, job_id: str, token: str, error: str) -> TickResult:
        if not self.repository.mark_failed(job_id, error, utcnow(), token=token):
            self.repository.release_lease(job_id, token)
        self.logger.error(f"Job {job_id}: failed: {error}")
        return TickResult(self.repository.get_or_raise(job_id), TickOutcome.FAILED, error)

    # === Dispatch ===

    async def _advance(self, job: JobRecord, state: BookState, context: AgentContext) -> Tuple[Step, BookState]:
        step = job.step

        if isinstance(step, Created):
            return await self._run_constitution(job, state, context)

        if isinstance(step, Constitution):
            return await self._run_plan(job, state, context)

        if isinstance(step, Plan):
            accepted = await self._write_slot(job, state, 0, 0, context)
            return (Write(0, 0) if accepted else step), state

        if isinstance(step, Write):
            return await self._run_write(job, state, step, context)

        if isinstance(step, Finalize):
            return await self._run_complete(job, state, context)

        return step, state

    async def _run_constitution(self, job: JobRecord, state: BookState, context: AgentContext):
        length = get_book_length(job.target_pages)
        doc = await self.constitution.execute({
            "genre": job.genre,
            "target_words": length.target_words,
            "prompt": job.prompt,
            "preview": job.preview,
        }, context)

        state.constitution = doc
        state.narrative = create_initial_state(
            genre=job.genre,
            target_length_words=length.target_words,
            theme_thesis=doc.central_thesis,
            protagonist_name=doc.protagonist_name,
        )
        return Constitution(), state

    async def _run_plan(self, job: JobRecord, state: BookState, context: AgentContext):
        length = get_book_length(job.target_pages)
        plan = await self.architect.execute({
            "constitution": state.constitution,
            "length": length,
            "acts_total": state.narrative.structure.acts_total,
        }, context)

        state.plan = plan
        first_act = plan.act_outline(1)
        state.narrative.act_state.act_goal = first_act.goal
        state.narrative.act_state.act_close_conditions = list(first_act.close_conditions)
        return Plan(), state

    async def _run_write(self, job: JobRecord, state: BookState, step: Write, context: AgentContext):
        if state.revisions:
            await self._revise_scene(state, context)
            return step, state

        position = state.plan.next_position(step.chapter, step.scene)
        if position is None:
            await self._run_finalize(state, context)
            return Finalize(), state

        chapter, scene = position
        next_act = state.plan.act_for_chapter(chapter)
        current_act = state.narrative.structure.act_index
        if next_act > current_act:
            if not await self._validate_act(job, state, current_act, context):
                return step, state
            outline = state.plan.act_outline(next_act)
            state.narrative = begin_act(state.narrative, next_act, outline.goal, outline.close_conditions)

        accepted = await self._write_slot(job, state, chapter, scene, context)
        return (Write(chapter, scene) if accepted else step), state

    async def _run_finalize(self, state: BookState, context: AgentContext):
        state.final = await self.finalizer.execute({
            "state": state.narrative,
            "scenes": state.scenes,
            "fallback_title": state.constitution.central_thesis if state.constitution else None,
        }, context)

    async def _run_complete(self, job: JobRecord, state: BookState, context: AgentContext):
        if state.revisions:
            await self._revise_scene(state, context)
            return Finalize(), state

        if not state.book_validated:
            if job.mode == GenerationMode.POLISHED:
                result = await self.validator.execute({
                    "boundary": Boundary.BOOK,
                    "state": state.narrative,
                    "scenes": state.scenes,
                }, context)
                state.quality_score = result.quality_score
                state.validation_notes = result.notes
                if not result.valid:
                    self._queue_rollback(state, result, Boundary.BOOK, state.narrative.structure.act_index)
                    if state.revisions:
                        return Finalize(), state
            state.book_validated = True

        self.book_store.store_manuscript(job.book_id, state.scenes, state.final, state.quality_score)
        return Complete(), state

    # === Scenes ===

    async def _write_slot(
        self,
        job: JobRecord,
        state: BookState,
        chapter: int,
        scene: int,
        context: AgentContext,
    ) -> bool:
        """One attempt at a scene slot. Returns True if the scene was accepted."""
        slot = state.slot
        if slot is None or (slot.chapter, slot.scene) != (chapter, scene):
            slot = SlotState(chapter=chapter, scene=scene)

        narrative = state.narrative
        section = state.plan.section(chapter, scene)
        act = state.plan.act_for_chapter(chapter)

        if slot.brief is None:
            slot.brief = await self.planner.execute({
                "state": narrative,
                "plan": state.plan,
                "chapter": chapter,
                "scene": scene,
                "constraints": slot.constraints,
            }, context)

        written = await self.writer.execute({
            "state": narrative,
            "constitution": state.constitution,
            "brief": slot.brief,
            "target_words": section.target_words,
            "rewrite_instructions": slot.rewrite_instructions,
            "rejected_text": slot.rejected_text,
        }, context)

        scene_id = make_scene_id(act, chapter, scene)
        fingerprint = await self.fingerprinter.execute({
            "state": narrative,
            "scene_id": scene_id,
            "text": written.text,
        }, context)

        has_previous = bool(state.scenes)
        if job.mode == GenerationMode.DRAFT:
            verdict = decide_scene(fingerprint, state.fingerprints, None, has_previous, slot.merges, self.config)
        else:
            verdict = await self.editor.execute({
                "state": narrative,
                "candidate": fingerprint,
                "accepted": state.fingerprints,
                "text": written.text,
                "has_previous_scene": has_previous,
                "merges_so_far": slot.merges,
            }, context)

        decision = verdict.decision
        if decision == EditorDecision.ACCEPT:
            text = verdict.edited_text or written.text
            word_count = self.writer.count_words(text)
            patch = verdict.state_patch or patch_from_fingerprint(fingerprint, word_count)
            patch = patch.model_copy(update={"words_added": words_delta(verdict, word_count)})

            updated = apply_state_patch(narrative, patch, scene_id)
            check = validate_state_mutation(narrative, updated)
            if not check.valid:
                self.logger.warning(f"Job {job.id}: weak state change at ch{chapter} s{scene}: {check.issues}")

            state.narrative = advance_position(updated, chapter, scene)
            state.scenes.append(AcceptedScene(
                chapter=chapter,
                scene=scene,
                act=act,
                scene_id=scene_id,
                title=written.title or section.title,
                pov=written.pov,
                text=text,
                word_count=word_count,
                contribution=patch,
            ))
            state.fingerprints.append(fingerprint)
            state.slot = None
            return True

        slot = charge_attempt(slot, verdict, self.config)

        if decision == EditorDecision.MERGE:
            self._merge_into_previous(state, written.text, fingerprint, verdict)
            slot.brief = None
            slot.rewrite_instructions = None
            slot.rejected_text = None
        elif decision == EditorDecision.REWRITE:
            slot.rewrite_instructions = verdict.instructions or verdict.reason
            slot.rejected_text = written.text
        else:
            constraint = verdict.instructions or verdict.reason
            if decision == EditorDecision.DROP:
                constraint = f"Write a materially different beat ({verdict.reason})"
            if constraint:
                slot.constraints.append(constraint)
            slot.brief = None
            slot.rewrite_instructions = None
            slot.rejected_text = None

        self.logger.warning(
            f"Job {job.id}: ch{chapter} s{scene} {decision.value} "
            f"(attempt {slot.attempts}, merges {slot.merges}): {verdict.reason}"
        )
        state.slot = slot
        return False

    def _merge_into_previous(self, state: BookState, text: str, fingerprint, verdict: EditorVerdict):
        previous = state.scenes[-1]
        word_count = self.writer.count_words(text)
        previous.text = f"{previous.text}\n\n{text}"
        previous.word_count += word_count

        index = state.fingerprint_for(previous.scene_id)
        if index is not None:
            state.fingerprints[index] = merge_fingerprints(state.fingerprints[index], fingerprint)

        patch = verdict.state_patch or patch_from_fingerprint(fingerprint, word_count)
        patch = patch.model_copy(update={"words_added": words_delta(verdict, word_count)})
        state.narrative = apply_state_patch(state.narrative, patch, previous.scene_id)
        previous.contribution = combine_patches(previous.contribution, patch)

    # === Boundaries ===

    async def _validate_act(self, job: JobRecord, state: BookState, act: int, context: AgentContext) -> bool:
        """Validate a finished act before the next one starts."""
        if act in state.validated_acts:
            return True

        if job.mode == GenerationMode.POLISHED:
            result = await self.validator.execute({
                "boundary": Boundary.ACT,
                "state": state.narrative,
                "scenes": state.scenes_in_act(act),
                "act_index": act,
            }, context)
            if not result.valid:
                self._queue_rollback(state, result, Boundary.ACT, act)
                if state.revisions:
                    return False

        state.validated_acts.append(act)
        return True

    def _queue_rollback(self, state: BookState, result: ValidationResult, boundary: Boundary, act: int):
        key = f"act{act}" if boundary == Boundary.ACT else "book"
        limit = (
            self.config.max_act_tail_regenerations if boundary == Boundary.ACT
            else self.config.max_final_tail_regenerations
        )
        rounds = state.regeneration_rounds.get(key, 0)
        if rounds >= limit:
            raise ValidationRejectedError(boundary.value, result.issues, rounds)

        slots = scenes_for_scope(state, result.regeneration_scope, act, self.config)
        state.regeneration_rounds[key] = rounds + 1
        state.revisions = [
            Revision(chapter=c, scene=s, constraints=list(result.regeneration_constraints))
            for c, s in slots
        ]
        self.logger.warning(
            f"{boundary.value} {act if boundary == Boundary.ACT else ''} rejected "
            f"(round {rounds + 1}/{limit}, {result.regeneration_scope.value}): "
            f"{len(slots)} scene(s) queued for revision"
        )

    async def _revise_scene(self, state: BookState, context: AgentContext):
        """Rewrite the next queued scene in place."""
        revision = state.revisions[0]
        scene = state.find_scene(revision.chapter, revision.scene)
        if scene is None:
            state.revisions.pop(0)
            return

        section = state.plan.section(revision.chapter, revision.scene)
        written = await self.writer.execute({
            "state": state.narrative,
            "constitution": state.constitution,
            "brief": f"{section.title}. {section.goal}".strip(),
            "target_words": section.target_words,
            "rewrite_instructions": "\n".join(revision.constraints) or None,
            "rejected_text": scene.text,
        }, context)

        fingerprint = await self.fingerprinter.execute({
            "state": state.narrative,
            "scene_id": scene.scene_id,
            "text": written.text,
        }, context)

        index = state.fingerprint_for(scene.scene_id)
        if index is None:
            state.fingerprints.append(fingerprint)
        else:
            state.fingerprints[index] = fingerprint

        delta = max(0, written.word_count - scene.word_count)
        state.narrative, scene.contribution = apply_revision(
            state.narrative,
            scene.contribution,
            patch_from_fingerprint(fingerprint, delta),
            scene.scene_id,
        )

        scene.text = written.text
        scene.word_count = written.word_count
        if written.title:
            scene.title = written.title
        state.revisions.pop(0)
