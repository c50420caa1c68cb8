"""
Editorial Decisions

Pure decision functions for the Editor and Validator. The agents do the
LLM I/O and hand the model's proposal to these functions, which apply
the deterministic rules (redundancy, consequence, merge limits, retry
budget, structural checks, rollback scope). Everything here can be
tested with fixed fingerprints and states.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .book_state import BookState, SlotState
from .config import ChronicleConfig
from .exceptions import RetryBudgetExceededError
from .models import Boundary, EditorDecision, RegenerationScope
from .narrative.fingerprint import (
    SceneFingerprint,
    check_redundancy,
    trim_fingerprint_window,
)
from .narrative.state import NarrativeState, StatePatch


# === EDITOR ===

@dataclass
class EditorVerdict:
    """Exactly one decision per evaluated scene."""
    decision: EditorDecision
    reason: str = ""
    instructions: Optional[str] = None
    edited_text: Optional[str] = None
    state_patch: Optional[StatePatch] = None


def parse_decision(value: Any) -> Optional[EditorDecision]:
    try:
        return EditorDecision(str(value).strip().upper())
    except ValueError:
        return None


def screen_scene(
    candidate: SceneFingerprint,
    accepted: List[SceneFingerprint],
    config: ChronicleConfig,
) -> Optional[EditorVerdict]:
    """
    Deterministic pre-check run before the Editor is asked.

    Returns a REGENERATE verdict for redundant scenes, otherwise None.
    Only fingerprints of accepted scenes may be passed in.
    """
    window = trim_fingerprint_window(accepted, config.fingerprint_window_size)
    redundancy = check_redundancy(candidate, window, config.jaccard_duplicate_threshold)
    if not redundancy.is_redundant:
        return None
    return EditorVerdict(
        decision=EditorDecision.REGENERATE,
        reason=redundancy.reason or "Redundant scene",
        instructions=redundancy.suggestion,
    )


def settle_verdict(
    candidate: SceneFingerprint,
    proposal: EditorVerdict,
    has_previous_scene: bool,
    merges_so_far: int,
    config: ChronicleConfig,
) -> EditorVerdict:
    """Apply the hard rules on top of the Editor's proposal."""
    decision = proposal.decision

    if decision == EditorDecision.ACCEPT:
        if not candidate.consequence_introduced and candidate.escalation_delta < 0.1:
            return EditorVerdict(
                decision=EditorDecision.REGENERATE,
                reason="Scene has no consequence and no meaningful escalation",
                instructions="Something irreversible must happen, or the stakes must visibly rise",
            )
        return proposal

    if decision == EditorDecision.MERGE:
        if not has_previous_scene:
            return EditorVerdict(
                decision=EditorDecision.REWRITE,
                reason="Nothing to merge into yet",
                instructions="Expand the scene so it can stand on its own",
            )
        if merges_so_far >= config.max_merges_per_scene:
            return EditorVerdict(
                decision=EditorDecision.ACCEPT,
                reason=f"Merge limit reached ({merges_so_far}); scene kept as its own beat",
                edited_text=proposal.edited_text,
                state_patch=proposal.state_patch,
            )

    return proposal


def decide_scene(
    candidate: SceneFingerprint,
    accepted: List[SceneFingerprint],
    proposal: Optional[EditorVerdict],
    has_previous_scene: bool,
    merges_so_far: int,
    config: ChronicleConfig,
) -> EditorVerdict:
    """
    Full editorial decision for one candidate scene.

    ``proposal`` is the Editor model's verdict; None means no editor pass
    (draft mode), in which case any non-redundant scene is accepted.
    """
    screened = screen_scene(candidate, accepted, config)
    if screened is not None:
        return screened
    if proposal is None:
        return EditorVerdict(decision=EditorDecision.ACCEPT, reason="Draft mode")
    return settle_verdict(candidate, proposal, has_previous_scene, merges_so_far, config)


def words_delta(verdict: EditorVerdict, word_count: int) -> int:
    """Words a verdict adds to the manuscript. Only ACCEPT and MERGE add any."""
    return word_count if verdict.decision.mutates_words else 0


def charge_attempt(slot: SlotState, verdict: EditorVerdict, config: ChronicleConfig) -> SlotState:
    """
    Count a rejection against the slot's retry budget.

    Raises RetryBudgetExceededError once the budget is spent.
    """
    updated = slot.model_copy(deep=True)
    if verdict.decision == EditorDecision.MERGE:
        updated.merges += 1
        return updated
    if not verdict.decision.counts_against_budget:
        return updated

    updated.attempts += 1
    if updated.attempts > config.max_scene_retries:
        raise RetryBudgetExceededError(slot.chapter, slot.scene, updated.attempts)
    return updated


# === VALIDATOR ===

ACT_SCOPES = (RegenerationScope.LAST_15_PERCENT, RegenerationScope.LAST_CHAPTER)
BOOK_SCOPES = (RegenerationScope.FINAL_ACT_TAIL, RegenerationScope.FINAL_CHAPTER)


@dataclass
class StructuralCheck:
    valid: bool
    issues: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    valid: bool
    issues: List[str] = field(default_factory=list)
    regeneration_scope: Optional[RegenerationScope] = None
    regeneration_constraints: List[str] = field(default_factory=list)
    quality_score: Optional[int] = None
    notes: str = ""

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "issues": list(self.issues),
            "regeneration_scope": self.regeneration_scope.value if self.regeneration_scope else None,
            "regeneration_constraints": list(self.regeneration_constraints),
            "quality_score": self.quality_score,
            "notes": self.notes,
        }


def quick_structural_check(state: NarrativeState) -> StructuralCheck:
    """Checks that need no model: protagonist arc, budget, length, loose ends."""
    issues = []
    structure = state.structure
    final_act = structure.act_index == structure.acts_total
    protagonist = state.protagonist

    if protagonist is None:
        issues.append("No protagonist character tracked")
    else:
        if final_act:
            if not protagonist.irreversible_loss:
                issues.append("Protagonist has not suffered irreversible loss")
            if protagonist.transformation < 0.3:
                issues.append(f"Protagonist transformation too low ({protagonist.transformation:.2f})")
            if not protagonist.costs_incurred:
                issues.append("Protagonist has incurred no costs")
        if structure.act_index >= structure.acts_total // 2 and not protagonist.costs_incurred:
            issues.append("Protagonist should have incurred at least one cost by mid-book")

    if final_act:
        if state.escalation_budget.remaining > 2:
            issues.append(f"Escalation budget not spent ({state.escalation_budget.remaining} remaining)")
        min_words = state.target_length_words * 0.9
        if structure.words_written < min_words:
            issues.append(f"Word count below minimum ({structure.words_written}/{int(min_words)})")
        if len(state.unresolved_questions) > 3:
            issues.append(f"Too many unresolved questions ({len(state.unresolved_questions)})")

    return StructuralCheck(valid=not issues, issues=issues)


def _parse_scope(value: Any, boundary: Boundary) -> Optional[RegenerationScope]:
    if not value:
        return None
    try:
        scope = RegenerationScope(str(value).strip().lower())
    except ValueError:
        return None
    allowed = ACT_SCOPES if boundary == Boundary.ACT else BOOK_SCOPES
    return scope if scope in allowed else None


def decide_validation(
    state: NarrativeState,
    boundary: Boundary,
    payload: Optional[Dict[str, Any]],
) -> ValidationResult:
    """
    Combine the structural check with the Validator model's verdict.

    ``payload`` is the model's JSON (None when no model pass ran). An
    invalid result always carries a scope legal for its boundary.
    """
    structural = quick_structural_check(state)
    payload = payload or {}

    model_valid = bool(payload.get("valid", True))
    model_issues = [str(i) for i in payload.get("issues") or []]
    valid = structural.valid and model_valid

    quality_score = None
    if boundary == Boundary.BOOK and payload.get("quality_score") is not None:
        try:
            quality_score = max(0, min(100, int(round(float(payload["quality_score"])))))
        except (TypeError, ValueError):
            quality_score = None

    if valid:
        return ValidationResult(
            valid=True,
            issues=model_issues,
            quality_score=quality_score,
            notes=str(payload.get("notes") or ""),
        )

    scope = _parse_scope(payload.get("regeneration_scope"), boundary)
    if scope is None:
        scope = (
            RegenerationScope.LAST_15_PERCENT if boundary == Boundary.ACT
            else RegenerationScope.FINAL_ACT_TAIL
        )

    constraints = [str(c) for c in payload.get("regeneration_constraints") or []]
    constraints.extend(f"Address: {issue}" for issue in structural.issues)

    return ValidationResult(
        valid=False,
        issues=structural.issues + model_issues,
        regeneration_scope=scope,
        regeneration_constraints=constraints,
        quality_score=quality_score,
        notes=str(payload.get("notes") or ""),
    )


def scenes_for_scope(
    book: BookState,
    scope: RegenerationScope,
    act: int,
    config: ChronicleConfig,
) -> List[Tuple[int, int]]:
    """Accepted (chapter, scene) slots a rollback of ``scope`` redoes."""
    if scope in (RegenerationScope.LAST_15_PERCENT, RegenerationScope.FINAL_ACT_TAIL):
        percent = (
            config.act_tail_percent if scope == RegenerationScope.LAST_15_PERCENT
            else config.final_tail_percent
        )
        scenes = book.scenes_in_act(act)
        if not scenes:
            return []
        count = max(1, math.ceil(len(scenes) * percent))
        return [(s.chapter, s.scene) for s in scenes[-count:]]

    candidates = book.scenes_in_act(act) if scope == RegenerationScope.LAST_CHAPTER else book.scenes
    if not candidates:
        return []
    last_chapter = max(s.chapter for s in candidates)
    return [(s.chapter, s.scene) for s in candidates if s.chapter == last_chapter]
