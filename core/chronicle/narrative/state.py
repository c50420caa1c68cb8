"""
Narrative State

The pure data describing a book in progress, plus the functions that
create it, patch it and compress it for prompts. Nothing here performs I/O.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────
# STATE
# ─────────────────────────────────────────────────────────────────

class Structure(BaseModel):
    """Position in the book. Never moves backwards within a job."""
    acts_total: int = 3
    act_index: int = 1
    chapter_index: int = 0
    scene_index: int = 0
    words_written: int = 0


class ActState(BaseModel):
    act_goal: str = ""
    act_open_questions: List[str] = Field(default_factory=list)
    act_close_conditions: List[str] = Field(default_factory=list)
    act_words_written: int = 0
    act_words_target: int = 0


class Progression(BaseModel):
    mystery_level: float = Field(0.3, ge=0.0, le=1.0)
    clarity_level: float = Field(0.1, ge=0.0, le=1.0)
    emotional_intensity: float = Field(0.2, ge=0.0, le=1.0)
    narrative_velocity: float = Field(0.4, ge=0.0, le=1.0)


class EscalationBudget(BaseModel):
    remaining: int = 8
    last_escalation_scene_id: Optional[str] = None


class CharacterArc(BaseModel):
    certainty: float = Field(0.5, ge=0.0, le=1.0)
    transformation: float = Field(0.0, ge=0.0, le=1.0)
    costs_incurred: List[str] = Field(default_factory=list)
    irreversible_loss: bool = False


class RepetitionRegistry(BaseModel):
    motifs: List[str] = Field(default_factory=list)
    motif_counts: Dict[str, int] = Field(default_factory=dict)


class Summaries(BaseModel):
    book_so_far: str = ""
    current_act: str = ""
    previous_scene: str = ""


class NarrativeState(BaseModel):
    theme_thesis: str
    genre: str
    target_length_words: int
    structure: Structure = Field(default_factory=Structure)
    act_state: ActState = Field(default_factory=ActState)
    progression: Progression = Field(default_factory=Progression)
    escalation_budget: EscalationBudget = Field(default_factory=EscalationBudget)
    unresolved_questions: List[str] = Field(default_factory=list)
    characters: Dict[str, CharacterArc] = Field(default_factory=dict)
    repetition_registry: RepetitionRegistry = Field(default_factory=RepetitionRegistry)
    summaries: Summaries = Field(default_factory=Summaries)

    @property
    def protagonist_name(self) -> Optional[str]:
        """The first tracked character is the protagonist."""
        return next(iter(self.characters), None)

    @property
    def protagonist(self) -> Optional[CharacterArc]:
        name = self.protagonist_name
        return self.characters[name] if name else None

    @property
    def in_final_act(self) -> bool:
        return self.structure.act_index >= self.structure.acts_total


# ─────────────────────────────────────────────────────────────────
# STATE PATCH
# ─────────────────────────────────────────────────────────────────

class ProgressionPatch(BaseModel):
    """New absolute values; omitted fields are left alone."""
    mystery_level: Optional[float] = None
    clarity_level: Optional[float] = None
    emotional_intensity: Optional[float] = None
    narrative_velocity: Optional[float] = None


class QuestionReframe(BaseModel):
    old: str
    new: str


class QuestionPatch(BaseModel):
    add: List[str] = Field(default_factory=list)
    resolve: List[str] = Field(default_factory=list)
    reframe: List[QuestionReframe] = Field(default_factory=list)


class CharacterPatch(BaseModel):
    certainty_delta: float = 0.0
    transformation_delta: float = 0.0
    cost_added: Optional[str] = None
    irreversible_loss: bool = False


class StatePatch(BaseModel):
    words_added: int = 0
    progression: ProgressionPatch = Field(default_factory=ProgressionPatch)
    escalation_spent: int = 0
    questions: QuestionPatch = Field(default_factory=QuestionPatch)
    characters: Dict[str, CharacterPatch] = Field(default_factory=dict)
    motifs_added: List[str] = Field(default_factory=list)
    scene_summary: Optional[str] = None
    book_summary: Optional[str] = None


class MutationCheck(BaseModel):
    valid: bool
    issues: List[str] = Field(default_factory=list)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# ─────────────────────────────────────────────────────────────────
# OPERATIONS
# ─────────────────────────────────────────────────────────────────

FIRST_ACT_GOAL = "Establish the ordinary world and inciting incident"
FIRST_ACT_CLOSE_CONDITION = "Protagonist commits to the journey"


def create_initial_state(
    genre: str,
    target_length_words: int,
    theme_thesis: str,
    protagonist_name: str,
) -> NarrativeState:
    """Build the state a job starts writing from."""
    acts_total = 3 if target_length_words <= 35000 else 5

    return NarrativeState(
        theme_thesis=theme_thesis,
        genre=genre,
        target_length_words=target_length_words,
        structure=Structure(acts_total=acts_total),
        act_state=ActState(
            act_goal=FIRST_ACT_GOAL,
            act_close_conditions=[FIRST_ACT_CLOSE_CONDITION],
            act_words_target=target_length_words // acts_total,
        ),
        escalation_budget=EscalationBudget(
            remaining=max(8, round(target_length_words / 2500)),
        ),
        characters={
            protagonist_name: CharacterArc(certainty=0.3, transformation=0.0),
        },
    )


def begin_act(
    state: NarrativeState,
    act_index: int,
    goal: str,
    close_conditions: List[str],
) -> NarrativeState:
    """Move to a later act and reset the per-act bookkeeping."""
    if act_index <= state.structure.act_index:
        return state

    new_state = state.model_copy(deep=True)
    new_state.structure.act_index = min(act_index, new_state.structure.acts_total)
    new_state.act_state = ActState(
        act_goal=goal,
        act_close_conditions=list(close_conditions),
        act_words_target=state.target_length_words // state.structure.acts_total,
    )
    new_state.summaries.current_act = ""
    return new_state


def advance_position(state: NarrativeState, chapter: int, scene: int) -> NarrativeState:
    """Record the latest accepted (chapter, scene) slot."""
    current = (state.structure.chapter_index, state.structure.scene_index)
    if (chapter, scene) <= current:
        return state

    new_state = state.model_copy(deep=True)
    new_state.structure.chapter_index = chapter
    new_state.structure.scene_index = scene
    return new_state


def apply_state_patch(
    state: NarrativeState,
    patch: StatePatch,
    scene_id: Optional[str] = None,
) -> NarrativeState:
    """
    Apply an editor (or fingerprint-derived) patch.

    Returns a new state; the input is not modified. Word counts only
    grow, values in [0, 1] stay there, the escalation budget never goes
    below zero and irreversible loss is never undone.
    """
    new_state = state.model_copy(deep=True)

    words = max(0, patch.words_added)
    new_state.structure.words_written += words
    new_state.act_state.act_words_written += words

    for field_name, value in patch.progression.model_dump(exclude_none=True).items():
        setattr(new_state.progression, field_name, _clamp(float(value)))

    if patch.escalation_spent > 0:
        budget = new_state.escalation_budget
        budget.remaining = max(0, budget.remaining - patch.escalation_spent)
        budget.last_escalation_scene_id = scene_id

    questions = new_state.unresolved_questions
    for question in patch.questions.add:
        question = question.strip()
        if question and question not in questions:
            questions.append(question)

    for resolved in patch.questions.resolve:
        needle = resolved.lower().strip()
        if needle:
            questions[:] = [q for q in questions if needle not in q.lower()]

    for reframe in patch.questions.reframe:
        needle = reframe.old.lower().strip()
        for i, question in enumerate(questions):
            if needle and needle in question.lower():
                questions[i] = reframe.new
                break

    for name, change in patch.characters.items():
        arc = new_state.characters.get(name)
        if arc is None:
            arc = CharacterArc()
            new_state.characters[name] = arc
        arc.certainty = _clamp(arc.certainty + change.certainty_delta)
        arc.transformation = _clamp(arc.transformation + change.transformation_delta)
        if change.cost_added:
            arc.costs_incurred.append(change.cost_added)
        if change.irreversible_loss:
            arc.irreversible_loss = True

    registry = new_state.repetition_registry
    for motif in patch.motifs_added:
        motif = motif.strip().lower()
        if not motif:
            continue
        if motif not in registry.motifs:
            registry.motifs.append(motif)
        registry.motif_counts[motif] = registry.motif_counts.get(motif, 0) + 1

    if patch.scene_summary:
        new_state.summaries.previous_scene = patch.scene_summary
    if patch.book_summary:
        new_state.summaries.book_so_far = patch.book_summary

    return new_state


def _merge_unique(first: list, second: list) -> list:
    merged = list(first)
    merged.extend(item for item in second if item not in merged)
    return merged


def combine_patches(first: StatePatch, second: StatePatch) -> StatePatch:
    """The net effect of applying ``first`` then ``second`` to one scene."""
    characters = {name: change.model_copy() for name, change in first.characters.items()}
    for name, change in second.characters.items():
        before = characters.get(name)
        if before is None:
            characters[name] = change.model_copy()
            continue
        characters[name] = CharacterPatch(
            certainty_delta=before.certainty_delta + change.certainty_delta,
            transformation_delta=before.transformation_delta + change.transformation_delta,
            cost_added=change.cost_added or before.cost_added,
            irreversible_loss=before.irreversible_loss or change.irreversible_loss,
        )

    progression = first.progression.model_dump(exclude_none=True)
    progression.update(second.progression.model_dump(exclude_none=True))

    return StatePatch(
        words_added=first.words_added + second.words_added,
        progression=ProgressionPatch(**progression),
        escalation_spent=first.escalation_spent + second.escalation_spent,
        questions=QuestionPatch(
            add=_merge_unique(first.questions.add, second.questions.add),
            resolve=_merge_unique(first.questions.resolve, second.questions.resolve),
            reframe=_merge_unique(first.questions.reframe, second.questions.reframe),
        ),
        characters=characters,
        motifs_added=_merge_unique(first.motifs_added, second.motifs_added),
        scene_summary=second.scene_summary or first.scene_summary,
        book_summary=second.book_summary or first.book_summary,
    )


def _same_cost(first: Optional[str], second: Optional[str]) -> bool:
    return bool(first and second and first.strip().lower() == second.strip().lower())


def _replacement_cost(replacement: StatePatch, name: str) -> Optional[str]:
    change = replacement.characters.get(name)
    return change.cost_added if change else None


def apply_revision(
    state: NarrativeState,
    applied: StatePatch,
    replacement: StatePatch,
    scene_id: Optional[str] = None,
) -> Tuple[NarrativeState, StatePatch]:
    """
    Swap a rewritten scene's contribution for its replacement's.

    ``applied`` is what the scene already did to the state. Escalation
    already spent and transformation already gained are kept and only
    topped up; the old version's cost and motifs are withdrawn before the
    replacement's are recorded. Returns ``(new_state, contribution)``
    where ``contribution`` is the scene's net patch from now on.
    """
    characters = {}
    for name, change in replacement.characters.items():
        before = applied.characters.get(name, CharacterPatch())
        cost = None if _same_cost(change.cost_added, before.cost_added) else change.cost_added
        characters[name] = CharacterPatch(
            certainty_delta=change.certainty_delta - before.certainty_delta,
            transformation_delta=max(0.0, change.transformation_delta - before.transformation_delta),
            cost_added=cost,
            irreversible_loss=change.irreversible_loss,
        )

    old_motifs = [m.strip().lower() for m in applied.motifs_added]
    new_motifs = [m.strip().lower() for m in replacement.motifs_added]

    delta = StatePatch(
        words_added=replacement.words_added,
        progression=replacement.progression,
        escalation_spent=max(0, replacement.escalation_spent - applied.escalation_spent),
        questions=QuestionPatch(
            add=[q for q in replacement.questions.add if q not in applied.questions.add],
            resolve=[q for q in replacement.questions.resolve if q not in applied.questions.resolve],
            reframe=[r for r in replacement.questions.reframe if r not in applied.questions.reframe],
        ),
        characters=characters,
        motifs_added=[m for m in new_motifs if m not in old_motifs],
        scene_summary=replacement.scene_summary,
    )

    new_state = apply_state_patch(state, delta, scene_id)

    # The old cost stays only if the replacement incurs the same one
    for name, before in applied.characters.items():
        arc = new_state.characters.get(name)
        if arc is None or not before.cost_added or _same_cost(before.cost_added, _replacement_cost(replacement, name)):
            continue
        if before.cost_added in arc.costs_incurred:
            arc.costs_incurred.remove(before.cost_added)

    registry = new_state.repetition_registry
    for motif in old_motifs:
        if motif in new_motifs or motif not in registry.motif_counts:
            continue
        registry.motif_counts[motif] -= 1
        if registry.motif_counts[motif] <= 0:
            del registry.motif_counts[motif]
            if motif in registry.motifs:
                registry.motifs.remove(motif)

    contribution = combine_patches(applied, delta)
    contribution = contribution.model_copy(update={
        "motifs_added": new_motifs,
        "characters": {
            name: change.model_copy(update={"cost_added": _replacement_cost(replacement, name)})
            for name, change in contribution.characters.items()
        },
    })
    return new_state, contribution


def validate_state_mutation(before: NarrativeState, after: NarrativeState) -> MutationCheck:
    """Did a patch move the story, or only add words?"""
    issues = []

    if after.structure.words_written <= before.structure.words_written:
        issues.append("Word count did not increase")

    questions_changed = before.unresolved_questions != after.unresolved_questions

    characters_changed = False
    for name, arc in after.characters.items():
        old = before.characters.get(name)
        if old is None or old.model_dump() != arc.model_dump():
            characters_changed = True
        if old is not None and arc.transformation < old.transformation:
            issues.append(
                f"{name} transformation regressed "
                f"({old.transformation:.2f} -> {arc.transformation:.2f})"
            )

    old_progression = before.progression.model_dump()
    progression_changed = any(
        abs(value - old_progression[key]) > 0.05
        for key, value in after.progression.model_dump().items()
    )

    if not (questions_changed or characters_changed or progression_changed):
        issues.append("No meaningful state change (questions, characters or progression)")

    words_ok = after.structure.words_written > before.structure.words_written
    meaningful = questions_changed or characters_changed or progression_changed
    return MutationCheck(valid=words_ok and meaningful, issues=issues)


def compress_state_for_prompt(state: NarrativeState) -> str:
    """Render the state as compact prompt context."""
    characters = "\n".join(
        f"{name}: certainty={arc.certainty:.2f}, transformation={arc.transformation:.2f}, "
        f"costs=[{', '.join(arc.costs_incurred)}], irreversible_loss={str(arc.irreversible_loss).lower()}"
        for name, arc in state.characters.items()
    )
    questions = "\n".join(
        f"{i}. {q}" for i, q in enumerate(state.unresolved_questions, start=1)
    ) or "None yet"
    s = state.structure
    act = state.act_state
    p = state.progression

    return f"""## NARRATIVE STATE

**Theme:** {state.theme_thesis}
**Genre:** {state.genre}
**Target Length:** {state.target_length_words} words

### Position
- Act {s.act_index}/{s.acts_total}
- Chapter {s.chapter_index + 1}
- Scene {s.scene_index + 1}
- Words written: {s.words_written}/{state.target_length_words}

### Current Act
Goal: {act.act_goal}
Open questions: {'; '.join(act.act_open_questions) or 'None yet'}
Close conditions: {'; '.join(act.act_close_conditions)}
Act progress: {act.act_words_written}/{act.act_words_target} words

### Progression Metrics
- Mystery: {p.mystery_level:.2f}
- Clarity: {p.clarity_level:.2f}
- Emotional intensity: {p.emotional_intensity:.2f}
- Velocity: {p.narrative_velocity:.2f}

### Escalation Budget
Remaining: {state.escalation_budget.remaining}

### Unresolved Questions
{questions}

### Characters
{characters}

### Motifs in Use
{', '.join(state.repetition_registry.motifs) or 'None established yet'}

### Story Context
{state.summaries.book_so_far or 'Beginning of the book.'}

**Previous scene:** {state.summaries.previous_scene or 'This is the first scene.'}"""
