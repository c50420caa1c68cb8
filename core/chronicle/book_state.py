"""
Book State

Everything a job accumulates between ticks, persisted as one JSON blob
next to the job record: the narrative state, the plan, accepted scenes,
the fingerprint log and the bookkeeping for the scene currently being
attempted.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .narrative.state import NarrativeState, StatePatch
from .narrative.fingerprint import SceneFingerprint


class ConstitutionDoc(BaseModel):
    central_thesis: str
    worldview_frame: str = ""
    narrative_voice: str = ""
    what_book_is_against: str = ""
    what_book_refuses_to_do: List[str] = Field(default_factory=list)
    ideal_reader: str = ""
    taboo_simplifications: List[str] = Field(default_factory=list)
    protagonist_name: str = "The protagonist"


class ActOutline(BaseModel):
    goal: str
    close_conditions: List[str] = Field(default_factory=list)


class SectionPlan(BaseModel):
    title: str
    goal: str = ""
    target_words: int


class ChapterPlan(BaseModel):
    title: str
    purpose: str = ""
    act: int = 1
    sections: List[SectionPlan] = Field(default_factory=list)


class BookPlan(BaseModel):
    acts: List[ActOutline] = Field(default_factory=list)
    chapters: List[ChapterPlan] = Field(default_factory=list)

    @property
    def total_sections(self) -> int:
        return sum(len(ch.sections) for ch in self.chapters)

    def section(self, chapter: int, scene: int) -> SectionPlan:
        return self.chapters[chapter].sections[scene]

    def act_for_chapter(self, chapter: int) -> int:
        return self.chapters[chapter].act

    def act_outline(self, act: int) -> ActOutline:
        return self.acts[min(act, len(self.acts)) - 1]

    def next_position(self, chapter: int, scene: int) -> Optional[Tuple[int, int]]:
        """Slot after (chapter, scene), or None after the last one."""
        if scene + 1 < len(self.chapters[chapter].sections):
            return chapter, scene + 1
        if chapter + 1 < len(self.chapters):
            return chapter + 1, 0
        return None


class AcceptedScene(BaseModel):
    chapter: int
    scene: int
    act: int
    scene_id: str
    title: str = ""
    pov: Optional[str] = None
    text: str
    word_count: int
    # Net narrative effect, so a rewrite can swap it out
    contribution: StatePatch = Field(default_factory=StatePatch)


class SlotState(BaseModel):
    """Bookkeeping for the scene slot currently being attempted."""
    chapter: int
    scene: int
    brief: Optional[str] = None
    attempts: int = 0
    merges: int = 0
    constraints: List[str] = Field(default_factory=list)
    rewrite_instructions: Optional[str] = None
    rejected_text: Optional[str] = None


class Revision(BaseModel):
    chapter: int
    scene: int
    constraints: List[str] = Field(default_factory=list)


class FinalMatter(BaseModel):
    title: str
    blurb: str = ""
    consistency_notes: List[str] = Field(default_factory=list)


class BookState(BaseModel):
    narrative: Optional[NarrativeState] = None
    constitution: Optional[ConstitutionDoc] = None
    plan: Optional[BookPlan] = None
    scenes: List[AcceptedScene] = Field(default_factory=list)
    fingerprints: List[SceneFingerprint] = Field(default_factory=list)
    slot: Optional[SlotState] = None
    revisions: List[Revision] = Field(default_factory=list)
    validated_acts: List[int] = Field(default_factory=list)
    regeneration_rounds: Dict[str, int] = Field(default_factory=dict)
    book_validated: bool = False
    final: Optional[FinalMatter] = None
    quality_score: Optional[int] = None
    validation_notes: str = ""

    @property
    def scenes_done(self) -> int:
        return len(self.scenes)

    def find_scene(self, chapter: int, scene: int) -> Optional[AcceptedScene]:
        for accepted in self.scenes:
            if accepted.chapter == chapter and accepted.scene == scene:
                return accepted
        return None

    def fingerprint_for(self, scene_id: str) -> Optional[int]:
        for i, fp in enumerate(self.fingerprints):
            if fp.scene_id == scene_id:
                return i
        return None

    def scenes_in_act(self, act: int) -> List[AcceptedScene]:
        return [s for s in self.scenes if s.act == act]
