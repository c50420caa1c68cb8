"""
Architect Agent

Turns the constitution into act outlines and a chapter/section plan.
"""

from typing import Any, Dict, List

from .base import BaseAgent, AgentContext
from .constitution import render_constitution
from ..book_state import ActOutline, BookPlan, ChapterPlan, ConstitutionDoc, SectionPlan
from ..config import BookLength
from ..narrative.state import FIRST_ACT_CLOSE_CONDITION, FIRST_ACT_GOAL
from ..prompts.planner_prompts import PLANNER_SYSTEM_PROMPT, PLAN_PROMPT


DEFAULT_ACT_GOALS = {
    "first": (FIRST_ACT_GOAL, [FIRST_ACT_CLOSE_CONDITION]),
    "middle": ("Raise the stakes until retreat is impossible", ["The protagonist pays a price they cannot take back"]),
    "last": ("Force the final confrontation and its cost", ["The central question is answered at a cost"]),
}


class ArchitectAgent(BaseAgent[Dict[str, Any], BookPlan]):
    """
    Step 2: Architect

    Creates the book plan with:
    - One outline (goal + close conditions) per act
    - Exactly the preset number of chapters and sections
    - Chapters assigned to acts in order
    """

    @property
    def name(self) -> str:
        return "Architect"

    @property
    def description(self) -> str:
        return "Design the act and chapter structure of the book"

    async def execute(
        self,
        input_data: Dict[str, Any],
        context: AgentContext
    ) -> BookPlan:
        context.report_progress("Planning chapters...", 0)

        constitution: ConstitutionDoc = input_data["constitution"]
        length: BookLength = input_data["length"]
        acts_total: int = input_data["acts_total"]

        prompt = PLAN_PROMPT.format(
            constitution=render_constitution(constitution),
            acts_total=acts_total,
            chapters=length.chapters,
            sections_per_chapter=length.sections_per_chapter,
            words_per_section=length.words_per_section,
        )

        data = await self.call_ai_json(
            prompt,
            context,
            system_prompt=PLANNER_SYSTEM_PROMPT,
            temperature=0.6,
        )

        return self._build_plan(data, length, acts_total)

    def _build_plan(self, data: Dict[str, Any], length: BookLength, acts_total: int) -> BookPlan:
        """Normalise model output to the exact preset shape."""
        raw_acts = [a for a in data.get("acts") or [] if isinstance(a, dict)]
        acts: List[ActOutline] = []
        for index in range(acts_total):
            raw = raw_acts[index] if index < len(raw_acts) else {}
            fallback_goal, fallback_conditions = self._default_act(index, acts_total)
            conditions = raw.get("close_conditions")
            acts.append(ActOutline(
                goal=str(raw.get("goal") or fallback_goal),
                close_conditions=[str(c) for c in conditions] if isinstance(conditions, list) and conditions
                else fallback_conditions,
            ))

        raw_chapters = [c for c in data.get("chapters") or [] if isinstance(c, dict)]
        chapters: List[ChapterPlan] = []
        for c in range(length.chapters):
            raw = raw_chapters[c] if c < len(raw_chapters) else {}
            raw_sections = [s for s in raw.get("sections") or [] if isinstance(s, dict)]
            sections = []
            for s in range(length.sections_per_chapter):
                section = raw_sections[s] if s < len(raw_sections) else {}
                sections.append(SectionPlan(
                    title=str(section.get("title") or f"Section {s + 1}"),
                    goal=str(section.get("goal") or ""),
                    target_words=length.words_per_section,
                ))
            chapters.append(ChapterPlan(
                title=str(raw.get("title") or f"Chapter {c + 1}"),
                purpose=str(raw.get("purpose") or ""),
                act=1 + c * acts_total // length.chapters,
                sections=sections,
            ))

        if len(raw_chapters) != length.chapters:
            self.logger.warning(
                f"Plan had {len(raw_chapters)} chapters, expected {length.chapters}; normalised"
            )

        return BookPlan(acts=acts, chapters=chapters)

    def _default_act(self, index: int, acts_total: int):
        if index == 0:
            return DEFAULT_ACT_GOALS["first"]
        if index == acts_total - 1:
            return DEFAULT_ACT_GOALS["last"]
        return DEFAULT_ACT_GOALS["middle"]
