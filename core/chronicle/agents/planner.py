"""
Planner Agent

Writes the brief for the next scene.
"""

from typing import Any, Dict, List

from .base import BaseAgent, AgentContext
from ..book_state import BookPlan
from ..exceptions import AgentError
from ..narrative.state import NarrativeState, compress_state_for_prompt
from ..prompts.planner_prompts import PLANNER_SYSTEM_PROMPT, BRIEF_PROMPT


class PlannerAgent(BaseAgent[Dict[str, Any], str]):
    """
    Produces a 3-5 sentence scene brief from the act outline, the planned
    section beat and the compressed narrative state. Constraints left by
    REGENERATE or DROP verdicts are passed through verbatim.
    """

    @property
    def name(self) -> str:
        return "Planner"

    @property
    def description(self) -> str:
        return "Plan the next scene as a short brief for the Writer"

    async def execute(
        self,
        input_data: Dict[str, Any],
        context: AgentContext
    ) -> str:
        state: NarrativeState = input_data["state"]
        plan: BookPlan = input_data["plan"]
        chapter: int = input_data["chapter"]
        scene: int = input_data["scene"]
        constraints: List[str] = input_data.get("constraints") or []

        chapter_plan = plan.chapters[chapter]
        section = chapter_plan.sections[scene]
        outline = plan.act_outline(chapter_plan.act)

        constraint_block = ""
        if constraints:
            constraint_block = "## CONSTRAINTS\n" + "\n".join(f"- {c}" for c in constraints) + "\n"

        prompt = BRIEF_PROMPT.format(
            state=compress_state_for_prompt(state),
            act_goal=outline.goal,
            close_conditions="; ".join(outline.close_conditions),
            chapter_number=chapter + 1,
            chapter_title=chapter_plan.title,
            chapter_purpose=chapter_plan.purpose or "no stated purpose",
            section_number=scene + 1,
            section_title=section.title,
            section_goal=section.goal or "follow the act outline",
            constraints=constraint_block,
            act_index=chapter_plan.act,
        )

        response = await self.call_ai(prompt, context, system_prompt=PLANNER_SYSTEM_PROMPT, temperature=0.7)
        brief = response.strip()
        if not brief:
            raise AgentError(self.name, "Empty scene brief", recoverable=True)

        if constraints:
            brief += "\n\nConstraints:\n" + "\n".join(f"- {c}" for c in constraints)
        return brief
