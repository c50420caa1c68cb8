"""
Finalizer Agent

Last pass over the finished book: a continuity check across scene
summaries, then title and blurb.
"""

from typing import Any, Dict, List

from .base import BaseAgent, AgentContext
from .validator import summarize_scenes
from ..book_state import AcceptedScene, FinalMatter
from ..narrative.state import NarrativeState
from ..prompts.finalizer_prompts import FINALIZER_SYSTEM_PROMPT, FINALIZER_PROMPT


class FinalizerAgent(BaseAgent[Dict[str, Any], FinalMatter]):

    @property
    def name(self) -> str:
        return "Finalizer"

    @property
    def description(self) -> str:
        return "Check continuity and write title and blurb"

    async def execute(
        self,
        input_data: Dict[str, Any],
        context: AgentContext
    ) -> FinalMatter:
        state: NarrativeState = input_data["state"]
        scenes: List[AcceptedScene] = input_data.get("scenes") or []
        fallback_title = input_data.get("fallback_title") or "Untitled"

        context.report_progress("Finalizing...", 0)

        prompt = FINALIZER_PROMPT.format(
            theme=state.theme_thesis,
            genre=state.genre,
            summaries=summarize_scenes(scenes),
        )

        data = await self.call_ai_json(
            prompt,
            context,
            system_prompt=FINALIZER_SYSTEM_PROMPT,
            temperature=0.5,
        )

        notes = data.get("consistency_notes")
        final = FinalMatter(
            title=str(data.get("title") or fallback_title).strip() or fallback_title,
            blurb=str(data.get("blurb") or ""),
            consistency_notes=[str(n) for n in notes] if isinstance(notes, list) else [],
        )
        if final.consistency_notes:
            self.logger.info(f"Job {context.job_id}: {len(final.consistency_notes)} continuity notes")

        context.report_progress("Finalized", 100)
        return final
