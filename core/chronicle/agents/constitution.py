"""
Constitution Agent

Fixes the book's thesis, voice and guardrails before planning starts.
"""

from typing import Any, Dict

from .base import BaseAgent, AgentContext
from ..book_state import ConstitutionDoc
from ..exceptions import AgentError
from ..prompts.constitution_prompts import CONSTITUTION_SYSTEM_PROMPT, CONSTITUTION_PROMPT


class ConstitutionAgent(BaseAgent[Dict[str, Any], ConstitutionDoc]):
    """
    Step 1: Constitution

    Produces the document every later agent is held to:
    - Central thesis and worldview
    - Narrative voice
    - Refusals and taboo simplifications
    - The protagonist
    """

    @property
    def name(self) -> str:
        return "Constitution"

    @property
    def description(self) -> str:
        return "Establish the book's theme, voice and guardrails"

    async def execute(
        self,
        input_data: Dict[str, Any],
        context: AgentContext
    ) -> ConstitutionDoc:
        context.report_progress("Creating story foundation...", 0)

        prompt = CONSTITUTION_PROMPT.format(
            genre=input_data.get("genre", "literary fiction"),
            target_words=input_data.get("target_words", 0),
            prompt=input_data.get("prompt", ""),
            preview=input_data.get("preview") or "None given",
        )

        data = await self.call_ai_json(prompt, context, system_prompt=CONSTITUTION_SYSTEM_PROMPT)

        thesis = str(data.get("central_thesis") or "").strip()
        if not thesis:
            raise AgentError(self.name, "Constitution has no central thesis", recoverable=True)

        return ConstitutionDoc(
            central_thesis=thesis,
            worldview_frame=str(data.get("worldview_frame") or ""),
            narrative_voice=str(data.get("narrative_voice") or ""),
            what_book_is_against=str(data.get("what_book_is_against") or ""),
            what_book_refuses_to_do=self._as_list(data.get("what_book_refuses_to_do")),
            ideal_reader=str(data.get("ideal_reader") or ""),
            taboo_simplifications=self._as_list(data.get("taboo_simplifications")),
            protagonist_name=str(data.get("protagonist_name") or "").strip() or "The protagonist",
        )

    def _as_list(self, value: Any) -> list:
        if isinstance(value, list):
            return [str(v) for v in value if v]
        if value:
            return [str(value)]
        return []


def render_constitution(doc: ConstitutionDoc) -> str:
    """Constitution as prompt context."""
    refusals = "; ".join(doc.what_book_refuses_to_do) or "None stated"
    taboos = "; ".join(doc.taboo_simplifications) or "None stated"
    return f"""## CONSTITUTION
Thesis: {doc.central_thesis}
Worldview: {doc.worldview_frame}
Voice: {doc.narrative_voice}
Against: {doc.what_book_is_against}
Refuses to: {refusals}
Ideal reader: {doc.ideal_reader}
Taboo simplifications: {taboos}
Protagonist: {doc.protagonist_name}"""
