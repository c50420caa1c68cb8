"""
Validator Agent

Checks structural integrity at act boundaries and at book completion.
"""

from typing import Any, Dict, List

from .base import BaseAgent, AgentContext
from ..book_state import AcceptedScene
from ..editorial import ValidationResult, decide_validation
from ..models import Boundary
from ..narrative.state import NarrativeState, compress_state_for_prompt
from ..prompts.validator_prompts import (
    VALIDATOR_SYSTEM_PROMPT,
    ACT_VALIDATION_PROMPT,
    BOOK_VALIDATION_PROMPT,
)


SUMMARY_CHARS_PER_SCENE = 300


def summarize_scenes(scenes: List[AcceptedScene]) -> str:
    """One line per scene: position, title and the opening of the text."""
    lines = []
    for scene in scenes:
        opening = " ".join(scene.text.split())[:SUMMARY_CHARS_PER_SCENE]
        title = f" {scene.title}" if scene.title else ""
        lines.append(f"- Ch{scene.chapter + 1}.{scene.scene + 1}{title}: {opening}")
    return "\n".join(lines) or "No scenes."


class ValidatorAgent(BaseAgent[Dict[str, Any], ValidationResult]):
    """
    Input keys: boundary, state, scenes, and act_index for act validation.

    The model's JSON is combined with the structural check by
    ``decide_validation``; an invalid result always names a rollback
    scope legal for the boundary.
    """

    @property
    def name(self) -> str:
        return "Validator"

    @property
    def description(self) -> str:
        return "Validate acts and the finished book"

    async def execute(
        self,
        input_data: Dict[str, Any],
        context: AgentContext
    ) -> ValidationResult:
        boundary: Boundary = input_data["boundary"]
        state: NarrativeState = input_data["state"]
        summary = summarize_scenes(input_data.get("scenes") or [])

        if boundary == Boundary.ACT:
            prompt = ACT_VALIDATION_PROMPT.format(
                state=compress_state_for_prompt(state),
                act_index=input_data["act_index"],
                summary=summary,
            )
        else:
            prompt = BOOK_VALIDATION_PROMPT.format(
                state=compress_state_for_prompt(state),
                summary=summary,
            )

        data = await self.call_ai_json(
            prompt,
            context,
            system_prompt=VALIDATOR_SYSTEM_PROMPT,
            temperature=self.config.temperature_validation,
        )

        result = decide_validation(state, boundary, data)
        self.logger.info(
            f"Job {context.job_id}: {boundary.value} validation "
            f"{'passed' if result.valid else 'failed'} ({len(result.issues)} issues)"
        )
        return result
