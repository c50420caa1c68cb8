"""
Fingerprint Agent

Extracts the semantic signature of a scene.
"""

from typing import Any, Dict

from .base import BaseAgent, AgentContext
from ..exceptions import AgentError
from ..narrative.fingerprint import SceneFingerprint, coerce_fingerprint
from ..narrative.state import NarrativeState, compress_state_for_prompt
from ..prompts.editor_prompts import FINGERPRINT_SYSTEM_PROMPT, FINGERPRINT_PROMPT


class FingerprintAgent(BaseAgent[Dict[str, Any], SceneFingerprint]):

    @property
    def name(self) -> str:
        return "Fingerprint"

    @property
    def description(self) -> str:
        return "Extract the narrative function and consequences of a scene"

    async def execute(
        self,
        input_data: Dict[str, Any],
        context: AgentContext
    ) -> SceneFingerprint:
        state: NarrativeState = input_data["state"]
        scene_id: str = input_data["scene_id"]

        prompt = FINGERPRINT_PROMPT.format(
            scene_id=scene_id,
            state=compress_state_for_prompt(state),
            scene=input_data["text"],
        )

        data = await self.call_ai_json(
            prompt,
            context,
            system_prompt=FINGERPRINT_SYSTEM_PROMPT,
            temperature=self.config.temperature_editing,
        )

        fingerprint = coerce_fingerprint(data, scene_id)
        if not fingerprint.new_information:
            raise AgentError(self.name, "Fingerprint has no new_information", recoverable=True)
        return fingerprint
