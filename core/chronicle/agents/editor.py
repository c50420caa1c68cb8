"""
Editor Agent

The authority over every draft. Deterministic redundancy screening runs
first; only scenes that survive it are shown to the model, and the
model's verdict is then held to the hard editorial rules.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .base import BaseAgent, AgentContext
from ..editorial import EditorVerdict, parse_decision, screen_scene, settle_verdict
from ..exceptions import AgentError
from ..narrative.fingerprint import SceneFingerprint, check_motif_density, trim_fingerprint_window
from ..narrative.state import NarrativeState, StatePatch, compress_state_for_prompt
from ..prompts.editor_prompts import EDITOR_SYSTEM_PROMPT, EDITOR_PROMPT


class EditorAgent(BaseAgent[Dict[str, Any], EditorVerdict]):
    """
    Produces exactly one of ACCEPT, REWRITE, MERGE, REGENERATE, DROP.

    Input keys: state, candidate, accepted (fingerprints of accepted
    scenes only), text, has_previous_scene, merges_so_far.
    """

    @property
    def name(self) -> str:
        return "Editor"

    @property
    def description(self) -> str:
        return "Accept, rewrite, merge, regenerate or drop each scene"

    async def execute(
        self,
        input_data: Dict[str, Any],
        context: AgentContext
    ) -> EditorVerdict:
        state: NarrativeState = input_data["state"]
        candidate: SceneFingerprint = input_data["candidate"]
        accepted: List[SceneFingerprint] = input_data.get("accepted") or []

        screened = screen_scene(candidate, accepted, self.config)
        if screened is not None:
            self.logger.info(f"Job {context.job_id}: redundant scene, {screened.reason}")
            return screened

        recent = trim_fingerprint_window(accepted, self.config.editor_context_fingerprints)
        density = check_motif_density(
            trim_fingerprint_window(accepted, self.config.fingerprint_window_size),
            words_per_scene=self.config.assumed_scene_words,
            limit_per_1000=self.config.motif_density_per_1000,
        )
        motif_warning = f"\n## MOTIF WARNING\n{density.suggestion}\n" if density else ""

        prompt = EDITOR_PROMPT.format(
            state=compress_state_for_prompt(state),
            recent="\n".join(fp.model_dump_json() for fp in recent) or "None yet",
            candidate=candidate.model_dump_json(),
            motif_warning=motif_warning,
            scene=input_data["text"],
        )

        data = await self.call_ai_json(
            prompt,
            context,
            system_prompt=EDITOR_SYSTEM_PROMPT,
            temperature=self.config.temperature_editing,
        )

        proposal = self._parse_verdict(data)
        verdict = settle_verdict(
            candidate,
            proposal,
            has_previous_scene=bool(input_data.get("has_previous_scene")),
            merges_so_far=int(input_data.get("merges_so_far") or 0),
            config=self.config,
        )
        if verdict.decision != proposal.decision:
            self.logger.info(
                f"Job {context.job_id}: editor proposed {proposal.decision.value}, "
                f"settled on {verdict.decision.value} ({verdict.reason})"
            )
        return verdict

    def _parse_verdict(self, data: Dict[str, Any]) -> EditorVerdict:
        decision = parse_decision(data.get("decision"))
        if decision is None:
            raise AgentError(self.name, f"Unknown decision: {data.get('decision')!r}", recoverable=True)

        edited_text = data.get("edited_text")
        instructions = data.get("instructions")
        return EditorVerdict(
            decision=decision,
            reason=str(data.get("reason") or ""),
            instructions=str(instructions) if instructions else None,
            edited_text=str(edited_text) if edited_text else None,
            state_patch=self._parse_patch(data.get("state_patch")),
        )

    def _parse_patch(self, raw: Any) -> Optional[StatePatch]:
        if not isinstance(raw, dict):
            return None
        try:
            return StatePatch.model_validate(raw)
        except ValidationError as e:
            self.logger.warning(f"Discarding malformed state patch: {e.error_count()} errors")
            return None
