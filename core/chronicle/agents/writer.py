"""
Writer Agent

Drafts one scene from a brief. Pure generation: the Writer never judges
its own output, the Editor does.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .base import BaseAgent, AgentContext
from ..book_state import ConstitutionDoc
from ..exceptions import AgentError
from ..narrative.state import NarrativeState, compress_state_for_prompt
from ..prompts.writer_prompts import WRITER_SYSTEM_PROMPT, WRITER_PROMPT, REWRITE_SUFFIX


_SCENE_HEADER = re.compile(r"^\**\s*scene\s*:\s*(.+?)\s*\**$", re.IGNORECASE)
_POV_HEADER = re.compile(r"^\**\s*pov\s*:\s*(.+?)\s*\**$", re.IGNORECASE)

REJECTED_EXCERPT_CHARS = 500


@dataclass
class WrittenScene:
    """Raw draft plus the headers the Writer put on it."""
    text: str
    word_count: int
    title: str = ""
    pov: Optional[str] = None


class WriterAgent(BaseAgent[Dict[str, Any], WrittenScene]):
    """
    Writes a scene of roughly ``target_words`` words.

    On a REWRITE the Editor's instructions and the opening of the
    rejected draft are appended so the next attempt differs.
    """

    @property
    def name(self) -> str:
        return "Writer"

    @property
    def description(self) -> str:
        return "Write raw scene drafts from the brief"

    async def execute(
        self,
        input_data: Dict[str, Any],
        context: AgentContext
    ) -> WrittenScene:
        state: NarrativeState = input_data["state"]
        constitution: Optional[ConstitutionDoc] = input_data.get("constitution")
        target_words: int = input_data["target_words"]

        prompt = WRITER_PROMPT.format(
            state=compress_state_for_prompt(state),
            voice=constitution.narrative_voice if constitution and constitution.narrative_voice
            else "Close third person, past tense",
            brief=input_data["brief"],
            target_words=target_words,
        )

        instructions = input_data.get("rewrite_instructions")
        rejected = input_data.get("rejected_text")
        if instructions or rejected:
            prompt += REWRITE_SUFFIX.format(
                instructions=instructions or "Make it sharper and more consequential.",
                rejected_excerpt=(rejected or "")[:REJECTED_EXCERPT_CHARS],
            )

        response = await self.call_ai(
            prompt,
            context,
            system_prompt=WRITER_SYSTEM_PROMPT,
            max_tokens=max(self.config.max_tokens_per_call, int(target_words * 2)),
        )

        scene = self._parse_scene(self._clean_content(response))

        minimum = self.config.min_scene_words(target_words)
        if scene.word_count < minimum:
            raise AgentError(
                self.name,
                f"Scene too short ({scene.word_count} words, need {minimum})",
                recoverable=True,
            )
        return scene

    def _parse_scene(self, content: str) -> WrittenScene:
        """Split the optional Scene/POV header lines from the prose."""
        title = ""
        pov = None
        lines = content.split("\n")

        while lines:
            line = lines[0].strip()
            if not line:
                lines.pop(0)
                continue
            scene_match = _SCENE_HEADER.match(line)
            pov_match = _POV_HEADER.match(line)
            if scene_match and not title:
                title = scene_match.group(1).strip("* ")
            elif pov_match and pov is None:
                pov = pov_match.group(1).strip("* ")
            else:
                break
            lines.pop(0)

        text = "\n".join(lines).strip()
        return WrittenScene(text=text, word_count=self.count_words(text), title=title, pov=pov)

    def _clean_content(self, response: str) -> str:
        """Clean AI response to get pure content"""

        content = response.strip()

        prefixes_to_remove = [
            "Here's the scene",
            "Here is the scene",
            "Below is the scene",
            "Scene draft:",
            "---",
        ]

        for prefix in prefixes_to_remove:
            if content.lower().startswith(prefix.lower()):
                content = content[len(prefix):].lstrip(" :\n")

        if content.startswith("```"):
            lines = content.split("\n")
            content = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])

        return content.strip()
