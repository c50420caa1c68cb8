"""
AI Client Adapter for Chronicle

Agents call ``generate(prompt, system, model, max_tokens, temperature)``.
This module adapts whatever client the service was configured with to
that interface, provides an OpenAI-compatible HTTP client, and a
deterministic mock used when no model endpoint is configured.
"""

import json
import re
from typing import Any, Dict, List, Optional
import logging

import httpx


class AIClientAdapter:
    """
    Adapter to make existing AI clients work with Chronicle agents.

    The agents expect an AI client with a `generate` method.
    This adapter wraps clients that expose `chat`, `generate_text`
    or are plain async callables.
    """

    def __init__(self, client: Any):
        self.client = client
        self.logger = logging.getLogger("Chronicle.AIAdapter")

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> str:
        """Generate text using the AI client."""
        try:
            # Interface 1: chat completions style
            if hasattr(self.client, 'chat'):
                messages = []
                if system:
                    messages.append({"role": "system", "content": system})
                messages.append({"role": "user", "content": prompt})

                response = await self.client.chat(
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    model=model,
                )

                if isinstance(response, dict):
                    return response.get("content", response.get("text", str(response)))
                if hasattr(response, 'content'):
                    return response.content
                return str(response)

            # Interface 2: generate_text style
            if hasattr(self.client, 'generate_text'):
                return await self.client.generate_text(
                    prompt=prompt,
                    system_prompt=system,
                    model=model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )

            # Interface 3: Direct callable
            if callable(self.client):
                return await self.client(
                    prompt=prompt,
                    system=system,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )

            raise ValueError(f"Unknown AI client interface: {type(self.client)}")

        except Exception as e:
            self.logger.error(f"AI generation failed: {e}")
            raise


class HTTPCompletionClient:
    """
    Client for any OpenAI-compatible ``/v1/chat/completions`` endpoint.

    Non-200 responses and transport errors raise; the agent layer turns
    them into recoverable AgentErrors and tries the fallback model.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.logger = logging.getLogger("Chronicle.HTTPClient")

    async def chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 4096,
        temperature: float = 0.7,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient() as client:
            resp = await client.post(
                f"{self.base_url}/v1/chat/completions",
                headers=headers,
                json={
                    "model": model,
                    "messages": messages,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "stream": False,
                },
                timeout=self.timeout,
            )

        if resp.status_code != 200:
            raise RuntimeError(f"Server error: {resp.status_code}")

        data = resp.json()
        usage = data.get("usage", {})
        self.logger.debug(f"{model}: {usage.get('total_tokens', 0)} tokens")
        return {"content": data["choices"][0]["message"]["content"].strip()}


class MockAIClient:
    """
    Mock AI client for testing / when no real AI client is available.

    Answers each task marker in the prompts with well-formed output:
    scenes of exactly the requested length, fingerprints that never
    repeat and editor verdicts that accept.
    """

    VOCABULARY = [
        "lantern", "ledger", "harbor", "orchard", "furnace", "chapel", "bridge",
        "archive", "compass", "quarry", "cellar", "beacon", "garden", "railway",
        "mirror", "vault", "signal", "granary", "tower", "canal", "market",
        "forge", "cistern", "gallery", "mill", "observatory", "pier", "stable",
    ]

    _TARGET_WORDS = re.compile(r"TARGET WORDS:\s*(\d+)")
    _SCENE_ID = re.compile(r"SCENE ID:\s*(\S+)")
    _CHARACTER = re.compile(r"### Characters\n([^:\n]+):")

    def __init__(self, protagonist: str = "Mara"):
        self.logger = logging.getLogger("Chronicle.MockAI")
        self.protagonist = protagonist
        self.call_count = 0
        self.fingerprint_count = 0

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> str:
        """Generate mock content."""
        self.call_count += 1

        if "## TASK: CONSTITUTION" in prompt:
            return self._generate_constitution()
        if "## TASK: BOOK PLAN" in prompt:
            return self._generate_plan()
        if "## TASK: SCENE BRIEF" in prompt:
            return self._generate_brief()
        if "## TASK: WRITE SCENE" in prompt:
            return self._generate_scene(prompt)
        if "## TASK: FINGERPRINT" in prompt:
            return self._generate_fingerprint(prompt)
        if "## TASK: EDIT SCENE" in prompt:
            return self._generate_verdict(prompt)
        if "## TASK: VALIDATE ACT" in prompt:
            return self._json({"valid": True, "issues": [], "regeneration_scope": None,
                               "regeneration_constraints": []})
        if "## TASK: VALIDATE BOOK" in prompt:
            return self._json({"valid": True, "issues": [], "regeneration_scope": None,
                               "regeneration_constraints": [], "quality_score": 80, "notes": ""})
        if "## TASK: FINALIZE" in prompt:
            return self._json({"title": "The Cost of Knowing",
                               "blurb": "A reckoning that no one walks away from unchanged.",
                               "consistency_notes": []})

        return "This is generated content for an unrecognised task."

    def _json(self, data: Dict[str, Any]) -> str:
        return f"```json\n{json.dumps(data, indent=2)}\n```"

    def _character(self, prompt: str) -> str:
        match = self._CHARACTER.search(prompt)
        return match.group(1).strip() if match else self.protagonist

    def _generate_constitution(self) -> str:
        return self._json({
            "central_thesis": "Knowledge is paid for with what you cannot get back",
            "worldview_frame": "A closed town where every secret has an owner",
            "narrative_voice": "Close third person, past tense, spare",
            "what_book_is_against": "The idea that truth sets everyone free",
            "what_book_refuses_to_do": ["Redeem the villain", "Explain the ending"],
            "ideal_reader": "Someone who distrusts tidy endings",
            "taboo_simplifications": ["Good people are rewarded"],
            "protagonist_name": self.protagonist,
        })

    def _generate_plan(self) -> str:
        # The Architect pads missing acts and chapters to the preset shape.
        return self._json({"acts": [], "chapters": []})

    def _generate_brief(self) -> str:
        return (
            f"{self.protagonist} follows a lead into a place she has avoided. "
            "Someone she trusts asks for something she cannot give back. "
            "The scene ends with a door closed that cannot be reopened."
        )

    def _generate_scene(self, prompt: str) -> str:
        match = self._TARGET_WORDS.search(prompt)
        target = int(match.group(1)) if match else 600
        words = [self.VOCABULARY[i % len(self.VOCABULARY)] for i in range(target)]
        return f"**Scene: Mock scene**\n**POV: {self.protagonist}**\n\n" + " ".join(words)

    def _generate_fingerprint(self, prompt: str) -> str:
        self.fingerprint_count += 1
        n = self.fingerprint_count
        match = self._SCENE_ID.search(prompt)
        scene_id = match.group(1) if match else f"scene{n}"
        first = self.VOCABULARY[(2 * n) % len(self.VOCABULARY)]
        second = self.VOCABULARY[(2 * n + 1) % len(self.VOCABULARY)]
        name = self._character(prompt)

        return self._json({
            "narrative_function": "escalation" if n % 2 else "consequence",
            "new_information": f"{name} uncovers clue n{n:04d} at {scene_id}: the {first} hides the {second}",
            "consequence_introduced": f"The {first} is lost for good",
            "emotional_delta": -0.2,
            "escalation_delta": 0.3,
            "character_impacts": [{
                "name": name,
                "certainty_delta": -0.05,
                "transformation_delta": 0.05,
                "cost_added": f"lost the {first}",
                "irreversible_loss": True,
            }],
            "unresolved_question_changes": {"added": [], "resolved": [], "reframed": []},
            "motifs_used": [],
        })

    def _generate_verdict(self, prompt: str) -> str:
        name = self._character(prompt)
        return self._json({
            "decision": "ACCEPT",
            "reason": "Scene changes the protagonist irreversibly",
            "instructions": None,
            "edited_text": None,
            "state_patch": {
                "escalation_spent": 1,
                "characters": {name: {
                    "certainty_delta": -0.05,
                    "transformation_delta": 0.05,
                    "cost_added": "paid for what she learned",
                    "irreversible_loss": True,
                }},
                "scene_summary": f"{name} pays for another answer.",
            },
        })
