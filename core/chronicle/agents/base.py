"""
Base Agent Class

All agents inherit from this base class.
"""

from abc import ABC, abstractmethod
from typing import Any, TypeVar, Generic, Optional, Callable, Awaitable
import json
import logging
import asyncio
from dataclasses import dataclass

from ..config import ChronicleConfig
from ..exceptions import AgentError, JobCancelledError


T = TypeVar('T')  # Input type
R = TypeVar('R')  # Result type


@dataclass
class AgentContext:
    """Context passed to agents"""
    job_id: str
    config: ChronicleConfig
    cancel_check: Optional[Callable[[], bool]] = None
    progress_callback: Optional[Callable[[str, float], None]] = None

    def report_progress(self, message: str, percentage: float = 0):
        """Report progress to callback if available"""
        if self.progress_callback:
            self.progress_callback(message, percentage)

    def ensure_not_cancelled(self):
        """Stop before a billable call if the job was cancelled."""
        if self.cancel_check and self.cancel_check():
            raise JobCancelledError(self.job_id)


def extract_json(response: str) -> Any:
    """Parse JSON from a model response, tolerating code fences."""
    if "```json" in response:
        json_str = response.split("```json")[1].split("```")[0]
    elif "```" in response:
        json_str = response.split("```")[1].split("```")[0]
    else:
        json_str = response
    return json.loads(json_str.strip())


class BaseAgent(ABC, Generic[T, R]):
    """
    Base class for all Chronicle agents.

    Each agent:
    1. Has one role in the tick pipeline
    2. Makes a bounded number of model calls per invocation
    3. Raises AgentError(recoverable=True) for transient failures
       and AgentError(recoverable=False) for contract violations
    """

    def __init__(self, config: ChronicleConfig, ai_client: Any):
        self.config = config
        self.ai = ai_client
        self.logger = logging.getLogger(f"Chronicle.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Agent name for logging and progress"""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Short description of agent's role"""
        pass

    @abstractmethod
    async def execute(self, input_data: T, context: AgentContext) -> R:
        """Execute the agent's main task."""
        pass

    async def _generate(self, prompt: str, system: str, model: str, max_tokens: int, temperature: float) -> str:
        return await asyncio.wait_for(
            self.ai.generate(
                prompt=prompt,
                system=system,
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
            ),
            timeout=self.config.agent_timeout_seconds,
        )

    async def call_ai(
        self,
        prompt: str,
        context: AgentContext,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Call AI with timeout and automatic fallback."""
        context.ensure_not_cancelled()

        system = system_prompt or self.default_system_prompt
        tokens = max_tokens or self.config.max_tokens_per_call
        temp = self.config.temperature if temperature is None else temperature
        self.logger.debug(f"Prompt for job {context.job_id}: {len(prompt)} chars")

        try:
            return await self._generate(prompt, system, self.config.primary_model, tokens, temp)

        except Exception as e:
            self.logger.warning(f"Primary model failed: {e!r}, trying fallback")

            context.ensure_not_cancelled()
            try:
                return await self._generate(prompt, system, self.config.fallback_model, tokens, temp)

            except asyncio.TimeoutError:
                raise AgentError(
                    self.name,
                    f"Timed out after {self.config.agent_timeout_seconds}s on both models",
                    recoverable=True,
                )
            except Exception as e2:
                raise AgentError(
                    self.name,
                    f"Both primary and fallback models failed: {e2}",
                    recoverable=True,
                )

    async def call_ai_json(
        self,
        prompt: str,
        context: AgentContext,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> dict:
        """Call AI and parse a JSON object, retrying malformed output locally."""

        async def attempt() -> dict:
            response = await self.call_ai(
                prompt,
                context,
                system_prompt=system_prompt,
                temperature=temperature,
            )
            try:
                data = extract_json(response)
            except (json.JSONDecodeError, IndexError) as e:
                raise AgentError(self.name, f"Malformed JSON from model: {e}", recoverable=True)
            if not isinstance(data, dict):
                raise AgentError(self.name, "Expected a JSON object", recoverable=True)
            return data

        return await self.retry_with_backoff(attempt, max_retries=self.config.agent_max_retries + 1)

    @property
    def default_system_prompt(self) -> str:
        """Default system prompt for this agent"""
        return f"""You are the {self.name} agent in Chronicle, an autonomous narrative engine.

Your role: {self.description}

Guidelines:
- Serve the book's constitution and theme
- Keep every scene consequential
- Output exactly the requested format"""

    def count_words(self, text: str) -> int:
        """Count words in text"""
        if not text:
            return 0
        return len(text.split())

    async def retry_with_backoff(
        self,
        func: Callable[[], Awaitable[Any]],
        max_retries: int = 3,
        base_delay: Optional[float] = None,
    ) -> Any:
        """
        Retry transient failures with exponential backoff.

        Cancellation and non-recoverable agent errors are not retried.
        """
        delay_base = self.config.retry_base_delay if base_delay is None else base_delay
        last_error: Optional[Exception] = None

        for attempt in range(max_retries):
            try:
                return await func()
            except JobCancelledError:
                raise
            except AgentError as e:
                if not e.recoverable:
                    raise
                last_error = e
            except Exception as e:
                last_error = e

            if attempt < max_retries - 1:
                delay = delay_base * (2 ** attempt)
                self.logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {last_error}")
                await asyncio.sleep(delay)

        raise AgentError(
            self.name,
            f"Failed after {max_retries} attempts: {last_error}",
            recoverable=True,
        )
