"""
Chronicle Agents

One agent per role in the tick pipeline.
"""

from .base import BaseAgent, AgentContext, extract_json
from .constitution import ConstitutionAgent, render_constitution
from .architect import ArchitectAgent
from .planner import PlannerAgent
from .writer import WriterAgent, WrittenScene
from .fingerprint import FingerprintAgent
from .editor import EditorAgent
from .validator import ValidatorAgent, summarize_scenes
from .finalizer import FinalizerAgent

__all__ = [
    "BaseAgent",
    "AgentContext",
    "extract_json",
    "ConstitutionAgent",
    "render_constitution",
    "ArchitectAgent",
    "PlannerAgent",
    "WriterAgent",
    "WrittenScene",
    "FingerprintAgent",
    "EditorAgent",
    "ValidatorAgent",
    "summarize_scenes",
    "FinalizerAgent",
]
