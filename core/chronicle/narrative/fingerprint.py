"""
Scene Fingerprints

A fingerprint is a compact semantic signature of one scene. The Editor
compares a candidate's fingerprint against recently accepted ones to
catch scenes that retell what the reader already knows.
"""

import re
import time
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from ..models import NarrativeFunction
from .state import CharacterPatch, QuestionPatch, QuestionReframe, StatePatch


STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "as", "is", "was", "are", "were", "been", "be",
    "have", "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "must", "shall", "can", "need", "dare", "ought", "used",
    "it", "its", "this", "that", "these", "those", "i", "you", "he", "she",
    "we", "they", "what", "which", "who", "whom", "whose", "where", "when",
    "why", "how", "all", "each", "every", "both", "few", "more", "most",
    "other", "some", "such", "no", "not", "only", "own", "same", "so",
    "than", "too", "very", "just", "also", "now", "here", "there", "then",
})

_NON_WORD = re.compile(r"[^\w\s]")

DEFAULT_DUPLICATE_THRESHOLD = 0.65


class CharacterImpact(BaseModel):
    name: str
    certainty_delta: float = 0.0
    transformation_delta: float = 0.0
    cost_added: Optional[str] = None
    irreversible_loss: bool = False


class QuestionChanges(BaseModel):
    added: List[str] = Field(default_factory=list)
    resolved: List[str] = Field(default_factory=list)
    reframed: List[QuestionReframe] = Field(default_factory=list)


class SceneFingerprint(BaseModel):
    scene_id: str
    narrative_function: NarrativeFunction
    new_information: str
    consequence_introduced: Optional[str] = None
    emotional_delta: float = Field(0.0, ge=-1.0, le=1.0)
    escalation_delta: float = Field(0.0, ge=0.0, le=1.0)
    character_impacts: List[CharacterImpact] = Field(default_factory=list)
    unresolved_question_changes: QuestionChanges = Field(default_factory=QuestionChanges)
    motifs_used: List[str] = Field(default_factory=list)


class RedundancyResult(BaseModel):
    is_redundant: bool = False
    reason: Optional[str] = None
    suggestion: Optional[str] = None


class MotifDensityReport(BaseModel):
    overused_motifs: List[str]
    suggestion: str


def normalize_text(text: str) -> Set[str]:
    """Lowercase, strip punctuation, drop stopwords and short tokens."""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return {
        token for token in cleaned.split()
        if len(token) > 2 and token not in STOPWORDS
    }


def jaccard_similarity(first: Set[str], second: Set[str]) -> float:
    if not first and not second:
        return 1.0
    if not first or not second:
        return 0.0
    return len(first & second) / len(first | second)


def is_information_duplicate(
    info1: str,
    info2: str,
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
) -> bool:
    return jaccard_similarity(normalize_text(info1), normalize_text(info2)) > threshold


def check_redundancy(
    candidate: SceneFingerprint,
    recent: List[SceneFingerprint],
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
) -> RedundancyResult:
    """
    Deterministic redundancy rules, checked in order:

    1. Same narrative function as the last scene, escalation <= 0.1 and
       duplicate information.
    2. New information duplicates any recent scene.
    3. Motif spam: no consequence, and two or more motifs reused from the
       last five scenes.
    """
    if not recent:
        return RedundancyResult()

    last = recent[-1]

    if (
        candidate.narrative_function == last.narrative_function
        and candidate.escalation_delta <= 0.1
        and is_information_duplicate(candidate.new_information, last.new_information, threshold)
    ):
        function = candidate.narrative_function.value
        return RedundancyResult(
            is_redundant=True,
            reason=f"Same narrative function ({function}) with no escalation and duplicate information",
            suggestion=(
                f"Change narrative function to something other than {function}, "
                "or add significant escalation, or reveal genuinely new information"
            ),
        )

    for previous in recent:
        if is_information_duplicate(candidate.new_information, previous.new_information, threshold):
            return RedundancyResult(
                is_redundant=True,
                reason=f"new_information too similar to scene {previous.scene_id}",
                suggestion="Must reveal genuinely new information that reader doesn't already know",
            )

    if candidate.motifs_used and not candidate.consequence_introduced:
        recent_motifs = {m for fp in recent[-5:] for m in fp.motifs_used}
        repeated = [m for m in candidate.motifs_used if m in recent_motifs]
        if len(repeated) >= 2:
            return RedundancyResult(
                is_redundant=True,
                reason=f"Motif spam: reusing motifs [{', '.join(repeated)}] without introducing consequence",
                suggestion="Either introduce a consequence for the motif usage, or use different imagery",
            )

    return RedundancyResult()


def check_motif_density(
    recent: List[SceneFingerprint],
    words_per_scene: int = 1500,
    limit_per_1000: float = 6.0,
) -> Optional[MotifDensityReport]:
    """Flag motifs used more than ``limit_per_1000`` times per 1000 words."""
    if not recent:
        return None

    counts: Dict[str, int] = {}
    for fp in recent:
        for motif in fp.motifs_used:
            counts[motif] = counts.get(motif, 0) + 1

    per_1000 = 1000 / (len(recent) * words_per_scene)
    overused = [motif for motif, count in counts.items() if count * per_1000 > limit_per_1000]

    if not overused:
        return None
    return MotifDensityReport(
        overused_motifs=overused,
        suggestion=(
            f"Motifs [{', '.join(overused)}] are overused. "
            "Let them rest for several scenes before reusing."
        ),
    )


def trim_fingerprint_window(fingerprints: List[SceneFingerprint], max_size: int = 20) -> List[SceneFingerprint]:
    if len(fingerprints) <= max_size:
        return list(fingerprints)
    return list(fingerprints[-max_size:])


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def make_scene_id(act: int, chapter: int, scene: int, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"a{act}_c{chapter}_s{scene}_{_base36(now_ms)}"


def _as_float(value: Any, default: float, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _as_strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [str(v).strip() for v in values if str(v).strip()]


def coerce_fingerprint(data: Dict[str, Any], scene_id: str) -> SceneFingerprint:
    """
    Build a fingerprint from model output.

    Model output is loose: unknown functions fall back to discovery,
    deltas are clamped and malformed lists are dropped.
    """
    try:
        function = NarrativeFunction(str(data.get("narrative_function", "")).lower())
    except ValueError:
        function = NarrativeFunction.DISCOVERY

    impacts = []
    for raw in data.get("character_impacts") or []:
        if not isinstance(raw, dict) or not raw.get("name"):
            continue
        impacts.append(CharacterImpact(
            name=str(raw["name"]),
            certainty_delta=_as_float(raw.get("certainty_delta"), 0.0, -1.0, 1.0),
            transformation_delta=_as_float(raw.get("transformation_delta"), 0.0, -1.0, 1.0),
            cost_added=raw.get("cost_added") or None,
            irreversible_loss=bool(raw.get("irreversible_loss", False)),
        ))

    changes = data.get("unresolved_question_changes") or {}
    reframed = [
        QuestionReframe(old=str(r["old"]), new=str(r["new"]))
        for r in changes.get("reframed") or []
        if isinstance(r, dict) and r.get("old") and r.get("new")
    ]

    consequence = data.get("consequence_introduced")
    return SceneFingerprint(
        scene_id=scene_id,
        narrative_function=function,
        new_information=str(data.get("new_information") or ""),
        consequence_introduced=str(consequence) if consequence else None,
        emotional_delta=_as_float(data.get("emotional_delta"), 0.0, -1.0, 1.0),
        escalation_delta=_as_float(data.get("escalation_delta"), 0.0, 0.0, 1.0),
        character_impacts=impacts,
        unresolved_question_changes=QuestionChanges(
            added=_as_strings(changes.get("added")),
            resolved=_as_strings(changes.get("resolved")),
            reframed=reframed,
        ),
        motifs_used=[m.lower() for m in _as_strings(data.get("motifs_used"))],
    )


def patch_from_fingerprint(fingerprint: SceneFingerprint, words: int, summary: Optional[str] = None) -> StatePatch:
    """
    Derive a state patch from a fingerprint alone.

    Used when no editor patch is available (draft mode, boundary
    revisions). Any escalation spends one unit of budget.
    """
    changes = fingerprint.unresolved_question_changes
    return StatePatch(
        words_added=words,
        escalation_spent=1 if fingerprint.escalation_delta > 0 else 0,
        questions=QuestionPatch(
            add=list(changes.added),
            resolve=list(changes.resolved),
            reframe=list(changes.reframed),
        ),
        characters={
            impact.name: CharacterPatch(
                certainty_delta=impact.certainty_delta,
                transformation_delta=impact.transformation_delta,
                cost_added=impact.cost_added,
                irreversible_loss=impact.irreversible_loss,
            )
            for impact in fingerprint.character_impacts
        },
        motifs_added=list(fingerprint.motifs_used),
        scene_summary=summary or fingerprint.new_information or None,
    )


def merge_fingerprints(previous: SceneFingerprint, merged: SceneFingerprint) -> SceneFingerprint:
    """
    Fold a merged scene's signature into the scene it was merged into.

    The previous scene keeps its id and function; information and
    impacts accumulate, the strongest escalation wins.
    """
    changes = previous.unresolved_question_changes
    incoming = merged.unresolved_question_changes
    motifs = list(previous.motifs_used)
    motifs.extend(m for m in merged.motifs_used if m not in motifs)

    return previous.model_copy(update={
        "new_information": f"{previous.new_information} {merged.new_information}".strip(),
        "consequence_introduced": merged.consequence_introduced or previous.consequence_introduced,
        "emotional_delta": max(-1.0, min(1.0, previous.emotional_delta + merged.emotional_delta)),
        "escalation_delta": max(previous.escalation_delta, merged.escalation_delta),
        "character_impacts": list(previous.character_impacts) + list(merged.character_impacts),
        "unresolved_question_changes": QuestionChanges(
            added=changes.added + incoming.added,
            resolved=changes.resolved + incoming.resolved,
            reframed=changes.reframed + incoming.reframed,
        ),
        "motifs_used": motifs,
    })
