"""
Narrative state and scene fingerprints.
"""

from .state import (
    NarrativeState,
    StatePatch,
    create_initial_state,
    apply_state_patch,
    apply_revision,
    combine_patches,
    validate_state_mutation,
    compress_state_for_prompt,
)
from .fingerprint import (
    SceneFingerprint,
    check_redundancy,
    check_motif_density,
    coerce_fingerprint,
    patch_from_fingerprint,
    merge_fingerprints,
)

__all__ = [
    "NarrativeState",
    "StatePatch",
    "create_initial_state",
    "apply_state_patch",
    "apply_revision",
    "combine_patches",
    "validate_state_mutation",
    "compress_state_for_prompt",
    "SceneFingerprint",
    "check_redundancy",
    "check_motif_density",
    "coerce_fingerprint",
    "patch_from_fingerprint",
    "merge_fingerprints",
]
