"""
PDTM Confidence Accumulator

Arithmetic for evidence accumulation within a single classification call.

Rules:
- Confidence is always clamped to [0, 1]
- Each strong evidence kind counts at most once
- The weak qualifier bucket accumulates additively up to WEAK_EVIDENCE_MAX
- Without any strong kind, confidence never exceeds CAP_WITHOUT_STRONG_EVIDENCE
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Set, Tuple

from engine.schemas.signals import STRONG_EVIDENCE_KINDS, EvidenceKind


# =============================================================================
# Constants
# =============================================================================

WEAK_EVIDENCE_MAX = 0.1
CAP_WITHOUT_STRONG_EVIDENCE = 0.6


# =============================================================================
# State
# =============================================================================

@dataclass
class ConfidenceState:
    """Mutable accumulator. Created per classification, finalized once."""
    strong_sum: float = 0.0
    weak_sum: float = 0.0
    evidence: Set[EvidenceKind] = field(default_factory=set)


def clamp01(x: float) -> float:
    """Clamp a number into [0, 1]."""
    return max(0.0, min(1.0, x))


def new_state() -> ConfidenceState:
    """Fresh accumulator with no evidence."""
    return ConfidenceState()


def add_evidence(state: ConfidenceState, kind: EvidenceKind, weight: float) -> ConfidenceState:
    """
    Add one piece of evidence to the accumulator.

    Weak qualifiers accumulate up to WEAK_EVIDENCE_MAX. Any other kind
    contributes its weight only the first time it is seen.

    Returns:
        The same (mutated) state, for chaining.
    """
    if kind is EvidenceKind.TRANSITION_QUALIFIERS:
        state.weak_sum = min(state.weak_sum + max(weight, 0.0), WEAK_EVIDENCE_MAX)
        state.evidence.add(kind)
        return state

    if kind not in state.evidence:
        state.evidence.add(kind)
        state.strong_sum += weight

    return state


def has_strong_evidence(state: ConfidenceState) -> bool:
    return any(kind in state.evidence for kind in STRONG_EVIDENCE_KINDS)


def finalize(state: ConfidenceState) -> Tuple[float, List[EvidenceKind]]:
    """
    Compute the final confidence.

    Returns:
        (confidence in [0, 1], deduplicated evidence kinds in no particular order)
    """
    confidence = clamp01(state.strong_sum + state.weak_sum)

    if not has_strong_evidence(state):
        confidence = min(confidence, CAP_WITHOUT_STRONG_EVIDENCE)

    return confidence, list(state.evidence)
