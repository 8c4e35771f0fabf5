"""
PDTM Risk/State Engine

Pure business logic for the attention score and the management state.
This module is STATELESS and DETERMINISTIC.

Score:
    scaled = VIEW_BASE + (BASE_SCORES[level] - VIEW_BASE) * confidence
    + frequency boost (+10 above 200 visits, +5 above 50)
    + category boost (finance +20, auth +15, shopping +10)
    - 30 when whitelisted
    clamped to [0, 100]; ignored domains are forced to 0 with no reasons.

Management state: priority-ordered decision table, first match wins.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from engine.processors.confidence import clamp01
from engine.schemas.inputs import Category
from engine.schemas.outputs import (
    ActivityLevel,
    ConfidenceBucket,
    ManagementState,
    RiskReason,
)
from engine.schemas.signals import EvidenceKind


# =============================================================================
# Score Tables
# =============================================================================

BASE_SCORES: Dict[ActivityLevel, float] = {
    ActivityLevel.VIEW: 5.0,
    ActivityLevel.ACCOUNT: 30.0,
    ActivityLevel.UGC: 45.0,
    ActivityLevel.TRANSACTION: 70.0,
}

LEVEL_REASONS: Dict[ActivityLevel, Optional[RiskReason]] = {
    ActivityLevel.VIEW: None,
    ActivityLevel.ACCOUNT: RiskReason.LEVEL_ACCOUNT,
    ActivityLevel.UGC: RiskReason.LEVEL_UGC,
    ActivityLevel.TRANSACTION: RiskReason.LEVEL_TRANSACTION,
}

for _table in (BASE_SCORES, LEVEL_REASONS):
    _missing = set(ActivityLevel) - set(_table)
    if _missing:
        raise RuntimeError(f"Activity levels missing from score table: {sorted(l.value for l in _missing)}")

VIEW_BASE = BASE_SCORES[ActivityLevel.VIEW]

CATEGORY_BOOSTS: Dict[Category, Tuple[float, RiskReason]] = {
    Category.FINANCE: (20.0, RiskReason.CAT_FINANCE),
    Category.AUTH: (15.0, RiskReason.CAT_AUTH),
    Category.SHOPPING: (10.0, RiskReason.CAT_SHOPPING),
}

FREQUENT_VISITS = 200
FREQUENT_BOOST = 10.0
REGULAR_VISITS = 50
REGULAR_BOOST = 5.0
WHITELIST_CUT = 30.0

# Confidence buckets
HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5

# Management-state thresholds
SUGGEST_CONFIDENCE = 0.8
REVIEW_CONFIDENCE = 0.6
REVIEW_SCORE = 40.0
HABITUAL_VISITS = 100
HABITUAL_MIN_CONFIDENCE = 0.3
HABITUAL_VIEW_VISITS = 200

SSO_CORROBORATION = frozenset({EvidenceKind.REDIRECT_URI_MATCH, EvidenceKind.TEMPORAL_CHAIN})


# =============================================================================
# Pure Functions
# =============================================================================

def confidence_bucket(confidence: float) -> ConfidenceBucket:
    if confidence >= HIGH_CONFIDENCE:
        return ConfidenceBucket.HIGH
    if confidence >= MEDIUM_CONFIDENCE:
        return ConfidenceBucket.MEDIUM
    return ConfidenceBucket.LOW


def compute_base_score(level: ActivityLevel) -> float:
    return BASE_SCORES[ActivityLevel(level)]


def scale_by_confidence(level: ActivityLevel, confidence: float) -> float:
    """
    Blend between the view baseline and the level's base score.

    Monotonic in confidence: 0 -> VIEW_BASE, 1 -> the level's base score.
    """
    base = compute_base_score(level)
    return VIEW_BASE + (base - VIEW_BASE) * clamp01(confidence)


def compute_risk_score(
    level: ActivityLevel,
    confidence: float,
    visit_count: int = 0,
    category: Optional[Category] = None,
    whitelisted: bool = False,
    pinned: bool = False,
    ignored: bool = False,
) -> Tuple[float, List[RiskReason]]:
    """
    Compute the 0-100 attention score and the reasons behind it.

    Returns:
        (score, reasons). Ignored domains return (0.0, []).
    """
    if ignored:
        return 0.0, []

    level = ActivityLevel(level)
    reasons: List[RiskReason] = []

    score = scale_by_confidence(level, confidence)
    level_reason = LEVEL_REASONS[level]
    if level_reason is not None:
        reasons.append(level_reason)

    if visit_count > FREQUENT_VISITS:
        score += FREQUENT_BOOST
        reasons.append(RiskReason.FREQUENT_VISITOR)
    elif visit_count > REGULAR_VISITS:
        score += REGULAR_BOOST

    if category is not None and Category(category) in CATEGORY_BOOSTS:
        boost, reason = CATEGORY_BOOSTS[Category(category)]
        score += boost
        reasons.append(reason)

    if whitelisted:
        score = max(0.0, score - WHITELIST_CUT)
        reasons.append(RiskReason.USER_WHITELISTED)

    if pinned:
        # Retention signal only, no score delta
        reasons.append(RiskReason.USER_PINNED)

    score = min(100.0, max(0.0, score))
    return round(score, 2), reasons


def compute_risk_confidence(confidence: float) -> ConfidenceBucket:
    return confidence_bucket(clamp01(confidence))


def map_management_state(
    level: ActivityLevel,
    score: float,
    confidence: float,
    rp_domain: Optional[str] = None,
    evidence_flags: Iterable[str] = (),
    visit_count: int = 0,
    is_pinned: bool = False,
) -> ManagementState:
    """
    Priority-ordered decision table (first match wins):

        1. pinned                                              -> PINNED
        2. conf >= 0.8 and transaction                         -> SUGGESTED
        3. conf >= 0.8 and account and (RP or redirect/roundtrip) -> SUGGESTED
        4. level != view and conf >= 0.6 and score >= 40       -> NEEDS_REVIEW
        5. visits >= 100 and conf > 0.3                        -> NEEDS_REVIEW
        6. view and visits >= 200                              -> NEEDS_REVIEW
        7. otherwise                                           -> NONE
    """
    level = ActivityLevel(level)
    flags = {str(getattr(f, "value", f)) for f in evidence_flags}

    if is_pinned:
        return ManagementState.PINNED

    if confidence >= SUGGEST_CONFIDENCE:
        if level is ActivityLevel.TRANSACTION:
            return ManagementState.SUGGESTED
        if level is ActivityLevel.ACCOUNT:
            has_sso_evidence = any(kind.value in flags for kind in SSO_CORROBORATION)
            if rp_domain or has_sso_evidence:
                return ManagementState.SUGGESTED

    if level is not ActivityLevel.VIEW and confidence >= REVIEW_CONFIDENCE and score >= REVIEW_SCORE:
        return ManagementState.NEEDS_REVIEW

    if visit_count >= HABITUAL_VISITS and confidence > HABITUAL_MIN_CONFIDENCE:
        return ManagementState.NEEDS_REVIEW

    if level is ActivityLevel.VIEW and visit_count >= HABITUAL_VIEW_VISITS:
        return ManagementState.NEEDS_REVIEW

    return ManagementState.NONE


# =============================================================================
# Engine
# =============================================================================

@dataclass
class RiskAssessment:
    """Score, confidence and triage bucket for one domain."""
    score: float
    confidence: ConfidenceBucket
    management_state: ManagementState
    reasons: List[RiskReason] = field(default_factory=list)


class RiskStateEngine:
    """
    Stateless, deterministic risk/state engine.

    Combines compute_risk_score, compute_risk_confidence and
    map_management_state into one assessment.
    """

    def assess(
        self,
        level: ActivityLevel,
        confidence: float,
        visit_count: int = 0,
        rp_domain: Optional[str] = None,
        evidence_flags: Iterable[str] = (),
        category: Optional[Category] = None,
        whitelisted: bool = False,
        pinned: bool = False,
        ignored: bool = False,
    ) -> RiskAssessment:
        score, reasons = compute_risk_score(
            level,
            confidence,
            visit_count=visit_count,
            category=category,
            whitelisted=whitelisted,
            pinned=pinned,
            ignored=ignored,
        )

        if ignored:
            state = ManagementState.PINNED if pinned else ManagementState.NONE
        else:
            state = map_management_state(
                level,
                score,
                confidence,
                rp_domain=rp_domain,
                evidence_flags=evidence_flags,
                visit_count=visit_count,
                is_pinned=pinned,
            )

        return RiskAssessment(
            score=score,
            confidence=compute_risk_confidence(confidence),
            management_state=state,
            reasons=reasons,
        )
