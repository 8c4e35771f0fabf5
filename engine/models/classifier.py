"""
PDTM Activity Classifier

Single classification entry point: URL + explicit signal codes + context
-> ActivityEstimation (level, confidence, evidence, RP/IdP, risk, state).

Pipeline:
    1. Validate explicit signals against the closed vocabulary
    2. URL keyword signals + explicit signals -> base heuristic
    3. Structural OAuth/OIDC detection and SAML (DOM) detection
    4. Structural path: evidence accumulation, RP/IdP inference,
       opener linkage and round-trip correlation; level forced to account
    5. Heuristic path: ambiguity downgrade, numeric confidence tiers
    6. Risk score, management state and explanation
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from engine.models.explanations import build_explanation
from engine.models.heuristics import evaluate_signals
from engine.models.risk import RiskStateEngine, confidence_bucket
from engine.processors.confidence import add_evidence, finalize, new_state
from engine.processors.oauth import (
    detect_oauth,
    infer_idp_domain,
    infer_rp_from_redirect_uri,
)
from engine.processors.roundtrip import ROUNDTRIP_TTL_MS, is_roundtrip
from engine.processors.url_signals import extract_url_signals
from engine.schemas.inputs import Category, ClassificationContext
from engine.schemas.outputs import ActivityEstimation, ActivityLevel, ConfidenceBucket
from engine.schemas.signals import (
    EVIDENCE_WEIGHTS,
    WEAK_URL_SIGNALS,
    EvidenceKind,
    SignalCode,
)
from engine.session_graph import SessionGraphStore


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SAML_ONLY_CAP = 0.6

# Heuristic path numeric tiers
BUCKET_TIERS = {
    ConfidenceBucket.HIGH: 0.8,
    ConfidenceBucket.MEDIUM: 0.5,
    ConfidenceBucket.LOW: 0.3,
}

AMBIGUOUS_CONFIDENCE = 0.3
AMBIGUOUS_REASON = "ambiguous_auth_keyword"
OAUTH_REASON = "oauth_detected"
SAML_REASON = "saml_detected"

_KNOWN_CODES = {code.value for code in SignalCode}


def filter_signals(signals: Iterable[str]) -> List[SignalCode]:
    """Drop codes outside the closed vocabulary (warning per dropped code)."""
    validated = []
    for signal in signals or ():
        value = getattr(signal, "value", signal)
        if value in _KNOWN_CODES:
            validated.append(SignalCode(value))
        else:
            logger.warning(f"Dropped unknown signal: {signal!r}")
    return validated


# =============================================================================
# Classifier
# =============================================================================

class ActivityClassifier:
    """
    Turns raw navigation signals into an ActivityEstimation.

    Reads (never writes) the session graph for opener and round-trip
    correlation.
    """

    def __init__(
        self,
        store: Optional[SessionGraphStore] = None,
        risk_engine: Optional[RiskStateEngine] = None,
        roundtrip_ttl: float = ROUNDTRIP_TTL_MS,
    ) -> None:
        self.store = store or SessionGraphStore()
        self.risk_engine = risk_engine or RiskStateEngine()
        self.roundtrip_ttl = roundtrip_ttl

    # -------------------------------------------------------------------------
    # RP Inference
    # -------------------------------------------------------------------------

    def infer_rp_from_opener(self, tab_id: Optional[int]) -> Optional[str]:
        """Last domain seen in the tab that opened tab_id."""
        opener = self.store.get_opener(tab_id)
        if opener is None:
            return None
        return self.store.last_domain_for_tab(opener)

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def classify(
        self,
        url: str,
        signals: Iterable[str] = (),
        context: Optional[ClassificationContext] = None,
        category: Optional[Category] = None,
        whitelisted: bool = False,
        ignored: bool = False,
    ) -> ActivityEstimation:
        """
        Classify one URL observation.

        Args:
            url: Page URL. Only keys, path and domain are inspected.
            signals: Explicit signal codes (DOM probes, callers).
            context: Tab id, visit count and pin flag.
            category: User tag for the domain (risk boost).
            whitelisted: User whitelist flag (risk cut).
            ignored: User ignore flag (score forced to 0).
        """
        context = context or ClassificationContext()
        validated = filter_signals(signals)
        has_saml = SignalCode.DOM_SAML in validated

        combined = list(dict.fromkeys(extract_url_signals(url) + validated))
        base = evaluate_signals(combined)

        oauth = detect_oauth(url)

        level = base.level
        reasons = list(base.reasons)
        evidence_flags: List[str] = []
        rp_domain = None
        idp_domain = None

        if oauth.is_oauth or has_saml:
            numeric, evidence_flags, rp_domain, idp_domain = self._structural_confidence(
                url, combined, oauth.evidence, has_saml, context.tab_id
            )
            level = ActivityLevel.ACCOUNT
            bucket = confidence_bucket(numeric)
            reasons.append(SAML_REASON if has_saml else OAUTH_REASON)
        elif base.level is ActivityLevel.ACCOUNT and self._relies_on_weak_url(base.reasons):
            level = ActivityLevel.VIEW
            bucket = ConfidenceBucket.LOW
            numeric = AMBIGUOUS_CONFIDENCE
            reasons = [SignalCode.PASSIVE.value, AMBIGUOUS_REASON]
        else:
            bucket = base.confidence
            numeric = BUCKET_TIERS[bucket]

        assessment = self.risk_engine.assess(
            level,
            numeric,
            visit_count=context.visit_count,
            rp_domain=rp_domain,
            evidence_flags=evidence_flags,
            category=category,
            whitelisted=whitelisted,
            pinned=context.is_pinned,
            ignored=ignored,
        )

        return ActivityEstimation(
            level=level,
            confidence=bucket,
            numeric_confidence=numeric,
            reasons=reasons,
            evidence_flags=evidence_flags,
            rp_domain=rp_domain,
            idp_domain=idp_domain,
            risk_score=assessment.score,
            risk_confidence=assessment.confidence,
            management_state=assessment.management_state,
            explanation=build_explanation(evidence_flags, rp_domain, idp_domain, level),
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @staticmethod
    def _relies_on_weak_url(reasons: List[str]) -> bool:
        weak = {s.value for s in WEAK_URL_SIGNALS}
        if any(r.startswith("dom_") for r in reasons):
            return False
        return all(r in weak for r in reasons)

    def _structural_confidence(
        self,
        url: str,
        combined: List[SignalCode],
        oauth_evidence: List[EvidenceKind],
        has_saml: bool,
        tab_id: Optional[int],
    ) -> Tuple[float, List[str], Optional[str], Optional[str]]:
        """
        Accumulate structural evidence for an OAuth/SAML observation.

        Returns:
            (numeric confidence, sorted evidence flags, rp_domain, idp_domain)
        """
        state = new_state()
        for kind in oauth_evidence:
            add_evidence(state, kind, EVIDENCE_WEIGHTS[kind])
        if has_saml:
            add_evidence(state, EvidenceKind.SAML_FORM, EVIDENCE_WEIGHTS[EvidenceKind.SAML_FORM])

        for signal in combined:
            if signal in WEAK_URL_SIGNALS:
                add_evidence(
                    state,
                    EvidenceKind.TRANSITION_QUALIFIERS,
                    EVIDENCE_WEIGHTS[EvidenceKind.TRANSITION_QUALIFIERS],
                )

        idp_domain = infer_idp_domain(url)

        rp_from_redirect = infer_rp_from_redirect_uri(url)
        rp_from_opener = self.infer_rp_from_opener(tab_id)

        # An RP equal to the IdP is a same-site hop, not a relying party
        if rp_from_redirect == idp_domain:
            rp_from_redirect = None
        if rp_from_opener == idp_domain:
            rp_from_opener = None

        rp_domain = rp_from_redirect or rp_from_opener

        if rp_from_redirect and rp_from_redirect == rp_from_opener:
            add_evidence(
                state,
                EvidenceKind.REDIRECT_URI_MATCH,
                EVIDENCE_WEIGHTS[EvidenceKind.REDIRECT_URI_MATCH],
            )

        if rp_from_opener:
            add_evidence(state, EvidenceKind.OPENER_LINK, EVIDENCE_WEIGHTS[EvidenceKind.OPENER_LINK])

        roundtrip = False
        if rp_domain and idp_domain:
            roundtrip = is_roundtrip(
                rp_domain,
                idp_domain,
                self.store.get_context(tab_id),
                ttl=self.roundtrip_ttl,
            )
            if roundtrip:
                add_evidence(
                    state,
                    EvidenceKind.TEMPORAL_CHAIN,
                    EVIDENCE_WEIGHTS[EvidenceKind.TEMPORAL_CHAIN],
                )

        confidence, kinds = finalize(state)

        if has_saml and not roundtrip and EvidenceKind.REDIRECT_URI_MATCH not in kinds:
            confidence = min(confidence, SAML_ONLY_CAP)

        flags = sorted(kind.value for kind in kinds)
        logger.debug(
            f"Structural auth evidence for {idp_domain}: flags={flags} "
            f"rp={rp_domain} confidence={confidence:.2f}"
        )
        return confidence, flags, rp_domain, idp_domain
