"""
PDTM Explanations

One-line, user-facing text for a classification. Picks the single most
specific piece of evidence; never lists raw signals.
"""

from typing import Iterable, Optional

from engine.schemas.outputs import ActivityLevel
from engine.schemas.signals import EvidenceKind


PASSIVE_EXPLANATION = "Passive browsing activity"
DEFAULT_AUTH_EXPLANATION = "Account activity detected"

# Evidence-free estimations come from page hints only
LEVEL_EXPLANATIONS = {
    ActivityLevel.VIEW: PASSIVE_EXPLANATION,
    ActivityLevel.ACCOUNT: DEFAULT_AUTH_EXPLANATION,
    ActivityLevel.UGC: "Content creation activity detected",
    ActivityLevel.TRANSACTION: "Transaction activity detected",
}


def _flag_values(evidence_flags: Iterable) -> set:
    return {str(getattr(flag, "value", flag)) for flag in evidence_flags}


def build_explanation(
    evidence_flags: Iterable,
    rp_domain: Optional[str] = None,
    idp_domain: Optional[str] = None,
    level: Optional[ActivityLevel] = None,
) -> str:
    """
    Priority: SAML form > redirect match > round-trip > opener link >
    strong path / OAuth params > known IdP > generic account text.
    Without evidence flags the text follows the activity level.
    """
    flags = _flag_values(evidence_flags)
    if not flags:
        if level is None:
            return PASSIVE_EXPLANATION
        return LEVEL_EXPLANATIONS[ActivityLevel(level)]

    if EvidenceKind.SAML_FORM.value in flags:
        return "SAML SSO form detected (Structure only)"

    if EvidenceKind.REDIRECT_URI_MATCH.value in flags:
        if rp_domain:
            return f"Login flow for {rp_domain}"
        return "Standard OAuth redirect detected"

    if EvidenceKind.TEMPORAL_CHAIN.value in flags:
        return "Completed login sequence detected"

    if EvidenceKind.OPENER_LINK.value in flags:
        return "Popup login window detected"

    if EvidenceKind.STRONG_PATH.value in flags or EvidenceKind.OAUTH_PARAMS.value in flags:
        return "Authentication page structure"

    if EvidenceKind.KNOWN_IDP.value in flags:
        return "Identity Provider domain"

    return DEFAULT_AUTH_EXPLANATION
