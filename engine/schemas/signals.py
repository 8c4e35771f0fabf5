"""
PDTM Signal Vocabularies

Closed enumerations shared by the session graph, the classifier and the
confidence accumulator. Anything outside these sets is dropped at the edge.
"""

from enum import Enum
from typing import Dict, FrozenSet


# =============================================================================
# Evidence Kinds (Confidence Accumulator)
# =============================================================================

class EvidenceKind(str, Enum):
    """Evidence contributing to auth-flow confidence."""
    REDIRECT_URI_MATCH = "redirect_uri_match"
    STRONG_PATH = "strong_path"
    KNOWN_IDP = "known_idp"
    OAUTH_PARAMS = "oauth_params"
    SAML_FORM = "saml_form"
    OPENER_LINK = "opener_link"
    TEMPORAL_CHAIN = "temporal_chain"
    TRANSITION_QUALIFIERS = "transition_qualifiers"


# Kinds that lift the no-strong-evidence ceiling in finalize()
STRONG_EVIDENCE_KINDS: FrozenSet[EvidenceKind] = frozenset({
    EvidenceKind.REDIRECT_URI_MATCH,
    EvidenceKind.STRONG_PATH,
    EvidenceKind.OPENER_LINK,
    EvidenceKind.TEMPORAL_CHAIN,
})

EVIDENCE_WEIGHTS: Dict[EvidenceKind, float] = {
    EvidenceKind.REDIRECT_URI_MATCH: 0.6,
    EvidenceKind.STRONG_PATH: 0.5,
    EvidenceKind.KNOWN_IDP: 0.3,
    EvidenceKind.OAUTH_PARAMS: 0.3,
    EvidenceKind.SAML_FORM: 0.4,
    EvidenceKind.OPENER_LINK: 0.2,
    EvidenceKind.TEMPORAL_CHAIN: 0.2,
    EvidenceKind.TRANSITION_QUALIFIERS: 0.05,
}

_missing_weights = set(EvidenceKind) - set(EVIDENCE_WEIGHTS)
if _missing_weights:
    raise RuntimeError(f"Evidence kinds without weight: {sorted(k.value for k in _missing_weights)}")


# =============================================================================
# Signal Codes (Heuristic Classifier)
# =============================================================================

class SignalCode(str, Enum):
    """URL and DOM hints understood by the heuristic classifier."""
    # URL based
    URL_LOGIN = "url_login"
    URL_SIGNUP = "url_signup"
    URL_ACCOUNT = "url_account"
    URL_EDITOR = "url_editor"
    URL_CHECKOUT = "url_checkout"

    # DOM based (page probes)
    DOM_PASSWORD = "dom_password"
    DOM_EDITOR = "dom_editor"
    DOM_PAYMENT = "dom_payment"
    DOM_SAML = "dom_saml"

    # Default
    PASSIVE = "passive_view"


WEAK_URL_SIGNALS: FrozenSet[SignalCode] = frozenset({
    SignalCode.URL_LOGIN,
    SignalCode.URL_SIGNUP,
    SignalCode.URL_ACCOUNT,
})


# =============================================================================
# Session Graph Event Kinds
# =============================================================================

class EventKind(str, Enum):
    """Navigation lifecycle stage that produced a session event."""
    COMMITTED = "committed"
    HISTORY = "history"
    COMPLETED = "completed"
    CREATED_NAV_TARGET = "created_nav_target"
