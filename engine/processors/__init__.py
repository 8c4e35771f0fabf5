"""
PDTM Engine Processors

Public exports for URL/OAuth feature extraction and confidence arithmetic.
Round-trip detection lives in engine.processors.roundtrip (depends on the
session graph).
"""

from engine.processors.confidence import ConfidenceState, add_evidence, finalize, new_state
from engine.processors.oauth import OAuthDetection, detect_oauth
from engine.processors.url_signals import extract_url_signals, reduced_domain_of

__all__ = [
    "ConfidenceState",
    "add_evidence",
    "finalize",
    "new_state",
    "OAuthDetection",
    "detect_oauth",
    "extract_url_signals",
    "reduced_domain_of",
]
