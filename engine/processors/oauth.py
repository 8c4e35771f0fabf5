"""
PDTM OAuth/OIDC Structural Detection

Detects authentication-protocol structure from a URL without reading
parameter values (the single exception is redirect_uri, which is reduced to
its domain immediately and never stored otherwise).

Detection is an OR over three independent checks:
    core OAuth parameter keys (>= 2) | strong auth path | known IdP domain/URL
"""

import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Pattern, Tuple
from urllib.parse import parse_qsl, urlsplit

from engine.processors.url_signals import (
    get_domain,
    get_normalized_path,
    get_param_keys,
    reduced_domain_of,
)
from engine.schemas.signals import EvidenceKind


# =============================================================================
# Detection Constants
# =============================================================================

OAUTH_CORE_KEYS: FrozenSet[str] = frozenset({
    "client_id",
    "redirect_uri",
    "response_type",
    "scope",
    "state",
    "nonce",
    "code_challenge",
    "code_challenge_method",
    "id_token_hint",
    "ui_locales",
})

OAUTH_MIN_CORE_KEYS = 2

OAUTH_STRONG_PATHS: FrozenSet[str] = frozenset({
    "/authorize",
    "/oauth/authorize",
    "/oauth2/authorize",
    "/oauth2/v2.0/authorize",
    "/v1/authorize",
    "/consent",
    "/u/login",
    "/signin-oidc",
    "/.well-known/openid-configuration",
})

OAUTH_STRONG_PATH_SUFFIXES: Tuple[str, ...] = (
    "/authorize",
    "/login/oauth/authorize",
)

KNOWN_IDP_DOMAIN_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^accounts\.google\.com$"),
    re.compile(r"^login\.microsoftonline\.com$"),
    re.compile(r"^appleid\.apple\.com$"),
    re.compile(r"(^|\.)auth0\.com$"),
    re.compile(r"(^|\.)okta\.com$"),
    re.compile(r"^id\.twitch\.tv$"),
)

KNOWN_IDP_URL_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^https://github\.com/login/oauth"),
)


# =============================================================================
# Detection
# =============================================================================

@dataclass
class OAuthDetection:
    """Result of structural OAuth/OIDC detection."""
    is_oauth: bool = False
    evidence: List[EvidenceKind] = field(default_factory=list)


def is_strong_auth_path(url: Optional[str]) -> bool:
    """True if the normalized path is a known authorization endpoint."""
    path = get_normalized_path(url)
    if not path:
        return False
    if path in OAUTH_STRONG_PATHS:
        return True
    return path.endswith(OAUTH_STRONG_PATH_SUFFIXES)


def count_core_keys(url: Optional[str]) -> int:
    return len(get_param_keys(url) & OAUTH_CORE_KEYS)


def is_known_idp(url: Optional[str]) -> bool:
    """Hostname or full-URL match against the identity provider allowlist."""
    hostname = get_domain(url)
    if hostname and any(p.search(hostname) for p in KNOWN_IDP_DOMAIN_PATTERNS):
        return True
    return bool(url) and any(p.search(url) for p in KNOWN_IDP_URL_PATTERNS)


def detect_oauth(url: Optional[str]) -> OAuthDetection:
    """
    Run all structural OAuth/OIDC checks against a URL.

    Returns:
        OAuthDetection with each matching check's evidence kind recorded.
    """
    result = OAuthDetection()
    if get_domain(url) is None:
        return result

    if count_core_keys(url) >= OAUTH_MIN_CORE_KEYS:
        result.evidence.append(EvidenceKind.OAUTH_PARAMS)

    if is_strong_auth_path(url):
        result.evidence.append(EvidenceKind.STRONG_PATH)

    if is_known_idp(url):
        result.evidence.append(EvidenceKind.KNOWN_IDP)

    result.is_oauth = bool(result.evidence)
    return result


# =============================================================================
# RP / IdP Inference
# =============================================================================

def infer_rp_from_redirect_uri(url: Optional[str]) -> Optional[str]:
    """
    Relying party domain embedded in the redirect_uri parameter.

    Only the reduced domain of the value survives this function.
    """
    if not url:
        return None
    try:
        query = urlsplit(url).query
    except ValueError:
        return None

    for key, value in parse_qsl(query, keep_blank_values=False):
        if key == "redirect_uri":
            return reduced_domain_of(value)
    return None


def infer_idp_domain(url: Optional[str]) -> Optional[str]:
    """The page performing the credential check is the IdP candidate."""
    return reduced_domain_of(url)
