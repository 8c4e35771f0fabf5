"""
PDTM URL Signal Processor

Privacy-safe URL reduction and keyword signal extraction.
No decisions here, only derivation:
- get_domain / reduce_domain: URL -> normalized domain (no path, no query)
- get_param_keys: query parameter KEYS only, values are never decoded
- get_normalized_path: lowercase path without trailing slash
- extract_url_signals: keyword table -> SignalCode list
"""

from typing import List, Optional, Set
from urllib.parse import unquote_plus, urlsplit

from engine.schemas.signals import SignalCode


ALLOWED_SCHEMES = ("http", "https")

# Leading labels treated as presentation noise. Not a public suffix list.
NOISE_SUBDOMAINS = ("www", "m", "mobile")


# =============================================================================
# Keyword Table
# =============================================================================

CHECKOUT_KEYWORDS = ("checkout", "cart", "payment", "billing")
EDITOR_KEYWORDS = ("edit", "compose", "write", "upload")
LOGIN_KEYWORDS = ("login", "signin", "auth")
SIGNUP_KEYWORDS = ("signup", "register", "join")
ACCOUNT_KEYWORDS = ("account", "settings", "profile", "dashboard")


# =============================================================================
# Domain Helpers
# =============================================================================

def get_domain(url: Optional[str]) -> Optional[str]:
    """
    Extract the hostname from an http(s) URL.

    Returns:
        Lowercase hostname, or None for empty, unparseable or non-http(s) input.
    """
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return None
    return parts.hostname or None


def reduce_domain(hostname: Optional[str]) -> str:
    """
    Strip common presentation subdomains (www, m, mobile).

    IP addresses are returned unchanged. 'accounts.google.com' stays as is:
    this is hostname normalization, not registrable-domain extraction.
    """
    if not hostname:
        return ""

    clean = hostname.lower().rstrip(".")
    if ":" in clean:
        return clean

    parts = clean.split(".")
    if all(p.isdigit() for p in parts):
        return clean

    if len(parts) > 2 and parts[0] in NOISE_SUBDOMAINS:
        return ".".join(parts[1:])

    return clean


def reduced_domain_of(url: Optional[str]) -> Optional[str]:
    """get_domain + reduce_domain, None when the URL is unusable."""
    hostname = get_domain(url)
    if not hostname:
        return None
    return reduce_domain(hostname) or None


# =============================================================================
# Query / Path Helpers
# =============================================================================

def get_param_keys(url: Optional[str]) -> Set[str]:
    """
    Unique query parameter keys of a URL.

    The query string is split by hand so parameter values are never decoded.
    """
    keys: Set[str] = set()
    if not url:
        return keys
    try:
        query = urlsplit(url).query
    except ValueError:
        return keys

    for pair in query.split("&"):
        if not pair:
            continue
        key = pair.split("=", 1)[0]
        if key:
            keys.add(unquote_plus(key))
    return keys


def get_normalized_path(url: Optional[str]) -> str:
    """Lowercase path with the trailing slash removed ('' if unparseable)."""
    if not url:
        return ""
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return ""
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


# =============================================================================
# Keyword Signals
# =============================================================================

def _contains_any(path: str, keywords) -> bool:
    return any(k in path for k in keywords)


def extract_url_signals(url: Optional[str]) -> List[SignalCode]:
    """
    Derive URL-based signal codes from path keywords.

    At most one account-family signal is emitted (login > signup > account).
    """
    if get_domain(url) is None:
        return []

    path = get_normalized_path(url)
    signals: List[SignalCode] = []

    if _contains_any(path, CHECKOUT_KEYWORDS):
        signals.append(SignalCode.URL_CHECKOUT)

    if _contains_any(path, EDITOR_KEYWORDS):
        signals.append(SignalCode.URL_EDITOR)

    if _contains_any(path, LOGIN_KEYWORDS):
        signals.append(SignalCode.URL_LOGIN)
    elif _contains_any(path, SIGNUP_KEYWORDS):
        signals.append(SignalCode.URL_SIGNUP)
    elif _contains_any(path, ACCOUNT_KEYWORDS):
        signals.append(SignalCode.URL_ACCOUNT)

    return signals
