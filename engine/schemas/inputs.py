"""
PDTM Input Schemas

Pydantic V2 models for everything the engine consumes from its collaborators:
- Navigation / opener / tab lifecycle events (browser event source)
- DOM probe signals (page-level probes)
- Classification requests and user overrides (UI)

Signal codes arrive as plain strings on purpose: unknown codes are filtered
by the classifier with a warning instead of failing validation.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from engine.schemas.signals import EventKind


# =============================================================================
# Enums
# =============================================================================

class Category(str, Enum):
    """User-assigned domain tag."""
    FINANCE = "finance"
    AUTH = "auth"
    SHOPPING = "shopping"
    SOCIAL = "social"
    CLOUD = "cloud"
    OTHER = "other"


class PrivacyMode(str, Enum):
    """How much structural metadata page probes may hand to the engine."""
    STRICT = "STRICT_PRIVACY"
    IMPROVED = "IMPROVED_ACCURACY"


# =============================================================================
# Browser Event Source
# =============================================================================

class NavigationEvent(BaseModel):
    """Single navigation lifecycle event from the browser."""
    tab_id: int = Field(..., description="Opaque browser tab identifier")
    url: str = Field(..., description="Full URL; reduced to a domain before storage")
    frame_id: int = Field(0, description="0 for the main frame")
    event_kind: EventKind = Field(EventKind.COMPLETED, description="Lifecycle stage")


class OpenerEvent(BaseModel):
    """Tab creation with the tab that spawned it."""
    new_tab_id: int = Field(..., description="Newly created tab")
    opener_tab_id: int = Field(..., description="Tab that opened it")
    authoritative: bool = Field(
        False,
        description="True when the browser reported the linkage directly (wins over guesses)"
    )


# =============================================================================
# DOM Probe Source
# =============================================================================

class SamlFormMetadata(BaseModel):
    """
    Structural facts about a POST form carrying a SAMLResponse field.
    Field values are never collected.
    """
    has_saml_form: bool = Field(True, description="A POST form with SAMLResponse exists")
    has_relay_state: bool = Field(False, description="A RelayState field exists")
    action_domain: Optional[str] = Field(None, description="Hostname of the form action")
    action_path_hash: Optional[str] = Field(
        None,
        description="One-way hash of the form action path"
    )


class DomSignalPayload(BaseModel):
    """Signal batch emitted by a page probe."""
    url: str = Field(..., description="URL of the page that produced the signals")
    tab_id: Optional[int] = Field(None, description="Tab hosting the page")
    signals: List[str] = Field(default_factory=list, description="Signal codes (closed vocabulary)")
    saml: Optional[SamlFormMetadata] = Field(None, description="SAML form structure, if detected")
    timestamp: Optional[float] = Field(None, description="Probe timestamp in milliseconds")


# =============================================================================
# Classification Entry Point
# =============================================================================

class ClassificationContext(BaseModel):
    """Optional context supplied alongside a classification request."""
    tab_id: Optional[int] = Field(None, description="Tab the URL was observed in")
    visit_count: int = Field(0, ge=0, description="Total visits to the domain so far")
    is_pinned: bool = Field(False, description="User pinned the domain")


class ClassifyRequest(BaseModel):
    """Payload for the single classification entry point."""
    url: str = Field(..., description="URL to classify")
    signals: List[str] = Field(default_factory=list, description="Explicit signal codes")
    context: ClassificationContext = Field(default_factory=ClassificationContext)


# =============================================================================
# User Controls
# =============================================================================

class OverrideUpdate(BaseModel):
    """Partial update of a domain's user overrides. None means unchanged."""
    pinned: Optional[bool] = None
    whitelisted: Optional[bool] = None
    ignored: Optional[bool] = None
    category: Optional[Category] = None


class SettingsUpdate(BaseModel):
    """Partial update of engine settings. None means unchanged."""
    collection_enabled: Optional[bool] = None
    privacy_mode: Optional[PrivacyMode] = None
