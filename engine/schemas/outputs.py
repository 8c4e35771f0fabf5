"""
PDTM Output Schemas

Pydantic V2 models for what the engine hands back to its collaborators:
the per-event ActivityEstimation and the persisted RiskRecord.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class ActivityLevel(str, Enum):
    """What kind of activity happened on a domain (ordered by impact)."""
    VIEW = "view"
    ACCOUNT = "account"
    UGC = "ugc"
    TRANSACTION = "transaction"


class ConfidenceBucket(str, Enum):
    """Coarse confidence label."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ManagementState(str, Enum):
    """User-facing triage bucket."""
    NONE = "none"
    NEEDS_REVIEW = "needs_review"
    SUGGESTED = "suggested"
    PINNED = "pinned"


class RiskReason(str, Enum):
    """Why a risk score came out the way it did."""
    LEVEL_TRANSACTION = "level_transaction"
    LEVEL_ACCOUNT = "level_account"
    LEVEL_UGC = "level_ugc"
    FREQUENT_VISITOR = "frequent_visitor"
    USER_WHITELISTED = "user_whitelisted"
    USER_PINNED = "user_pinned"
    CAT_FINANCE = "cat_finance"
    CAT_AUTH = "cat_auth"
    CAT_SHOPPING = "cat_shopping"


# =============================================================================
# Activity Estimation
# =============================================================================

class ActivityEstimation(BaseModel):
    """Classifier output for a single navigation or DOM-signal event."""
    level: ActivityLevel = Field(..., description="Inferred activity level")
    confidence: ConfidenceBucket = Field(..., description="Bucketed confidence")
    numeric_confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Numeric confidence comparable across structural and heuristic paths"
    )
    reasons: List[str] = Field(default_factory=list, description="Signal codes and markers used")
    evidence_flags: List[str] = Field(default_factory=list, description="Evidence kinds observed")
    rp_domain: Optional[str] = Field(None, description="Inferred relying party")
    idp_domain: Optional[str] = Field(None, description="Inferred identity provider")
    risk_score: float = Field(0.0, ge=0.0, le=100.0, description="Attention score 0-100")
    risk_confidence: ConfidenceBucket = Field(ConfidenceBucket.LOW, description="Risk confidence")
    management_state: ManagementState = Field(ManagementState.NONE, description="Triage bucket")
    explanation: str = Field("", description="One-line human explanation")


# =============================================================================
# Risk Record
# =============================================================================

class RiskRecord(BaseModel):
    """Persisted per-domain risk snapshot."""
    domain: str = Field(..., description="Reduced domain")
    score: float = Field(..., ge=0.0, le=100.0, description="Attention score 0-100")
    confidence: ConfidenceBucket = Field(..., description="Risk confidence")
    reasons: List[RiskReason] = Field(default_factory=list, description="Score contributors")
    management_state: ManagementState = Field(ManagementState.NONE, description="Triage bucket")
    last_updated_ts: float = Field(..., description="Milliseconds since epoch")
