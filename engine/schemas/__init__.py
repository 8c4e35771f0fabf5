"""
PDTM Engine Schemas

Public exports for vocabularies and input/output Pydantic models.
"""

# Vocabularies
from engine.schemas.signals import (
    EVIDENCE_WEIGHTS,
    STRONG_EVIDENCE_KINDS,
    WEAK_URL_SIGNALS,
    EventKind,
    EvidenceKind,
    SignalCode,
)

# Input schemas
from engine.schemas.inputs import (
    Category,
    ClassificationContext,
    ClassifyRequest,
    DomSignalPayload,
    NavigationEvent,
    OpenerEvent,
    OverrideUpdate,
    PrivacyMode,
    SamlFormMetadata,
    SettingsUpdate,
)

# Output schemas
from engine.schemas.outputs import (
    ActivityEstimation,
    ActivityLevel,
    ConfidenceBucket,
    ManagementState,
    RiskReason,
    RiskRecord,
)

__all__ = [
    # Vocabularies
    "EvidenceKind",
    "SignalCode",
    "EventKind",
    "EVIDENCE_WEIGHTS",
    "STRONG_EVIDENCE_KINDS",
    "WEAK_URL_SIGNALS",
    # Input
    "Category",
    "PrivacyMode",
    "NavigationEvent",
    "OpenerEvent",
    "SamlFormMetadata",
    "DomSignalPayload",
    "ClassificationContext",
    "ClassifyRequest",
    "OverrideUpdate",
    "SettingsUpdate",
    # Output
    "ActivityLevel",
    "ConfidenceBucket",
    "ManagementState",
    "RiskReason",
    "ActivityEstimation",
    "RiskRecord",
]
