"""
PDTM Aggregate Repository

Durable per-domain aggregates on top of an AggregateStore:
- DomainState          visit counting (first/last seen)
- DomainActivityState  what kind of activity happens on a domain
- UserOverride         pin / whitelist / ignore / category
- RiskRecord           last computed attention score and triage bucket
- EngineSettings       collection switch and privacy mode

Every mutation is read full bucket → compute → write full bucket. Callers
serialize through the engine work queue; the repository holds no locks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from engine.schemas.inputs import Category, OverrideUpdate, PrivacyMode, SettingsUpdate
from engine.schemas.outputs import ActivityEstimation, ActivityLevel, RiskRecord
from storage.aggregate_store import AggregateBucket, AggregateStore, InMemoryAggregateStore


logger = logging.getLogger(__name__)


# =============================================================================
# Data Models
# =============================================================================

def _empty_level_counts() -> Dict[str, int]:
    return {level.value: 0 for level in ActivityLevel}


@dataclass
class DomainState:
    """Visit statistics for one reduced domain."""
    domain: str
    first_seen: float = 0.0
    last_seen: float = 0.0
    visit_count_total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DomainState:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class DomainActivityState:
    """Classification aggregate for one reduced domain."""
    domain: str
    last_estimation_level: str = ActivityLevel.VIEW.value
    last_estimation_ts: float = 0.0
    last_numeric_confidence: float = 0.0
    last_rp_domain: Optional[str] = None
    last_evidence_flags: List[str] = field(default_factory=list)
    counts_by_level: Dict[str, int] = field(default_factory=_empty_level_counts)
    last_account_touch_ts: Optional[float] = None
    last_transaction_signal_ts: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DomainActivityState:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class UserOverride:
    """User controls for one reduced domain."""
    pinned: bool = False
    whitelisted: bool = False
    ignored: bool = False
    category: Optional[str] = None

    @property
    def category_enum(self) -> Optional[Category]:
        return Category(self.category) if self.category else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> UserOverride:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class EngineSettings:
    collection_enabled: bool = True
    privacy_mode: str = PrivacyMode.STRICT.value

    @property
    def is_strict(self) -> bool:
        return self.privacy_mode == PrivacyMode.STRICT.value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EngineSettings:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# =============================================================================
# Repository
# =============================================================================

class AggregateRepository:
    """
    Read-modify-write access to the durable aggregates.

    Storage failures surface as StorageError; nothing here substitutes
    defaults for a failed read.
    """

    RECLASSIFICATION_WINDOW_MS: float = 10_000.0
    BURST_WINDOW_MS: float = 2_000.0

    def __init__(self, store: Optional[AggregateStore] = None) -> None:
        self.store = store or InMemoryAggregateStore()

    # -------------------------------------------------------------------------
    # Domain State
    # -------------------------------------------------------------------------

    def get_domain_state(self, domain: str) -> Optional[DomainState]:
        data = self.store.get(AggregateBucket.DOMAIN_STATE).get(domain)
        return DomainState.from_dict(data) if data else None

    def is_burst_duplicate(self, domain: str, ts: float) -> bool:
        """
        The previously recorded visit was the same domain, less than
        BURST_WINDOW_MS ago (redirect bursts, reloads). Any visit to another
        domain in between ends the burst.
        """
        last = self.store.get(AggregateBucket.LAST_VISIT)
        if last.get("domain") != domain:
            return False
        return 0 <= ts - last.get("ts", 0.0) < self.BURST_WINDOW_MS

    def record_visit(self, domain: str, ts: float) -> DomainState:
        state_map = self.store.get(AggregateBucket.DOMAIN_STATE)
        raw = state_map.get(domain)
        state = DomainState.from_dict(raw) if raw else DomainState(domain=domain, first_seen=ts)

        state.last_seen = ts
        state.visit_count_total += 1

        state_map[domain] = state.to_dict()
        self.store.set(AggregateBucket.DOMAIN_STATE, state_map)
        self.store.set(AggregateBucket.LAST_VISIT, {"domain": domain, "ts": ts})
        return state

    # -------------------------------------------------------------------------
    # Activity State
    # -------------------------------------------------------------------------

    def get_activity_state(self, domain: str) -> Optional[DomainActivityState]:
        data = self.store.get(AggregateBucket.ACTIVITY_STATE).get(domain)
        return DomainActivityState.from_dict(data) if data else None

    def update_activity_state(
        self,
        domain: str,
        estimation: ActivityEstimation,
        ts: float,
    ) -> DomainActivityState:
        """
        Fold one estimation into the domain's activity aggregate.

        Within RECLASSIFICATION_WINDOW_MS of the previous estimation the
        update refines the same visit: a changed level moves one count from
        the old bucket to the new one, an unchanged level leaves counts alone.
        Outside the window it is a new visit and the level bucket is
        incremented.
        """
        state_map = self.store.get(AggregateBucket.ACTIVITY_STATE)
        raw = state_map.get(domain)
        state = DomainActivityState.from_dict(raw) if raw else DomainActivityState(domain=domain)

        new_level = ActivityLevel(estimation.level).value
        counts = state.counts_by_level
        is_reclassification = (
            state.last_estimation_ts > 0
            and 0 <= ts - state.last_estimation_ts < self.RECLASSIFICATION_WINDOW_MS
        )

        if is_reclassification:
            if state.last_estimation_level != new_level:
                if counts.get(state.last_estimation_level, 0) > 0:
                    counts[state.last_estimation_level] -= 1
                counts[new_level] = counts.get(new_level, 0) + 1
                logger.debug(
                    f"Reclassified visit on {domain}: {state.last_estimation_level} -> {new_level}"
                )
        else:
            counts[new_level] = counts.get(new_level, 0) + 1

        state.last_estimation_level = new_level
        state.last_estimation_ts = max(ts, state.last_estimation_ts)
        state.last_numeric_confidence = estimation.numeric_confidence
        state.last_rp_domain = estimation.rp_domain
        state.last_evidence_flags = list(estimation.evidence_flags)

        if new_level == ActivityLevel.ACCOUNT.value:
            state.last_account_touch_ts = max(ts, state.last_account_touch_ts or 0.0)
        elif new_level == ActivityLevel.TRANSACTION.value:
            state.last_transaction_signal_ts = max(ts, state.last_transaction_signal_ts or 0.0)

        state_map[domain] = state.to_dict()
        self.store.set(AggregateBucket.ACTIVITY_STATE, state_map)
        return state

    # -------------------------------------------------------------------------
    # User Overrides
    # -------------------------------------------------------------------------

    def get_override(self, domain: str) -> UserOverride:
        data = self.store.get(AggregateBucket.USER_OVERRIDES).get(domain)
        return UserOverride.from_dict(data) if data else UserOverride()

    def update_override(self, domain: str, patch: OverrideUpdate) -> UserOverride:
        overrides = self.store.get(AggregateBucket.USER_OVERRIDES)
        raw = overrides.get(domain)
        current = UserOverride.from_dict(raw) if raw else UserOverride()

        changes = patch.model_dump(exclude_none=True, mode="json")
        updated = UserOverride.from_dict({**current.to_dict(), **changes})

        overrides[domain] = updated.to_dict()
        self.store.set(AggregateBucket.USER_OVERRIDES, overrides)
        logger.info(f"Override updated for {domain}: {changes}")
        return updated

    # -------------------------------------------------------------------------
    # Risk Records
    # -------------------------------------------------------------------------

    def get_risk_record(self, domain: str) -> Optional[RiskRecord]:
        data = self.store.get(AggregateBucket.RISK_STATE).get(domain)
        return RiskRecord.model_validate(data) if data else None

    def save_risk_record(self, record: RiskRecord) -> RiskRecord:
        records = self.store.get(AggregateBucket.RISK_STATE)
        records[record.domain] = record.model_dump(mode="json")
        self.store.set(AggregateBucket.RISK_STATE, records)
        return record

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def get_settings(self) -> EngineSettings:
        return EngineSettings.from_dict(self.store.get(AggregateBucket.SETTINGS))

    def update_settings(self, patch: SettingsUpdate) -> EngineSettings:
        current = self.get_settings()
        changes = patch.model_dump(exclude_none=True, mode="json")
        updated = EngineSettings.from_dict({**current.to_dict(), **changes})
        self.store.set(AggregateBucket.SETTINGS, updated.to_dict())
        logger.info(f"Settings updated: {changes}")
        return updated
