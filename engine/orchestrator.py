"""
PDTM Orchestrator

Wires collaborator events through the engine:

    navigation ─▶ session graph ─▶ (GC) ─▶ dedupe ─▶ visit stats
               ─▶ classifier ─▶ activity state ─▶ risk record ─▶ audit
    opener     ─▶ session graph
    tab close  ─▶ session GC
    DOM signal ─▶ privacy filter ─▶ classifier ─▶ activity state ─▶ risk record
    override   ─▶ user overrides ─▶ risk record

Every public handler is one unit of work for the SerialWorkQueue; the
orchestrator itself does no locking.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from engine.config import EngineConfig
from engine.models.classifier import ActivityClassifier
from engine.models.risk import RiskStateEngine
from engine.processors.url_signals import reduce_domain, reduced_domain_of
from engine.schemas.inputs import (
    ClassificationContext,
    DomSignalPayload,
    NavigationEvent,
    OpenerEvent,
    OverrideUpdate,
    SamlFormMetadata,
    SettingsUpdate,
)
from engine.schemas.outputs import ActivityEstimation, ActivityLevel, RiskRecord
from engine.schemas.signals import EventKind, SignalCode
from engine.session_gc import SessionGC
from engine.session_graph import SessionGraphStore, now_ms
from storage.audit_logger import AuditLogger
from storage.repository import AggregateRepository, EngineSettings


logger = logging.getLogger(__name__)


MAIN_FRAME_ID = 0


class ActivityOrchestrator:
    """
    Stateful coordinator over the session graph and the aggregate repository.

    The session graph lives in memory; everything durable goes through
    AggregateRepository.
    """

    def __init__(
        self,
        repo: Optional[AggregateRepository] = None,
        graph: Optional[SessionGraphStore] = None,
        classifier: Optional[ActivityClassifier] = None,
        gc: Optional[SessionGC] = None,
        audit: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.clock = clock or now_ms
        self.repo = repo or AggregateRepository()
        self.graph = graph or SessionGraphStore(clock=self.clock)
        self.risk_engine = RiskStateEngine()
        self.classifier = classifier or ActivityClassifier(self.graph, self.risk_engine)
        self.gc = gc or SessionGC(self.graph)
        self.audit = audit

        logger.info("ActivityOrchestrator initialized")

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        repo: AggregateRepository,
        audit: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> ActivityOrchestrator:
        graph = SessionGraphStore(
            clock=clock,
            max_events_per_context=config.max_events_per_context,
            max_contexts=config.max_contexts,
            temporal_ttl_ms=config.session_ttl_ms,
            tab_ttl_ms=config.tab_ttl_ms,
        )
        classifier = ActivityClassifier(graph, RiskStateEngine(), roundtrip_ttl=config.roundtrip_ttl_ms)
        gc = SessionGC(graph, probability=config.gc_probability)
        return cls(repo=repo, graph=graph, classifier=classifier, gc=gc, audit=audit, clock=clock)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def startup(self) -> bool:
        """Startup GC pass."""
        return self.gc.startup()

    def reset_all(self) -> None:
        """Factory reset: drop every aggregate and the whole session graph."""
        self.repo.store.clear()
        self.graph.reset()
        logger.warning("All PDTM state cleared")

    # -------------------------------------------------------------------------
    # Browser Event Source
    # -------------------------------------------------------------------------

    def handle_navigation(self, event: NavigationEvent) -> Optional[ActivityEstimation]:
        """
        Record a navigation and, for completed main-frame loads, classify it.

        Returns:
            The estimation, or None when the event only fed the session graph
            (sub-frame, committed/history, dropped URL, collection off, burst).
        """
        if event.frame_id != MAIN_FRAME_ID:
            return None

        stored = self.graph.record_event(event.tab_id, event.url, event.event_kind)
        self.gc.maybe_prune()

        if stored is None:
            logger.debug(f"Dropped navigation without http(s) domain in tab {event.tab_id}")
            return None

        if stored.kind is not EventKind.COMPLETED:
            return None

        settings = self.repo.get_settings()
        if not settings.collection_enabled:
            return None

        domain, ts = stored.domain, stored.ts
        if self.repo.is_burst_duplicate(domain, ts):
            logger.debug(f"Burst duplicate suppressed for {domain}")
            return None

        domain_state = self.repo.record_visit(domain, ts)
        override = self.repo.get_override(domain)

        estimation = self.classifier.classify(
            event.url,
            [],
            ClassificationContext(
                tab_id=event.tab_id,
                visit_count=domain_state.visit_count_total,
                is_pinned=override.pinned,
            ),
            category=override.category_enum,
            whitelisted=override.whitelisted,
            ignored=override.ignored,
        )

        self.repo.update_activity_state(domain, estimation, ts)
        self.recompute_risk(domain)
        self._audit(domain, estimation, "navigation")
        return estimation

    def handle_opener(self, event: OpenerEvent) -> bool:
        return self.graph.record_opener(
            event.new_tab_id,
            event.opener_tab_id,
            overwrite=event.authoritative,
        )

    def handle_tab_removed(self, tab_id: int) -> bool:
        return self.gc.on_tab_removed(tab_id)

    # -------------------------------------------------------------------------
    # DOM Probe Source
    # -------------------------------------------------------------------------

    @staticmethod
    def apply_privacy_mode(
        saml: Optional[SamlFormMetadata],
        settings: EngineSettings,
    ) -> Optional[SamlFormMetadata]:
        """Strict privacy keeps only the structural booleans of a SAML form."""
        if saml is None or not settings.is_strict:
            return saml
        return saml.model_copy(update={"action_domain": None, "action_path_hash": None})

    def handle_dom_signal(self, payload: DomSignalPayload) -> Optional[ActivityEstimation]:
        """Classify a page probe's signal batch and fold it into the aggregates."""
        settings = self.repo.get_settings()
        if not settings.collection_enabled:
            return None

        domain = reduced_domain_of(payload.url)
        if not domain:
            logger.debug("Dropped DOM signal without http(s) domain")
            return None

        signals: List[str] = list(payload.signals)
        saml = self.apply_privacy_mode(payload.saml, settings)
        if saml is not None and saml.has_saml_form and SignalCode.DOM_SAML.value not in signals:
            signals.append(SignalCode.DOM_SAML.value)

        ts = payload.timestamp if payload.timestamp is not None else self.clock()
        domain_state = self.repo.get_domain_state(domain)
        override = self.repo.get_override(domain)

        estimation = self.classifier.classify(
            payload.url,
            signals,
            ClassificationContext(
                tab_id=payload.tab_id,
                visit_count=domain_state.visit_count_total if domain_state else 0,
                is_pinned=override.pinned,
            ),
            category=override.category_enum,
            whitelisted=override.whitelisted,
            ignored=override.ignored,
        )

        self.repo.update_activity_state(domain, estimation, ts)
        self.recompute_risk(domain)
        self._audit(domain, estimation, "dom_signal")
        logger.debug(f"DOM signal processed for {domain}: {estimation.level.value}")
        return estimation

    # -------------------------------------------------------------------------
    # Classification & Risk
    # -------------------------------------------------------------------------

    def classify(
        self,
        url: str,
        signals: Optional[List[str]] = None,
        context: Optional[ClassificationContext] = None,
    ) -> ActivityEstimation:
        """Read-only classification; user overrides of the domain still apply."""
        domain = reduced_domain_of(url)
        override = self.repo.get_override(domain) if domain else None
        context = context or ClassificationContext()

        if override is None:
            return self.classifier.classify(url, signals or [], context)

        if override.pinned and not context.is_pinned:
            context = context.model_copy(update={"is_pinned": True})

        return self.classifier.classify(
            url,
            signals or [],
            context,
            category=override.category_enum,
            whitelisted=override.whitelisted,
            ignored=override.ignored,
        )

    def recompute_risk(self, domain: str) -> RiskRecord:
        """Rebuild and persist the risk record from the stored aggregates."""
        domain = self._normalize_domain(domain)
        activity = self.repo.get_activity_state(domain)
        domain_state = self.repo.get_domain_state(domain)
        override = self.repo.get_override(domain)

        level = ActivityLevel(activity.last_estimation_level) if activity else ActivityLevel.VIEW
        confidence = activity.last_numeric_confidence if activity else 0.0

        assessment = self.risk_engine.assess(
            level,
            confidence,
            visit_count=domain_state.visit_count_total if domain_state else 0,
            rp_domain=activity.last_rp_domain if activity else None,
            evidence_flags=activity.last_evidence_flags if activity else (),
            category=override.category_enum,
            whitelisted=override.whitelisted,
            pinned=override.pinned,
            ignored=override.ignored,
        )

        record = RiskRecord(
            domain=domain,
            score=assessment.score,
            confidence=assessment.confidence,
            reasons=assessment.reasons,
            management_state=assessment.management_state,
            last_updated_ts=self.clock(),
        )
        return self.repo.save_risk_record(record)

    # -------------------------------------------------------------------------
    # User Controls
    # -------------------------------------------------------------------------

    def set_override(self, domain: str, patch: OverrideUpdate) -> RiskRecord:
        domain = self._normalize_domain(domain)
        self.repo.update_override(domain, patch)
        return self.recompute_risk(domain)

    def get_settings(self) -> EngineSettings:
        return self.repo.get_settings()

    def update_settings(self, patch: SettingsUpdate) -> EngineSettings:
        return self.repo.update_settings(patch)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @staticmethod
    def _normalize_domain(domain: str) -> str:
        return reduce_domain(domain.strip().lower())

    def _audit(self, domain: str, estimation: ActivityEstimation, source: str) -> None:
        if self.audit is not None:
            self.audit.log(domain, estimation, source)
