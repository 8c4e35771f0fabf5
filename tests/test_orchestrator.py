"""
Activity Orchestrator Tests

End-to-end flows through the orchestrator with an in-memory repository:
navigation → classification → aggregates → risk record, DOM probe
batches with privacy filtering, user overrides and factory reset.
"""

from unittest.mock import MagicMock

import pytest

from engine.orchestrator import ActivityOrchestrator
from engine.schemas.inputs import (
    Category,
    ClassificationContext,
    DomSignalPayload,
    NavigationEvent,
    OpenerEvent,
    OverrideUpdate,
    PrivacyMode,
    SamlFormMetadata,
    SettingsUpdate,
)
from engine.schemas.outputs import ActivityLevel, ManagementState, RiskReason
from engine.schemas.signals import EventKind
from engine.session_gc import SessionGC
from storage.repository import EngineSettings


def nav(tab_id, url, kind=EventKind.COMPLETED, frame_id=0):
    return NavigationEvent(tab_id=tab_id, url=url, event_kind=kind, frame_id=frame_id)


# =============================================================================
# Navigation
# =============================================================================

class TestNavigation:

    def test_completed_load_is_classified_and_scored(self, orchestrator, repo):
        estimation = orchestrator.handle_navigation(nav(1, "https://www.shop.example/checkout"))

        assert estimation.level is ActivityLevel.TRANSACTION
        assert repo.get_domain_state("shop.example").visit_count_total == 1
        assert repo.get_activity_state("shop.example").counts_by_level["transaction"] == 1

        record = repo.get_risk_record("shop.example")
        assert record.score == 37.5
        assert record.reasons == [RiskReason.LEVEL_TRANSACTION]
        assert record.management_state is ManagementState.NONE

    def test_committed_only_feeds_session_graph(self, orchestrator, repo, session_store):
        assert orchestrator.handle_navigation(nav(1, "https://a.example/", EventKind.COMMITTED)) is None
        assert len(session_store.get_context(1)) == 1
        assert repo.get_domain_state("a.example") is None

    def test_sub_frame_ignored(self, orchestrator, session_store):
        assert orchestrator.handle_navigation(nav(1, "https://ads.example/", frame_id=3)) is None
        assert session_store.context_count == 0

    def test_unusable_url_dropped(self, orchestrator, session_store):
        assert orchestrator.handle_navigation(nav(1, "chrome://settings")) is None
        assert session_store.context_count == 0

    def test_burst_deduplicated(self, orchestrator, repo, clock):
        assert orchestrator.handle_navigation(nav(1, "https://a.example/")) is not None
        clock.advance(500)
        assert orchestrator.handle_navigation(nav(1, "https://a.example/next")) is None
        clock.advance(3_000)
        assert orchestrator.handle_navigation(nav(1, "https://a.example/later")) is not None
        assert repo.get_domain_state("a.example").visit_count_total == 2

    def test_fast_sso_return_is_counted(self, orchestrator, repo, clock):
        orchestrator.handle_navigation(nav(1, "https://rp.example/"))
        clock.advance(500)
        orchestrator.handle_navigation(nav(1, "https://idp.example/authorize?client_id=a&response_type=code"))
        clock.advance(800)
        estimation = orchestrator.handle_navigation(nav(1, "https://rp.example/home"))

        assert estimation is not None
        assert repo.get_domain_state("rp.example").visit_count_total == 2
        assert repo.get_risk_record("rp.example").last_updated_ts == clock.now

    def test_collection_disabled(self, orchestrator, repo, session_store):
        orchestrator.update_settings(SettingsUpdate(collection_enabled=False))

        assert orchestrator.handle_navigation(nav(1, "https://a.example/")) is None
        assert repo.get_domain_state("a.example") is None
        assert len(session_store.get_context(1)) == 1

    def test_popup_login_flow(self, orchestrator, repo, clock):
        orchestrator.handle_navigation(nav(1, "https://www.rp.example/"))
        orchestrator.handle_opener(OpenerEvent(new_tab_id=2, opener_tab_id=1, authoritative=True))
        clock.advance(400)
        estimation = orchestrator.handle_navigation(nav(
            2,
            "https://idp.example/authorize?client_id=abc&response_type=code"
            "&redirect_uri=https%3A%2F%2Frp.example%2Fcallback",
        ))

        assert estimation.level is ActivityLevel.ACCOUNT
        assert estimation.rp_domain == "rp.example"
        assert "redirect_uri_match" in estimation.evidence_flags
        assert "opener_link" in estimation.evidence_flags

        record = repo.get_risk_record("idp.example")
        assert record.management_state is ManagementState.SUGGESTED
        assert repo.get_activity_state("idp.example").last_rp_domain == "rp.example"

    def test_tab_removed(self, orchestrator, session_store):
        orchestrator.handle_opener(OpenerEvent(new_tab_id=2, opener_tab_id=1))
        assert orchestrator.handle_tab_removed(2)
        assert session_store.get_tab(2) is None

    def test_audit_receives_estimation(self, repo, session_store, classifier, clock):
        audit = MagicMock()
        orchestrator = ActivityOrchestrator(
            repo=repo,
            graph=session_store,
            classifier=classifier,
            gc=SessionGC(session_store, rng=lambda: 1.0),
            audit=audit,
            clock=clock,
        )
        estimation = orchestrator.handle_navigation(nav(1, "https://a.example/"))

        audit.log.assert_called_once_with("a.example", estimation, "navigation")


# =============================================================================
# DOM Signals
# =============================================================================

class TestDomSignals:

    def test_strict_privacy_strips_saml_action(self):
        saml = SamlFormMetadata(action_domain="sp.example", action_path_hash="abc123")

        strict = ActivityOrchestrator.apply_privacy_mode(saml, EngineSettings())
        assert strict.has_saml_form
        assert strict.action_domain is None
        assert strict.action_path_hash is None

        improved = ActivityOrchestrator.apply_privacy_mode(
            saml, EngineSettings(privacy_mode=PrivacyMode.IMPROVED.value)
        )
        assert improved.action_domain == "sp.example"

    def test_saml_form_becomes_dom_saml(self, orchestrator, repo):
        payload = DomSignalPayload(
            url="https://sso.example/saml/acs",
            tab_id=5,
            saml=SamlFormMetadata(has_relay_state=True),
            timestamp=1_700_000_100_000.0,
        )
        estimation = orchestrator.handle_dom_signal(payload)

        assert estimation.level is ActivityLevel.ACCOUNT
        assert estimation.evidence_flags == ["saml_form"]
        assert "saml_detected" in estimation.reasons

        activity = repo.get_activity_state("sso.example")
        assert activity.last_estimation_ts == 1_700_000_100_000.0
        assert activity.last_account_touch_ts == 1_700_000_100_000.0

    def test_dom_signal_reclassifies_visit(self, orchestrator, repo, clock):
        orchestrator.handle_navigation(nav(1, "https://blog.example/"))
        clock.advance(1_000)
        estimation = orchestrator.handle_dom_signal(
            DomSignalPayload(url="https://blog.example/", tab_id=1, signals=["dom_editor"])
        )

        assert estimation.level is ActivityLevel.UGC
        counts = repo.get_activity_state("blog.example").counts_by_level
        assert counts["view"] == 0
        assert counts["ugc"] == 1

    def test_collection_disabled(self, orchestrator, repo):
        orchestrator.update_settings(SettingsUpdate(collection_enabled=False))
        payload = DomSignalPayload(url="https://a.example/", signals=["dom_payment"])

        assert orchestrator.handle_dom_signal(payload) is None
        assert repo.get_activity_state("a.example") is None


# =============================================================================
# Classification, Risk & Overrides
# =============================================================================

class TestUserControls:

    def test_classify_is_read_only(self, orchestrator, repo):
        estimation = orchestrator.classify("https://shop.example/checkout", ["dom_payment"])
        assert estimation.level is ActivityLevel.TRANSACTION
        assert repo.get_domain_state("shop.example") is None
        assert repo.get_risk_record("shop.example") is None

    def test_classify_applies_override(self, orchestrator):
        orchestrator.set_override("news.example", OverrideUpdate(pinned=True))
        estimation = orchestrator.classify("https://news.example/", context=ClassificationContext())
        assert estimation.management_state is ManagementState.PINNED

    def test_override_recomputes_risk(self, orchestrator):
        record = orchestrator.set_override(" Bank.Example ", OverrideUpdate(category=Category.FINANCE))
        assert record.domain == "bank.example"
        assert record.score == 25.0
        assert RiskReason.CAT_FINANCE in record.reasons

    def test_whitelist_lowers_score(self, orchestrator):
        orchestrator.handle_navigation(nav(1, "https://shop.example/checkout"))
        record = orchestrator.set_override("shop.example", OverrideUpdate(whitelisted=True))
        assert record.score == 7.5
        assert RiskReason.USER_WHITELISTED in record.reasons

    def test_ignored_zeroes_score(self, orchestrator):
        orchestrator.handle_navigation(nav(1, "https://shop.example/checkout"))
        record = orchestrator.set_override("shop.example", OverrideUpdate(ignored=True))
        assert record.score == 0.0
        assert record.reasons == []
        assert record.management_state is ManagementState.NONE

    def test_recompute_unknown_domain(self, orchestrator, clock):
        record = orchestrator.recompute_risk("www.nowhere.example")
        assert record.domain == "nowhere.example"
        assert record.score == 5.0
        assert record.last_updated_ts == clock.now


class TestReset:

    def test_reset_all(self, orchestrator, repo, session_store):
        orchestrator.handle_navigation(nav(1, "https://a.example/"))
        orchestrator.set_override("a.example", OverrideUpdate(pinned=True))
        orchestrator.update_settings(SettingsUpdate(collection_enabled=False))

        orchestrator.reset_all()

        assert repo.get_domain_state("a.example") is None
        assert repo.get_risk_record("a.example") is None
        assert not repo.get_override("a.example").pinned
        assert repo.get_settings().collection_enabled
        assert session_store.context_count == 0

    def test_startup_gc(self, orchestrator, session_store, clock):
        orchestrator.handle_navigation(nav(1, "https://a.example/", EventKind.COMMITTED))
        clock.advance(120_000)
        assert orchestrator.startup()
        assert session_store.context_count == 0
