"""
Activity Classifier Unit Tests

End-to-end classification over the session graph: structural OAuth/SAML
detection, RP inference from redirect_uri and opener tabs, round-trip
correlation, the ambiguity downgrade and risk/state mapping.
"""

import logging

import pytest

from engine.schemas.inputs import Category, ClassificationContext
from engine.schemas.outputs import ActivityLevel, ConfidenceBucket, ManagementState
from engine.schemas.signals import EventKind


OAUTH_URL = (
    "https://idp.example/authorize?client_id=abc"
    "&redirect_uri=https://rp.example/cb&response_type=code&state=xyz"
)


# =============================================================================
# Reference Scenarios
# =============================================================================

class TestReferenceScenarios:
    """Worked examples every implementation must reproduce."""

    def test_oauth_authorize_without_context(self, classifier):
        result = classifier.classify(OAUTH_URL)

        assert result.level == ActivityLevel.ACCOUNT
        assert result.rp_domain == "rp.example"
        assert result.idp_domain == "idp.example"
        assert result.confidence == ConfidenceBucket.HIGH
        assert result.numeric_confidence >= 0.8
        assert result.management_state == ManagementState.SUGGESTED
        assert "oauth_detected" in result.reasons
        assert {"oauth_params", "strong_path"} <= set(result.evidence_flags)
        assert result.explanation == "Authentication page structure"

    def test_habitual_passive_site(self, classifier):
        result = classifier.classify(
            "https://news.example/today",
            context=ClassificationContext(visit_count=250),
        )

        assert result.level == ActivityLevel.VIEW
        assert result.risk_score == 15
        assert result.management_state == ManagementState.NEEDS_REVIEW
        assert result.explanation == "Passive browsing activity"

    def test_saml_only_capped(self, classifier):
        result = classifier.classify("https://sso.corp.example/saml/acs", ["dom_saml"])

        assert result.level == ActivityLevel.ACCOUNT
        assert result.numeric_confidence <= 0.6
        assert result.confidence != ConfidenceBucket.HIGH
        assert result.management_state != ManagementState.SUGGESTED
        assert result.evidence_flags == ["saml_form"]
        assert "saml_detected" in result.reasons
        assert result.explanation == "SAML SSO form detected (Structure only)"


# =============================================================================
# Heuristic Path
# =============================================================================

class TestHeuristicPath:

    def test_ambiguous_auth_keyword_downgraded(self, classifier):
        result = classifier.classify("https://blog.example/author/jane")

        assert result.level == ActivityLevel.VIEW
        assert result.confidence == ConfidenceBucket.LOW
        assert result.numeric_confidence == pytest.approx(0.3)
        assert result.reasons == ["passive_view", "ambiguous_auth_keyword"]
        assert result.evidence_flags == []

    def test_dom_password_keeps_account(self, classifier):
        result = classifier.classify("https://app.example/login", ["dom_password"])

        assert result.level == ActivityLevel.ACCOUNT
        assert result.confidence == ConfidenceBucket.HIGH
        assert result.numeric_confidence == pytest.approx(0.8)
        assert result.reasons == ["url_login", "dom_password"]
        # High confidence alone is not SSO corroboration
        assert result.management_state == ManagementState.NONE
        assert result.explanation == "Account activity detected"

    def test_checkout_medium(self, classifier):
        result = classifier.classify("https://shop.example/checkout")

        assert result.level == ActivityLevel.TRANSACTION
        assert result.confidence == ConfidenceBucket.MEDIUM
        assert result.numeric_confidence == pytest.approx(0.5)
        assert result.risk_score == pytest.approx(37.5)
        assert result.explanation == "Transaction activity detected"

    def test_corroborated_checkout_suggested(self, classifier):
        result = classifier.classify("https://shop.example/checkout", ["dom_payment"])

        assert result.confidence == ConfidenceBucket.HIGH
        assert result.management_state == ManagementState.SUGGESTED

    def test_unknown_signals_dropped(self, classifier, caplog):
        with caplog.at_level(logging.WARNING, logger="engine.models.classifier"):
            result = classifier.classify("https://news.example/", ["bogus_signal", "dom_editor"])

        assert result.level == ActivityLevel.UGC
        assert "bogus_signal" not in result.reasons
        assert "bogus_signal" in caplog.text

    def test_non_http_url_is_passive(self, classifier):
        result = classifier.classify("chrome://settings/account")
        assert result.level == ActivityLevel.VIEW
        assert result.rp_domain is None


# =============================================================================
# Structural Path With Session Context
# =============================================================================

class TestSessionCorrelation:

    def test_popup_flow_redirect_match(self, classifier, session_store, clock):
        session_store.record_event(1, "https://www.rp.example/signin", EventKind.COMPLETED)
        clock.advance(500)
        session_store.record_opener(2, 1, overwrite=True)
        session_store.record_event(2, OAUTH_URL, EventKind.COMMITTED)

        result = classifier.classify(OAUTH_URL, context=ClassificationContext(tab_id=2))

        assert result.rp_domain == "rp.example"
        assert {"redirect_uri_match", "opener_link"} <= set(result.evidence_flags)
        assert result.numeric_confidence == pytest.approx(1.0)
        assert result.explanation == "Login flow for rp.example"
        assert result.management_state == ManagementState.SUGGESTED

    def test_opener_rp_without_redirect_uri(self, classifier, session_store):
        session_store.record_event(1, "https://rp.example/", EventKind.COMPLETED)
        session_store.record_opener(2, 1)

        result = classifier.classify(
            "https://accounts.google.com/signin/v2",
            context=ClassificationContext(tab_id=2),
        )

        assert result.rp_domain == "rp.example"
        assert "opener_link" in result.evidence_flags
        assert "redirect_uri_match" not in result.evidence_flags
        assert result.explanation == "Popup login window detected"

    def test_completed_roundtrip_adds_temporal_chain(self, classifier, session_store, clock):
        session_store.record_event(1, "https://rp.example/", EventKind.COMPLETED)
        clock.advance(1_000)
        session_store.record_event(1, OAUTH_URL, EventKind.COMPLETED)
        clock.advance(3_000)
        session_store.record_event(1, "https://rp.example/cb", EventKind.COMPLETED)

        result = classifier.classify(OAUTH_URL, context=ClassificationContext(tab_id=1))

        assert "temporal_chain" in result.evidence_flags
        assert result.confidence == ConfidenceBucket.HIGH

    def test_stale_roundtrip_ignored(self, classifier, session_store, clock):
        session_store.record_event(1, "https://rp.example/", EventKind.COMPLETED)
        clock.advance(1_000)
        session_store.record_event(1, OAUTH_URL, EventKind.COMPLETED)
        clock.advance(45_000)
        session_store.record_event(1, "https://rp.example/cb", EventKind.COMPLETED)

        result = classifier.classify(OAUTH_URL, context=ClassificationContext(tab_id=1))
        assert "temporal_chain" not in result.evidence_flags

    def test_saml_with_roundtrip_not_capped(self, classifier, session_store, clock):
        session_store.record_event(3, "https://portal.example/", EventKind.COMPLETED)
        session_store.record_opener(4, 3)
        clock.advance(500)
        session_store.record_event(4, "https://sso.example/saml/post", EventKind.COMPLETED)
        clock.advance(500)
        session_store.record_event(3, "https://portal.example/home", EventKind.COMPLETED)

        result = classifier.classify(
            "https://sso.example/saml/post",
            ["dom_saml"],
            ClassificationContext(tab_id=4),
        )

        # saml_form 0.4 + opener_link 0.2 + temporal_chain 0.2
        assert "temporal_chain" in result.evidence_flags
        assert result.numeric_confidence == pytest.approx(0.8)
        assert result.confidence == ConfidenceBucket.HIGH

    def test_rp_equal_to_idp_discarded(self, classifier, session_store):
        session_store.record_event(1, "https://idp.example/home", EventKind.COMPLETED)
        session_store.record_opener(2, 1)

        result = classifier.classify(
            "https://idp.example/authorize?client_id=1&scope=openid",
            context=ClassificationContext(tab_id=2),
        )

        assert result.rp_domain is None
        assert "opener_link" not in result.evidence_flags


# =============================================================================
# User Controls
# =============================================================================

class TestUserControls:

    def test_pinned_context(self, classifier):
        result = classifier.classify(
            "https://news.example/",
            context=ClassificationContext(is_pinned=True),
        )
        assert result.management_state == ManagementState.PINNED

    def test_ignored_zero_score(self, classifier):
        result = classifier.classify(OAUTH_URL, ignored=True)
        assert result.risk_score == 0
        assert result.management_state == ManagementState.NONE

    def test_category_boost(self, classifier):
        plain = classifier.classify("https://bank.example/")
        boosted = classifier.classify("https://bank.example/", category=Category.FINANCE)
        assert boosted.risk_score == plain.risk_score + 20
