"""
Round-trip Detector Unit Tests

Strict RP -> IdP -> RP precedence, TTL window and the bidirectional
opener-linkage guard.
"""

import pytest

from engine.processors.roundtrip import ROUNDTRIP_TTL_MS, is_roundtrip
from engine.session_graph import SessionEvent


def ev(ts, domain, tab_id=1, opener_tab_id=None):
    return SessionEvent(ts=ts, domain=domain, tab_id=tab_id, opener_tab_id=opener_tab_id)


class TestPrecedence:

    def test_basic_roundtrip(self):
        events = [ev(0, "rp.example"), ev(1_000, "idp.example"), ev(5_000, "rp.example")]
        assert is_roundtrip("rp.example", "idp.example", events)

    def test_unsorted_input(self):
        events = [ev(5_000, "rp.example"), ev(0, "rp.example"), ev(1_000, "idp.example")]
        assert is_roundtrip("rp.example", "idp.example", events)

    def test_idp_must_be_immediately_preceded_by_rp(self):
        events = [
            ev(0, "rp.example"),
            ev(500, "news.example"),
            ev(1_000, "idp.example"),
            ev(2_000, "rp.example"),
        ]
        assert not is_roundtrip("rp.example", "idp.example", events)

    def test_idp_before_rp_is_not_a_roundtrip(self):
        events = [ev(0, "idp.example"), ev(1_000, "rp.example")]
        assert not is_roundtrip("rp.example", "idp.example", events)

    def test_missing_backward_leg(self):
        events = [ev(0, "rp.example"), ev(1_000, "idp.example")]
        assert not is_roundtrip("rp.example", "idp.example", events)

    def test_first_qualifying_forward_leg_used(self):
        events = [
            ev(0, "rp.example"),
            ev(1_000, "idp.example"),
            ev(50_000, "rp.example"),
            ev(51_000, "idp.example"),
            ev(52_000, "rp.example"),
        ]
        # First forward leg at 1s pairs with the RP at 50s, outside the TTL
        assert not is_roundtrip("rp.example", "idp.example", events)

    @pytest.mark.parametrize("rp,idp,events", [
        (None, "idp.example", [ev(0, "rp.example"), ev(1, "idp.example")]),
        ("rp.example", None, [ev(0, "rp.example"), ev(1, "idp.example")]),
        ("rp.example", "idp.example", []),
        ("rp.example", "idp.example", [ev(0, "rp.example")]),
    ])
    def test_degenerate_inputs(self, rp, idp, events):
        assert not is_roundtrip(rp, idp, events)


class TestTtl:

    def test_default_ttl(self):
        assert ROUNDTRIP_TTL_MS == 30_000

    def test_exactly_at_ttl_accepted(self):
        events = [ev(0, "rp.example"), ev(1_000, "idp.example"), ev(31_000, "rp.example")]
        assert is_roundtrip("rp.example", "idp.example", events)

    def test_beyond_ttl_rejected(self):
        events = [ev(0, "rp.example"), ev(1_000, "idp.example"), ev(31_001, "rp.example")]
        assert not is_roundtrip("rp.example", "idp.example", events)

    def test_custom_ttl(self):
        events = [ev(0, "rp.example"), ev(1_000, "idp.example"), ev(3_000, "rp.example")]
        assert not is_roundtrip("rp.example", "idp.example", events, ttl=1_000)


class TestTabLinkage:

    def test_mismatched_tabs_without_opener_rejected(self):
        events = [ev(0, "rp.example", 1), ev(1_000, "idp.example", 2), ev(2_000, "rp.example", 3)]
        assert not is_roundtrip("rp.example", "idp.example", events)

    def test_backward_opened_by_forward(self):
        events = [
            ev(0, "rp.example", 1),
            ev(1_000, "idp.example", 2),
            ev(2_000, "rp.example", 3, opener_tab_id=2),
        ]
        assert is_roundtrip("rp.example", "idp.example", events)

    def test_forward_opened_by_backward(self):
        """Popup flow: IdP popup (tab 2) opened by the RP tab (tab 1)."""
        events = [
            ev(0, "rp.example", 1),
            ev(1_000, "idp.example", 2, opener_tab_id=1),
            ev(2_000, "rp.example", 1),
        ]
        assert is_roundtrip("rp.example", "idp.example", events)

    def test_missing_tab_ids_skip_check(self):
        events = [
            ev(0, "rp.example", None),
            ev(1_000, "idp.example", None),
            ev(2_000, "rp.example", 9),
        ]
        assert is_roundtrip("rp.example", "idp.example", events)
