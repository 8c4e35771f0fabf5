"""
PDTM Round-trip Detector

Decides whether a navigation sequence is a completed authentication hop:
    RP -> IdP (forward leg) ... -> RP (backward leg), within a TTL,
in one tab context (same tab, or tabs linked by an opener relationship).
"""

from typing import Optional, Sequence

from engine.session_graph import SessionEvent


ROUNDTRIP_TTL_MS = 30_000.0


def _tabs_linked(forward: SessionEvent, backward: SessionEvent) -> bool:
    """Same tab, or one leg's tab was opened by the other's."""
    if forward.tab_id is None or backward.tab_id is None:
        # Legacy/partial data: no context check possible
        return True
    if forward.tab_id == backward.tab_id:
        return True
    return backward.opener_tab_id == forward.tab_id or forward.opener_tab_id == backward.tab_id


def is_roundtrip(
    rp_domain: Optional[str],
    idp_domain: Optional[str],
    events: Sequence[SessionEvent],
    ttl: float = ROUNDTRIP_TTL_MS,
) -> bool:
    """
    Check for a strict RP -> IdP -> RP sequence.

    The forward leg is the first IdP event whose immediate predecessor is the
    RP; an IdP visit that merely appears somewhere in history does not count.
    The backward leg is the next later RP event.

    Args:
        rp_domain: Relying party candidate.
        idp_domain: Identity provider candidate.
        events: Session events of one context, any order.
        ttl: Maximum milliseconds between forward and backward legs.
    """
    if not rp_domain or not idp_domain or not events or len(events) < 2:
        return False

    ordered = sorted(events, key=lambda e: e.ts)

    forward_index = None
    for idx in range(1, len(ordered)):
        if ordered[idx].domain == idp_domain and ordered[idx - 1].domain == rp_domain:
            forward_index = idx
            break
    if forward_index is None:
        return False

    forward = ordered[forward_index]
    backward = next(
        (e for e in ordered[forward_index + 1:] if e.domain == rp_domain),
        None,
    )
    if backward is None:
        return False

    if backward.ts - forward.ts > ttl:
        return False

    return _tabs_linked(forward, backward)
