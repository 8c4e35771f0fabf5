"""
PDTM Session Graph Store

In-memory "hot storage" for ephemeral navigation structure:
- Tab graph: tab id -> TabNode (who opened whom, when last seen)
- Temporal graph: context id -> bounded, time-ordered SessionEvent list

A context id is the root tab reached by walking the opener chain, so a popup
and the tab that spawned it share one temporal sequence. Stored events carry
only the reduced domain, never path, query or page content.

All mutations are expected to arrive through the engine's serialized work
queue; the store itself holds no locks.

Usage:
    store = SessionGraphStore()
    store.record_opener(target_tab=7, source_tab=3, overwrite=True)
    store.record_event(7, "https://idp.example/authorize?...", EventKind.COMMITTED)
    events = store.get_context(7)
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from engine.processors.url_signals import reduced_domain_of
from engine.schemas.signals import EventKind


logger = logging.getLogger(__name__)


# =============================================================================
# Defaults
# =============================================================================

MAX_EVENTS_PER_CONTEXT = 20
MAX_CONTEXTS = 200
TEMPORAL_TTL_MS = 60_000.0
TAB_TTL_MS = 3_600_000.0


def now_ms() -> float:
    return time.time() * 1000.0


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class TabNode:
    """A browsing context in the tab graph."""

    tab_id: int
    """Opaque browser tab identifier."""

    created_at: float
    """Milliseconds since epoch when the node was first seen."""

    last_seen_at: float
    """Milliseconds since epoch of the last opener/navigation touching this tab."""

    opener_tab_id: Optional[int] = None
    """Tab that spawned this one, if known."""


@dataclass(frozen=True)
class SessionEvent:
    """Privacy-reduced navigation event."""
    ts: float
    domain: str
    tab_id: Optional[int] = None
    opener_tab_id: Optional[int] = None
    kind: EventKind = EventKind.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


@dataclass
class TemporalContext:
    """Ring buffer of events for one context id."""
    events: List[SessionEvent] = field(default_factory=list)
    updated_at: float = 0.0


# =============================================================================
# Store
# =============================================================================

class SessionGraphStore:
    """
    Arena of TabNodes plus per-context temporal sequences.

    Attributes:
        max_events_per_context: Ring buffer size per context.
        max_contexts: Live context cap enforced by prune().
        temporal_ttl_ms: Idle time after which a context is prunable.
        tab_ttl_ms: Idle time after which a tab node is prunable.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        max_events_per_context: int = MAX_EVENTS_PER_CONTEXT,
        max_contexts: int = MAX_CONTEXTS,
        temporal_ttl_ms: float = TEMPORAL_TTL_MS,
        tab_ttl_ms: float = TAB_TTL_MS,
    ) -> None:
        self._clock = clock or now_ms
        self.max_events_per_context = max_events_per_context
        self.max_contexts = max_contexts
        self.temporal_ttl_ms = temporal_ttl_ms
        self.tab_ttl_ms = tab_ttl_ms

        self._tabs: Dict[int, TabNode] = {}
        self._contexts: Dict[int, TemporalContext] = {}

    # -------------------------------------------------------------------------
    # Tab Graph
    # -------------------------------------------------------------------------

    def _ensure_tab(self, tab_id: int, now: float) -> TabNode:
        node = self._tabs.get(tab_id)
        if node is None:
            node = TabNode(tab_id=tab_id, created_at=now, last_seen_at=now)
            self._tabs[tab_id] = node
        else:
            node.last_seen_at = now
        return node

    def record_opener(self, target_tab: int, source_tab: int, overwrite: bool = False) -> bool:
        """
        Record that source_tab opened target_tab.

        An existing opener is only replaced when overwrite is True (the
        browser reported the relationship authoritatively).

        Returns:
            False if the linkage was malformed and dropped.
        """
        if target_tab is None or source_tab is None or target_tab == source_tab:
            logger.debug(f"Dropping malformed opener link {source_tab} -> {target_tab}")
            return False

        now = self._clock()
        target = self._ensure_tab(target_tab, now)
        if overwrite or target.opener_tab_id is None:
            target.opener_tab_id = source_tab

        self._ensure_tab(source_tab, now)
        return True

    def get_tab(self, tab_id: int) -> Optional[TabNode]:
        return self._tabs.get(tab_id)

    def get_opener(self, tab_id: Optional[int]) -> Optional[int]:
        if tab_id is None:
            return None
        node = self._tabs.get(tab_id)
        return node.opener_tab_id if node else None

    def remove_tab(self, tab_id: int) -> bool:
        """Drop a tab node. Its events stay until TTL/capacity pruning."""
        return self._tabs.pop(tab_id, None) is not None

    def resolve_context_id(self, tab_id: int) -> int:
        """
        Walk the opener chain up to its root.

        A re-entered tab id (cycle) is treated as its own root.
        """
        visited = set()
        current = tab_id
        while True:
            if current in visited:
                return current
            visited.add(current)

            node = self._tabs.get(current)
            if node is None or node.opener_tab_id is None:
                return current
            current = node.opener_tab_id

    # -------------------------------------------------------------------------
    # Temporal Graph
    # -------------------------------------------------------------------------

    def record_event(
        self,
        tab_id: int,
        url: str,
        kind: EventKind = EventKind.COMPLETED,
    ) -> Optional[SessionEvent]:
        """
        Append a navigation event to the tab's context.

        Returns:
            The stored event, or None when the URL has no http(s) domain.
        """
        domain = reduced_domain_of(url)
        if not domain:
            return None

        now = self._clock()
        node = self._ensure_tab(tab_id, now)
        context_id = self.resolve_context_id(tab_id)

        event = SessionEvent(
            ts=now,
            domain=domain,
            tab_id=tab_id,
            opener_tab_id=node.opener_tab_id,
            kind=EventKind(kind),
        )

        context = self._contexts.get(context_id)
        if context is None:
            context = TemporalContext()
            self._contexts[context_id] = context

        context.events.append(event)
        if len(context.events) > self.max_events_per_context:
            context.events = context.events[-self.max_events_per_context:]
        context.updated_at = now

        return event

    def get_context(self, tab_id: Optional[int]) -> List[SessionEvent]:
        """Events of the tab's resolved context (empty if none)."""
        if tab_id is None:
            return []
        context = self._contexts.get(self.resolve_context_id(tab_id))
        return list(context.events) if context else []

    def last_domain_for_tab(self, tab_id: Optional[int]) -> Optional[str]:
        """Most recent domain recorded for a specific tab in its context."""
        for event in reversed(self.get_context(tab_id)):
            if event.tab_id == tab_id:
                return event.domain
        return None

    # -------------------------------------------------------------------------
    # Pruning
    # -------------------------------------------------------------------------

    def prune(self) -> bool:
        """
        Apply TTL and capacity limits.

        1. Drop contexts idle longer than temporal_ttl_ms
        2. Evict oldest-updated contexts beyond max_contexts
        3. Drop tab nodes unseen for longer than tab_ttl_ms

        Returns:
            True if anything was removed.
        """
        now = self._clock()
        changed = False

        for context_id in list(self._contexts):
            if now - self._contexts[context_id].updated_at > self.temporal_ttl_ms:
                del self._contexts[context_id]
                changed = True

        overflow = len(self._contexts) - self.max_contexts
        if overflow > 0:
            oldest = sorted(self._contexts, key=lambda cid: self._contexts[cid].updated_at)
            for context_id in oldest[:overflow]:
                del self._contexts[context_id]
            changed = True

        for tab_id in list(self._tabs):
            if now - self._tabs[tab_id].last_seen_at > self.tab_ttl_ms:
                del self._tabs[tab_id]
                changed = True

        return changed

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def context_count(self) -> int:
        return len(self._contexts)

    @property
    def tab_count(self) -> int:
        return len(self._tabs)

    def reset(self) -> None:
        """Drop all tabs and contexts (factory reset, tests)."""
        self._tabs.clear()
        self._contexts.clear()
