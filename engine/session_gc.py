"""
PDTM Session GC

Keeps the session graph bounded. Pruning is strictly time- and
capacity-driven: closing a tab removes its node but never its events, since
an auth round-trip may legitimately complete after the initiating tab closed.

Triggers:
    - startup()          once when the engine starts
    - maybe_prune()      opportunistically on navigations (probabilistic)
    - on_tab_removed()   when the browser reports a closed tab
"""

import logging
import random
from typing import Callable, Optional

from engine.session_graph import SessionGraphStore


logger = logging.getLogger(__name__)


OPPORTUNISTIC_GC_PROBABILITY = 0.1


class SessionGC:
    """Pruning policy wrapper around a SessionGraphStore."""

    def __init__(
        self,
        store: SessionGraphStore,
        probability: float = OPPORTUNISTIC_GC_PROBABILITY,
        rng: Optional[Callable[[], float]] = None,
    ) -> None:
        self.store = store
        self.probability = probability
        self._rng = rng or random.random

    def startup(self) -> bool:
        changed = self.store.prune()
        if changed:
            logger.info("Startup session cleanup completed")
        return changed

    def maybe_prune(self) -> bool:
        """Prune with the configured probability. Returns True if it ran and changed state."""
        if self._rng() >= self.probability:
            return False
        return self.store.prune()

    def on_tab_removed(self, tab_id: int) -> bool:
        removed = self.store.remove_tab(tab_id)
        if removed:
            logger.debug(f"Tab {tab_id} removed from session graph")
        self.store.prune()
        return removed
