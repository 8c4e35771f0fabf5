"""
PDTM Engine Configuration

Environment-driven settings for the engine and its storage backend.

Environment:
    PDTM_STORE_BACKEND           memory | redis (default: memory)
    PDTM_ROUNDTRIP_TTL_MS        round-trip window (default: 30000)
    PDTM_SESSION_TTL_MS          idle TTL of a temporal context (default: 60000)
    PDTM_MAX_CONTEXTS            live context cap (default: 200)
    PDTM_MAX_EVENTS_PER_CONTEXT  ring buffer size (default: 20)
    PDTM_TAB_TTL_MS              idle TTL of a tab node (default: 3600000)
    PDTM_GC_PROBABILITY          opportunistic prune rate (default: 0.1)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from engine.processors.roundtrip import ROUNDTRIP_TTL_MS
from engine.session_gc import OPPORTUNISTIC_GC_PROBABILITY
from engine.session_graph import (
    MAX_CONTEXTS,
    MAX_EVENTS_PER_CONTEXT,
    TAB_TTL_MS,
    TEMPORAL_TTL_MS,
)


logger = logging.getLogger(__name__)


STORE_BACKENDS = ("memory", "redis")


class ConfigError(ValueError):
    """Raised when an environment value cannot be used."""
    pass


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    store_backend: str = "memory"
    roundtrip_ttl_ms: float = ROUNDTRIP_TTL_MS
    session_ttl_ms: float = TEMPORAL_TTL_MS
    max_contexts: int = MAX_CONTEXTS
    max_events_per_context: int = MAX_EVENTS_PER_CONTEXT
    tab_ttl_ms: float = TAB_TTL_MS
    gc_probability: float = OPPORTUNISTIC_GC_PROBABILITY

    @classmethod
    def from_env(cls) -> EngineConfig:
        backend = os.getenv("PDTM_STORE_BACKEND", "memory").strip().lower()
        if backend not in STORE_BACKENDS:
            raise ConfigError(f"PDTM_STORE_BACKEND must be one of {STORE_BACKENDS}, got {backend!r}")

        probability = _env_float("PDTM_GC_PROBABILITY", OPPORTUNISTIC_GC_PROBABILITY)
        if not 0.0 <= probability <= 1.0:
            raise ConfigError(f"PDTM_GC_PROBABILITY must be within [0, 1], got {probability}")

        config = cls(
            store_backend=backend,
            roundtrip_ttl_ms=_env_float("PDTM_ROUNDTRIP_TTL_MS", ROUNDTRIP_TTL_MS),
            session_ttl_ms=_env_float("PDTM_SESSION_TTL_MS", TEMPORAL_TTL_MS),
            max_contexts=_env_int("PDTM_MAX_CONTEXTS", MAX_CONTEXTS),
            max_events_per_context=_env_int("PDTM_MAX_EVENTS_PER_CONTEXT", MAX_EVENTS_PER_CONTEXT),
            tab_ttl_ms=_env_float("PDTM_TAB_TTL_MS", TAB_TTL_MS),
            gc_probability=probability,
        )
        logger.debug(f"Engine config loaded: {config}")
        return config
