"""
PDTM Test Suite - Shared Pytest Fixtures

This conftest.py provides fixtures for all test categories including:
- A controllable millisecond clock
- Session graph, classifier and risk engine instances
- In-memory aggregate repository and a wired orchestrator
- Optional Redis client for backend tests

Usage:
    pytest tests/ -v -s
"""

import os
import pytest


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Manually advanced clock returning milliseconds."""

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# Redis Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def redis_client():
    """
    Session-scoped Redis client for backend tests.

    Skips when no Redis is reachable.
    """
    import redis

    host = os.environ.get("REDIS_HOST", "localhost")
    port = int(os.environ.get("REDIS_PORT", "6379"))
    password = os.environ.get("REDIS_PASSWORD")

    client = redis.Redis(
        host=host,
        port=port,
        password=password,
        decode_responses=True,
        socket_timeout=1.0,
    )
    try:
        client.ping()
    except redis.RedisError:
        pytest.skip(f"Redis not available at {host}:{port}")
    yield client
    client.close()


@pytest.fixture
def clean_redis(redis_client):
    """Flushes the PDTM keys after each test for isolation."""
    yield redis_client
    keys = redis_client.keys("PDTM:*")
    if keys:
        redis_client.delete(*keys)


# =============================================================================
# Engine Fixtures
# =============================================================================

@pytest.fixture
def session_store(clock):
    """SessionGraphStore driven by the fake clock."""
    from engine.session_graph import SessionGraphStore
    return SessionGraphStore(clock=clock)


@pytest.fixture
def risk_engine():
    from engine.models.risk import RiskStateEngine
    return RiskStateEngine()


@pytest.fixture
def classifier(session_store, risk_engine):
    from engine.models.classifier import ActivityClassifier
    return ActivityClassifier(session_store, risk_engine)


@pytest.fixture
def memory_store():
    from storage.aggregate_store import InMemoryAggregateStore
    return InMemoryAggregateStore()


@pytest.fixture
def repo(memory_store):
    from storage.repository import AggregateRepository
    return AggregateRepository(memory_store)


@pytest.fixture
def orchestrator(repo, session_store, classifier, clock):
    """Orchestrator with in-memory storage, GC never fires opportunistically."""
    from engine.orchestrator import ActivityOrchestrator
    from engine.session_gc import SessionGC

    gc = SessionGC(session_store, probability=0.1, rng=lambda: 1.0)
    return ActivityOrchestrator(
        repo=repo,
        graph=session_store,
        classifier=classifier,
        gc=gc,
        clock=clock,
    )
