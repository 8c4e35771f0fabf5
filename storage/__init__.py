"""
PDTM Storage Layer

Public exports for the aggregate store backends and repositories.
"""

from .aggregate_store import (
    AggregateBucket,
    AggregateStore,
    InMemoryAggregateStore,
    RedisAggregateStore,
    StorageError,
)
from .repository import (
    AggregateRepository,
    DomainActivityState,
    DomainState,
    EngineSettings,
    UserOverride,
)
from .audit_logger import AuditLogger

__all__ = [
    "AggregateBucket",
    "AggregateStore",
    "InMemoryAggregateStore",
    "RedisAggregateStore",
    "StorageError",
    "AggregateRepository",
    "DomainActivityState",
    "DomainState",
    "EngineSettings",
    "UserOverride",
    "AuditLogger",
]
