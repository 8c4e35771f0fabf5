"""
PDTM Aggregate Store

Key/value backend for the durable aggregates. Every bucket is one JSON map,
read in full and written in full; the serial work queue stands in for a
transaction.

Key Schemas (redis backend):
    PDTM:domain_state     → {domain: DomainState}
    PDTM:activity_state   → {domain: DomainActivityState}
    PDTM:risk_state       → {domain: RiskRecord}
    PDTM:user_overrides   → {domain: UserOverride}
    PDTM:settings         → EngineSettings
    PDTM:last_visit       → {domain, ts} of the last recorded visit
"""

from __future__ import annotations

import copy
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError


logger = logging.getLogger(__name__)


class AggregateBucket(str, Enum):
    DOMAIN_STATE = "domain_state"
    ACTIVITY_STATE = "activity_state"
    RISK_STATE = "risk_state"
    USER_OVERRIDES = "user_overrides"
    SETTINGS = "settings"
    LAST_VISIT = "last_visit"


class StorageError(Exception):
    """Raised when the backing store cannot be read or written."""
    pass


class AggregateStore:
    """Bucket-level get/set interface."""

    def get(self, bucket: AggregateBucket) -> Dict[str, Any]:
        """Full bucket value; an empty dict if it was never written."""
        raise NotImplementedError

    def set(self, bucket: AggregateBucket, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class InMemoryAggregateStore(AggregateStore):
    """Process-local store. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    def get(self, bucket: AggregateBucket) -> Dict[str, Any]:
        return copy.deepcopy(self._data.get(AggregateBucket(bucket).value, {}))

    def set(self, bucket: AggregateBucket, value: Dict[str, Any]) -> None:
        self._data[AggregateBucket(bucket).value] = copy.deepcopy(value)

    def clear(self) -> None:
        self._data.clear()


class RedisAggregateStore(AggregateStore):
    """JSON-per-bucket store on Redis."""

    KEY_PREFIX = "PDTM"

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        if client is None:
            from storage.connection import get_redis_client
            client = get_redis_client()
        self.client = client

    def _key(self, bucket: AggregateBucket) -> str:
        return f"{self.KEY_PREFIX}:{AggregateBucket(bucket).value}"

    def get(self, bucket: AggregateBucket) -> Dict[str, Any]:
        key = self._key(bucket)
        try:
            raw = self.client.get(key)
        except RedisError as e:
            logger.error(f"Failed to read {key}: {e}")
            raise StorageError(f"read failed for {key}") from e

        if raw is None:
            return {}

        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt JSON at {key}: {e}")
            raise StorageError(f"corrupt value at {key}") from e

        if not isinstance(value, dict):
            raise StorageError(f"unexpected value type at {key}: {type(value).__name__}")
        return value

    def set(self, bucket: AggregateBucket, value: Dict[str, Any]) -> None:
        key = self._key(bucket)
        try:
            self.client.set(key, json.dumps(value))
        except RedisError as e:
            logger.error(f"Failed to write {key}: {e}")
            raise StorageError(f"write failed for {key}") from e

    def clear(self) -> None:
        try:
            self.client.delete(*(self._key(b) for b in AggregateBucket))
        except RedisError as e:
            logger.error(f"Failed to clear aggregate buckets: {e}")
            raise StorageError("clear failed") from e
