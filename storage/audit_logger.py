"""
PDTM Audit Logger

Best-effort writer that inserts one row per classification into the
Supabase `classification_audit` table.

Only privacy-reduced data is written: the reduced domain, the activity
level, evidence flags and scores. URLs, paths and query strings never
reach this module.

Schema:
    classification_audit (
        event_id   TEXT PRIMARY KEY,
        payload    JSONB,
        created_at TIMESTAMPTZ DEFAULT now()
    )
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from supabase import create_client, Client

from engine.schemas.outputs import ActivityEstimation

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Builds and inserts audit entries for classifications.

    All writes are best-effort: errors are logged but never raised, so the
    classification pipeline is never disrupted by the audit sink.
    """

    ENGINE_VERSION = "pdtm-1.0.0"
    TABLE = "classification_audit"

    def __init__(self, client: Optional[Client] = None) -> None:
        if client is not None:
            self._client: Optional[Client] = client
            return

        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")
        if not url or not key:
            logger.warning("Supabase credentials missing, audit logging disabled")
            self._client = None
            return
        self._client = create_client(url, key)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def log(
        self,
        domain: str,
        estimation: ActivityEstimation,
        source: str = "navigation",
    ) -> None:
        """
        Build and insert an audit entry.

        Args:
            domain:     Reduced domain that was classified.
            estimation: The classifier output.
            source:     navigation | dom_signal | api
        """
        if self._client is None:
            return

        try:
            entry = self.build_entry(domain, estimation, source)
            self._client.table(self.TABLE).insert({
                "event_id": entry["event_id"],
                "payload": entry,
            }).execute()
            logger.debug(f"Audit entry inserted: {entry['event_id']}")
        except Exception as e:
            logger.error(f"Audit entry insertion failed: {e}")

    # ------------------------------------------------------------------
    # Payload Builder
    # ------------------------------------------------------------------

    def build_entry(
        self,
        domain: str,
        estimation: ActivityEstimation,
        source: str,
    ) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "event_id": f"evt_{uuid.uuid4()}",
            "timestamp": now.isoformat(),
            "environment": os.getenv("PDTM_ENV", "production"),
            "source": source,
            "domain": domain,
            "classification": {
                "engine_version": self.ENGINE_VERSION,
                "level": estimation.level.value,
                "confidence": estimation.confidence.value,
                "numeric_confidence": estimation.numeric_confidence,
                "evidence_flags": list(estimation.evidence_flags),
                "rp_domain": estimation.rp_domain,
                "idp_domain": estimation.idp_domain,
            },
            "risk": {
                "score": estimation.risk_score,
                "confidence": estimation.risk_confidence.value,
                "management_state": estimation.management_state.value,
            },
        }
