"""
ScoreSink protocol for CarBot lead scoring.

Abstracts where lead score history is written so the scorer can work
with either an in-memory list or a database backend. Writes are
insert-only: a rescore produces a new record.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass
class ScoreRecord:
    """One historical lead score row."""
    lead_id: Optional[str]
    kunde_id: Optional[str]
    total_score: int
    score_breakdown: Dict[str, int]
    classification: str
    priority: str
    estimated_value: int
    recommendations: List[Dict[str, str]] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "kunde_id": self.kunde_id,
            "total_score": self.total_score,
            "score_breakdown": dict(self.score_breakdown),
            "classification": self.classification,
            "priority": self.priority,
            "estimated_value": self.estimated_value,
            "recommendations": [dict(r) for r in self.recommendations],
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class StoreResult:
    """Outcome of a persistence attempt."""
    ok: bool
    record_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "record_id": self.record_id, "error": self.error}


@runtime_checkable
class ScoreSink(Protocol):
    """Protocol for lead score persistence."""

    async def store(self, record: ScoreRecord) -> Optional[str]:
        """Insert a score record, returning its id if the backend assigns one."""
        ...


class InMemoryScoreSink:
    """Keeps score records in a list. Used in tests and without a database."""

    def __init__(self, max_records: int = 10000):
        self.max_records = max_records
        self.records: List[ScoreRecord] = []

    async def store(self, record: ScoreRecord) -> Optional[str]:
        self.records.append(record)
        if len(self.records) > self.max_records:
            del self.records[: len(self.records) - self.max_records]
        return str(uuid.uuid4())

    def for_lead(self, lead_id: str) -> List[ScoreRecord]:
        return [r for r in self.records if r.lead_id == lead_id]


class NullScoreSink:
    """Discards every record."""

    async def store(self, record: ScoreRecord) -> Optional[str]:
        logger.debug(f"Discarding score record for lead {record.lead_id}")
        return None
