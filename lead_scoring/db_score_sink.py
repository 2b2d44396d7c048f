"""
Database-backed ScoreSink for CarBot.

Implements the ScoreSink protocol using the repository layer. Each
write runs in its own session so a failed insert cannot poison the
caller's transaction.
"""

import logging
from datetime import timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.repositories import LeadScoreRepository

from .score_sink import ScoreRecord

logger = logging.getLogger(__name__)


class DbScoreSink:
    """Persistent score history backed by the lead_scores table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def store(self, record: ScoreRecord) -> Optional[str]:
        """Insert the record and return its row id."""
        created_at = record.created_at
        if created_at.tzinfo is not None:
            created_at = created_at.astimezone(timezone.utc).replace(tzinfo=None)

        async with self._session_factory() as session:
            async with session.begin():
                row = await LeadScoreRepository(session).insert(
                    lead_id=record.lead_id,
                    kunde_id=record.kunde_id,
                    total_score=record.total_score,
                    score_breakdown=record.score_breakdown,
                    classification=record.classification,
                    priority=record.priority,
                    estimated_value=record.estimated_value,
                    recommendations=record.recommendations,
                    created_at=created_at,
                )
                record_id = row.id

        logger.debug(f"Stored score {record_id} for lead {record.lead_id}")
        return record_id
