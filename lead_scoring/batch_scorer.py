"""
Batch Lead Scorer for CarBot.

Wraps LeadScorer to score a list of leads one after another, pausing
periodically so the score store is not flooded. One lead's failure
never aborts the batch.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .scoring_model import LeadScore, LeadScorer

logger = logging.getLogger(__name__)

HistoryLoader = Callable[[str], Awaitable[Optional[List[Any]]]]
ContextLoader = Callable[[str], Awaitable[Optional[Any]]]


@dataclass
class BatchScoreResult:
    """Score for one lead of a batch."""
    lead: Any
    score: LeadScore

    @property
    def lead_id(self) -> Optional[str]:
        return _lead_field(self.lead, "id")

    def to_dict(self) -> Dict[str, Any]:
        lead = dict(self.lead) if isinstance(self.lead, dict) else {"id": self.lead_id}
        return {**lead, "score": self.score.to_dict()}


def _lead_field(lead: Any, name: str) -> Optional[Any]:
    if isinstance(lead, dict):
        return lead.get(name)
    return getattr(lead, name, None)


class BatchScorer:
    """
    Sequential batch scorer.

    Chat history and customer context are fetched per lead through
    optional async loaders keyed by the lead's tenant id (``kunde_id``).
    """

    def __init__(
        self,
        scorer: LeadScorer,
        history_loader: Optional[HistoryLoader] = None,
        context_loader: Optional[ContextLoader] = None,
        pause_every: int = 10,
        pause_seconds: float = 0.1,
    ):
        self.scorer = scorer
        self.history_loader = history_loader
        self.context_loader = context_loader
        self.pause_every = pause_every
        self.pause_seconds = pause_seconds

    async def score_batch_leads(
        self,
        leads: Sequence[Any],
        limit: int = 100,
        now: Optional[datetime] = None,
    ) -> List[BatchScoreResult]:
        """
        Score up to ``limit`` leads in order.

        Args:
            leads: Lead records (dicts or LeadInput)
            limit: Maximum number of leads to process
            now: Fixed reference time for lead ages

        Returns:
            One BatchScoreResult per processed lead
        """
        results: List[BatchScoreResult] = []

        for i, lead in enumerate(list(leads or [])[:limit]):
            kunde_id = _lead_field(lead, "kunde_id")
            history = await self._load(self.history_loader, kunde_id, "chat history")
            context = await self._load(self.context_loader, kunde_id, "customer context")

            score = await self.scorer.score_lead(lead, history or [], context or {}, now=now)
            results.append(BatchScoreResult(lead=lead, score=score))

            if self.pause_every and i % self.pause_every == 0 and self.pause_seconds > 0:
                await asyncio.sleep(self.pause_seconds)

        degraded = sum(1 for r in results if r.score.degraded)
        logger.info(f"Batch scored {len(results)} leads ({degraded} degraded)")
        return results

    async def _load(
        self, loader: Optional[Callable], kunde_id: Optional[str], what: str
    ) -> Optional[Any]:
        if loader is None or not kunde_id:
            return None
        try:
            return await loader(kunde_id)
        except Exception as e:
            logger.error(f"Failed to load {what} for {kunde_id}: {e}")
            return None
