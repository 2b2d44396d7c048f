"""
CarBot lead rescoring CLI.

Usage:
    python -m jobs.rescore --customer autohaus-mueller
    python -m jobs.rescore --customer autohaus-mueller --limit 20 --dry-run
"""

import argparse
import asyncio
import logging
import sys
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List

from config.settings import get_settings
from database import session as db_session
from database.repositories import ChatMessageRepository, CustomerRepository, LeadRepository
from lead_scoring.batch_scorer import BatchScorer, BatchScoreResult
from lead_scoring.db_score_sink import DbScoreSink
from lead_scoring.score_sink import NullScoreSink
from lead_scoring.scoring_model import LeadScorer

logger = logging.getLogger(__name__)


class RescoreJob:
    """Rescore one tenant's recent leads against the database."""

    def __init__(self, dry_run: bool = False):
        self.settings = get_settings()
        self.dry_run = dry_run

    async def run(self, customer: str, limit: int) -> List[BatchScoreResult]:
        factory = db_session.get_session_factory()
        since = datetime.utcnow() - timedelta(days=self.settings.rescore_window_days)

        async with factory() as session:
            leads = await LeadRepository(session).list_recent_by_customer(customer, since)
            lead_dicts = [lead.to_dict() for lead in leads]

        logger.info(f"Found {len(lead_dicts)} leads for '{customer}' in the last "
                    f"{self.settings.rescore_window_days} days")
        if not lead_dicts:
            return []

        sink = NullScoreSink() if self.dry_run else DbScoreSink(factory)
        scorer = LeadScorer(sink=sink, default_job_value=self.settings.default_job_value)
        batch = BatchScorer(
            scorer,
            history_loader=self._load_history,
            context_loader=self._load_context,
            pause_every=self.settings.batch_pause_every,
            pause_seconds=self.settings.batch_pause_seconds,
        )
        results = await batch.score_batch_leads(lead_dicts, limit=limit)

        if not self.dry_run:
            await self._update_leads(results)
        return results

    async def _load_history(self, kunde_id: str):
        factory = db_session.get_session_factory()
        async with factory() as session:
            return await ChatMessageRepository(session).get_history(kunde_id)

    async def _load_context(self, kunde_id: str):
        factory = db_session.get_session_factory()
        async with factory() as session:
            return await CustomerRepository(session).get_context(kunde_id)

    async def _update_leads(self, results: List[BatchScoreResult]) -> None:
        async with db_session.session_scope() as session:
            repo = LeadRepository(session)
            for result in results:
                if result.lead_id and not result.score.degraded:
                    await repo.update_score(result.lead_id, result.score.to_dict())


def summarize(results: List[BatchScoreResult]) -> Dict[str, int]:
    counts = Counter(r.score.classification.value for r in results)
    counts["degraded"] = sum(1 for r in results if r.score.degraded)
    return dict(counts)


async def _main(customer: str, limit: int, dry_run: bool) -> List[BatchScoreResult]:
    settings = get_settings()
    await db_session.init_db(settings.database_url)
    try:
        return await RescoreJob(dry_run=dry_run).run(customer, limit)
    finally:
        await db_session.close_db()


def main():
    parser = argparse.ArgumentParser(description="CarBot Lead Rescoring")
    parser.add_argument("--customer", required=True, help="Customer slug (kunde_id)")
    parser.add_argument("--limit", type=int, default=None, help="Maximum leads to score")
    parser.add_argument("--dry-run", action="store_true", help="Score without writing results")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    settings = get_settings()
    if not settings.has_database:
        logger.error("DATABASE_URL required for rescoring")
        sys.exit(1)

    limit = args.limit if args.limit is not None else settings.batch_limit
    results = asyncio.run(_main(args.customer, limit, args.dry_run))

    for label, count in sorted(summarize(results).items()):
        print(f"{label}: {count}")
    logger.info(f"Rescored {len(results)} leads")


if __name__ == "__main__":
    main()
