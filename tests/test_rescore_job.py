"""Tests for the rescoring CLI job."""

import asyncio

import pytest

from config.settings import get_settings
from database.repositories import LeadRepository, LeadScoreRepository
from database.session import close_db, init_db, session_scope
from jobs.rescore import RescoreJob, summarize


@pytest.fixture
def job_db(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'job.db'}")
    monkeypatch.setenv("BATCH_PAUSE_SECONDS", "0")
    get_settings.cache_clear()
    yield get_settings().database_url
    get_settings.cache_clear()


def _run_job(database_url, dry_run):
    async def run():
        await init_db(database_url)
        try:
            async with session_scope() as session:
                repo = LeadRepository(session)
                hot = await repo.create(kunde_id="autohaus-mueller", anliegen="Sofort Hilfe, Bremsen kaputt")
                await repo.create(kunde_id="autohaus-mueller", anliegen="Frage")
                await repo.create(kunde_id="anderer-kunde", anliegen="Frage")
                hot_id = hot.id

            results = await RescoreJob(dry_run=dry_run).run("autohaus-mueller", limit=10)

            async with session_scope() as session:
                lead = await LeadRepository(session).get_by_id(hot_id)
                history = await LeadScoreRepository(session).list_for_lead(hot_id)
            return results, lead, history
        finally:
            await close_db()

    return asyncio.run(run())


class TestRescoreJob:
    def test_scores_and_persists(self, job_db):
        results, lead, history = _run_job(job_db, dry_run=False)
        assert len(results) == 2
        assert lead.lead_score is not None
        assert lead.last_scored_at is not None
        assert len(history) == 1
        assert history[0].total_score == lead.lead_score

    def test_dry_run_writes_nothing(self, job_db):
        results, lead, history = _run_job(job_db, dry_run=True)
        assert len(results) == 2
        assert lead.lead_score is None
        assert history == []

    def test_summarize(self, job_db):
        results, _, _ = _run_job(job_db, dry_run=True)
        counts = summarize(results)
        assert counts["degraded"] == 0
        assert sum(v for k, v in counts.items() if k != "degraded") == 2
