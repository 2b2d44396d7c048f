"""
Lead Scoring API Routes for CarBot.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.repositories import ChatMessageRepository, CustomerRepository, LeadRepository
from database.session import get_optional_db, session_scope
from lead_scoring.scoring_model import LeadPriority, LeadScore

from ..cache import cached_query
from ..middleware.metrics import record_lead_score
from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()

SCORE_ACTIONS = ("score", "batch", "rescore")


# Models
class ScoreRequest(BaseModel):
    """Scoring request: a single lead, a batch, or a tenant rescore."""
    action: str = "score"
    lead_id: Optional[str] = None
    lead_data: Optional[Dict[str, Any]] = None
    chat_history: Optional[List[Dict[str, Any]]] = None
    customer_context: Optional[Dict[str, Any]] = None
    leads: List[Any] = []
    customer_slug: Optional[str] = None


class ManualScoreUpdate(BaseModel):
    """Manual override of a lead's score summary."""
    lead_id: Optional[str] = None
    manual_score: Optional[int] = Field(default=None, ge=0, le=100)
    priority: Optional[LeadPriority] = None
    notes: Optional[str] = None


def _require_db(db: Optional[AsyncSession]) -> AsyncSession:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def _summary_keys(kunde_id: Optional[str]) -> List[str]:
    keys = ["lead_summary:*"]
    if kunde_id:
        keys.append(f"lead_summary:{kunde_id}")
    return keys


@router.post("/leads/score")
async def score_leads(
    request: ScoreRequest,
    db: Optional[AsyncSession] = Depends(get_optional_db),
):
    """
    Score leads.

    Actions:
    - score: one lead, by ``lead_id`` or inline ``lead_data``
    - batch: the leads in ``leads``
    - rescore: every recent lead of ``customer_slug``
    """
    if request.action not in SCORE_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")

    try:
        if request.action == "score":
            return await _score_single_lead(request, db)
        if request.action == "batch":
            return await _score_batch(request.leads)
        return await _rescore_customer(request.customer_slug, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Lead scoring API error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to score lead")


@router.get("/leads/scores")
async def get_lead_scores(
    lead_id: Optional[str] = None,
    customer: Optional[str] = None,
    classification: Optional[str] = None,
    priority: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Optional[AsyncSession] = Depends(get_optional_db),
):
    """Leads with their score history, plus summary statistics."""
    repo = LeadRepository(_require_db(db))
    services = get_services()

    leads = await repo.search(
        lead_id=lead_id,
        kunde_id=customer,
        classification=classification,
        priority=priority,
        limit=limit,
    )

    summary = await cached_query(
        services.cache,
        _summary_keys(customer)[-1],
        lambda: repo.get_summary_stats(customer),
        ttl=services.settings.cache_ttl_seconds,
        cache_type="lead_summary",
    )

    return {
        "success": True,
        "leads": [
            {**lead.to_dict(), "lead_scores": [s.to_dict() for s in lead.scores]}
            for lead in leads
        ],
        "summary": summary,
    }


@router.put("/leads/scores")
async def update_lead_score(
    update: ManualScoreUpdate,
    db: Optional[AsyncSession] = Depends(get_optional_db),
):
    """Manually override a lead's score, priority or notes."""
    if not update.lead_id:
        raise HTTPException(status_code=400, detail="Lead ID required")

    lead = await LeadRepository(_require_db(db)).apply_manual_score(
        update.lead_id,
        manual_score=update.manual_score,
        priority=update.priority.value if update.priority else None,
        notes=update.notes,
    )
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")

    _invalidate_summary(lead.kunde_id)
    logger.info(f"Lead score manually updated: {update.lead_id}")

    return {"success": True, "lead": lead.to_dict()}


# Helper functions
async def _score_single_lead(request: ScoreRequest, db: Optional[AsyncSession]) -> Dict[str, Any]:
    lead_data = request.lead_data

    if request.lead_id and not lead_data:
        lead = await LeadRepository(_require_db(db)).get_by_id(request.lead_id)
        if not lead:
            raise HTTPException(status_code=404, detail="Lead not found")
        lead_data = lead.to_dict()

    if not lead_data:
        raise HTTPException(status_code=400, detail="lead_data or lead_id required")

    history, context = await _load_scoring_inputs(db, lead_data)
    if request.chat_history is not None:
        history = request.chat_history
    if request.customer_context is not None:
        context = request.customer_context

    score = await get_services().lead_scorer.score_lead(lead_data, history, context)
    await _apply_score(db, lead_data, score)

    return {
        "success": True,
        "lead_id": lead_data.get("id"),
        "score": score.to_dict(),
    }


async def _score_batch(leads: List[Any]) -> Dict[str, Any]:
    """Score leads in concurrent groups, pausing between groups."""
    settings = get_services().settings
    batch_size = max(1, settings.api_batch_size)
    results: List[Dict[str, Any]] = []

    for start in range(0, len(leads), batch_size):
        group = leads[start:start + batch_size]
        results.extend(await asyncio.gather(*(_score_batch_item(lead) for lead in group)))

        if start + batch_size < len(leads) and settings.api_batch_pause_seconds > 0:
            await asyncio.sleep(settings.api_batch_pause_seconds)

    successful = sum(1 for r in results if r["success"])
    return {
        "success": True,
        "processed": len(results),
        "successful": successful,
        "failed": len(results) - successful,
        "results": results,
    }


async def _score_batch_item(lead: Any) -> Dict[str, Any]:
    lead_id = lead.get("id") if isinstance(lead, dict) else None
    try:
        if not isinstance(lead, dict):
            raise ValueError("lead must be an object")
        async with session_scope() as db:
            history, context = await _load_scoring_inputs(db, lead)
            score = await get_services().lead_scorer.score_lead(lead, history, context)
            await _apply_score(db, lead, score)
        return {"lead_id": lead_id, "score": score.to_dict(), "success": True}
    except Exception as e:
        logger.error(f"Batch scoring failed for lead {lead_id}: {e}")
        return {"lead_id": lead_id, "error": str(e), "success": False}


async def _rescore_customer(customer_slug: Optional[str], db: Optional[AsyncSession]) -> Dict[str, Any]:
    if not customer_slug:
        raise HTTPException(status_code=400, detail="customer_slug required")

    settings = get_services().settings
    since = datetime.utcnow() - timedelta(days=settings.rescore_window_days)
    leads = await LeadRepository(_require_db(db)).list_recent_by_customer(customer_slug, since)

    if not leads:
        return {"success": True, "message": "No leads found to rescore"}

    return await _score_batch([lead.to_dict() for lead in leads])


async def _load_scoring_inputs(db: Optional[AsyncSession], lead: Dict[str, Any]):
    """Chat history and customer context for the lead's tenant."""
    kunde_id = lead.get("kunde_id")
    if db is None or not kunde_id:
        return [], {}
    history = await ChatMessageRepository(db).get_history(kunde_id)
    context = await CustomerRepository(db).get_context(kunde_id)
    return history, context


async def _apply_score(db: Optional[AsyncSession], lead: Dict[str, Any], score: LeadScore) -> None:
    """Record metrics and copy a computed score onto the stored lead."""
    record_lead_score(score.total, score.classification.value, degraded=score.degraded)
    if score.degraded:
        return

    if db is not None and lead.get("id"):
        await LeadRepository(db).update_score(str(lead["id"]), score.to_dict())
    _invalidate_summary(lead.get("kunde_id"))


def _invalidate_summary(kunde_id: Optional[str]) -> None:
    cache = get_services().cache
    if cache is None:
        return
    for key in _summary_keys(kunde_id):
        cache.evict(key)
