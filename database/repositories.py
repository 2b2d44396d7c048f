"""
Repository classes for CarBot data access layer.

Each repository encapsulates CRUD operations for a specific model.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import Customer, Lead, ChatMessage, LeadScoreRecord

logger = logging.getLogger(__name__)


class CustomerRepository:
    """Data access for customers (tenants)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Customer:
        customer = Customer(**kwargs)
        self.session.add(customer)
        await self.session.flush()
        return customer

    async def get_by_slug(self, slug: str) -> Optional[Customer]:
        result = await self.session.execute(
            select(Customer).where(Customer.slug == slug)
        )
        return result.scalar_one_or_none()

    async def get_context(self, slug: str) -> Dict[str, Any]:
        """Scoring context for a tenant; empty when unknown."""
        customer = await self.get_by_slug(slug)
        if not customer:
            return {}
        return {"average_job_value": customer.average_job_value}


class ChatMessageRepository:
    """Data access for widget chat messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, client_key: str, role: str, content: str, **kwargs) -> ChatMessage:
        msg = ChatMessage(client_key=client_key, role=role, content=content, **kwargs)
        self.session.add(msg)
        await self.session.flush()
        return msg

    async def get_history(self, client_key: str, limit: int = 200) -> List[Dict[str, Any]]:
        """Messages for a tenant key, oldest first, as role/content/timestamp dicts."""
        result = await self.session.execute(
            select(ChatMessage)
            .where(ChatMessage.client_key == client_key)
            .order_by(ChatMessage.created_at.asc())
            .limit(limit)
        )
        return [
            {"role": m.role, "content": m.content, "timestamp": m.created_at}
            for m in result.scalars().all()
        ]


class LeadRepository:
    """Data access for leads and their score summary."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Lead:
        lead = Lead(**kwargs)
        self.session.add(lead)
        await self.session.flush()
        return lead

    async def get_by_id(self, lead_id: str) -> Optional[Lead]:
        result = await self.session.execute(
            select(Lead).where(Lead.id == lead_id)
        )
        return result.scalar_one_or_none()

    async def list_recent_by_customer(
        self, kunde_id: str, since: datetime
    ) -> List[Lead]:
        result = await self.session.execute(
            select(Lead)
            .where(Lead.kunde_id == kunde_id, Lead.created_at >= since)
            .order_by(Lead.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_score(self, lead_id: str, score: Dict[str, Any]) -> Optional[Lead]:
        """Copy the latest score summary onto the lead row."""
        lead = await self.get_by_id(lead_id)
        if not lead:
            return None
        lead.lead_score = score["total"]
        lead.score_classification = score["classification"]
        lead.priority = score["priority"]
        lead.estimated_value = score["estimated_value"]
        lead.last_scored_at = datetime.utcnow()
        await self.session.flush()
        return lead

    async def apply_manual_score(
        self,
        lead_id: str,
        manual_score: Optional[int] = None,
        priority: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[Lead]:
        lead = await self.get_by_id(lead_id)
        if not lead:
            return None
        if manual_score is not None:
            lead.lead_score = manual_score
        if priority is not None:
            lead.priority = priority
        if notes is not None:
            lead.scoring_notes = notes
        lead.manually_scored_at = datetime.utcnow()
        await self.session.flush()
        return lead

    async def search(
        self,
        lead_id: Optional[str] = None,
        kunde_id: Optional[str] = None,
        classification: Optional[str] = None,
        priority: Optional[str] = None,
        limit: int = 50,
    ) -> List[Lead]:
        """Leads with their score history, best score first."""
        q = select(Lead).options(selectinload(Lead.scores))
        if lead_id:
            q = q.where(Lead.id == lead_id)
        if kunde_id:
            q = q.where(Lead.kunde_id == kunde_id)
        if classification:
            q = q.where(Lead.score_classification == classification)
        if priority:
            q = q.where(Lead.priority == priority)
        q = q.order_by(Lead.lead_score.desc().nulls_last()).limit(limit)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def get_summary_stats(self, kunde_id: Optional[str] = None) -> Dict[str, Any]:
        """Counts by classification/priority, average score and total value."""
        base = select(Lead)
        if kunde_id:
            base = base.where(Lead.kunde_id == kunde_id)
        sub = base.subquery()

        totals = (await self.session.execute(
            select(
                func.count(sub.c.id).label("count"),
                func.avg(sub.c.lead_score).label("avg_score"),
                func.sum(sub.c.estimated_value).label("total_value"),
            )
        )).one()

        by_class = dict((await self.session.execute(
            select(sub.c.score_classification, func.count(sub.c.id))
            .group_by(sub.c.score_classification)
        )).all())

        by_priority = dict((await self.session.execute(
            select(sub.c.priority, func.count(sub.c.id))
            .group_by(sub.c.priority)
        )).all())

        return {
            "total": totals.count or 0,
            "classifications": {
                "hot": by_class.get("Hot", 0),
                "warm": by_class.get("Warm", 0),
                "cold": by_class.get("Cold", 0),
                "very_cold": by_class.get("Very Cold", 0),
            },
            "priorities": {
                "high": by_priority.get("High", 0),
                "medium": by_priority.get("Medium", 0),
                "low": by_priority.get("Low", 0),
            },
            "average_score": round(float(totals.avg_score)) if totals.avg_score is not None else 0,
            "total_estimated_value": int(totals.total_value or 0),
        }


class LeadScoreRepository:
    """Insert-only data access for lead score history."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, **kwargs) -> LeadScoreRecord:
        record = LeadScoreRecord(**kwargs)
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_for_lead(self, lead_id: str) -> List[LeadScoreRecord]:
        result = await self.session.execute(
            select(LeadScoreRecord)
            .where(LeadScoreRecord.lead_id == lead_id)
            .order_by(LeadScoreRecord.created_at.asc())
        )
        return list(result.scalars().all())
