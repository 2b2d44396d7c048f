"""
SQLAlchemy ORM models for CarBot lead scoring.

Persistent entities: customers (tenants), leads, chat messages and the
insert-only lead score history.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, ForeignKey, JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    average_job_value = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    kunde_id = Column(String(100), nullable=False, index=True)  # customer slug
    anliegen = Column(Text, nullable=True)
    fahrzeug = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    telefon = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Latest score summary (history lives in lead_scores)
    lead_score = Column(Integer, nullable=True)
    score_classification = Column(String(15), nullable=True)  # Hot, Warm, Cold, Very Cold
    priority = Column(String(10), nullable=True)  # High, Medium, Low
    estimated_value = Column(Integer, nullable=True)
    last_scored_at = Column(DateTime, nullable=True)
    scoring_notes = Column(Text, nullable=True)
    manually_scored_at = Column(DateTime, nullable=True)

    scores = relationship(
        "LeadScoreRecord",
        back_populates="lead",
        order_by="LeadScoreRecord.created_at",
    )

    __table_args__ = (
        Index("ix_lead_kunde_created", "kunde_id", "created_at"),
        Index("ix_lead_classification", "score_classification"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kunde_id": self.kunde_id,
            "anliegen": self.anliegen,
            "fahrzeug": self.fahrzeug,
            "name": self.name,
            "telefon": self.telefon,
            "email": self.email,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "lead_score": self.lead_score,
            "score_classification": self.score_classification,
            "priority": self.priority,
            "estimated_value": self.estimated_value,
            "last_scored_at": self.last_scored_at.isoformat() if self.last_scored_at else None,
            "scoring_notes": self.scoring_notes,
        }


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    client_key = Column(String(100), nullable=False, index=True)  # customer slug
    role = Column(String(10), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class LeadScoreRecord(Base):
    """Insert-only score history; a rescore adds a row."""
    __tablename__ = "lead_scores"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=True, index=True)
    kunde_id = Column(String(100), nullable=True, index=True)
    total_score = Column(Integer, nullable=False)
    score_breakdown = Column(JSON, default=dict)
    classification = Column(String(15), nullable=False)
    priority = Column(String(10), nullable=False)
    estimated_value = Column(Integer, nullable=False)
    recommendations = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)

    lead = relationship("Lead", back_populates="scores")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "total_score": self.total_score,
            "score_breakdown": self.score_breakdown,
            "classification": self.classification,
            "priority": self.priority,
            "estimated_value": self.estimated_value,
            "recommendations": self.recommendations,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
