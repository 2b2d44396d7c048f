"""
Lead Scoring Module for CarBot.

This module scores workshop leads from their request, chat transcript
and contact details:
- Multilingual keyword signals (DE, EN, TR, PL)
- Five sub-scores (urgency, engagement, intent, demographics, behavior)
- Classification, priority, value estimate and recommendations
- Batch scoring and insert-only score history
"""

from .scoring_model import (
    LeadScorer,
    LeadScore,
    ScoreBreakdown,
    Recommendation,
    LeadClassification,
    LeadPriority,
    LeadInput,
    ChatMessage,
    CustomerContext,
)
from .batch_scorer import BatchScorer, BatchScoreResult
from .score_sink import ScoreSink, ScoreRecord, StoreResult, InMemoryScoreSink, NullScoreSink

__all__ = [
    "LeadScorer",
    "LeadScore",
    "ScoreBreakdown",
    "Recommendation",
    "LeadClassification",
    "LeadPriority",
    "LeadInput",
    "ChatMessage",
    "CustomerContext",
    "BatchScorer",
    "BatchScoreResult",
    "ScoreSink",
    "ScoreRecord",
    "StoreResult",
    "InMemoryScoreSink",
    "NullScoreSink",
]
