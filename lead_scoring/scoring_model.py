"""
Lead Scoring Model for CarBot.

Rule-based point accumulation over the lead's request text, the chat
transcript and the contact fields. Five sub-scores are folded into a
weighted total from which classification, priority, estimated job value
and follow-up recommendations are derived.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    WrapValidator,
    field_validator,
)

from . import signals
from .score_sink import InMemoryScoreSink, ScoreRecord, ScoreSink, StoreResult

logger = logging.getLogger(__name__)


class LeadClassification(Enum):
    """Overall lead quality."""
    HOT = "Hot"              # total >= 80
    WARM = "Warm"            # total 60-79
    COLD = "Cold"            # total 40-59
    VERY_COLD = "Very Cold"  # total < 40


class LeadPriority(Enum):
    """How fast the workshop should act."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# ── Inputs ────────────────────────────────────────────


def _or_none(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
    """Unparseable values read as missing instead of rejecting the record."""
    try:
        return handler(value)
    except ValidationError:
        return None


LenientDatetime = Annotated[Optional[datetime], WrapValidator(_or_none)]
LenientText = Annotated[Optional[str], WrapValidator(_or_none)]


class LeadInput(BaseModel):
    """Lead record as supplied by the intake flow."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = None
    kunde_id: str
    anliegen: LenientText = ""
    fahrzeug: LenientText = None
    telefon: LenientText = None
    name: LenientText = None
    email: LenientText = None
    created_at: LenientDatetime = None
    timestamp: LenientDatetime = None


class ChatMessage(BaseModel):
    """One chat transcript entry."""
    model_config = ConfigDict(extra="ignore")

    role: str = ""
    content: LenientText = None
    timestamp: LenientDatetime = Field(
        default=None, validation_alias=AliasChoices("timestamp", "created_at")
    )

    @field_validator("role", mode="wrap")
    @classmethod
    def _role_or_blank(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> str:
        try:
            return handler(value)
        except ValidationError:
            return ""


class CustomerContext(BaseModel):
    """Tenant-level business parameters."""
    model_config = ConfigDict(extra="ignore")

    average_job_value: Annotated[Optional[float], WrapValidator(_or_none)] = Field(
        default=None,
        validation_alias=AliasChoices("averageJobValue", "average_job_value"),
    )


# ── Outputs ───────────────────────────────────────────


@dataclass
class ScoreBreakdown:
    """The five sub-scores, each clamped to 0-100."""
    urgency: int
    engagement: int
    intent: int
    demographics: int
    behavior: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "urgency": self.urgency,
            "engagement": self.engagement,
            "intent": self.intent,
            "demographics": self.demographics,
            "behavior": self.behavior,
        }


@dataclass
class Recommendation:
    type: str
    message: str
    priority: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "message": self.message, "priority": self.priority}


@dataclass
class LeadScore:
    """Lead score result."""
    total: int  # 0-100
    breakdown: ScoreBreakdown
    classification: LeadClassification
    priority: LeadPriority
    estimated_value: int
    recommendations: List[Recommendation] = field(default_factory=list)
    follow_up_suggestions: List[str] = field(default_factory=list)
    degraded: bool = False  # True when this is the fallback score
    error: Optional[str] = None
    persistence: Optional[StoreResult] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "breakdown": self.breakdown.to_dict(),
            "classification": self.classification.value,
            "priority": self.priority.value,
            "estimated_value": self.estimated_value,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "follow_up_suggestions": list(self.follow_up_suggestions),
            "degraded": self.degraded,
            "error": self.error,
            "persistence": self.persistence.to_dict() if self.persistence else None,
        }

    def to_record(self, lead: Optional[Mapping[str, Any]] = None) -> ScoreRecord:
        """Build the insert-only history row for this score."""
        lead = lead or {}
        lead_id = lead.get("id")
        return ScoreRecord(
            lead_id=str(lead_id) if lead_id is not None else None,
            kunde_id=lead.get("kunde_id"),
            total_score=self.total,
            score_breakdown=self.breakdown.to_dict(),
            classification=self.classification.value,
            priority=self.priority.value,
            estimated_value=self.estimated_value,
            recommendations=[r.to_dict() for r in self.recommendations],
        )


# ── Helpers ───────────────────────────────────────────


def _clamp(score: float) -> int:
    return int(min(100, max(0, score)))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_lead(lead_data: Any) -> LeadInput:
    if isinstance(lead_data, LeadInput):
        return lead_data
    if lead_data is None:
        raise ValueError("lead data is missing")
    return LeadInput.model_validate(lead_data)


def parse_history(chat_history: Optional[Iterable[Any]]) -> List[ChatMessage]:
    if not chat_history:
        return []
    return [
        m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m)
        for m in chat_history
    ]


def parse_context(customer_context: Any) -> CustomerContext:
    if isinstance(customer_context, CustomerContext):
        return customer_context
    if not customer_context:
        return CustomerContext()
    return CustomerContext.model_validate(customer_context)


_GERMAN_MOBILE = re.compile(r"^\+49[1-9]\d{10,11}$")
_GERMAN_LANDLINE = re.compile(r"^0[1-9]\d{9,10}$")
_WHITESPACE = re.compile(r"\s")


class LeadScorer:
    """
    Scores workshop leads from the request, the chat transcript and
    the contact details.

    Sub-scores (0-100):
    - urgency (base 50): distress words, time pressure, lead age
    - engagement (base 30): message count/length, questions, reply speed
    - intent (base 40): booking/service words, prices, vehicle, contact
    - demographics (base 50): email domain, phone format, full name
    - behavior (base 40): politeness, technical terms, vehicle specifics

    Aggregation:
    - total = weighted sum (weights below, summing to 1.0)
    - classification: Hot >= 80, Warm >= 60, Cold >= 40, else Very Cold
    - priority: 0.4 urgency + 0.3 intent + 0.3 engagement;
      High >= 70, Medium >= 50, else Low
    """

    WEIGHTS = {
        "urgency": 0.25,
        "engagement": 0.20,
        "intent": 0.25,
        "demographics": 0.15,
        "behavior": 0.15,
    }

    PRIORITY_WEIGHTS = {
        "urgency": 0.4,
        "intent": 0.3,
        "engagement": 0.3,
    }

    # Classification thresholds
    HOT_THRESHOLD = 80
    WARM_THRESHOLD = 60
    COLD_THRESHOLD = 40

    # Priority thresholds
    HIGH_PRIORITY_THRESHOLD = 70
    MEDIUM_PRIORITY_THRESHOLD = 50

    DEMOGRAPHICS_NEUTRAL = 50
    DEFAULT_JOB_VALUE = 300

    BUSINESS_DOMAINS = (".de", ".com", ".org", ".net")
    FREE_EMAIL_PROVIDERS = ("gmail", "yahoo", "hotmail", "web.de", "t-online")

    def __init__(
        self,
        sink: Optional[ScoreSink] = None,
        default_job_value: float = DEFAULT_JOB_VALUE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the lead scorer.

        Args:
            sink: Where score history is written (in-memory if omitted)
            default_job_value: Base value when the tenant has none
            clock: Returns "now"; injected for deterministic lead ages
        """
        self.sink = sink if sink is not None else InMemoryScoreSink()
        self.default_job_value = default_job_value
        self._clock = clock or _utcnow

    async def score_lead(
        self,
        lead_data: Any,
        chat_history: Optional[Sequence[Any]] = None,
        customer_context: Any = None,
        now: Optional[datetime] = None,
    ) -> LeadScore:
        """
        Score a lead and write the result to the score sink.

        Never raises: computation failures yield the default score,
        persistence failures are reported on ``LeadScore.persistence``.
        """
        lead_score = self.compute(lead_data, chat_history, customer_context, now=now)
        if not lead_score.degraded:
            lead_score.persistence = await self.store_lead_score(lead_data, lead_score)
        return lead_score

    def compute(
        self,
        lead_data: Any,
        chat_history: Optional[Sequence[Any]] = None,
        customer_context: Any = None,
        now: Optional[datetime] = None,
    ) -> LeadScore:
        """Calculate the lead score without persisting it."""
        try:
            lead = parse_lead(lead_data)
            messages = parse_history(chat_history)
            context = parse_context(customer_context)
            now = _as_utc(now or self._clock())

            breakdown = ScoreBreakdown(
                urgency=self.calculate_urgency_score(lead, messages, now),
                engagement=self.calculate_engagement_score(messages, now),
                intent=self.calculate_intent_score(lead, messages),
                demographics=self.calculate_demographics_score(lead),
                behavior=self.calculate_behavior_score(messages),
            )
            total = _round_half_up(self.weighted_total(breakdown))

            return LeadScore(
                total=total,
                breakdown=breakdown,
                classification=self.classify_lead(total),
                priority=self.calculate_priority(breakdown),
                estimated_value=self.estimate_lead_value(breakdown, context),
                recommendations=self.generate_recommendations(breakdown, lead),
                follow_up_suggestions=self.generate_follow_up_suggestions(breakdown),
            )
        except Exception as e:
            logger.error(f"Lead scoring error: {e}", exc_info=True)
            return self.default_score(reason=str(e))

    # ── Sub-scores ────────────────────────────────────

    def calculate_urgency_score(
        self, lead: LeadInput, messages: Sequence[ChatMessage], now: datetime
    ) -> int:
        """Distress language and lead freshness."""
        score = 50
        text = lead.anliegen

        score += 15 * len(signals.matched_keywords(text, signals.URGENCY_KEYWORDS))
        score += 10 * len(signals.matched_keywords(text, signals.TIME_PRESSURE_KEYWORDS))

        urgent_messages = sum(
            1 for msg in messages
            if msg.role == "user"
            and signals.contains_any(msg.content, signals.URGENCY_KEYWORDS)
        )
        score += urgent_messages * 8

        created = lead.timestamp or lead.created_at
        if created is not None:
            hours_old = (now - _as_utc(created)).total_seconds() / 3600
            if hours_old < 1:
                score += 20
            elif hours_old < 6:
                score += 15
            elif hours_old < 24:
                score += 10
            elif hours_old < 72:
                score += 5

        return _clamp(score)

    def calculate_engagement_score(
        self, messages: Sequence[ChatMessage], now: datetime
    ) -> int:
        """Depth and speed of the conversation."""
        score = 30
        if not messages:
            return score

        user_messages = [m for m in messages if m.role == "user"]
        count = len(user_messages)

        if count >= 10:
            score += 30
        elif count >= 5:
            score += 20
        elif count >= 3:
            score += 15
        elif count >= 2:
            score += 10

        if user_messages:
            avg_length = sum(len(m.content or "") for m in user_messages) / count
            if avg_length > 100:
                score += 15
            elif avg_length > 50:
                score += 10
            elif avg_length > 20:
                score += 5

        complex_questions = sum(
            1 for m in user_messages
            if signals.contains_any(m.content, signals.QUESTION_KEYWORDS)
        )
        score += complex_questions * 8

        # Assistant -> user reply latency
        response_times = []
        for prev, curr in zip(messages, messages[1:]):
            if prev.role == "assistant" and curr.role == "user":
                prev_time = _as_utc(prev.timestamp) if prev.timestamp else now
                curr_time = _as_utc(curr.timestamp) if curr.timestamp else now
                response_times.append((curr_time - prev_time).total_seconds())

        if response_times:
            minutes = sum(response_times) / len(response_times) / 60
            if minutes < 2:
                score += 15
            elif minutes < 5:
                score += 10
            elif minutes < 15:
                score += 5

        return _clamp(score)

    def calculate_intent_score(
        self, lead: LeadInput, messages: Sequence[ChatMessage]
    ) -> int:
        """Transactional language and readiness to share details."""
        score = 40
        text = lead.anliegen

        score += 20 * len(signals.matched_keywords(text, signals.PURCHASE_INTENT_KEYWORDS))
        score += 15 * len(signals.matched_keywords(text, signals.SERVICE_INTENT_KEYWORDS))
        score += 25 * len(signals.matched_keywords(text, signals.HIGH_VALUE_SERVICE_KEYWORDS))

        all_messages = signals.transcript(m.content for m in messages)
        for keyword in signals.PURCHASE_INTENT_KEYWORDS:
            score += 12 * signals.count_occurrences(all_messages, keyword)

        if signals.contains_any(all_messages, signals.PRICE_KEYWORDS):
            score += 20

        if lead.fahrzeug and len(lead.fahrzeug) > 5:
            score += 15

        if lead.telefon and lead.name:
            score += 15

        return _clamp(score)

    def calculate_demographics_score(self, lead: LeadInput) -> int:
        """Completeness and formality of the contact data."""
        score = self.DEMOGRAPHICS_NEUTRAL

        if lead.email:
            email = lead.email.lower()
            is_business = any(domain in email for domain in self.BUSINESS_DOMAINS) and not any(
                free in email for free in self.FREE_EMAIL_PROVIDERS
            )
            score += 20 if is_business else 10

        if lead.telefon:
            phone = _WHITESPACE.sub("", lead.telefon)
            if _GERMAN_MOBILE.match(phone) or _GERMAN_LANDLINE.match(phone):
                score += 15
            else:
                score += 10

        if lead.name:
            name_parts = lead.name.strip().split(" ")
            if len(name_parts) >= 2:
                score += 10
            if len(name_parts) >= 3:
                score += 5  # includes a title

        if lead.anliegen and len(lead.anliegen) > 50:
            score += 15

        return _clamp(score)

    def calculate_behavior_score(self, messages: Sequence[ChatMessage]) -> int:
        """Communication style and technical specificity."""
        score = 40
        if not messages:
            return score

        user_messages = [m for m in messages if m.role == "user"]

        polite = sum(
            1 for m in user_messages
            if signals.contains_any(m.content, signals.POLITENESS_KEYWORDS)
        )
        score += polite * 8

        technical = sum(
            1 for m in user_messages
            if signals.contains_any(m.content, signals.TECHNICAL_KEYWORDS)
        )
        score += technical * 10

        if any(signals.has_vehicle_details(m.content) for m in user_messages):
            score += 20

        questions = sum(1 for m in user_messages if "?" in (m.content or ""))
        score += questions * 5

        return _clamp(score)

    # ── Aggregation ───────────────────────────────────

    def weighted_total(self, breakdown: ScoreBreakdown) -> float:
        values = breakdown.to_dict()
        return sum(values[key] * weight for key, weight in self.WEIGHTS.items())

    def classify_lead(self, total: float) -> LeadClassification:
        if total >= self.HOT_THRESHOLD:
            return LeadClassification.HOT
        if total >= self.WARM_THRESHOLD:
            return LeadClassification.WARM
        if total >= self.COLD_THRESHOLD:
            return LeadClassification.COLD
        return LeadClassification.VERY_COLD

    def calculate_priority(self, breakdown: ScoreBreakdown) -> LeadPriority:
        """Urgency, intent and engagement only; quality signals are ignored."""
        values = breakdown.to_dict()
        priority_score = sum(
            values[key] * weight for key, weight in self.PRIORITY_WEIGHTS.items()
        )
        if priority_score >= self.HIGH_PRIORITY_THRESHOLD:
            return LeadPriority.HIGH
        if priority_score >= self.MEDIUM_PRIORITY_THRESHOLD:
            return LeadPriority.MEDIUM
        return LeadPriority.LOW

    def estimate_lead_value(
        self, breakdown: ScoreBreakdown, context: Optional[CustomerContext] = None
    ) -> int:
        base_value = (context.average_job_value if context else None) or self.default_job_value

        multiplier = 1.0
        if breakdown.intent > 80:
            multiplier += 0.5
        if breakdown.demographics > 70:
            multiplier += 0.3
        if breakdown.urgency > 70:
            multiplier += 0.2

        return _round_half_up(base_value * multiplier)

    def generate_recommendations(
        self, breakdown: ScoreBreakdown, lead: LeadInput
    ) -> List[Recommendation]:
        recommendations = []

        if breakdown.urgency > 70:
            recommendations.append(Recommendation(
                "immediate_contact",
                "Contact within 1 hour - high urgency detected",
                "high",
            ))

        if breakdown.intent > 80:
            recommendations.append(Recommendation(
                "appointment_offer",
                "Offer immediate appointment booking",
                "high",
            ))

        if breakdown.engagement < 40:
            recommendations.append(Recommendation(
                "engagement_boost",
                "Send follow-up with additional information",
                "medium",
            ))

        if not lead.telefon:
            recommendations.append(Recommendation(
                "contact_collection",
                "Request phone number for better communication",
                "medium",
            ))

        # Demographics never drops below neutral, so "at neutral" is the
        # lowest reachable band.
        if breakdown.demographics <= self.DEMOGRAPHICS_NEUTRAL:
            recommendations.append(Recommendation(
                "qualification",
                "Qualify lead further before heavy investment",
                "low",
            ))

        return recommendations

    def generate_follow_up_suggestions(self, breakdown: ScoreBreakdown) -> List[str]:
        suggestions = []

        if breakdown.intent > 70:
            suggestions.append("Call within 2 hours to discuss specific needs")
            suggestions.append("Send personalized quote based on vehicle details")

        if breakdown.urgency > 60:
            suggestions.append("Offer emergency/same-day service slot")
            suggestions.append("Provide direct phone line for immediate assistance")

        if breakdown.engagement > 60:
            suggestions.append("Send technical information about discussed services")
            suggestions.append("Invite for workshop tour or consultation")

        return suggestions

    def default_score(self, reason: Optional[str] = None) -> LeadScore:
        """Well-formed fallback returned when scoring fails."""
        return LeadScore(
            total=50,
            breakdown=ScoreBreakdown(
                urgency=50, engagement=50, intent=50, demographics=50, behavior=50
            ),
            classification=LeadClassification.COLD,
            priority=LeadPriority.MEDIUM,
            estimated_value=self.DEFAULT_JOB_VALUE,
            recommendations=[],
            follow_up_suggestions=["Contact lead within 24 hours"],
            degraded=True,
            error=reason,
        )

    # ── Persistence ───────────────────────────────────

    async def store_lead_score(self, lead_data: Any, lead_score: LeadScore) -> StoreResult:
        """Insert a history row; failures are logged and reported, not raised."""
        try:
            lead = parse_lead(lead_data).model_dump()
            record_id = await self.sink.store(lead_score.to_record(lead))
            return StoreResult(ok=True, record_id=record_id)
        except Exception as e:
            logger.error(f"Error storing lead score: {e}")
            return StoreResult(ok=False, error=str(e))
