"""
Domain model for the lead intelligence engine.

Buyer is the root aggregate; conversations and deals reference it by id.
All timestamps are naive UTC.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .exceptions import InvalidStageTransitionError, OutOfOrderMessageError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo is None else (
            value.astimezone(timezone.utc).replace(tzinfo=None)
        )
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _enum_or_none(enum_cls, value):
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning(f"Unknown {enum_cls.__name__} value: {value!r}")
        return None


# ── Enums ─────────────────────────────────────────────────────────


class IntentSignal(str, Enum):
    """Buying behaviours detected in free text."""
    PLANNING_VISIT = "planning_visit"
    PURCHASE_INTENT = "purchase_intent"
    CALL_REQUEST = "call_request"
    BOOKING_INTENT = "booking_intent"
    PROPERTY_INTEREST = "property_interest"
    CONTACT_SHARED = "contact_shared"
    DISINTEREST = "disinterest"


class Persona(str, Enum):
    YIELD_INVESTOR = "yield-investor"
    CAPITAL_INVESTOR = "capital-investor"
    LIFESTYLE = "lifestyle"
    VISA_DRIVEN = "visa-driven"
    EXPLORER = "explorer"


class BuyerGoal(str, Enum):
    INVESTMENT = "investment"
    LIFESTYLE = "lifestyle"
    VISA = "visa"
    EXPLORING = "exploring"


class BudgetBand(str, Enum):
    UNDER_500K = "under-500k"
    FROM_500K_TO_1M = "500k-1m"
    FROM_1M_TO_2M = "1m-2m"
    FROM_2M_TO_5M = "2m-5m"
    OVER_5M = "5m-plus"


class RiskTolerance(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class LeadScoreCategory(str, Enum):
    """Purchase readiness buckets, lowest first."""
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"
    READY_TO_CALL = "ready-to-call"


class LeadSource(str, Enum):
    ONBOARDING_WIDGET = "onboarding-widget"
    CSV_UPLOAD = "csv-upload"
    LINKEDIN = "linkedin"
    PARTNER_REFERRAL = "partner-referral"
    WEBSITE = "website"
    EVENT = "event"
    PAID_AD = "paid-ad"
    SOCIAL = "social"


class MessageRole(str, Enum):
    BUYER = "buyer"
    ADVISOR = "advisor"
    SYSTEM = "system"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ESCALATED = "escalated"
    CLOSED = "closed"


class EscalationState(str, Enum):
    NORMAL = "normal"
    PENDING = "escalation-pending"
    ESCALATED = "escalated"


class DealStage(str, Enum):
    NEW = "new"
    QUALIFIED = "qualified"
    ADVISORY = "advisory"
    SITE_VISIT = "site-visit"
    BOOKING = "booking"
    CLOSED_WON = "closed-won"
    CLOSED_LOST = "closed-lost"

    @property
    def is_terminal(self) -> bool:
        return self in (DealStage.CLOSED_WON, DealStage.CLOSED_LOST)


class DropOffRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ── Score state ───────────────────────────────────────────────────


@dataclass(frozen=True)
class ScoreState:
    """
    Stored aggregator state for one buyer.

    urgency/engagement are the scores as of the last applied event; decay
    since last_active_at is computed at read time. decay_days_applied counts
    decay days already folded into the stored scores by inactivity ticks.
    """
    urgency: int = 0
    engagement: int = 0
    last_active_at: Optional[datetime] = None
    decay_days_applied: int = 0
    seen_event_ids: Tuple[str, ...] = ()
    recent_signals: Tuple[FrozenSet[IntentSignal], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "urgency": self.urgency,
            "engagement": self.engagement,
            "last_active_at": _iso(self.last_active_at),
            "decay_days_applied": self.decay_days_applied,
            "seen_event_ids": list(self.seen_event_ids),
            "recent_signals": [sorted(s.value for s in batch) for batch in self.recent_signals],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ScoreState":
        if not data:
            return cls()
        batches = []
        for batch in data.get("recent_signals") or []:
            batches.append(frozenset(
                s for s in (_enum_or_none(IntentSignal, v) for v in batch) if s is not None
            ))
        return cls(
            urgency=int(data.get("urgency") or 0),
            engagement=int(data.get("engagement") or 0),
            last_active_at=parse_timestamp(data.get("last_active_at")),
            decay_days_applied=int(data.get("decay_days_applied") or 0),
            seen_event_ids=tuple(data.get("seen_event_ids") or ()),
            recent_signals=tuple(batches),
        )

    def recent_signal_union(self) -> FrozenSet[IntentSignal]:
        merged = set()
        for batch in self.recent_signals:
            merged.update(batch)
        return frozenset(merged)


# ── Buyer ─────────────────────────────────────────────────────────


CONTACT_CHANNELS = ("email", "whatsapp", "phone", "sms")


@dataclass
class BuyerProfile:
    """One lead. lead_score is a cached projection written only by the engine."""

    id: str = field(default_factory=new_id)

    first_name: str = ""
    last_name: Optional[str] = None
    email: str = ""
    phone: Optional[str] = None

    country: str = ""
    language: str = "en"
    currency: str = "AED"
    timezone: str = "Asia/Dubai"

    persona: Optional[Persona] = None
    persona_confidence: int = 0
    goal: Optional[BuyerGoal] = None
    budget_band: Optional[BudgetBand] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None

    urgency_score: int = 0
    engagement_score: int = 0
    lead_score: LeadScoreCategory = LeadScoreCategory.COLD

    risk_tolerance: Optional[RiskTolerance] = None
    investment_horizon: Optional[str] = None

    source: LeadSource = LeadSource.WEBSITE
    utm_campaign: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    referrer_partner: Optional[str] = None

    consent_marketing: bool = False
    consent_whatsapp: bool = False
    consent_email: bool = False
    opt_out_channels: List[str] = field(default_factory=list)

    score_state: ScoreState = field(default_factory=ScoreState)

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_active_at: Optional[datetime] = None
    onboarding_completed_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def onboarding_complete(self) -> bool:
        return self.onboarding_completed_at is not None

    def opt_out(self, channel: str) -> None:
        """Suppress outreach on a channel ("all" suppresses every channel)."""
        channels = CONTACT_CHANNELS if channel == "all" else (channel,)
        for ch in channels:
            if ch not in self.opt_out_channels:
                self.opt_out_channels.append(ch)
        self.updated_at = utcnow()

    def can_contact(self, channel: str) -> bool:
        if channel in self.opt_out_channels:
            return False
        if channel == "email":
            return self.consent_email and bool(self.email)
        if channel == "whatsapp":
            return self.consent_whatsapp and bool(self.phone)
        if channel in ("phone", "sms"):
            return bool(self.phone)
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "country": self.country,
            "language": self.language,
            "currency": self.currency,
            "timezone": self.timezone,
            "persona": self.persona.value if self.persona else None,
            "persona_confidence": self.persona_confidence,
            "goal": self.goal.value if self.goal else None,
            "budget_band": self.budget_band.value if self.budget_band else None,
            "budget_min": self.budget_min,
            "budget_max": self.budget_max,
            "urgency_score": self.urgency_score,
            "engagement_score": self.engagement_score,
            "lead_score": self.lead_score.value,
            "risk_tolerance": self.risk_tolerance.value if self.risk_tolerance else None,
            "investment_horizon": self.investment_horizon,
            "source": self.source.value,
            "utm_campaign": self.utm_campaign,
            "utm_source": self.utm_source,
            "utm_medium": self.utm_medium,
            "referrer_partner": self.referrer_partner,
            "consent_marketing": self.consent_marketing,
            "consent_whatsapp": self.consent_whatsapp,
            "consent_email": self.consent_email,
            "opt_out_channels": list(self.opt_out_channels),
            "score_state": self.score_state.to_dict(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "last_active_at": _iso(self.last_active_at),
            "onboarding_completed_at": _iso(self.onboarding_completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuyerProfile":
        lead_score = _enum_or_none(LeadScoreCategory, data.get("lead_score"))
        source = _enum_or_none(LeadSource, data.get("source"))
        return cls(
            id=data.get("id") or new_id(),
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name"),
            email=data.get("email") or "",
            phone=data.get("phone"),
            country=data.get("country") or "",
            language=data.get("language") or "en",
            currency=data.get("currency") or "AED",
            timezone=data.get("timezone") or "Asia/Dubai",
            persona=_enum_or_none(Persona, data.get("persona")),
            persona_confidence=int(data.get("persona_confidence") or 0),
            goal=_enum_or_none(BuyerGoal, data.get("goal")),
            budget_band=_enum_or_none(BudgetBand, data.get("budget_band")),
            budget_min=data.get("budget_min"),
            budget_max=data.get("budget_max"),
            urgency_score=int(data.get("urgency_score") or 0),
            engagement_score=int(data.get("engagement_score") or 0),
            lead_score=lead_score or LeadScoreCategory.COLD,
            risk_tolerance=_enum_or_none(RiskTolerance, data.get("risk_tolerance")),
            investment_horizon=data.get("investment_horizon"),
            source=source or LeadSource.WEBSITE,
            utm_campaign=data.get("utm_campaign"),
            utm_source=data.get("utm_source"),
            utm_medium=data.get("utm_medium"),
            referrer_partner=data.get("referrer_partner"),
            consent_marketing=bool(data.get("consent_marketing")),
            consent_whatsapp=bool(data.get("consent_whatsapp")),
            consent_email=bool(data.get("consent_email")),
            opt_out_channels=list(data.get("opt_out_channels") or []),
            score_state=ScoreState.from_dict(data.get("score_state")),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(data.get("updated_at")) or utcnow(),
            last_active_at=parse_timestamp(data.get("last_active_at")),
            onboarding_completed_at=parse_timestamp(data.get("onboarding_completed_at")),
        )


# ── Conversation ──────────────────────────────────────────────────


@dataclass(frozen=True)
class ChatMessage:
    """A single message. Immutable once created."""
    conversation_id: str
    role: MessageRole
    content: str
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    intent_signals: FrozenSet[IntentSignal] = frozenset()
    escalation_trigger: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": _iso(self.timestamp),
            "intent_signals": sorted(s.value for s in self.intent_signals),
            "escalation_trigger": self.escalation_trigger,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        signals = frozenset(
            s for s in (_enum_or_none(IntentSignal, v) for v in data.get("intent_signals") or [])
            if s is not None
        )
        return cls(
            id=data.get("id") or new_id(),
            conversation_id=data["conversation_id"],
            role=MessageRole(data.get("role") or "buyer"),
            content=data.get("content") or "",
            timestamp=parse_timestamp(data.get("timestamp") or data.get("created_at")) or utcnow(),
            intent_signals=signals,
            escalation_trigger=bool(data.get("escalation_trigger")),
        )


@dataclass
class Conversation:
    buyer_id: str
    id: str = field(default_factory=new_id)
    channel: str = "chat"
    status: ConversationStatus = ConversationStatus.ACTIVE
    escalation_state: EscalationState = EscalationState.NORMAL
    escalated_at: Optional[datetime] = None
    escalated_reason: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    messages: List[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def add_message(self, message: ChatMessage) -> ChatMessage:
        """Append a message; arrival order must follow timestamps."""
        if message.conversation_id != self.id:
            message = replace(message, conversation_id=self.id)
        if self.messages and message.timestamp < self.messages[-1].timestamp:
            raise OutOfOrderMessageError(
                f"Message {message.id} at {message.timestamp.isoformat()} is older than "
                f"the last message in conversation {self.id}"
            )
        self.messages.append(message)
        self.updated_at = message.timestamp
        return message

    def history(self, limit: Optional[int] = None) -> List[Dict[str, str]]:
        msgs = [m for m in self.messages if m.role != MessageRole.SYSTEM]
        if limit:
            msgs = msgs[-limit:]
        return [{"role": m.role.value, "content": m.content} for m in msgs]

    def to_dict(self, include_messages: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "channel": self.channel,
            "status": self.status.value,
            "escalation_state": self.escalation_state.value,
            "escalated_at": _iso(self.escalated_at),
            "escalated_reason": self.escalated_reason,
            "assigned_agent_id": self.assigned_agent_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_messages:
            data["messages"] = [m.to_dict() for m in self.messages]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        conv = cls(
            id=data.get("id") or new_id(),
            buyer_id=data["buyer_id"],
            channel=data.get("channel") or "chat",
            status=_enum_or_none(ConversationStatus, data.get("status")) or ConversationStatus.ACTIVE,
            escalation_state=(
                _enum_or_none(EscalationState, data.get("escalation_state")) or EscalationState.NORMAL
            ),
            escalated_at=parse_timestamp(data.get("escalated_at")),
            escalated_reason=data.get("escalated_reason"),
            assigned_agent_id=data.get("assigned_agent_id"),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(data.get("updated_at")) or utcnow(),
        )
        conv.messages = [ChatMessage.from_dict(m) for m in data.get("messages") or []]
        return conv


# ── Deal ──────────────────────────────────────────────────────────


@dataclass
class StageHistoryEntry:
    stage: DealStage
    entered_at: datetime
    exited_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "entered_at": _iso(self.entered_at),
            "exited_at": _iso(self.exited_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageHistoryEntry":
        return cls(
            stage=DealStage(data["stage"]),
            entered_at=parse_timestamp(data["entered_at"]),
            exited_at=parse_timestamp(data.get("exited_at")),
        )


@dataclass
class Deal:
    """
    A buyer's position in the sales funnel.

    Stage changes are operator-driven through move_to(); the last
    stage_history entry always describes the current stage.
    """
    buyer_id: str
    id: str = field(default_factory=new_id)
    stage: DealStage = DealStage.NEW
    stage_history: List[StageHistoryEntry] = field(default_factory=list)

    interested_properties: List[str] = field(default_factory=list)
    budget: Optional[float] = None
    timeline: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    buyer_signal_count: int = 0

    closed_value: Optional[float] = None
    lost_reason: Optional[str] = None
    notes: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    closed_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.stage_history:
            self.stage_history.append(StageHistoryEntry(stage=self.stage, entered_at=self.created_at))

    def current_entry(self) -> StageHistoryEntry:
        """Last history entry, repairing the cached stage if it drifted."""
        if not self.stage_history:
            logger.error(f"Deal {self.id} has no stage history; rebuilding from stage {self.stage.value}")
            self.stage_history.append(StageHistoryEntry(stage=self.stage, entered_at=self.created_at))
        entry = self.stage_history[-1]
        if entry.stage != self.stage:
            logger.error(
                f"Deal {self.id} stage {self.stage.value} disagrees with history "
                f"{entry.stage.value}; using history"
            )
            self.stage = entry.stage
        return entry

    @property
    def current_stage(self) -> DealStage:
        return self.current_entry().stage

    def days_in_stage(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        elapsed = now - self.current_entry().entered_at
        return max(0, elapsed.days)

    def move_to(self, stage: DealStage, at: Optional[datetime] = None, reason: Optional[str] = None) -> None:
        """Operator-driven stage move. Terminal stages reject further moves."""
        at = at or utcnow()
        current = self.current_entry()
        if current.stage.is_terminal:
            raise InvalidStageTransitionError(current.stage.value, stage.value)
        if stage == current.stage:
            return
        current.exited_at = at
        self.stage_history.append(StageHistoryEntry(stage=stage, entered_at=at))
        self.stage = stage
        self.updated_at = at
        if stage.is_terminal:
            self.closed_at = at
            if stage == DealStage.CLOSED_LOST and reason:
                self.lost_reason = reason
        logger.info(f"Deal {self.id} moved {current.stage.value} -> {stage.value}")

    def record_buyer_signals(self, count: int) -> None:
        if count > 0:
            self.buyer_signal_count += count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "stage": self.stage.value,
            "stage_history": [e.to_dict() for e in self.stage_history],
            "interested_properties": list(self.interested_properties),
            "budget": self.budget,
            "timeline": self.timeline,
            "assigned_agent_id": self.assigned_agent_id,
            "buyer_signal_count": self.buyer_signal_count,
            "closed_value": self.closed_value,
            "lost_reason": self.lost_reason,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "closed_at": _iso(self.closed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deal":
        created_at = parse_timestamp(data.get("created_at")) or utcnow()
        return cls(
            id=data.get("id") or new_id(),
            buyer_id=data["buyer_id"],
            stage=DealStage(data.get("stage") or "new"),
            stage_history=[StageHistoryEntry.from_dict(e) for e in data.get("stage_history") or []],
            interested_properties=list(data.get("interested_properties") or []),
            budget=data.get("budget"),
            timeline=data.get("timeline"),
            assigned_agent_id=data.get("assigned_agent_id"),
            buyer_signal_count=int(data.get("buyer_signal_count") or 0),
            closed_value=data.get("closed_value"),
            lost_reason=data.get("lost_reason"),
            notes=data.get("notes"),
            created_at=created_at,
            updated_at=parse_timestamp(data.get("updated_at")) or created_at,
            closed_at=parse_timestamp(data.get("closed_at")),
        )
