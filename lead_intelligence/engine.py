"""
Lead Intelligence Engine facade.

Wires the signal extractor, score aggregator, lead classifier, escalation
decider and pipeline advisor together over an explicit BuyerSession. The
caller owns the session (buyer, conversation, deal) and persists it; the
engine keeps no per-buyer state of its own.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from .escalation import EscalationDecider, EscalationDecision
from .exceptions import OutOfOrderMessageError, SignalExtractionError
from .lead_classifier import LeadClassification, LeadClassifier
from .models import (
    BudgetBand,
    BuyerGoal,
    BuyerProfile,
    ChatMessage,
    Conversation,
    Deal,
    IntentSignal,
    LeadScoreCategory,
    MessageRole,
    RiskTolerance,
    utcnow,
)
from .pipeline_advisor import PipelineStageAdvisor, StageAdvice
from .policy import LeadPolicy
from .score_aggregator import EventKind, ScoreAggregator, ScoreEvent, Tool
from .signal_extractor import SignalExtractor

logger = logging.getLogger(__name__)


@dataclass
class BuyerSession:
    """Externally owned context for one buyer interaction."""
    buyer: BuyerProfile
    conversation: Optional[Conversation] = None
    deal: Optional[Deal] = None
    limited_mode: bool = False


@dataclass(frozen=True)
class RoutingSnapshot:
    """What the presentation layer reads to pick a view and a call to action."""
    buyer_id: str
    lead_score: LeadScoreCategory
    persona: Optional[str]
    persona_confidence: int
    urgency_score: int
    engagement_score: int
    escalation_state: Optional[str]
    deal_stage: Optional[str]
    drop_off_risk: Optional[str]
    suggested_action: Optional[str]
    recommended_channel: Optional[str]
    limited_mode: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buyer_id": self.buyer_id,
            "lead_score": self.lead_score.value,
            "persona": self.persona,
            "persona_confidence": self.persona_confidence,
            "urgency_score": self.urgency_score,
            "engagement_score": self.engagement_score,
            "escalation_state": self.escalation_state,
            "deal_stage": self.deal_stage,
            "drop_off_risk": self.drop_off_risk,
            "suggested_action": self.suggested_action,
            "recommended_channel": self.recommended_channel,
            "limited_mode": self.limited_mode,
        }


@dataclass(frozen=True)
class InteractionResult:
    message: ChatMessage
    signals: FrozenSet[IntentSignal]
    escalation: EscalationDecision
    classification: LeadClassification
    snapshot: RoutingSnapshot
    extraction_failed: bool = False
    advice: Optional[StageAdvice] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message.to_dict(),
            "signals": sorted(s.value for s in self.signals),
            "escalation": self.escalation.to_dict(),
            "classification": self.classification.to_dict(),
            "snapshot": self.snapshot.to_dict(),
            "extraction_failed": self.extraction_failed,
        }


class LeadIntelligenceEngine:
    """
    Turns buyer behaviour into scores, a lead category, a persona,
    escalation state and pipeline advice.

    Messages within a conversation must be processed in submission order.
    """

    def __init__(
        self,
        policy: Optional[LeadPolicy] = None,
        extractor: Optional[SignalExtractor] = None,
        aggregator: Optional[ScoreAggregator] = None,
        classifier: Optional[LeadClassifier] = None,
        escalation: Optional[EscalationDecider] = None,
        pipeline_advisor: Optional[PipelineStageAdvisor] = None,
    ):
        self.policy = policy or LeadPolicy()
        p = self.policy
        self.extractor = extractor or SignalExtractor()
        self.aggregator = aggregator or ScoreAggregator(
            decay_grace_days=p.decay_grace_days,
            urgency_decay_per_day=p.urgency_decay_per_day,
            engagement_decay_per_day=p.engagement_decay_per_day,
            recent_signal_window=p.recent_signal_window,
        )
        self.classifier = classifier or LeadClassifier(
            ready_to_call=p.ready_to_call_threshold,
            hot=p.hot_threshold,
            warm=p.warm_threshold,
        )
        self.escalation = escalation or EscalationDecider(
            trigger_signals=p.escalation_signals,
            agent_ids=p.agent_ids,
        )
        self.pipeline_advisor = pipeline_advisor or PipelineStageAdvisor()

    # ── Messages ──────────────────────────────────────────────────

    def process_buyer_message(
        self,
        session: BuyerSession,
        content: Any,
        now: Optional[datetime] = None,
    ) -> InteractionResult:
        """
        Handle one inbound buyer message.

        1. Extract signals  2. Evaluate escalation  3. Append message
        4. Apply score events  5. Reclassify  6. Build routing snapshot
        """
        now = now or utcnow()
        buyer = session.buyer
        last_active = buyer.score_state.last_active_at
        if last_active is not None and now < last_active:
            raise OutOfOrderMessageError(
                f"Message at {now.isoformat()} predates buyer {buyer.id} activity at {last_active.isoformat()}"
            )
        conversation = session.conversation
        if conversation is None:
            conversation = Conversation(buyer_id=buyer.id, created_at=now, updated_at=now)
            session.conversation = conversation
        if conversation.messages and now < conversation.messages[-1].timestamp:
            raise OutOfOrderMessageError(
                f"Message at {now.isoformat()} arrived after a later message in conversation {conversation.id}"
            )

        extraction_failed = False
        try:
            signals = self.extractor.extract(content)
        except SignalExtractionError as e:
            logger.warning(
                f"Signal extraction failed for conversation {conversation.id}, "
                f"skipping escalation evaluation: {e}"
            )
            signals = frozenset()
            extraction_failed = True

        if extraction_failed:
            decision = EscalationDecision(state=conversation.escalation_state, skipped=True)
        else:
            decision = self.escalation.evaluate(conversation, signals)

        message = conversation.add_message(ChatMessage(
            conversation_id=conversation.id,
            role=MessageRole.BUYER,
            content=content if isinstance(content, str) else "",
            timestamp=now,
            intent_signals=signals,
            escalation_trigger=decision.triggered,
        ))

        events = [ScoreEvent(EventKind.MESSAGE_SENT, now, event_id=f"{message.id}:message")]
        for signal in sorted(signals, key=lambda s: s.value):
            events.append(ScoreEvent(
                EventKind.SIGNAL_OBSERVED, now, signal=signal,
                event_id=f"{message.id}:{signal.value}",
            ))
        state = self.aggregator.apply_events(buyer.score_state, events)
        buyer.score_state = self.aggregator.record_message_signals(state, signals)
        buyer.last_active_at = now

        if session.deal is not None:
            session.deal.record_buyer_signals(len(signals))

        classification = self._refresh_buyer(buyer, now)
        advice = self._advise(session, now)
        snapshot = self._build_snapshot(session, classification, advice)

        return InteractionResult(
            message=message,
            signals=signals,
            escalation=decision,
            classification=classification,
            snapshot=snapshot,
            extraction_failed=extraction_failed,
            advice=advice,
        )

    def add_advisor_message(
        self,
        session: BuyerSession,
        content: str,
        now: Optional[datetime] = None,
    ) -> ChatMessage:
        """Append the advisory reply; advisor text is never scored."""
        now = now or utcnow()
        if session.conversation is None:
            session.conversation = Conversation(buyer_id=session.buyer.id, created_at=now, updated_at=now)
        return session.conversation.add_message(ChatMessage(
            conversation_id=session.conversation.id,
            role=MessageRole.ADVISOR,
            content=content,
            timestamp=now,
        ))

    # ── Other buyer events ────────────────────────────────────────

    def record_event(
        self,
        session: BuyerSession,
        kind: EventKind,
        now: Optional[datetime] = None,
        tool: Optional[Tool] = None,
        event_id: Optional[str] = None,
    ) -> RoutingSnapshot:
        """Tool use, session start, onboarding completion or inactivity tick."""
        now = now or utcnow()
        buyer = session.buyer
        buyer.score_state = self.aggregator.apply_event(
            buyer.score_state,
            ScoreEvent(kind=kind, occurred_at=now, tool=tool, event_id=event_id),
        )
        if kind != EventKind.INACTIVITY_TICK and buyer.score_state.last_active_at == now:
            buyer.last_active_at = now
        return self.snapshot(session, now)

    def complete_onboarding(
        self,
        session: BuyerSession,
        goal: Optional[BuyerGoal] = None,
        budget_band: Optional[BudgetBand] = None,
        risk_tolerance: Optional[RiskTolerance] = None,
        now: Optional[datetime] = None,
    ) -> RoutingSnapshot:
        """Store onboarding answers and assign the persona."""
        now = now or utcnow()
        buyer = session.buyer
        buyer.goal = goal or buyer.goal
        buyer.budget_band = budget_band or buyer.budget_band
        buyer.risk_tolerance = risk_tolerance or buyer.risk_tolerance
        first_completion = buyer.onboarding_completed_at is None
        if first_completion:
            buyer.onboarding_completed_at = now
            return self.record_event(
                session, EventKind.ONBOARDING_COMPLETED, now,
                event_id=f"{buyer.id}:onboarding",
            )
        return self.snapshot(session, now)

    # ── Read path ─────────────────────────────────────────────────

    def snapshot(self, session: BuyerSession, now: Optional[datetime] = None) -> RoutingSnapshot:
        """Recompute decayed scores, category and advice for the UI."""
        now = now or utcnow()
        classification = self._refresh_buyer(session.buyer, now)
        advice = self._advise(session, now)
        return self._build_snapshot(session, classification, advice)

    def advise_deal(
        self,
        deal: Deal,
        buyer: Optional[BuyerProfile] = None,
        now: Optional[datetime] = None,
    ) -> StageAdvice:
        return self.pipeline_advisor.suggest_action(deal, buyer, now)

    def _refresh_buyer(self, buyer: BuyerProfile, now: datetime) -> LeadClassification:
        scores = self.aggregator.effective_scores(buyer.score_state, now)
        classification = self.classifier.classify(
            scores.urgency,
            scores.engagement,
            buyer.score_state.recent_signal_union(),
            profile=buyer,
        )
        buyer.urgency_score = scores.urgency
        buyer.engagement_score = scores.engagement
        buyer.lead_score = classification.category
        buyer.persona = classification.persona
        buyer.persona_confidence = classification.persona_confidence
        buyer.updated_at = now
        return classification

    def _advise(self, session: BuyerSession, now: datetime) -> Optional[StageAdvice]:
        if session.deal is None:
            return None
        return self.pipeline_advisor.suggest_action(session.deal, session.buyer, now)

    def _build_snapshot(
        self,
        session: BuyerSession,
        classification: LeadClassification,
        advice: Optional[StageAdvice],
    ) -> RoutingSnapshot:
        buyer = session.buyer
        conversation = session.conversation
        return RoutingSnapshot(
            buyer_id=buyer.id,
            lead_score=classification.category,
            persona=classification.persona.value if classification.persona else None,
            persona_confidence=classification.persona_confidence,
            urgency_score=buyer.urgency_score,
            engagement_score=buyer.engagement_score,
            escalation_state=conversation.escalation_state.value if conversation else None,
            deal_stage=advice.stage.value if advice else None,
            drop_off_risk=advice.drop_off_risk.value if advice else None,
            suggested_action=advice.suggested_action if advice else None,
            recommended_channel=self.recommended_channel(buyer),
            limited_mode=session.limited_mode,
        )

    @staticmethod
    def recommended_channel(buyer: BuyerProfile) -> Optional[str]:
        """Phone for ready-to-call buyers with a number, then WhatsApp, then email."""
        order: List[str] = ["whatsapp", "email"]
        if buyer.lead_score == LeadScoreCategory.READY_TO_CALL:
            order.insert(0, "phone")
        for channel in order:
            if buyer.can_contact(channel):
                return channel
        return None
