"""
Lead Intelligence Engine for the Yuvna advisory platform.

This module turns buyer behaviour into sales routing decisions:
- Signal extraction from chat messages (call, booking, visit, purchase ...)
- Urgency / engagement scoring with lazy inactivity decay
- Lead score category and persona classification
- Escalation to a human agent
- Pipeline stage advice and drop-off risk
"""

from .models import (
    BuyerProfile,
    ChatMessage,
    Conversation,
    Deal,
    DealStage,
    DropOffRisk,
    EscalationState,
    IntentSignal,
    LeadScoreCategory,
    Persona,
    ScoreState,
)
from .signal_extractor import SignalExtractor, extract_signals
from .score_aggregator import ScoreAggregator, ScoreEvent, EventKind, Tool
from .lead_classifier import LeadClassifier, LeadClassification
from .escalation import EscalationDecider, EscalationDecision, next_escalation_state
from .pipeline_advisor import PipelineStageAdvisor, StageAdvice
from .policy import LeadPolicy
from .engine import LeadIntelligenceEngine, BuyerSession, RoutingSnapshot, InteractionResult

__all__ = [
    "BuyerProfile",
    "ChatMessage",
    "Conversation",
    "Deal",
    "DealStage",
    "DropOffRisk",
    "EscalationState",
    "IntentSignal",
    "LeadScoreCategory",
    "Persona",
    "ScoreState",
    "SignalExtractor",
    "extract_signals",
    "ScoreAggregator",
    "ScoreEvent",
    "EventKind",
    "Tool",
    "LeadClassifier",
    "LeadClassification",
    "EscalationDecider",
    "EscalationDecision",
    "next_escalation_state",
    "PipelineStageAdvisor",
    "StageAdvice",
    "LeadPolicy",
    "LeadIntelligenceEngine",
    "BuyerSession",
    "RoutingSnapshot",
    "InteractionResult",
]
