"""
Lead Classifier: urgency + recent signals -> lead score category, and
profile answers -> persona.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import (
    BudgetBand,
    BuyerGoal,
    BuyerProfile,
    IntentSignal,
    LeadScoreCategory,
    Persona,
    RiskTolerance,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeadClassification:
    category: LeadScoreCategory
    persona: Optional[Persona] = None
    persona_confidence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "persona": self.persona.value if self.persona else None,
            "persona_confidence": self.persona_confidence,
        }


class LeadClassifier:
    """
    Maps aggregated scores and explicit signals to a lead score category.

    Thresholds (urgency, higher category wins on the boundary):
    - ready-to-call: >= 80, or call_request / booking_intent in recent messages
    - hot: >= 65
    - warm: >= 35
    - cold: otherwise
    """

    READY_TO_CALL_THRESHOLD = 80
    HOT_THRESHOLD = 65
    WARM_THRESHOLD = 35

    READY_SIGNALS = frozenset({IntentSignal.CALL_REQUEST, IntentSignal.BOOKING_INTENT})

    CONFIDENCE_BY_FIELDS = {0: 0, 1: 33, 2: 66, 3: 100}

    HIGH_BUDGET_BANDS = frozenset({BudgetBand.FROM_2M_TO_5M, BudgetBand.OVER_5M})

    def __init__(
        self,
        ready_to_call: int = READY_TO_CALL_THRESHOLD,
        hot: int = HOT_THRESHOLD,
        warm: int = WARM_THRESHOLD,
    ):
        self.adjust_thresholds(ready_to_call=ready_to_call, hot=hot, warm=warm)

    def adjust_thresholds(self, ready_to_call: int = 80, hot: int = 65, warm: int = 35):
        """Adjust category thresholds; they must stay ordered."""
        if not warm <= hot <= ready_to_call:
            raise ValueError(
                f"Thresholds must satisfy warm <= hot <= ready_to_call, got {warm}/{hot}/{ready_to_call}"
            )
        self.ready_to_call_threshold = ready_to_call
        self.hot_threshold = hot
        self.warm_threshold = warm

    def categorize(
        self,
        urgency_score: int,
        explicit_signals: Iterable[IntentSignal] = (),
    ) -> LeadScoreCategory:
        signals = frozenset(explicit_signals or ())
        if urgency_score >= self.ready_to_call_threshold or signals & self.READY_SIGNALS:
            return LeadScoreCategory.READY_TO_CALL
        if urgency_score >= self.hot_threshold:
            return LeadScoreCategory.HOT
        if urgency_score >= self.warm_threshold:
            return LeadScoreCategory.WARM
        return LeadScoreCategory.COLD

    def classify(
        self,
        urgency_score: int,
        engagement_score: int,
        explicit_signals: Iterable[IntentSignal] = (),
        profile: Optional[BuyerProfile] = None,
    ) -> LeadClassification:
        """
        Classify a buyer.

        Args:
            urgency_score: Current urgency (0-100)
            engagement_score: Current engagement (0-100); informational only
            explicit_signals: Signals from the buyer's most recent messages
            profile: Buyer profile for persona assignment

        Returns:
            LeadClassification. Missing inputs lower confidence, never fail.
        """
        category = self.categorize(urgency_score, explicit_signals)
        persona, confidence = (None, 0)
        if profile is not None and profile.onboarding_complete:
            persona, confidence = self.assign_persona(
                profile.goal, profile.budget_band, profile.risk_tolerance
            )
        return LeadClassification(category=category, persona=persona, persona_confidence=confidence)

    def assign_persona(
        self,
        goal: Optional[BuyerGoal],
        budget_band: Optional[BudgetBand],
        risk_tolerance: Optional[RiskTolerance],
    ) -> Tuple[Optional[Persona], int]:
        """Persona and confidence (33/66/100 by fields present)."""
        present = sum(1 for v in (goal, budget_band, risk_tolerance) if v is not None)
        confidence = self.CONFIDENCE_BY_FIELDS[present]
        if present == 0:
            return None, 0

        if goal == BuyerGoal.VISA:
            persona = Persona.VISA_DRIVEN
        elif goal == BuyerGoal.LIFESTYLE:
            persona = Persona.LIFESTYLE
        elif goal == BuyerGoal.EXPLORING:
            persona = Persona.EXPLORER
        elif goal == BuyerGoal.INVESTMENT:
            if risk_tolerance == RiskTolerance.AGGRESSIVE:
                persona = Persona.CAPITAL_INVESTOR
            elif risk_tolerance == RiskTolerance.CONSERVATIVE:
                persona = Persona.YIELD_INVESTOR
            elif budget_band in self.HIGH_BUDGET_BANDS:
                persona = Persona.CAPITAL_INVESTOR
            else:
                persona = Persona.YIELD_INVESTOR
        elif risk_tolerance == RiskTolerance.AGGRESSIVE:
            persona = Persona.CAPITAL_INVESTOR
        elif risk_tolerance == RiskTolerance.CONSERVATIVE:
            persona = Persona.YIELD_INVESTOR
        else:
            persona = Persona.EXPLORER

        return persona, confidence


# ── Lead queue ordering ───────────────────────────────────────────

LEAD_PRIORITY: Dict[LeadScoreCategory, int] = {
    LeadScoreCategory.READY_TO_CALL: 0,
    LeadScoreCategory.HOT: 1,
    LeadScoreCategory.WARM: 2,
    LeadScoreCategory.COLD: 3,
}

BUDGET_PRIORITY: Dict[BudgetBand, int] = {
    BudgetBand.OVER_5M: 0,
    BudgetBand.FROM_2M_TO_5M: 1,
    BudgetBand.FROM_1M_TO_2M: 2,
    BudgetBand.FROM_500K_TO_1M: 3,
    BudgetBand.UNDER_500K: 4,
}

BUYER_SORTS = ("score", "recent", "budget")


def sort_buyers(buyers: Iterable[BuyerProfile], sort: str = "score") -> List[BuyerProfile]:
    """
    Order a lead queue.

    score: ready-to-call first, then hot, warm, cold; higher urgency first
    within a category. recent: last active first, never-active last.
    budget: largest budget band first, unknown last, then by score.
    Remaining ties go newest-created first.
    """
    if sort not in BUYER_SORTS:
        raise ValueError(f"Unknown buyer sort {sort!r}; expected one of {BUYER_SORTS}")

    ordered = sorted(buyers, key=lambda b: b.created_at, reverse=True)
    if sort == "score":
        return sorted(ordered, key=lambda b: (LEAD_PRIORITY[b.lead_score], -b.urgency_score))
    if sort == "recent":
        return sorted(ordered, key=lambda b: b.last_active_at or datetime.min, reverse=True)
    return sorted(ordered, key=lambda b: (
        BUDGET_PRIORITY.get(b.budget_band, len(BUDGET_PRIORITY)),
        LEAD_PRIORITY[b.lead_score],
    ))


def count_by_lead_score(categories: Iterable[Any]) -> Dict[str, int]:
    """Per-category counts for the lead queue header, every category present."""
    counts = {c.value: 0 for c in LEAD_PRIORITY}
    for category in categories:
        value = category.value if isinstance(category, LeadScoreCategory) else category
        if value in counts:
            counts[value] += 1
    return counts
