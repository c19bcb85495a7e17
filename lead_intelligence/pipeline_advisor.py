"""
Pipeline Stage Advisor.

Recommends the next best action for a deal and estimates its drop-off risk
from time spent in the current stage. Advice only: stage moves stay with the
operator.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from .models import (
    BudgetBand,
    BuyerProfile,
    Deal,
    DealStage,
    DropOffRisk,
    Persona,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageAdvice:
    suggested_action: str
    drop_off_risk: DropOffRisk
    days_in_stage: int
    stage: DealStage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggested_action": self.suggested_action,
            "drop_off_risk": self.drop_off_risk.value,
            "days_in_stage": self.days_in_stage,
            "stage": self.stage.value,
        }


class PipelineStageAdvisor:
    """
    Suggests actions per deal stage, qualified by buyer persona.

    Drop-off risk: days in stage above the stage's (medium, high) dwell
    limits. A new deal with no buyer-initiated signals after 2 days is high
    risk regardless of dwell limits.
    """

    EXPECTED_DWELL_DAYS: Dict[DealStage, Tuple[int, int]] = {
        DealStage.NEW: (3, 7),
        DealStage.QUALIFIED: (7, 14),
        DealStage.ADVISORY: (7, 14),
        DealStage.SITE_VISIT: (5, 10),
        DealStage.BOOKING: (3, 7),
    }

    SILENT_NEW_DEAL_DAYS = 2

    STAGE_ACTIONS: Dict[DealStage, str] = {
        DealStage.NEW: "Initial outreach call",
        DealStage.QUALIFIED: "Schedule viewing",
        DealStage.ADVISORY: "Share tailored advisory pack",
        DealStage.SITE_VISIT: "Prepare offer package",
        DealStage.BOOKING: "Confirm deposit transfer",
        DealStage.CLOSED_WON: "Send handover checklist",
        DealStage.CLOSED_LOST: "Move to long-term nurture",
    }

    ADVISORY_PERSONA_ACTIONS: Dict[Persona, str] = {
        Persona.VISA_DRIVEN: "Follow up on Golden Visa requirements",
        Persona.YIELD_INVESTOR: "Walk through rental yield projections",
        Persona.CAPITAL_INVESTOR: "Share capital appreciation scenarios",
        Persona.LIFESTYLE: "Curate a community and lifestyle shortlist",
        Persona.EXPLORER: "Send the Dubai market primer",
    }

    GOLDEN_VISA_BANDS = frozenset({BudgetBand.FROM_2M_TO_5M, BudgetBand.OVER_5M})

    def __init__(self, expected_dwell_days: Optional[Dict[DealStage, Tuple[int, int]]] = None):
        self.expected_dwell_days = dict(self.EXPECTED_DWELL_DAYS)
        if expected_dwell_days:
            self.expected_dwell_days.update(expected_dwell_days)

    def drop_off_risk(self, deal: Deal, now: Optional[datetime] = None) -> DropOffRisk:
        """Recomputed on every read."""
        now = now or utcnow()
        stage = deal.current_stage
        if stage.is_terminal:
            return DropOffRisk.LOW

        days = deal.days_in_stage(now)
        if (
            stage == DealStage.NEW
            and deal.buyer_signal_count == 0
            and days >= self.SILENT_NEW_DEAL_DAYS
        ):
            return DropOffRisk.HIGH

        medium, high = self.expected_dwell_days.get(stage, (7, 14))
        if days > high:
            return DropOffRisk.HIGH
        if days > medium:
            return DropOffRisk.MEDIUM
        return DropOffRisk.LOW

    def suggest_action(
        self,
        deal: Deal,
        buyer: Optional[BuyerProfile] = None,
        now: Optional[datetime] = None,
    ) -> StageAdvice:
        """Suggested next action and drop-off risk for a deal."""
        now = now or utcnow()
        stage = deal.current_stage
        risk = self.drop_off_risk(deal, now)
        persona = buyer.persona if buyer else None

        action = self.STAGE_ACTIONS[stage]
        if stage == DealStage.ADVISORY and persona in self.ADVISORY_PERSONA_ACTIONS:
            action = self.ADVISORY_PERSONA_ACTIONS[persona]
        elif persona == Persona.VISA_DRIVEN and stage in (
            DealStage.QUALIFIED, DealStage.SITE_VISIT, DealStage.BOOKING
        ):
            action = f"{action} (confirm Golden Visa eligibility)"

        if (
            buyer is not None
            and persona == Persona.VISA_DRIVEN
            and buyer.budget_band is not None
            and buyer.budget_band not in self.GOLDEN_VISA_BANDS
            and not stage.is_terminal
        ):
            action = f"{action}; budget is below the AED 2M Golden Visa threshold"

        if risk == DropOffRisk.HIGH and not stage.is_terminal:
            action = f"Re-engage: {action}"

        return StageAdvice(
            suggested_action=action,
            drop_off_risk=risk,
            days_in_stage=deal.days_in_stage(now),
            stage=stage,
        )


def deal_value(deal: Deal) -> float:
    """Closed-won deals count at their closed value, everything else at budget."""
    if deal.current_stage == DealStage.CLOSED_WON and deal.closed_value is not None:
        return deal.closed_value
    return deal.budget or 0.0


def summarize_pipeline(deals: Iterable[Deal]) -> Dict[str, Any]:
    """Per-stage deal counts and total value for the pipeline board."""
    stages = {stage.value: {"count": 0, "total_value": 0.0} for stage in DealStage}
    active_deals = 0
    active_value = 0.0
    for deal in deals:
        stage = deal.current_stage
        value = deal_value(deal)
        stages[stage.value]["count"] += 1
        stages[stage.value]["total_value"] += value
        if not stage.is_terminal:
            active_deals += 1
            active_value += value
    return {"stages": stages, "active_deals": active_deals, "active_value": active_value}
