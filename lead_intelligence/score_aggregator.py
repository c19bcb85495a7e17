"""
Score Aggregator for buyer urgency and engagement.

Scores move by fixed point deltas per event and decay lazily with
inactivity. There is no background timer: decay is a function of the stored
state and the time of reading, so the same event history read at the same
instant always yields the same scores.

Events that carry an event_id are de-duplicated; events without one compound.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from .models import IntentSignal, ScoreState, utcnow

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    SIGNAL_OBSERVED = "signal_observed"
    TOOL_USED = "tool_used"
    SESSION_RECORDED = "session_recorded"
    MESSAGE_SENT = "message_sent"
    ONBOARDING_COMPLETED = "onboarding_completed"
    INACTIVITY_TICK = "inactivity_tick"


class Tool(str, Enum):
    ROI_SIMULATION_RUN = "roi_simulation_run"
    RECOMMENDATIONS_VIEWED = "recommendations_viewed"


@dataclass(frozen=True)
class ScoreEvent:
    """One input to the aggregator."""
    kind: EventKind
    occurred_at: datetime = field(default_factory=utcnow)
    signal: Optional[IntentSignal] = None
    tool: Optional[Tool] = None
    event_id: Optional[str] = None

    @property
    def rule_key(self) -> str:
        if self.kind == EventKind.SIGNAL_OBSERVED and self.signal:
            return self.signal.value
        if self.kind == EventKind.TOOL_USED and self.tool:
            return self.tool.value
        return self.kind.value


@dataclass(frozen=True)
class Scores:
    urgency: int
    engagement: int

    def to_dict(self) -> Dict[str, int]:
        return {"urgency": self.urgency, "engagement": self.engagement}


def _clamp(value: int) -> int:
    return max(0, min(100, value))


class ScoreAggregator:
    """
    Maintains per-buyer urgency and engagement scores.

    Scoring rules (urgency, engagement):
    - call_request / booking_intent: +25 urgency
    - purchase_intent: +20 urgency
    - planning_visit: +15 urgency
    - contact_shared: +10 urgency
    - property_interest: +5 urgency, +5 engagement
    - disinterest: -20 urgency
    - roi_simulation_run: +10 engagement
    - recommendations_viewed: +5 engagement
    - session_recorded: +3 engagement
    - message_sent: +2 engagement
    - onboarding_completed: +5 urgency, +15 engagement

    Decay: every whole day of inactivity beyond the grace period removes
    urgency_decay_per_day urgency (and engagement_decay_per_day engagement).
    """

    SCORING_RULES: Dict[str, Tuple[int, int]] = {
        "call_request": (25, 0),
        "booking_intent": (25, 0),
        "purchase_intent": (20, 0),
        "planning_visit": (15, 0),
        "contact_shared": (10, 0),
        "property_interest": (5, 5),
        "disinterest": (-20, 0),
        "roi_simulation_run": (0, 10),
        "recommendations_viewed": (0, 5),
        "session_recorded": (0, 3),
        "message_sent": (0, 2),
        "onboarding_completed": (5, 15),
        "inactivity_tick": (0, 0),
    }

    SEEN_EVENT_WINDOW = 200
    RECENT_SIGNAL_WINDOW = 3

    def __init__(
        self,
        custom_rules: Optional[Dict[str, Tuple[int, int]]] = None,
        decay_grace_days: int = 3,
        urgency_decay_per_day: int = 2,
        engagement_decay_per_day: int = 0,
        recent_signal_window: int = RECENT_SIGNAL_WINDOW,
    ):
        """
        Args:
            custom_rules: Overrides for (urgency, engagement) deltas by rule key
            decay_grace_days: Inactive days before decay starts
            urgency_decay_per_day: Urgency lost per day beyond the grace period
            engagement_decay_per_day: Engagement lost per day beyond the grace period
            recent_signal_window: Buyer messages whose signals are kept for classification
        """
        self.rules = dict(self.SCORING_RULES)
        if custom_rules:
            self.rules.update(custom_rules)
        self.decay_grace_days = decay_grace_days
        self.urgency_decay_per_day = urgency_decay_per_day
        self.engagement_decay_per_day = engagement_decay_per_day
        self.recent_signal_window = recent_signal_window

    # ── Decay ─────────────────────────────────────────────────────

    def decay_days(self, state: ScoreState, now: datetime) -> int:
        """Whole days of decay owed since last activity."""
        if state.last_active_at is None or now <= state.last_active_at:
            return 0
        idle_days = (now - state.last_active_at).days
        return max(0, idle_days - self.decay_grace_days)

    def effective_scores(self, state: ScoreState, now: Optional[datetime] = None) -> Scores:
        """Scores as of `now`, with lazily applied decay."""
        now = now or utcnow()
        pending = max(0, self.decay_days(state, now) - state.decay_days_applied)
        return Scores(
            urgency=_clamp(state.urgency - pending * self.urgency_decay_per_day),
            engagement=_clamp(state.engagement - pending * self.engagement_decay_per_day),
        )

    def _materialize(self, state: ScoreState, at: datetime) -> ScoreState:
        scores = self.effective_scores(state, at)
        return replace(
            state,
            urgency=scores.urgency,
            engagement=scores.engagement,
            decay_days_applied=max(state.decay_days_applied, self.decay_days(state, at)),
        )

    # ── Events ────────────────────────────────────────────────────

    def apply_event(self, state: ScoreState, event: ScoreEvent) -> ScoreState:
        """
        Apply one event and return the new state.

        Duplicate event ids and events older than the last activity are
        ignored.
        """
        if event.event_id and event.event_id in state.seen_event_ids:
            logger.debug(f"Skipping duplicate score event {event.event_id}")
            return state

        if state.last_active_at and event.occurred_at < state.last_active_at:
            logger.warning(
                f"Ignoring out-of-order {event.rule_key} event at "
                f"{event.occurred_at.isoformat()} (last active {state.last_active_at.isoformat()})"
            )
            return state

        new_state = self._materialize(state, event.occurred_at)

        if event.kind != EventKind.INACTIVITY_TICK:
            urgency_delta, engagement_delta = self.rules.get(event.rule_key, (0, 0))
            new_state = replace(
                new_state,
                urgency=_clamp(new_state.urgency + urgency_delta),
                engagement=_clamp(new_state.engagement + engagement_delta),
                last_active_at=event.occurred_at,
                decay_days_applied=0,
            )

        if event.event_id:
            seen = (new_state.seen_event_ids + (event.event_id,))[-self.SEEN_EVENT_WINDOW:]
            new_state = replace(new_state, seen_event_ids=seen)

        return new_state

    def apply_events(self, state: ScoreState, events: Iterable[ScoreEvent]) -> ScoreState:
        for event in events:
            state = self.apply_event(state, event)
        return state

    def record_message_signals(self, state: ScoreState, signals: Iterable[IntentSignal]) -> ScoreState:
        """Push one buyer message's signals into the recent-signal window."""
        batch = frozenset(signals)
        recent = (state.recent_signals + (batch,))[-self.recent_signal_window:]
        return replace(state, recent_signals=recent)

    def replay(self, events: Iterable[ScoreEvent], now: Optional[datetime] = None) -> Scores:
        """Scores for a full event history read at `now`."""
        state = self.apply_events(ScoreState(), events)
        return self.effective_scores(state, now)
