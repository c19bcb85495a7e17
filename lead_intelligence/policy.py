"""
Configurable lead policy: thresholds, decay and escalation triggers.

The numbers are business policy rather than constants, so they are read from
settings and handed to each component.
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List

from .escalation import DEFAULT_ESCALATION_SIGNALS
from .models import IntentSignal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeadPolicy:
    ready_to_call_threshold: int = 80
    hot_threshold: int = 65
    warm_threshold: int = 35
    recent_signal_window: int = 3
    decay_grace_days: int = 3
    urgency_decay_per_day: int = 2
    engagement_decay_per_day: int = 0
    escalation_signals: FrozenSet[IntentSignal] = DEFAULT_ESCALATION_SIGNALS
    agent_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings) -> "LeadPolicy":
        signals = set()
        for name in settings.escalation_signals_list:
            try:
                signals.add(IntentSignal(name))
            except ValueError:
                logger.warning(f"Ignoring unknown escalation signal in settings: {name}")
        return cls(
            ready_to_call_threshold=settings.lead_threshold_ready_to_call,
            hot_threshold=settings.lead_threshold_hot,
            warm_threshold=settings.lead_threshold_warm,
            recent_signal_window=settings.recent_signal_window,
            decay_grace_days=settings.decay_grace_days,
            urgency_decay_per_day=settings.urgency_decay_per_day,
            engagement_decay_per_day=settings.engagement_decay_per_day,
            escalation_signals=frozenset(signals) or DEFAULT_ESCALATION_SIGNALS,
            agent_ids=settings.agent_ids_list,
        )
