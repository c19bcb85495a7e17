"""
Escalation Decider: when a conversation should be handed to a human agent.

normal -> escalation-pending on the first qualifying message,
escalation-pending -> escalated once an agent takes the handoff (or back to
normal if the buyer dismisses the prompt). While escalated nothing is
evaluated until a human resets the conversation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional

from .exceptions import InvalidEscalationTransitionError
from .models import (
    Conversation,
    ConversationStatus,
    EscalationState,
    IntentSignal,
    utcnow,
)

logger = logging.getLogger(__name__)


DEFAULT_ESCALATION_SIGNALS = frozenset({
    IntentSignal.CALL_REQUEST,
    IntentSignal.BOOKING_INTENT,
    IntentSignal.PLANNING_VISIT,
})


def next_escalation_state(
    state: EscalationState,
    signals: Iterable[IntentSignal],
    trigger_signals: FrozenSet[IntentSignal] = DEFAULT_ESCALATION_SIGNALS,
) -> EscalationState:
    """Automatic transition for one incoming message."""
    if state == EscalationState.NORMAL and frozenset(signals) & trigger_signals:
        return EscalationState.PENDING
    return state


@dataclass(frozen=True)
class EscalationDecision:
    state: EscalationState
    triggered: bool = False
    trigger_signals: FrozenSet[IntentSignal] = frozenset()
    skipped: bool = False

    def to_dict(self) -> Dict:
        return {
            "state": self.state.value,
            "triggered": self.triggered,
            "trigger_signals": sorted(s.value for s in self.trigger_signals),
            "skipped": self.skipped,
        }


class EscalationDecider:
    """
    Per-conversation escalation state machine.

    The state lives on the Conversation; this class holds only policy (the
    trigger signals) and the agent pool used for round-robin assignment.
    """

    def __init__(
        self,
        trigger_signals: Optional[Iterable[IntentSignal]] = None,
        agent_ids: Optional[List[str]] = None,
    ):
        self.trigger_signals = frozenset(trigger_signals or DEFAULT_ESCALATION_SIGNALS)
        self._agent_queue: List[str] = list(agent_ids or [])
        self._agent_index = 0

    def evaluate(self, conversation: Conversation, signals: Iterable[IntentSignal]) -> EscalationDecision:
        """Evaluate one buyer message. Fires once per qualifying message in state normal."""
        signals = frozenset(signals)
        previous = conversation.escalation_state
        if previous == EscalationState.ESCALATED:
            return EscalationDecision(state=previous)

        new_state = next_escalation_state(previous, signals, self.trigger_signals)
        if new_state == previous:
            return EscalationDecision(state=previous)

        matched = signals & self.trigger_signals
        conversation.escalation_state = new_state
        conversation.escalated_reason = ", ".join(sorted(s.value for s in matched))
        logger.info(f"Escalation pending for conversation {conversation.id}: {conversation.escalated_reason}")
        return EscalationDecision(state=new_state, triggered=True, trigger_signals=matched)

    def confirm_handoff(
        self,
        conversation: Conversation,
        agent_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Conversation:
        """Human handoff taken: escalation-pending -> escalated."""
        if conversation.escalation_state != EscalationState.PENDING:
            raise InvalidEscalationTransitionError(conversation.escalation_state.value, "confirm")
        at = at or utcnow()
        conversation.escalation_state = EscalationState.ESCALATED
        conversation.status = ConversationStatus.ESCALATED
        conversation.escalated_at = at
        conversation.assigned_agent_id = agent_id or conversation.assigned_agent_id or self._assign_agent()
        conversation.updated_at = at
        logger.info(f"Handoff confirmed: {conversation.id} -> agent {conversation.assigned_agent_id}")
        return conversation

    def dismiss(self, conversation: Conversation) -> Conversation:
        """Buyer dismissed the prompt: escalation-pending -> normal."""
        if conversation.escalation_state != EscalationState.PENDING:
            raise InvalidEscalationTransitionError(conversation.escalation_state.value, "dismiss")
        conversation.escalation_state = EscalationState.NORMAL
        conversation.escalated_reason = None
        logger.info(f"Escalation dismissed: {conversation.id}")
        return conversation

    def reset(self, conversation: Conversation) -> Conversation:
        """Human reset of an escalated conversation back to automatic advisory."""
        if conversation.escalation_state != EscalationState.ESCALATED:
            raise InvalidEscalationTransitionError(conversation.escalation_state.value, "reset")
        conversation.escalation_state = EscalationState.NORMAL
        conversation.status = ConversationStatus.ACTIVE
        logger.info(f"Escalation reset: {conversation.id}")
        return conversation

    def set_agents(self, agent_ids: List[str]):
        """Set available agent IDs for round-robin assignment."""
        self._agent_queue = list(agent_ids)
        self._agent_index = 0

    def _assign_agent(self) -> Optional[str]:
        if not self._agent_queue:
            return None
        agent = self._agent_queue[self._agent_index % len(self._agent_queue)]
        self._agent_index += 1
        return agent
