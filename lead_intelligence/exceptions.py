"""
Exceptions raised by the lead intelligence engine.
"""


class LeadIntelligenceError(Exception):
    """Base class for lead intelligence errors."""


class SignalExtractionError(LeadIntelligenceError):
    """Message could not be read as text."""


class InvalidStageTransitionError(LeadIntelligenceError):
    """Operator tried to move a deal out of a terminal stage."""

    def __init__(self, from_stage: str, to_stage: str):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(f"Cannot move deal from {from_stage} to {to_stage}")


class OutOfOrderMessageError(LeadIntelligenceError):
    """Message is older than the last message already in the conversation."""


class InvalidEscalationTransitionError(LeadIntelligenceError):
    """Human action does not apply to the conversation's escalation state."""

    def __init__(self, state: str, action: str):
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} a conversation in state {state}")
