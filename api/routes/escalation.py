"""
Escalation API Routes: human actions on a conversation's handoff state.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from lead_intelligence.exceptions import InvalidEscalationTransitionError
from ..middleware.metrics import record_escalation
from ..services import get_services
from .common import load_conversation, require_store

logger = logging.getLogger(__name__)

router = APIRouter()


class ConfirmHandoffRequest(BaseModel):
    agent_id: Optional[str] = None


class EscalationResponse(BaseModel):
    conversation_id: str
    escalation_state: str
    status: str
    assigned_agent_id: Optional[str] = None
    escalated_at: Optional[str] = None
    escalated_reason: Optional[str] = None


def _response(conversation) -> EscalationResponse:
    return EscalationResponse(
        conversation_id=conversation.id,
        escalation_state=conversation.escalation_state.value,
        status=conversation.status.value,
        assigned_agent_id=conversation.assigned_agent_id,
        escalated_at=conversation.escalated_at.isoformat() if conversation.escalated_at else None,
        escalated_reason=conversation.escalated_reason,
    )


async def _apply(conversation_id: str, action: str, transition):
    conversation = await load_conversation(conversation_id)
    try:
        transition(conversation)
    except InvalidEscalationTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    await require_store().update_conversation(conversation)
    record_escalation(action)
    return _response(conversation)


@router.post("/conversations/{conversation_id}/escalation/confirm", response_model=EscalationResponse)
async def confirm_handoff(conversation_id: str, request: Optional[ConfirmHandoffRequest] = None):
    """An agent takes the handoff (escalation-pending -> escalated)."""
    decider = get_services().engine.escalation
    agent_id = request.agent_id if request else None
    return await _apply(
        conversation_id, "confirmed",
        lambda conversation: decider.confirm_handoff(conversation, agent_id=agent_id),
    )


@router.post("/conversations/{conversation_id}/escalation/dismiss", response_model=EscalationResponse)
async def dismiss_escalation(conversation_id: str):
    """Buyer declined the handoff prompt (escalation-pending -> normal)."""
    return await _apply(conversation_id, "dismissed", get_services().engine.escalation.dismiss)


@router.post("/conversations/{conversation_id}/escalation/reset", response_model=EscalationResponse)
async def reset_escalation(conversation_id: str):
    """Agent hands the conversation back to the assistant (escalated -> normal)."""
    return await _apply(conversation_id, "reset", get_services().engine.escalation.reset)
