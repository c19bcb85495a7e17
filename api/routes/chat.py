"""
Chat API Routes for the Yuvna advisory assistant.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel, Field

from lead_intelligence import Conversation, EscalationState
from lead_intelligence.exceptions import OutOfOrderMessageError
from lead_intelligence.models import parse_timestamp, utcnow
from llm.advisor import HISTORY_LIMIT, buyer_context
from ..middleware.metrics import (
    record_escalation,
    record_fallback,
    record_lead_category,
    record_llm_latency,
    record_signals,
)
from ..services import get_services
from .common import load_conversation, load_session, require_store

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class ChatRequest(BaseModel):
    buyer_id: str
    message: str = Field(..., min_length=1, max_length=4000)
    conversation_id: Optional[str] = None
    sent_at: Optional[datetime] = None


class ChatResponse(BaseModel):
    response: Optional[str]
    conversation_id: str
    message_id: str
    intent_signals: List[str] = []
    escalation_state: str
    escalation_triggered: bool = False
    snapshot: Dict[str, Any]
    limited_mode: bool = False
    processing_time_ms: float
    timestamp: str


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, background_tasks: BackgroundTasks):
    """
    Process one buyer message.

    1. Extract signals and update scores  2. Evaluate escalation
    3. Generate the advisor reply (skipped while an agent owns the chat)
    4. Persist buyer, conversation and deal  5. Return routing snapshot
    """
    start_time = utcnow()
    services = get_services()
    store = require_store()

    session = await load_session(request.buyer_id, request.conversation_id)
    if session.conversation is None:
        session.conversation = await store.create_conversation(Conversation(buyer_id=session.buyer.id))

    now = parse_timestamp(request.sent_at) or utcnow()
    try:
        result = services.engine.process_buyer_message(session, request.message, now=now)
    except OutOfOrderMessageError as e:
        raise HTTPException(status_code=409, detail=str(e))

    new_messages = [result.message]
    reply_text: Optional[str] = None
    snapshot = result.snapshot

    if session.conversation.escalation_state != EscalationState.ESCALATED:
        advisory = await services.advisor.generate_advisory(
            session.conversation.history(limit=HISTORY_LIMIT),
            buyer_context(session.buyer),
        )
        record_llm_latency(advisory.processing_time_ms / 1000)
        if advisory.limited_mode:
            session.limited_mode = True
            snapshot = replace(snapshot, limited_mode=True)
            record_fallback("advisory")
        reply = services.engine.add_advisor_message(session, advisory.text, now=max(now, utcnow()))
        new_messages.append(reply)
        reply_text = reply.content

    await store.save_interaction(session.buyer, session.conversation, new_messages, session.deal)

    background_tasks.add_task(
        _log_chat_analytics,
        session.conversation.id,
        request.message,
        [s.value for s in result.signals],
        snapshot.lead_score.value,
        result.escalation.triggered,
    )

    return ChatResponse(
        response=reply_text,
        conversation_id=session.conversation.id,
        message_id=result.message.id,
        intent_signals=sorted(s.value for s in result.signals),
        escalation_state=session.conversation.escalation_state.value,
        escalation_triggered=result.escalation.triggered,
        snapshot=snapshot.to_dict(),
        limited_mode=session.limited_mode,
        processing_time_ms=round((utcnow() - start_time).total_seconds() * 1000, 2),
        timestamp=utcnow().isoformat(),
    )


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str) -> Dict[str, Any]:
    """Conversation with all messages in arrival order."""
    conversation = await load_conversation(conversation_id)
    data = conversation.to_dict()
    data["turn_count"] = len([m for m in conversation.messages if m.role.value == "buyer"])
    return data


# ── Helpers ───────────────────────────────────────────────────────

def _log_chat_analytics(
    conversation_id: str,
    message: str,
    signals: List[str],
    lead_score: str,
    escalation_triggered: bool,
):
    """Log chat analytics and business metrics (background task)."""
    record_signals(signals)
    record_lead_category(lead_score)
    if escalation_triggered:
        record_escalation("triggered")
    logger.info(
        "Chat analytics",
        extra={
            "conversation_id": conversation_id,
            "message_length": len(message),
            "intent_signals": signals,
            "lead_score": lead_score,
            "escalation_triggered": escalation_triggered,
        },
    )
