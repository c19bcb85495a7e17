"""
Buyer API Routes: creation, onboarding, behaviour events and routing snapshot.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from lead_intelligence import BuyerProfile, Deal, EventKind, Tool
from lead_intelligence.models import (
    BudgetBand,
    BuyerGoal,
    LeadScoreCategory,
    LeadSource,
    RiskTolerance,
    parse_timestamp,
    utcnow,
)
from llm.advisor import buyer_context
from ..middleware.metrics import record_fallback, record_lead_category
from ..services import get_services
from .common import load_buyer, load_session, require_store

logger = logging.getLogger(__name__)

router = APIRouter()

# Event kinds a client may report directly; signals and messages go through /chat
CLIENT_EVENT_KINDS = {EventKind.TOOL_USED, EventKind.SESSION_RECORDED, EventKind.INACTIVITY_TICK}


# ── Request / Response Models ─────────────────────────────────────

class BuyerCreate(BaseModel):
    """Buyer creation request (onboarding form, bulk import or partner referral)."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = None
    email: str = Field(..., min_length=3, max_length=255)
    phone: Optional[str] = None
    country: str = ""
    language: str = "en"
    currency: str = "AED"
    timezone: str = "Asia/Dubai"
    source: LeadSource = LeadSource.WEBSITE
    utm_campaign: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    referrer_partner: Optional[str] = None
    consent_marketing: bool = False
    consent_whatsapp: bool = False
    consent_email: bool = False
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    investment_horizon: Optional[str] = None


class OnboardingRequest(BaseModel):
    goal: Optional[BuyerGoal] = None
    budget_band: Optional[BudgetBand] = None
    risk_tolerance: Optional[RiskTolerance] = None


class EventRequest(BaseModel):
    kind: EventKind
    tool: Optional[Tool] = None
    event_id: Optional[str] = Field(default=None, max_length=200)
    occurred_at: Optional[datetime] = None


class OptOutRequest(BaseModel):
    channel: str = Field(..., pattern="^(email|whatsapp|phone|sms|all)$")


class SnapshotResponse(BaseModel):
    buyer_id: str
    lead_score: str
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


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/buyers", status_code=201)
async def create_buyer(request: BuyerCreate) -> Dict[str, Any]:
    """Create a buyer and open a deal in stage new."""
    store = require_store()

    existing = await store.get_buyer_by_email(request.email)
    if existing:
        raise HTTPException(
            status_code=409,
            detail={"message": "Buyer with this email already exists", "buyer_id": existing.id},
        )

    buyer = BuyerProfile(**request.model_dump())
    await store.create_buyer(buyer)
    deal = await store.create_deal(Deal(buyer_id=buyer.id, budget=buyer.budget_max))

    return {"buyer": buyer.to_dict(), "deal": deal.to_dict()}


@router.get("/buyers")
async def list_buyers(
    email: Optional[str] = Query(default=None),
    lead_score: Optional[LeadScoreCategory] = Query(default=None),
    sort: str = Query(default="score", pattern="^(score|recent|budget)$"),
    limit: int = Query(default=50, ge=1, le=200),
) -> Dict[str, Any]:
    """List buyers in lead queue order, or look one up by email."""
    store = require_store()
    if email:
        buyer = await store.get_buyer_by_email(email)
        buyers = [buyer] if buyer else []
    else:
        buyers = await store.list_buyers(
            lead_score=lead_score.value if lead_score else None, limit=limit, sort=sort
        )
    return {"buyers": [b.to_dict() for b in buyers], "total": len(buyers)}


@router.get("/buyers/summary")
async def buyer_summary() -> Dict[str, Any]:
    """Lead queue counts per lead score category."""
    counts = await require_store().count_buyers_by_lead_score()
    return {"total": sum(counts.values()), "by_lead_score": counts}


@router.get("/buyers/{buyer_id}")
async def get_buyer(buyer_id: str) -> Dict[str, Any]:
    buyer = await load_buyer(buyer_id)
    return buyer.to_dict()


@router.post("/buyers/{buyer_id}/onboarding", response_model=SnapshotResponse)
async def complete_onboarding(buyer_id: str, request: OnboardingRequest):
    """Store onboarding answers; assigns the persona once all three are known."""
    services = get_services()
    session = await load_session(buyer_id)

    snapshot = services.engine.complete_onboarding(
        session,
        goal=request.goal,
        budget_band=request.budget_band,
        risk_tolerance=request.risk_tolerance,
    )
    await require_store().update_buyer(session.buyer)
    record_lead_category(snapshot.lead_score.value)

    logger.info(f"Onboarding stored for buyer {buyer_id}: persona={snapshot.persona}")
    return snapshot.to_dict()


@router.post("/buyers/{buyer_id}/events", response_model=SnapshotResponse)
async def record_event(buyer_id: str, request: EventRequest):
    """Record tool use, a session, or an inactivity tick."""
    if request.kind not in CLIENT_EVENT_KINDS:
        raise HTTPException(status_code=422, detail=f"Event kind {request.kind.value} cannot be reported directly")
    if request.kind == EventKind.TOOL_USED and request.tool is None:
        raise HTTPException(status_code=422, detail="tool is required for tool_used events")

    services = get_services()
    session = await load_session(buyer_id)
    now = parse_timestamp(request.occurred_at) or utcnow()

    snapshot = services.engine.record_event(
        session, request.kind, now=now, tool=request.tool, event_id=request.event_id
    )
    await require_store().update_buyer(session.buyer)
    return snapshot.to_dict()


@router.post("/buyers/{buyer_id}/opt-out")
async def opt_out(buyer_id: str, request: OptOutRequest) -> Dict[str, Any]:
    buyer = await load_buyer(buyer_id)
    buyer.opt_out(request.channel)
    await require_store().update_buyer(buyer)
    logger.info(f"Buyer {buyer_id} opted out of {request.channel}")
    return {"buyer_id": buyer_id, "opt_out_channels": buyer.opt_out_channels}


@router.get("/buyers/{buyer_id}/snapshot", response_model=SnapshotResponse)
async def get_snapshot(buyer_id: str):
    """Current routing snapshot with decay applied as of now."""
    services = get_services()
    session = await load_session(buyer_id)
    snapshot = services.engine.snapshot(session)
    await require_store().update_buyer(session.buyer)
    return snapshot.to_dict()


@router.post("/buyers/{buyer_id}/recommendations")
async def get_recommendations(buyer_id: str) -> Dict[str, Any]:
    """Personalised property recommendations; viewing them counts as tool use."""
    services = get_services()
    session = await load_session(buyer_id)

    result = await services.advisor.generate_recommendations(buyer_context(session.buyer))
    if result.limited_mode:
        record_fallback("recommendations")

    snapshot = services.engine.record_event(
        session, EventKind.TOOL_USED, tool=Tool.RECOMMENDATIONS_VIEWED
    )
    await require_store().update_buyer(session.buyer)

    return {**result.to_dict(), "snapshot": snapshot.to_dict()}
