"""
Deal Pipeline API Routes.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from lead_intelligence import Deal, DealStage
from lead_intelligence.exceptions import InvalidStageTransitionError
from lead_intelligence.pipeline_advisor import summarize_pipeline
from ..services import get_services
from .common import load_buyer, load_deal, require_store

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request Models ────────────────────────────────────────────────

class DealCreate(BaseModel):
    buyer_id: str
    interested_properties: List[str] = []
    budget: Optional[float] = Field(default=None, ge=0)
    timeline: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    notes: Optional[str] = None


class StageMoveRequest(BaseModel):
    stage: DealStage
    reason: Optional[str] = None
    closed_value: Optional[float] = Field(default=None, ge=0)


async def _with_advice(deal: Deal) -> Dict[str, Any]:
    store = require_store()
    buyer = await store.get_buyer(deal.buyer_id)
    advice = get_services().engine.advise_deal(deal, buyer)
    return {**deal.to_dict(), "advice": advice.to_dict()}


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/deals", status_code=201)
async def create_deal(request: DealCreate) -> Dict[str, Any]:
    """Open a deal in stage new for an existing buyer."""
    buyer = await load_buyer(request.buyer_id)
    deal = Deal(**request.model_dump())
    await require_store().create_deal(deal)
    advice = get_services().engine.advise_deal(deal, buyer)
    return {**deal.to_dict(), "advice": advice.to_dict()}


@router.get("/deals")
async def list_deals(
    stage: Optional[DealStage] = Query(default=None),
    buyer_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
) -> Dict[str, Any]:
    deals = await require_store().list_deals(
        stage=stage.value if stage else None, buyer_id=buyer_id, limit=limit
    )
    return {"deals": [d.to_dict() for d in deals], "total": len(deals)}


@router.get("/deals/summary")
async def pipeline_summary(buyer_id: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    """Deal count and total value per pipeline stage."""
    deals = await require_store().list_deals(buyer_id=buyer_id, limit=None)
    return summarize_pipeline(deals)


@router.get("/deals/{deal_id}")
async def get_deal(deal_id: str) -> Dict[str, Any]:
    """Deal with its suggested next action and drop-off risk."""
    deal = await load_deal(deal_id)
    return await _with_advice(deal)


@router.post("/deals/{deal_id}/move")
async def move_deal(deal_id: str, request: StageMoveRequest) -> Dict[str, Any]:
    """Operator moves a deal to another stage; closed deals cannot move."""
    deal = await load_deal(deal_id)
    try:
        deal.move_to(request.stage, reason=request.reason)
    except InvalidStageTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if request.stage == DealStage.CLOSED_WON and request.closed_value is not None:
        deal.closed_value = request.closed_value

    await require_store().update_deal(deal)
    return await _with_advice(deal)
