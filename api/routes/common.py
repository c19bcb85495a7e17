"""
Shared helpers for the API routes.
"""

from typing import Optional

from fastapi import HTTPException

from database.store import RecordStore
from lead_intelligence import BuyerProfile, BuyerSession, Conversation, Deal
from ..services import get_services


def require_store() -> RecordStore:
    services = get_services()
    if services.store is None:
        raise HTTPException(status_code=503, detail="Persistence is not configured")
    return services.store


async def load_buyer(buyer_id: str) -> BuyerProfile:
    buyer = await require_store().get_buyer(buyer_id)
    if not buyer:
        raise HTTPException(status_code=404, detail="Buyer not found")
    return buyer


async def load_conversation(conversation_id: str) -> Conversation:
    conversation = await require_store().get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


async def load_deal(deal_id: str) -> Deal:
    deal = await require_store().get_deal(deal_id)
    if not deal:
        raise HTTPException(status_code=404, detail="Deal not found")
    return deal


async def load_session(buyer_id: str, conversation_id: Optional[str] = None) -> BuyerSession:
    """Buyer with a conversation (given or latest) and the open deal."""
    store = require_store()
    buyer = await load_buyer(buyer_id)

    if conversation_id:
        conversation = await load_conversation(conversation_id)
        if conversation.buyer_id != buyer.id:
            raise HTTPException(status_code=404, detail="Conversation not found")
    else:
        conversation = await store.get_latest_conversation(buyer.id)

    deal = await store.get_open_deal(buyer.id)
    return BuyerSession(buyer=buyer, conversation=conversation, deal=deal)
