"""
Supabase-backed RecordStore.

Uses the supabase client against the buyers, conversations, messages and
deals tables. The client is synchronous, so each call runs in a worker
thread.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client, create_client

from lead_intelligence.lead_classifier import count_by_lead_score, sort_buyers
from lead_intelligence.models import BuyerProfile, ChatMessage, Conversation, Deal, DealStage

logger = logging.getLogger(__name__)

OPEN_STAGES = [s.value for s in DealStage if not s.is_terminal]


def _message_row(message: ChatMessage, sequence: int) -> Dict[str, Any]:
    row = message.to_dict()
    row["created_at"] = row.pop("timestamp")
    row["sequence"] = sequence
    return row


def _buyer_row(buyer: BuyerProfile) -> Dict[str, Any]:
    # email is stored lowercased; lookups match it exactly
    row = buyer.to_dict()
    row["email"] = (row.get("email") or "").strip().lower()
    return row


class SupabaseRecordStore:
    """RecordStore over Supabase tables."""

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None, client: Optional[Client] = None):
        """
        Initialize the store.

        Args:
            url: Supabase project URL
            key: Supabase service key
            client: Pre-built client (tests)
        """
        if client is None:
            if not url or not key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for the supabase backend")
            client = create_client(url, key)
        self._client = client

    async def _run(self, fn):
        return await asyncio.to_thread(fn)

    async def _select_one(self, table: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        response = await self._run(
            lambda: self._client.table(table).select("*").eq(column, value).limit(1).execute()
        )
        return response.data[0] if response.data else None

    async def _insert(self, table: str, row: Dict[str, Any]) -> None:
        await self._run(lambda: self._client.table(table).insert(row).execute())

    async def _update(self, table: str, row: Dict[str, Any]) -> bool:
        response = await self._run(
            lambda: self._client.table(table).update(row).eq("id", row["id"]).execute()
        )
        return bool(response.data)

    # ── Buyers ──

    async def create_buyer(self, buyer: BuyerProfile) -> BuyerProfile:
        await self._insert("buyers", _buyer_row(buyer))
        logger.info(f"Created buyer {buyer.id} ({buyer.source.value})")
        return buyer

    async def get_buyer(self, buyer_id: str) -> Optional[BuyerProfile]:
        row = await self._select_one("buyers", "id", buyer_id)
        return BuyerProfile.from_dict(row) if row else None

    async def get_buyer_by_email(self, email: str) -> Optional[BuyerProfile]:
        response = await self._run(
            lambda: self._client.table("buyers")
            .select("*")
            .eq("email", email.strip().lower())
            .order("created_at")
            .limit(1)
            .execute()
        )
        return BuyerProfile.from_dict(response.data[0]) if response.data else None

    async def update_buyer(self, buyer: BuyerProfile) -> Optional[BuyerProfile]:
        return buyer if await self._update("buyers", _buyer_row(buyer)) else None

    async def list_buyers(
        self, lead_score: Optional[str] = None, limit: int = 50, sort: str = "score"
    ) -> List[BuyerProfile]:
        # PostgREST cannot order by a CASE expression; the queue is ranked client side
        def query():
            q = self._client.table("buyers").select("*")
            if lead_score:
                q = q.eq("lead_score", lead_score)
            return q.execute()

        response = await self._run(query)
        buyers = [BuyerProfile.from_dict(row) for row in response.data or []]
        return sort_buyers(buyers, sort)[:limit]

    async def count_buyers_by_lead_score(self) -> Dict[str, int]:
        response = await self._run(
            lambda: self._client.table("buyers").select("lead_score").execute()
        )
        return count_by_lead_score(row.get("lead_score") for row in response.data or [])

    # ── Conversations ──

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        await self._insert("conversations", conversation.to_dict(include_messages=False))
        for message in conversation.messages:
            await self.add_message(message)
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        row = await self._select_one("conversations", "id", conversation_id)
        if not row:
            return None
        conversation = Conversation.from_dict(row)
        conversation.messages = await self.get_messages(conversation_id)
        return conversation

    async def get_latest_conversation(self, buyer_id: str) -> Optional[Conversation]:
        response = await self._run(
            lambda: self._client.table("conversations")
            .select("id")
            .eq("buyer_id", buyer_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return await self.get_conversation(response.data[0]["id"])

    async def update_conversation(self, conversation: Conversation) -> Optional[Conversation]:
        row = conversation.to_dict(include_messages=False)
        return conversation if await self._update("conversations", row) else None

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        if await self._select_one("messages", "id", message.id):
            return message
        response = await self._run(
            lambda: self._client.table("messages")
            .select("id", count="exact")
            .eq("conversation_id", message.conversation_id)
            .execute()
        )
        await self._insert("messages", _message_row(message, response.count or 0))
        return message

    async def get_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        response = await self._run(
            lambda: self._client.table("messages")
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("sequence")
            .execute()
        )
        messages = [ChatMessage.from_dict(row) for row in response.data or []]
        if limit:
            messages = messages[-limit:]
        return messages

    # ── Deals ──

    async def create_deal(self, deal: Deal) -> Deal:
        await self._insert("deals", deal.to_dict())
        logger.info(f"Created deal {deal.id} for buyer {deal.buyer_id}")
        return deal

    async def get_deal(self, deal_id: str) -> Optional[Deal]:
        row = await self._select_one("deals", "id", deal_id)
        return Deal.from_dict(row) if row else None

    async def get_open_deal(self, buyer_id: str) -> Optional[Deal]:
        response = await self._run(
            lambda: self._client.table("deals")
            .select("*")
            .eq("buyer_id", buyer_id)
            .in_("stage", OPEN_STAGES)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return Deal.from_dict(response.data[0]) if response.data else None

    async def update_deal(self, deal: Deal) -> Optional[Deal]:
        return deal if await self._update("deals", deal.to_dict()) else None

    async def list_deals(
        self, stage: Optional[str] = None, buyer_id: Optional[str] = None, limit: Optional[int] = 50
    ) -> List[Deal]:
        def query():
            q = self._client.table("deals").select("*")
            if stage:
                q = q.eq("stage", stage)
            if buyer_id:
                q = q.eq("buyer_id", buyer_id)
            q = q.order("created_at", desc=True)
            if limit is not None:
                q = q.limit(limit)
            return q.execute()

        response = await self._run(query)
        return [Deal.from_dict(row) for row in response.data or []]

    async def save_interaction(
        self,
        buyer: BuyerProfile,
        conversation: Conversation,
        new_messages: Iterable[ChatMessage] = (),
        deal: Optional[Deal] = None,
    ) -> None:
        # No multi-table transactions over PostgREST; transcript is written first
        for message in new_messages:
            await self.add_message(message)
        await self.update_conversation(conversation)
        await self.update_buyer(buyer)
        if deal is not None:
            await self.update_deal(deal)
