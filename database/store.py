"""
RecordStore protocol and the SQL-backed implementation.

Abstracts buyer / conversation / deal persistence so the API can work
with either the SQLAlchemy database or Supabase.
"""

import logging
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lead_intelligence.models import BuyerProfile, ChatMessage, Conversation, Deal
from .repositories import BuyerRepository, ConversationRepository, DealRepository

logger = logging.getLogger(__name__)


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for buyer, conversation and deal persistence."""

    async def create_buyer(self, buyer: BuyerProfile) -> BuyerProfile:
        ...

    async def get_buyer(self, buyer_id: str) -> Optional[BuyerProfile]:
        ...

    async def get_buyer_by_email(self, email: str) -> Optional[BuyerProfile]:
        ...

    async def update_buyer(self, buyer: BuyerProfile) -> Optional[BuyerProfile]:
        ...

    async def list_buyers(
        self, lead_score: Optional[str] = None, limit: int = 50, sort: str = "score"
    ) -> List[BuyerProfile]:
        """List buyers in lead queue order (score, recent or budget)."""
        ...

    async def count_buyers_by_lead_score(self) -> Dict[str, int]:
        ...

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        ...

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Get a conversation with its messages in arrival order."""
        ...

    async def get_latest_conversation(self, buyer_id: str) -> Optional[Conversation]:
        ...

    async def update_conversation(self, conversation: Conversation) -> Optional[Conversation]:
        ...

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        ...

    async def get_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        ...

    async def create_deal(self, deal: Deal) -> Deal:
        ...

    async def get_deal(self, deal_id: str) -> Optional[Deal]:
        ...

    async def get_open_deal(self, buyer_id: str) -> Optional[Deal]:
        ...

    async def update_deal(self, deal: Deal) -> Optional[Deal]:
        ...

    async def list_deals(
        self, stage: Optional[str] = None, buyer_id: Optional[str] = None, limit: Optional[int] = 50
    ) -> List[Deal]:
        ...

    async def save_interaction(
        self,
        buyer: BuyerProfile,
        conversation: Conversation,
        new_messages: Iterable[ChatMessage] = (),
        deal: Optional[Deal] = None,
    ) -> None:
        """Persist the outcome of one engine call."""
        ...


class SqlRecordStore:
    """RecordStore backed by SQLAlchemy (PostgreSQL via asyncpg, SQLite via aiosqlite)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ── Buyers ──

    async def create_buyer(self, buyer: BuyerProfile) -> BuyerProfile:
        async with self._session_factory.begin() as session:
            await BuyerRepository(session).create(buyer)
        logger.info(f"Created buyer {buyer.id} ({buyer.source.value})")
        return buyer

    async def get_buyer(self, buyer_id: str) -> Optional[BuyerProfile]:
        async with self._session_factory() as session:
            return await BuyerRepository(session).get_by_id(buyer_id)

    async def get_buyer_by_email(self, email: str) -> Optional[BuyerProfile]:
        async with self._session_factory() as session:
            return await BuyerRepository(session).get_by_email(email)

    async def update_buyer(self, buyer: BuyerProfile) -> Optional[BuyerProfile]:
        async with self._session_factory.begin() as session:
            return await BuyerRepository(session).update(buyer)

    async def list_buyers(
        self, lead_score: Optional[str] = None, limit: int = 50, sort: str = "score"
    ) -> List[BuyerProfile]:
        async with self._session_factory() as session:
            return await BuyerRepository(session).list(lead_score=lead_score, limit=limit, sort=sort)

    async def count_buyers_by_lead_score(self) -> Dict[str, int]:
        async with self._session_factory() as session:
            return await BuyerRepository(session).count_by_score()

    # ── Conversations ──

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._session_factory.begin() as session:
            return await ConversationRepository(session).create(conversation)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        async with self._session_factory() as session:
            return await ConversationRepository(session).get_by_id(conversation_id)

    async def get_latest_conversation(self, buyer_id: str) -> Optional[Conversation]:
        async with self._session_factory() as session:
            return await ConversationRepository(session).get_latest_for_buyer(buyer_id)

    async def update_conversation(self, conversation: Conversation) -> Optional[Conversation]:
        async with self._session_factory.begin() as session:
            return await ConversationRepository(session).update(conversation)

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        async with self._session_factory.begin() as session:
            return await ConversationRepository(session).add_message(message)

    async def get_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        async with self._session_factory() as session:
            return await ConversationRepository(session).get_messages(conversation_id, limit=limit)

    # ── Deals ──

    async def create_deal(self, deal: Deal) -> Deal:
        async with self._session_factory.begin() as session:
            await DealRepository(session).create(deal)
        logger.info(f"Created deal {deal.id} for buyer {deal.buyer_id}")
        return deal

    async def get_deal(self, deal_id: str) -> Optional[Deal]:
        async with self._session_factory() as session:
            return await DealRepository(session).get_by_id(deal_id)

    async def get_open_deal(self, buyer_id: str) -> Optional[Deal]:
        async with self._session_factory() as session:
            return await DealRepository(session).get_open_for_buyer(buyer_id)

    async def update_deal(self, deal: Deal) -> Optional[Deal]:
        async with self._session_factory.begin() as session:
            return await DealRepository(session).update(deal)

    async def list_deals(
        self, stage: Optional[str] = None, buyer_id: Optional[str] = None, limit: Optional[int] = 50
    ) -> List[Deal]:
        async with self._session_factory() as session:
            return await DealRepository(session).list(stage=stage, buyer_id=buyer_id, limit=limit)

    async def save_interaction(
        self,
        buyer: BuyerProfile,
        conversation: Conversation,
        new_messages: Iterable[ChatMessage] = (),
        deal: Optional[Deal] = None,
    ) -> None:
        """Persist buyer, conversation, new messages and deal in one transaction."""
        async with self._session_factory.begin() as session:
            await BuyerRepository(session).update(buyer)
            conversations = ConversationRepository(session)
            await conversations.update(conversation)
            for message in new_messages:
                await conversations.add_message(message)
            if deal is not None:
                await DealRepository(session).update(deal)
