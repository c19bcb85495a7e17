"""
Repository classes for the Yuvna data access layer.

Each repository encapsulates CRUD operations for a specific model and
maps rows to and from the lead intelligence domain objects.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, case, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from lead_intelligence.models import (
    BuyerProfile,
    ChatMessage,
    Conversation as ConversationRecord,
    Deal as DealRecord,
    parse_timestamp,
)
from lead_intelligence.lead_classifier import BUDGET_PRIORITY, BUYER_SORTS, LEAD_PRIORITY, count_by_lead_score
from .models import Buyer, Conversation, Message, Deal

logger = logging.getLogger(__name__)


def row_values(model_cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the keys of a domain dict that are columns of model_cls."""
    values = {}
    for column in model_cls.__table__.columns:
        if column.key not in data:
            continue
        value = data[column.key]
        if isinstance(column.type, DateTime):
            value = parse_timestamp(value)
        values[column.key] = value
    return values


def row_to_dict(row) -> Dict[str, Any]:
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}


def message_values(message: ChatMessage) -> Dict[str, Any]:
    data = message.to_dict()
    data["created_at"] = data.pop("timestamp")
    return row_values(Message, data)


class BuyerRepository:
    """Data access for buyers."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, buyer: BuyerProfile) -> BuyerProfile:
        self.session.add(Buyer(**row_values(Buyer, buyer.to_dict())))
        await self.session.flush()
        return buyer

    async def get_by_id(self, buyer_id: str) -> Optional[BuyerProfile]:
        row = await self.session.get(Buyer, buyer_id)
        return BuyerProfile.from_dict(row_to_dict(row)) if row else None

    async def get_by_email(self, email: str) -> Optional[BuyerProfile]:
        result = await self.session.execute(
            select(Buyer)
            .where(func.lower(Buyer.email) == email.strip().lower())
            .order_by(Buyer.created_at.asc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return BuyerProfile.from_dict(row_to_dict(row)) if row else None

    async def update(self, buyer: BuyerProfile) -> Optional[BuyerProfile]:
        row = await self.session.get(Buyer, buyer.id)
        if not row:
            return None
        for key, value in row_values(Buyer, buyer.to_dict()).items():
            setattr(row, key, value)
        await self.session.flush()
        return buyer

    async def list(
        self,
        lead_score: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        sort: str = "score",
    ) -> List[BuyerProfile]:
        if sort not in BUYER_SORTS:
            raise ValueError(f"Unknown buyer sort {sort!r}; expected one of {BUYER_SORTS}")
        lead_rank = case(
            {c.value: rank for c, rank in LEAD_PRIORITY.items()},
            value=Buyer.lead_score,
            else_=len(LEAD_PRIORITY),
        )
        if sort == "score":
            order = [lead_rank, Buyer.urgency_score.desc()]
        elif sort == "recent":
            order = [Buyer.last_active_at.desc().nulls_last()]
        else:
            budget_rank = case(
                {b.value: rank for b, rank in BUDGET_PRIORITY.items()},
                value=Buyer.budget_band,
                else_=len(BUDGET_PRIORITY),
            )
            order = [budget_rank, lead_rank]

        q = select(Buyer).order_by(*order, Buyer.created_at.desc()).offset(offset).limit(limit)
        if lead_score:
            q = q.where(Buyer.lead_score == lead_score)
        result = await self.session.execute(q)
        return [BuyerProfile.from_dict(row_to_dict(r)) for r in result.scalars().all()]

    async def count_by_score(self) -> Dict[str, int]:
        result = await self.session.execute(
            select(Buyer.lead_score, func.count(Buyer.id)).group_by(Buyer.lead_score)
        )
        counts = count_by_lead_score(())
        for lead_score, count in result.all():
            if lead_score in counts:
                counts[lead_score] = count
        return counts


class ConversationRepository:
    """Data access for conversations and messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, conversation: ConversationRecord) -> ConversationRecord:
        data = conversation.to_dict(include_messages=False)
        self.session.add(Conversation(**row_values(Conversation, data)))
        await self.session.flush()
        for message in conversation.messages:
            await self.add_message(message)
        return conversation

    async def get_by_id(
        self, conversation_id: str, with_messages: bool = True
    ) -> Optional[ConversationRecord]:
        row = await self.session.get(Conversation, conversation_id)
        if not row:
            return None
        conversation = ConversationRecord.from_dict(row_to_dict(row))
        if with_messages:
            conversation.messages = await self.get_messages(conversation_id)
        return conversation

    async def get_latest_for_buyer(self, buyer_id: str) -> Optional[ConversationRecord]:
        result = await self.session.execute(
            select(Conversation.id)
            .where(Conversation.buyer_id == buyer_id)
            .order_by(Conversation.created_at.desc())
            .limit(1)
        )
        conversation_id = result.scalar_one_or_none()
        return await self.get_by_id(conversation_id) if conversation_id else None

    async def update(self, conversation: ConversationRecord) -> Optional[ConversationRecord]:
        """Update conversation fields; messages are append-only via add_message."""
        row = await self.session.get(Conversation, conversation.id)
        if not row:
            return None
        data = conversation.to_dict(include_messages=False)
        for key, value in row_values(Conversation, data).items():
            setattr(row, key, value)
        await self.session.flush()
        return conversation

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        existing = await self.session.get(Message, message.id)
        if existing:
            return message
        count = await self.session.execute(
            select(func.count(Message.id)).where(Message.conversation_id == message.conversation_id)
        )
        self.session.add(Message(sequence=count.scalar() or 0, **message_values(message)))
        await self.session.flush()
        return message

    async def get_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        q = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.sequence.asc())
        )
        result = await self.session.execute(q)
        messages = [ChatMessage.from_dict(row_to_dict(r)) for r in result.scalars().all()]
        if limit:
            messages = messages[-limit:]
        return messages


class DealRepository:
    """Data access for deals."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, deal: DealRecord) -> DealRecord:
        self.session.add(Deal(**row_values(Deal, deal.to_dict())))
        await self.session.flush()
        return deal

    async def get_by_id(self, deal_id: str) -> Optional[DealRecord]:
        row = await self.session.get(Deal, deal_id)
        return DealRecord.from_dict(row_to_dict(row)) if row else None

    async def get_open_for_buyer(self, buyer_id: str) -> Optional[DealRecord]:
        result = await self.session.execute(
            select(Deal)
            .where(Deal.buyer_id == buyer_id)
            .where(Deal.stage.not_in(["closed-won", "closed-lost"]))
            .order_by(Deal.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return DealRecord.from_dict(row_to_dict(row)) if row else None

    async def update(self, deal: DealRecord) -> Optional[DealRecord]:
        row = await self.session.get(Deal, deal.id)
        if not row:
            return None
        for key, value in row_values(Deal, deal.to_dict()).items():
            setattr(row, key, value)
        await self.session.flush()
        return deal

    async def list(
        self,
        stage: Optional[str] = None,
        buyer_id: Optional[str] = None,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> List[DealRecord]:
        q = select(Deal).order_by(Deal.created_at.desc()).offset(offset).limit(limit)
        if stage:
            q = q.where(Deal.stage == stage)
        if buyer_id:
            q = q.where(Deal.buyer_id == buyer_id)
        result = await self.session.execute(q)
        return [DealRecord.from_dict(row_to_dict(r)) for r in result.scalars().all()]
