"""
SQLAlchemy ORM models for the Yuvna lead intelligence service.

Persistent entities: buyers, conversations, messages and deals.
Column names follow the domain dictionaries so rows map one-to-one.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, ForeignKey,
    JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Buyer(Base):
    __tablename__ = "buyers"

    id = Column(String(36), primary_key=True, default=_uuid)
    first_name = Column(String(100), default="")
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(30), nullable=True)

    country = Column(String(100), default="")
    language = Column(String(10), default="en")
    currency = Column(String(3), default="AED")
    timezone = Column(String(50), default="Asia/Dubai")

    persona = Column(String(30), nullable=True)  # yield-investor, capital-investor, lifestyle, visa-driven, explorer
    persona_confidence = Column(Integer, default=0)
    goal = Column(String(20), nullable=True)
    budget_band = Column(String(20), nullable=True)
    budget_min = Column(Float, nullable=True)
    budget_max = Column(Float, nullable=True)

    urgency_score = Column(Integer, default=0)
    engagement_score = Column(Integer, default=0)
    lead_score = Column(String(20), default="cold")  # cold, warm, hot, ready-to-call

    risk_tolerance = Column(String(20), nullable=True)
    investment_horizon = Column(String(20), nullable=True)

    source = Column(String(20), default="website")
    utm_campaign = Column(String(255), nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    referrer_partner = Column(String(255), nullable=True)

    consent_marketing = Column(Boolean, default=False)
    consent_whatsapp = Column(Boolean, default=False)
    consent_email = Column(Boolean, default=False)
    opt_out_channels = Column(JSON, default=list)

    score_state = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
    last_active_at = Column(DateTime, nullable=True)
    onboarding_completed_at = Column(DateTime, nullable=True)

    conversations = relationship("Conversation", back_populates="buyer", cascade="all, delete-orphan")
    deals = relationship("Deal", back_populates="buyer", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_buyer_lead_score", "lead_score"),
    )


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    buyer_id = Column(String(36), ForeignKey("buyers.id", ondelete="CASCADE"), nullable=False, index=True)
    channel = Column(String(20), default="chat")
    status = Column(String(20), default="active")  # active, escalated, closed
    escalation_state = Column(String(20), default="normal")  # normal, escalation-pending, escalated
    escalated_at = Column(DateTime, nullable=True)
    escalated_reason = Column(String(255), nullable=True)
    assigned_agent_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    buyer = relationship("Buyer", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_conv_escalation", "escalation_state"),
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False, default=0)
    role = Column(String(10), nullable=False)  # buyer, advisor, system
    content = Column(Text, nullable=False)
    intent_signals = Column(JSON, default=list)
    escalation_trigger = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("ix_msg_conv_seq", "conversation_id", "sequence"),
    )


class Deal(Base):
    __tablename__ = "deals"

    id = Column(String(36), primary_key=True, default=_uuid)
    buyer_id = Column(String(36), ForeignKey("buyers.id", ondelete="CASCADE"), nullable=False, index=True)
    stage = Column(String(20), default="new")
    stage_history = Column(JSON, default=list)
    interested_properties = Column(JSON, default=list)
    budget = Column(Float, nullable=True)
    timeline = Column(String(50), nullable=True)
    assigned_agent_id = Column(String(36), nullable=True)
    buyer_signal_count = Column(Integer, default=0)
    closed_value = Column(Float, nullable=True)
    lost_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
    closed_at = Column(DateTime, nullable=True)

    buyer = relationship("Buyer", back_populates="deals")

    __table_args__ = (
        Index("ix_deal_stage", "stage"),
    )
