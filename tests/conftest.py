"""Shared fixtures for Yuvna lead intelligence tests."""

import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

# Ensure we use test settings: in-memory SQLite, no LLM credentials
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_BACKEND"] = "sql"
os.environ["LLM_PROVIDER"] = "auto"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["GOOGLE_API_KEY"] = ""
os.environ["AGENT_IDS"] = "agent-1,agent-2"

from lead_intelligence import BuyerProfile, BuyerSession, Deal, LeadIntelligenceEngine  # noqa: E402


class FakeProvider:
    """LLM provider double that records calls and returns canned text."""

    name = "fake"

    def __init__(self, reply="Happy to help with Dubai property.", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def generate(self, messages, system=None, temperature=None, json_mode=False):
        self.calls.append({
            "messages": messages,
            "system": system,
            "temperature": temperature,
            "json_mode": json_mode,
        })
        if self.error:
            raise self.error
        return self.reply


@pytest.fixture
def client():
    """Create a FastAPI test client with the lifespan running."""
    from api.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def t0():
    return datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def engine():
    return LeadIntelligenceEngine()


@pytest.fixture
def buyer():
    return BuyerProfile(
        first_name="Amira",
        last_name="Haddad",
        email="amira@example.com",
        phone="+971501234567",
        country="United Kingdom",
        consent_whatsapp=True,
        consent_email=True,
    )


@pytest.fixture
def buyer_session(buyer, t0):
    return BuyerSession(buyer=buyer, deal=Deal(buyer_id=buyer.id, created_at=t0))


@pytest.fixture
def new_buyer_payload():
    return {
        "first_name": "Omar",
        "last_name": "Rahman",
        "email": "omar@example.com",
        "phone": "+971509876543",
        "country": "India",
        "source": "onboarding-widget",
        "consent_whatsapp": True,
        "consent_email": True,
    }
