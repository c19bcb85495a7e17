"""Tests for the SQL and Supabase record stores."""

import asyncio
import copy
import re
from datetime import timedelta
from types import SimpleNamespace

import pytest

from database.models import Buyer as BuyerRow, Conversation as ConversationRow, Deal as DealRow, Message as MessageRow
from database.session import close_db, init_db
from database.store import RecordStore, SqlRecordStore
from database.supabase_store import SupabaseRecordStore
from lead_intelligence import BuyerProfile, BuyerSession, Deal, DealStage, EscalationState, LeadScoreCategory
from lead_intelligence.models import (
    BudgetBand,
    BuyerGoal,
    ConversationStatus,
    LeadSource,
    MessageRole,
    Persona,
    RiskTolerance,
)


class FakeQuery:
    """Minimal PostgREST query builder over in-memory tables."""

    def __init__(self, tables, name):
        self.rows = tables.setdefault(name, [])
        self.op = "select"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.descending = False
        self.max_rows = None
        self.count_mode = None

    def select(self, *columns, count=None):
        self.count_mode = count
        return self

    def insert(self, row):
        self.op, self.payload = "insert", copy.deepcopy(row)
        return self

    def update(self, row):
        self.op, self.payload = "update", copy.deepcopy(row)
        return self

    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def ilike(self, column, pattern):
        # LIKE semantics: % is any run of characters, _ is any single character
        regex = "".join(".*" if ch == "%" else "." if ch == "_" else re.escape(ch) for ch in pattern)
        self.filters.append(lambda r: re.fullmatch(regex, r.get(column) or "", re.IGNORECASE) is not None)
        return self

    def in_(self, column, values):
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.order_by, self.descending = column, desc
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    def execute(self):
        if self.op == "insert":
            self.rows.append(self.payload)
            return SimpleNamespace(data=[copy.deepcopy(self.payload)], count=None)

        matched = [r for r in self.rows if all(f(r) for f in self.filters)]
        if self.op == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=copy.deepcopy(matched), count=None)

        if self.order_by:
            matched = sorted(matched, key=lambda r: r.get(self.order_by), reverse=self.descending)
        if self.max_rows is not None:
            matched = matched[:self.max_rows]
        count = len(matched) if self.count_mode else None
        return SimpleNamespace(data=copy.deepcopy(matched), count=count)


class FakeSupabaseClient:
    def __init__(self):
        self.tables = {}

    def table(self, name):
        return FakeQuery(self.tables, name)


async def make_sql_store():
    return SqlRecordStore(await init_db("sqlite+aiosqlite:///:memory:"))


async def make_supabase_store():
    return SupabaseRecordStore(client=FakeSupabaseClient())


@pytest.fixture(params=["sql", "supabase"])
def run_with_store(request):
    make_store = make_sql_store if request.param == "sql" else make_supabase_store

    def run(scenario):
        async def main():
            store = await make_store()
            try:
                return await scenario(store)
            finally:
                await close_db()
        return asyncio.run(main())

    return run


def test_supabase_store_requires_credentials():
    with pytest.raises(ValueError):
        SupabaseRecordStore(url="https://example.supabase.co", key=None)


def test_stores_satisfy_protocol(run_with_store):
    async def scenario(store):
        assert isinstance(store, RecordStore)

    run_with_store(scenario)


def test_buyer_round_trip_preserves_scores(run_with_store, engine, buyer_session, t0):
    engine.process_buyer_message(buyer_session, "Please call me about Dubai Hills", now=t0)
    buyer = buyer_session.buyer
    buyer.persona = Persona.CAPITAL_INVESTOR
    buyer.persona_confidence = 66

    async def scenario(store):
        await store.create_buyer(buyer)
        return await store.get_buyer(buyer.id)

    loaded = run_with_store(scenario)
    assert loaded.persona == Persona.CAPITAL_INVESTOR
    assert loaded.lead_score == LeadScoreCategory.READY_TO_CALL
    assert loaded.urgency_score == buyer.urgency_score == 25
    assert loaded.score_state == buyer.score_state
    assert loaded.last_active_at == t0


def test_buyer_lookup_and_listing(run_with_store, buyer):
    buyer.lead_score = LeadScoreCategory.HOT

    async def scenario(store):
        await store.create_buyer(buyer)
        by_email = await store.get_buyer_by_email("AMIRA@Example.com")
        hot = await store.list_buyers(lead_score="hot")
        cold = await store.list_buyers(lead_score="cold")
        missing = await store.get_buyer("does-not-exist")
        return by_email, hot, cold, missing

    by_email, hot, cold, missing = run_with_store(scenario)
    assert by_email.id == buyer.id
    assert [b.id for b in hot] == [buyer.id]
    assert cold == []
    assert missing is None


def test_update_buyer(run_with_store, buyer):
    async def scenario(store):
        await store.create_buyer(buyer)
        buyer.opt_out("email")
        await store.update_buyer(buyer)
        return await store.get_buyer(buyer.id)

    assert run_with_store(scenario).opt_out_channels == ["email"]


def test_conversation_messages_in_arrival_order(run_with_store, engine, buyer_session, t0):
    for text in ("Hi", "Which area do you recommend?", "Call me"):
        engine.process_buyer_message(buyer_session, text, now=t0)
    conversation = buyer_session.conversation

    async def scenario(store):
        await store.create_buyer(buyer_session.buyer)
        await store.create_conversation(conversation)
        await store.add_message(conversation.messages[0])
        loaded = await store.get_conversation(conversation.id)
        latest = await store.get_latest_conversation(buyer_session.buyer.id)
        last_two = await store.get_messages(conversation.id, limit=2)
        return loaded, latest, last_two

    loaded, latest, last_two = run_with_store(scenario)
    assert [m.content for m in loaded.messages] == ["Hi", "Which area do you recommend?", "Call me"]
    assert loaded.escalation_state == conversation.escalation_state
    assert loaded.messages[-1].escalation_trigger
    assert latest.id == conversation.id
    assert [m.content for m in last_two] == ["Which area do you recommend?", "Call me"]


def test_deal_stage_history_persists(run_with_store, buyer, t0):
    deal = Deal(buyer_id=buyer.id, created_at=t0)
    deal.move_to(DealStage.QUALIFIED, at=t0 + timedelta(days=1))
    deal.move_to(DealStage.ADVISORY, at=t0 + timedelta(days=3))

    async def scenario(store):
        await store.create_buyer(buyer)
        await store.create_deal(deal)
        loaded = await store.get_deal(deal.id)
        open_deal = await store.get_open_deal(buyer.id)
        advisory = await store.list_deals(stage="advisory")

        deal.move_to(DealStage.CLOSED_LOST, at=t0 + timedelta(days=9), reason="Chose another developer")
        await store.update_deal(deal)
        after_close = await store.get_open_deal(buyer.id)
        closed = await store.get_deal(deal.id)
        return loaded, open_deal, advisory, after_close, closed

    loaded, open_deal, advisory, after_close, closed = run_with_store(scenario)
    assert [e.stage for e in loaded.stage_history] == [DealStage.NEW, DealStage.QUALIFIED, DealStage.ADVISORY]
    assert loaded.days_in_stage(t0 + timedelta(days=13)) == 10
    assert open_deal.id == deal.id
    assert [d.id for d in advisory] == [deal.id]
    assert after_close is None
    assert closed.stage == DealStage.CLOSED_LOST
    assert closed.lost_reason == "Chose another developer"


def test_save_interaction(run_with_store, engine, buyer_session, t0):
    engine.process_buyer_message(buyer_session, "Hello", now=t0)

    async def scenario(store):
        await store.create_buyer(buyer_session.buyer)
        await store.create_conversation(buyer_session.conversation)
        await store.create_deal(buyer_session.deal)

        session = BuyerSession(
            buyer=await store.get_buyer(buyer_session.buyer.id),
            conversation=await store.get_latest_conversation(buyer_session.buyer.id),
            deal=await store.get_open_deal(buyer_session.buyer.id),
        )
        result = engine.process_buyer_message(session, "I want to book a viewing", now=t0 + timedelta(hours=1))
        reply = engine.add_advisor_message(session, "Let me connect you with an agent.", now=t0 + timedelta(hours=1))
        await store.save_interaction(session.buyer, session.conversation, [result.message, reply], session.deal)

        return (
            await store.get_buyer(session.buyer.id),
            await store.get_conversation(session.conversation.id),
            await store.get_deal(session.deal.id),
        )

    buyer, conversation, deal = run_with_store(scenario)
    assert buyer.lead_score == LeadScoreCategory.READY_TO_CALL
    assert conversation.escalation_state.value == "escalation-pending"
    assert [m.role.value for m in conversation.messages] == ["buyer", "buyer", "advisor"]
    assert deal.buyer_signal_count == 1


@pytest.mark.parametrize("row_cls,column,enum_cls", [
    (BuyerRow, "persona", Persona),
    (BuyerRow, "goal", BuyerGoal),
    (BuyerRow, "budget_band", BudgetBand),
    (BuyerRow, "risk_tolerance", RiskTolerance),
    (BuyerRow, "lead_score", LeadScoreCategory),
    (BuyerRow, "source", LeadSource),
    (ConversationRow, "status", ConversationStatus),
    (ConversationRow, "escalation_state", EscalationState),
    (MessageRow, "role", MessageRole),
    (DealRow, "stage", DealStage),
])
def test_enum_columns_fit_every_value(row_cls, column, enum_cls):
    width = row_cls.__table__.c[column].type.length
    assert width >= max(len(member.value) for member in enum_cls)


def test_conservative_buyer_round_trip(run_with_store, buyer):
    buyer.risk_tolerance = RiskTolerance.CONSERVATIVE

    async def scenario(store):
        await store.create_buyer(buyer)
        return await store.get_buyer(buyer.id)

    assert run_with_store(scenario).risk_tolerance == RiskTolerance.CONSERVATIVE


def test_email_lookup_is_not_a_pattern(run_with_store):
    axb = BuyerProfile(first_name="Axel", email="axb@example.com")

    async def scenario(store):
        await store.create_buyer(axb)
        underscore = await store.get_buyer_by_email("a_b@example.com")
        percent = await store.get_buyer_by_email("%@example.com")
        exact = await store.get_buyer_by_email(" AXB@example.com ")
        return underscore, percent, exact

    underscore, percent, exact = run_with_store(scenario)
    assert underscore is None
    assert percent is None
    assert exact.id == axb.id


@pytest.fixture
def lead_queue(t0):
    return {
        "cold": BuyerProfile(
            first_name="Cold", email="cold@example.com", created_at=t0 + timedelta(hours=3),
            budget_band=BudgetBand.OVER_5M, last_active_at=t0 + timedelta(days=1),
        ),
        "hot": BuyerProfile(
            first_name="Hot", email="hot@example.com", created_at=t0,
            lead_score=LeadScoreCategory.HOT, urgency_score=70, budget_band=BudgetBand.FROM_1M_TO_2M,
        ),
        "ready": BuyerProfile(
            first_name="Ready", email="ready@example.com", created_at=t0 + timedelta(hours=1),
            lead_score=LeadScoreCategory.READY_TO_CALL, urgency_score=85,
            last_active_at=t0 + timedelta(days=2),
        ),
        "hot_two": BuyerProfile(
            first_name="Hot Two", email="hot2@example.com", created_at=t0 + timedelta(hours=2),
            lead_score=LeadScoreCategory.HOT, urgency_score=66, budget_band=BudgetBand.FROM_1M_TO_2M,
            last_active_at=t0 + timedelta(hours=3),
        ),
    }


@pytest.mark.parametrize("sort,expected", [
    ("score", ["ready", "hot", "hot_two", "cold"]),
    ("recent", ["ready", "cold", "hot_two", "hot"]),
    ("budget", ["cold", "hot_two", "hot", "ready"]),
])
def test_list_buyers_sorted(run_with_store, lead_queue, sort, expected):
    async def scenario(store):
        for buyer in lead_queue.values():
            await store.create_buyer(buyer)
        return await store.list_buyers(sort=sort)

    ids = [b.id for b in run_with_store(scenario)]
    assert ids == [lead_queue[name].id for name in expected]


def test_list_buyers_limit_applies_after_ranking(run_with_store, lead_queue):
    async def scenario(store):
        for buyer in lead_queue.values():
            await store.create_buyer(buyer)
        return await store.list_buyers(limit=2)

    assert [b.first_name for b in run_with_store(scenario)] == ["Ready", "Hot"]


def test_list_buyers_unknown_sort(run_with_store):
    async def scenario(store):
        with pytest.raises(ValueError):
            await store.list_buyers(sort="alphabetical")

    run_with_store(scenario)


def test_count_buyers_by_lead_score(run_with_store, lead_queue):
    async def scenario(store):
        for buyer in lead_queue.values():
            await store.create_buyer(buyer)
        return await store.count_buyers_by_lead_score()

    assert run_with_store(scenario) == {"ready-to-call": 1, "hot": 2, "warm": 0, "cold": 1}


def test_list_deals_without_limit(run_with_store, buyer):
    deals = [Deal(buyer_id=buyer.id) for _ in range(3)]

    async def scenario(store):
        await store.create_buyer(buyer)
        for deal in deals:
            await store.create_deal(deal)
        return await store.list_deals(buyer_id=buyer.id, limit=None)

    assert len(run_with_store(scenario)) == 3
