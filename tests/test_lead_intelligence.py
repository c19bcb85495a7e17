"""Tests for the lead intelligence components."""

from datetime import timedelta

import pytest

from lead_intelligence import (
    BuyerProfile,
    Conversation,
    Deal,
    DealStage,
    DropOffRisk,
    EscalationDecider,
    EscalationState,
    EventKind,
    IntentSignal,
    LeadClassifier,
    LeadScoreCategory,
    Persona,
    PipelineStageAdvisor,
    ScoreAggregator,
    ScoreEvent,
    ScoreState,
    SignalExtractor,
    Tool,
    extract_signals,
    next_escalation_state,
)
from lead_intelligence.exceptions import (
    InvalidEscalationTransitionError,
    InvalidStageTransitionError,
    SignalExtractionError,
)
from lead_intelligence.lead_classifier import count_by_lead_score, sort_buyers
from lead_intelligence.models import BudgetBand, BuyerGoal, ConversationStatus, RiskTolerance
from lead_intelligence.pipeline_advisor import summarize_pipeline


@pytest.fixture
def extractor():
    return SignalExtractor()


@pytest.fixture
def aggregator():
    return ScoreAggregator()


@pytest.fixture
def classifier():
    return LeadClassifier()


@pytest.fixture
def advisor():
    return PipelineStageAdvisor()


def signal_event(signal, at, event_id=None):
    return ScoreEvent(EventKind.SIGNAL_OBSERVED, at, signal=signal, event_id=event_id)


# ── Signal Extractor ──────────────────────────────────

class TestSignalExtractor:
    @pytest.mark.parametrize("message", [
        "Can you call me tomorrow?",
        "CALL ME after 6pm please",
        "I'd like to speak to someone about Dubai Marina",
        "Could I speak to  someone today",
    ])
    def test_call_phrases_give_call_request(self, extractor, message):
        assert IntentSignal.CALL_REQUEST in extractor.extract(message)

    def test_booking_viewing_next_week(self, extractor):
        assert extractor.extract("I want to book a viewing next week") == {IntentSignal.BOOKING_INTENT}

    def test_multiple_signals(self, extractor):
        signals = extractor.extract("Call me, and which area would you recommend for rentals?")
        assert signals == {IntentSignal.CALL_REQUEST, IntentSignal.PROPERTY_INTEREST}

    def test_planning_visit(self, extractor):
        assert IntentSignal.PLANNING_VISIT in extractor.extract("I'm coming to Dubai in March")

    def test_purchase_intent(self, extractor):
        assert IntentSignal.PURCHASE_INTENT in extractor.extract("We are ready to buy this quarter")

    def test_disinterest(self, extractor):
        assert extractor.extract("Thanks, I'm not interested anymore") == {IntentSignal.DISINTEREST}

    def test_contact_shared_from_phone_number(self, extractor):
        assert IntentSignal.CONTACT_SHARED in extractor.extract("You can reach +971 50 123 4567")

    def test_contact_shared_from_local_number(self, extractor):
        assert IntentSignal.CONTACT_SHARED in extractor.extract("Try 050 123 4567 after six")

    @pytest.mark.parametrize("message", [
        "My budget is 1 500 000 AED for a villa",
        "Budget around 2 000 000 dirhams",
        "Anything under AED 3 500 000?",
        "We can stretch to $ 1 200 000",
    ])
    def test_prices_are_not_contact_details(self, extractor, message):
        assert IntentSignal.CONTACT_SHARED not in extractor.extract(message)

    def test_contact_shared_from_email(self, extractor):
        assert IntentSignal.CONTACT_SHARED in extractor.extract("Send it to amira@example.com")

    def test_no_match_is_empty(self, extractor):
        assert extractor.extract("Hello, how is the weather today?") == frozenset()

    def test_empty_and_none(self, extractor):
        assert extractor.extract("") == frozenset()
        assert extractor.extract("   ") == frozenset()
        assert extractor.extract(None) == frozenset()

    def test_non_text_raises(self, extractor):
        with pytest.raises(SignalExtractionError):
            extractor.extract(12345)

    def test_custom_phrases(self):
        extractor = SignalExtractor(custom_phrases={IntentSignal.CALL_REQUEST: ["ping me"]})
        assert IntentSignal.CALL_REQUEST in extractor.extract("Ping me when it launches")

    def test_matched_phrases_explains(self, extractor):
        found = extractor.matched_phrases("Please call me to book a viewing")
        assert "call me" in found["call_request"]
        assert "book a viewing" in found["booking_intent"]

    def test_module_level_helper(self):
        assert extract_signals("talk to a human please") == {IntentSignal.CALL_REQUEST}


# ── Score Aggregator ──────────────────────────────────

class TestScoreAggregator:
    def test_call_request_adds_urgency(self, aggregator, t0):
        state = aggregator.apply_event(ScoreState(), signal_event(IntentSignal.CALL_REQUEST, t0))
        assert state.urgency == 25
        assert state.engagement == 0
        assert state.last_active_at == t0

    def test_roi_simulation_adds_engagement(self, aggregator, t0):
        event = ScoreEvent(EventKind.TOOL_USED, t0, tool=Tool.ROI_SIMULATION_RUN)
        state = aggregator.apply_event(ScoreState(), event)
        assert state.engagement == 10
        assert state.urgency == 0

    def test_duplicate_event_id_not_double_counted(self, aggregator, t0):
        event = signal_event(IntentSignal.CALL_REQUEST, t0, event_id="msg-1:call_request")
        state = aggregator.apply_events(ScoreState(), [event, event])
        assert state.urgency == 25

    def test_events_without_id_compound(self, aggregator, t0):
        event = signal_event(IntentSignal.CALL_REQUEST, t0)
        state = aggregator.apply_events(ScoreState(), [event, event])
        assert state.urgency == 50

    def test_scores_clamped(self, aggregator, t0):
        events = [signal_event(IntentSignal.BOOKING_INTENT, t0) for _ in range(6)]
        state = aggregator.apply_events(ScoreState(), events)
        assert state.urgency == 100

        state = aggregator.apply_event(ScoreState(), signal_event(IntentSignal.DISINTEREST, t0))
        assert state.urgency == 0

    def test_decay_after_grace_period(self, aggregator, t0):
        state = aggregator.apply_event(ScoreState(), signal_event(IntentSignal.CALL_REQUEST, t0))
        assert aggregator.effective_scores(state, t0 + timedelta(days=3)).urgency == 25
        assert aggregator.effective_scores(state, t0 + timedelta(days=5)).urgency == 21

    def test_decay_is_monotonic(self, aggregator, t0):
        state = aggregator.apply_events(ScoreState(), [
            signal_event(IntentSignal.CALL_REQUEST, t0),
            signal_event(IntentSignal.PURCHASE_INTENT, t0),
        ])
        previous = aggregator.effective_scores(state, t0).urgency
        for day in range(1, 40):
            current = aggregator.effective_scores(state, t0 + timedelta(days=day)).urgency
            assert current <= previous
            previous = current
        assert previous == 0

    def test_engagement_does_not_decay_by_default(self, aggregator, t0):
        event = ScoreEvent(EventKind.TOOL_USED, t0, tool=Tool.ROI_SIMULATION_RUN)
        state = aggregator.apply_event(ScoreState(), event)
        assert aggregator.effective_scores(state, t0 + timedelta(days=30)).engagement == 10

    def test_inactivity_tick_does_not_double_decay(self, aggregator, t0):
        state = aggregator.apply_event(ScoreState(), signal_event(IntentSignal.CALL_REQUEST, t0))
        ticked = aggregator.apply_event(state, ScoreEvent(EventKind.INACTIVITY_TICK, t0 + timedelta(days=5)))
        assert ticked.urgency == 21
        assert ticked.last_active_at == t0

        later = t0 + timedelta(days=6)
        assert aggregator.effective_scores(ticked, later) == aggregator.effective_scores(state, later)

    def test_activity_resets_decay_clock(self, aggregator, t0):
        state = aggregator.apply_event(ScoreState(), signal_event(IntentSignal.CALL_REQUEST, t0))
        resumed = t0 + timedelta(days=5)
        state = aggregator.apply_event(state, ScoreEvent(EventKind.SESSION_RECORDED, resumed))
        assert state.urgency == 21
        assert state.decay_days_applied == 0
        assert aggregator.effective_scores(state, resumed + timedelta(days=2)).urgency == 21

    def test_out_of_order_event_ignored(self, aggregator, t0):
        state = aggregator.apply_event(ScoreState(), signal_event(IntentSignal.CALL_REQUEST, t0))
        stale = signal_event(IntentSignal.PURCHASE_INTENT, t0 - timedelta(hours=1))
        assert aggregator.apply_event(state, stale) == state

    def test_replay_is_reproducible(self, aggregator, t0):
        events = [
            signal_event(IntentSignal.PLANNING_VISIT, t0),
            ScoreEvent(EventKind.TOOL_USED, t0 + timedelta(hours=1), tool=Tool.RECOMMENDATIONS_VIEWED),
            ScoreEvent(EventKind.MESSAGE_SENT, t0 + timedelta(hours=2)),
        ]
        now = t0 + timedelta(days=9)
        assert aggregator.replay(events, now) == aggregator.replay(events, now)

    def test_custom_rules(self, t0):
        aggregator = ScoreAggregator(custom_rules={"call_request": (40, 0)})
        state = aggregator.apply_event(ScoreState(), signal_event(IntentSignal.CALL_REQUEST, t0))
        assert state.urgency == 40

    def test_recent_signal_window(self, aggregator):
        state = ScoreState()
        state = aggregator.record_message_signals(state, {IntentSignal.CALL_REQUEST})
        for _ in range(3):
            state = aggregator.record_message_signals(state, set())
        assert state.recent_signal_union() == frozenset()


# ── Lead Classifier ───────────────────────────────────

class TestLeadClassifier:
    @pytest.mark.parametrize("urgency", [80, 81, 95, 100])
    @pytest.mark.parametrize("engagement", [0, 50, 100])
    def test_high_urgency_is_ready_to_call(self, classifier, urgency, engagement):
        assert classifier.classify(urgency, engagement).category == LeadScoreCategory.READY_TO_CALL

    @pytest.mark.parametrize("urgency,expected", [
        (79, LeadScoreCategory.HOT),
        (65, LeadScoreCategory.HOT),
        (64, LeadScoreCategory.WARM),
        (35, LeadScoreCategory.WARM),
        (34, LeadScoreCategory.COLD),
        (0, LeadScoreCategory.COLD),
    ])
    def test_category_boundaries(self, classifier, urgency, expected):
        assert classifier.categorize(urgency) == expected

    @pytest.mark.parametrize("signal", [IntentSignal.CALL_REQUEST, IntentSignal.BOOKING_INTENT])
    def test_explicit_signal_is_ready_to_call(self, classifier, signal):
        assert classifier.classify(0, 0, {signal}).category == LeadScoreCategory.READY_TO_CALL

    def test_planning_visit_alone_is_not_ready(self, classifier):
        assert classifier.classify(15, 0, {IntentSignal.PLANNING_VISIT}).category == LeadScoreCategory.COLD

    def test_adjust_thresholds(self, classifier):
        classifier.adjust_thresholds(ready_to_call=90, hot=70, warm=40)
        assert classifier.categorize(85) == LeadScoreCategory.HOT

    def test_unordered_thresholds_rejected(self, classifier):
        with pytest.raises(ValueError):
            classifier.adjust_thresholds(ready_to_call=60, hot=70, warm=40)

    def test_persona_requires_onboarding(self, classifier):
        profile = BuyerProfile(goal=BuyerGoal.VISA)
        result = classifier.classify(0, 0, profile=profile)
        assert result.persona is None
        assert result.persona_confidence == 0

    def test_persona_after_onboarding(self, classifier, t0):
        profile = BuyerProfile(
            goal=BuyerGoal.INVESTMENT,
            budget_band=BudgetBand.FROM_500K_TO_1M,
            risk_tolerance=RiskTolerance.CONSERVATIVE,
            onboarding_completed_at=t0,
        )
        result = classifier.classify(0, 0, profile=profile)
        assert result.persona == Persona.YIELD_INVESTOR
        assert result.persona_confidence == 100

    @pytest.mark.parametrize("goal,budget,risk,persona,confidence", [
        (BuyerGoal.INVESTMENT, None, RiskTolerance.AGGRESSIVE, Persona.CAPITAL_INVESTOR, 66),
        (BuyerGoal.VISA, None, None, Persona.VISA_DRIVEN, 33),
        (BuyerGoal.LIFESTYLE, BudgetBand.OVER_5M, RiskTolerance.MODERATE, Persona.LIFESTYLE, 100),
        (BuyerGoal.INVESTMENT, BudgetBand.FROM_2M_TO_5M, None, Persona.CAPITAL_INVESTOR, 66),
        (None, None, None, None, 0),
    ])
    def test_assign_persona(self, classifier, goal, budget, risk, persona, confidence):
        assert classifier.assign_persona(goal, budget, risk) == (persona, confidence)


# ── Escalation Decider ────────────────────────────────

class TestEscalationDecider:
    def test_pure_transition(self):
        assert next_escalation_state(EscalationState.NORMAL, {IntentSignal.CALL_REQUEST}) == EscalationState.PENDING
        assert next_escalation_state(EscalationState.NORMAL, {IntentSignal.PROPERTY_INTEREST}) == EscalationState.NORMAL
        assert next_escalation_state(EscalationState.PENDING, {IntentSignal.CALL_REQUEST}) == EscalationState.PENDING

    def test_edge_triggered(self):
        decider = EscalationDecider()
        conversation = Conversation(buyer_id="b-1")
        first = decider.evaluate(conversation, {IntentSignal.CALL_REQUEST})
        second = decider.evaluate(conversation, {IntentSignal.CALL_REQUEST})
        assert first.triggered and not second.triggered
        assert conversation.escalation_state == EscalationState.PENDING
        assert first.trigger_signals == {IntentSignal.CALL_REQUEST}

    def test_confirm_assigns_agents_round_robin(self, t0):
        decider = EscalationDecider(agent_ids=["agent-1", "agent-2"])
        agents = []
        for i in range(3):
            conversation = Conversation(buyer_id=f"b-{i}")
            decider.evaluate(conversation, {IntentSignal.BOOKING_INTENT})
            decider.confirm_handoff(conversation, at=t0)
            assert conversation.escalation_state == EscalationState.ESCALATED
            assert conversation.status == ConversationStatus.ESCALATED
            assert conversation.escalated_at == t0
            agents.append(conversation.assigned_agent_id)
        assert agents == ["agent-1", "agent-2", "agent-1"]

    def test_escalated_ignores_new_signals(self):
        decider = EscalationDecider()
        conversation = Conversation(buyer_id="b-1")
        decider.evaluate(conversation, {IntentSignal.CALL_REQUEST})
        decider.confirm_handoff(conversation, agent_id="agent-9")
        decision = decider.evaluate(conversation, {IntentSignal.CALL_REQUEST})
        assert not decision.triggered
        assert conversation.escalation_state == EscalationState.ESCALATED
        assert conversation.assigned_agent_id == "agent-9"

    def test_dismiss_returns_to_normal(self):
        decider = EscalationDecider()
        conversation = Conversation(buyer_id="b-1")
        decider.evaluate(conversation, {IntentSignal.PLANNING_VISIT})
        decider.dismiss(conversation)
        assert conversation.escalation_state == EscalationState.NORMAL
        assert decider.evaluate(conversation, {IntentSignal.PLANNING_VISIT}).triggered

    def test_reset_after_escalation(self):
        decider = EscalationDecider()
        conversation = Conversation(buyer_id="b-1")
        decider.evaluate(conversation, {IntentSignal.CALL_REQUEST})
        decider.confirm_handoff(conversation)
        decider.reset(conversation)
        assert conversation.escalation_state == EscalationState.NORMAL
        assert conversation.status == ConversationStatus.ACTIVE

    @pytest.mark.parametrize("action", ["confirm_handoff", "dismiss", "reset"])
    def test_invalid_transitions_raise(self, action):
        decider = EscalationDecider()
        conversation = Conversation(buyer_id="b-1")
        with pytest.raises(InvalidEscalationTransitionError):
            getattr(decider, action)(conversation)

    def test_custom_trigger_signals(self):
        decider = EscalationDecider(trigger_signals={IntentSignal.PURCHASE_INTENT})
        conversation = Conversation(buyer_id="b-1")
        assert not decider.evaluate(conversation, {IntentSignal.CALL_REQUEST}).triggered
        assert decider.evaluate(conversation, {IntentSignal.PURCHASE_INTENT}).triggered


# ── Deal & Pipeline Stage Advisor ─────────────────────

class TestDeal:
    def test_history_tracks_moves(self, t0):
        deal = Deal(buyer_id="b-1", created_at=t0)
        deal.move_to(DealStage.QUALIFIED, at=t0 + timedelta(days=1))
        deal.move_to(DealStage.ADVISORY, at=t0 + timedelta(days=4))
        assert [e.stage for e in deal.stage_history] == [DealStage.NEW, DealStage.QUALIFIED, DealStage.ADVISORY]
        assert deal.stage_history[0].exited_at == t0 + timedelta(days=1)
        assert deal.stage_history[-1].exited_at is None
        assert deal.stage_history[-1].stage == deal.stage

    def test_terminal_stage_rejects_moves(self, t0):
        deal = Deal(buyer_id="b-1", created_at=t0)
        deal.move_to(DealStage.CLOSED_LOST, at=t0, reason="Bought elsewhere")
        assert deal.lost_reason == "Bought elsewhere"
        assert deal.closed_at == t0
        with pytest.raises(InvalidStageTransitionError):
            deal.move_to(DealStage.QUALIFIED, at=t0)

    def test_read_path_self_heals_from_history(self, t0):
        deal = Deal(buyer_id="b-1", created_at=t0)
        deal.stage = DealStage.BOOKING
        assert deal.current_stage == DealStage.NEW
        assert deal.stage == DealStage.NEW


class TestPipelineStageAdvisor:
    def test_advisory_ten_days_is_medium_with_persona_action(self, advisor, t0):
        buyer = BuyerProfile(persona=Persona.VISA_DRIVEN, budget_band=BudgetBand.FROM_2M_TO_5M)
        deal = Deal(buyer_id=buyer.id, created_at=t0)
        deal.move_to(DealStage.ADVISORY, at=t0)

        advice = advisor.suggest_action(deal, buyer, now=t0 + timedelta(days=10))
        assert advice.drop_off_risk == DropOffRisk.MEDIUM
        assert advice.days_in_stage == 10
        assert "Golden Visa" in advice.suggested_action

    def test_advisory_over_fourteen_days_is_high(self, advisor, t0):
        deal = Deal(buyer_id="b-1", created_at=t0)
        deal.move_to(DealStage.ADVISORY, at=t0)
        advice = advisor.suggest_action(deal, now=t0 + timedelta(days=15))
        assert advice.drop_off_risk == DropOffRisk.HIGH
        assert advice.suggested_action.startswith("Re-engage: ")

    def test_silent_new_deal_is_high_after_two_days(self, advisor, t0):
        deal = Deal(buyer_id="b-1", created_at=t0)
        advice = advisor.suggest_action(deal, now=t0 + timedelta(days=2))
        assert advice.drop_off_risk == DropOffRisk.HIGH
        assert advice.suggested_action == "Re-engage: Initial outreach call"

    def test_new_deal_with_buyer_signals_uses_dwell_time(self, advisor, t0):
        deal = Deal(buyer_id="b-1", created_at=t0)
        deal.record_buyer_signals(1)
        advice = advisor.suggest_action(deal, now=t0 + timedelta(days=2))
        assert advice.drop_off_risk == DropOffRisk.LOW
        assert advice.suggested_action == "Initial outreach call"

    @pytest.mark.parametrize("stage,action", [
        (DealStage.QUALIFIED, "Schedule viewing"),
        (DealStage.SITE_VISIT, "Prepare offer package"),
        (DealStage.BOOKING, "Confirm deposit transfer"),
    ])
    def test_stage_actions(self, advisor, t0, stage, action):
        deal = Deal(buyer_id="b-1", created_at=t0)
        deal.move_to(stage, at=t0)
        assert advisor.suggest_action(deal, now=t0).suggested_action == action

    def test_visa_buyer_below_golden_visa_budget(self, advisor, t0):
        buyer = BuyerProfile(persona=Persona.VISA_DRIVEN, budget_band=BudgetBand.FROM_1M_TO_2M)
        deal = Deal(buyer_id=buyer.id, created_at=t0)
        deal.move_to(DealStage.QUALIFIED, at=t0)
        action = advisor.suggest_action(deal, buyer, now=t0).suggested_action
        assert "confirm Golden Visa eligibility" in action
        assert "below the AED 2M" in action

    def test_closed_deal_is_low_risk(self, advisor, t0):
        deal = Deal(buyer_id="b-1", created_at=t0)
        deal.move_to(DealStage.CLOSED_WON, at=t0)
        advice = advisor.suggest_action(deal, now=t0 + timedelta(days=90))
        assert advice.drop_off_risk == DropOffRisk.LOW
        assert advice.suggested_action == "Send handover checklist"

    def test_advisor_does_not_mutate_deal(self, advisor, t0):
        deal = Deal(buyer_id="b-1", created_at=t0)
        before = deal.to_dict()
        advisor.suggest_action(deal, now=t0 + timedelta(days=30))
        assert deal.to_dict() == before


# ── Lead queue and pipeline board ─────────────────────

class TestLeadQueue:
    def test_score_sort_puts_ready_to_call_first(self, t0):
        cold = BuyerProfile(first_name="C", created_at=t0)
        warm = BuyerProfile(first_name="W", lead_score=LeadScoreCategory.WARM, created_at=t0)
        ready = BuyerProfile(first_name="R", lead_score=LeadScoreCategory.READY_TO_CALL, created_at=t0)
        hot_low = BuyerProfile(first_name="H1", lead_score=LeadScoreCategory.HOT, urgency_score=65, created_at=t0)
        hot_high = BuyerProfile(first_name="H2", lead_score=LeadScoreCategory.HOT, urgency_score=75, created_at=t0)

        ordered = sort_buyers([cold, warm, hot_low, ready, hot_high])
        assert [b.first_name for b in ordered] == ["R", "H2", "H1", "W", "C"]

    def test_recent_sort_puts_never_active_last(self, t0):
        idle = BuyerProfile(first_name="idle", created_at=t0 + timedelta(days=5))
        old = BuyerProfile(first_name="old", created_at=t0, last_active_at=t0)
        new = BuyerProfile(first_name="new", created_at=t0, last_active_at=t0 + timedelta(days=1))
        assert [b.first_name for b in sort_buyers([idle, old, new], "recent")] == ["new", "old", "idle"]

    def test_budget_sort(self, t0):
        unknown = BuyerProfile(first_name="?", created_at=t0)
        small = BuyerProfile(first_name="s", budget_band=BudgetBand.UNDER_500K, created_at=t0)
        large = BuyerProfile(first_name="L", budget_band=BudgetBand.OVER_5M, created_at=t0)
        assert [b.first_name for b in sort_buyers([unknown, small, large], "budget")] == ["L", "s", "?"]

    def test_unknown_sort_rejected(self):
        with pytest.raises(ValueError):
            sort_buyers([], "alphabetical")

    def test_counts_cover_every_category(self):
        counts = count_by_lead_score([LeadScoreCategory.HOT, "hot", "cold", "mystery"])
        assert counts == {"ready-to-call": 0, "hot": 2, "warm": 0, "cold": 1}


class TestPipelineSummary:
    def test_counts_and_values_per_stage(self, t0):
        fresh = Deal(buyer_id="b1", budget=1_500_000, created_at=t0)
        no_budget = Deal(buyer_id="b2", created_at=t0)
        advising = Deal(buyer_id="b3", budget=2_000_000, created_at=t0)
        advising.move_to(DealStage.ADVISORY, at=t0 + timedelta(days=1))
        won = Deal(buyer_id="b4", budget=3_000_000, created_at=t0)
        won.move_to(DealStage.CLOSED_WON, at=t0 + timedelta(days=20))
        won.closed_value = 2_800_000

        summary = summarize_pipeline([fresh, no_budget, advising, won])

        assert summary["stages"]["new"] == {"count": 2, "total_value": 1_500_000}
        assert summary["stages"]["advisory"] == {"count": 1, "total_value": 2_000_000}
        assert summary["stages"]["closed-won"] == {"count": 1, "total_value": 2_800_000}
        assert summary["stages"]["closed-lost"] == {"count": 0, "total_value": 0}
        assert summary["active_deals"] == 3
        assert summary["active_value"] == 3_500_000

    def test_empty_pipeline(self):
        summary = summarize_pipeline([])
        assert set(summary["stages"]) == {s.value for s in DealStage}
        assert summary["active_deals"] == 0
