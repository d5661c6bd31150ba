"""Tests for rule conditions, the Rule Registry, the Rule Evaluator and the default rules."""

from datetime import datetime, timezone

import pytest

from pbs_core.clock.business_time import BusinessClock
from pbs_core.errors import UnsupportedTriggerError
from pbs_core.models.automation import (
    Action,
    ActionType,
    AutomationRule,
    LifecycleEvent,
    NewTask,
    Trigger,
)
from pbs_core.models.config import AutomationConfig
from pbs_core.models.entities import Client, Event, Task
from pbs_core.rules.conditions import (
    AllOf,
    Always,
    EventTypeEquals,
    FieldEquals,
    Predicate,
    StatusTransition,
)
from pbs_core.rules.defaults import build_default_registry, build_default_rules
from pbs_core.rules.evaluator import RuleEvaluator
from pbs_core.rules.registry import RuleRegistry


NOW = datetime(2025, 3, 1, 2, 30, tzinfo=timezone.utc)


def _make_clock() -> BusinessClock:
    return BusinessClock("Australia/Melbourne", now_fn=lambda: NOW)


def _make_event(event_type: str = "Booking", status=None, event_id: int = 7) -> Event:
    return Event(
        event_id=event_id,
        client_id=42,
        event_type=event_type,
        date="2025-03-10T09:00:00+11:00",
        status=status,
    )


def _make_rule(rule_id: str, trigger=Trigger.EVENT_CREATED, condition=None, enabled=True) -> AutomationRule:
    return AutomationRule(
        rule_id=rule_id,
        name=rule_id,
        trigger=trigger,
        condition=condition or Always(),
        actions=(Action(type=ActionType.NOTIFY, payload=lambda e: rule_id),),
        enabled=enabled,
    )


def _boom(entity, previous):
    raise KeyError("missing field")


class TestConditions:
    def test_event_type_equals(self):
        condition = EventTypeEquals(event_type="Booking")
        assert condition.matches(_make_event("Booking"))
        assert not condition.matches(_make_event("Payment"))

    def test_field_equals(self):
        condition = FieldEquals(field="client_id", value=42)
        assert condition.matches(_make_event())
        assert not FieldEquals(field="client_id", value=1).matches(_make_event())

    def test_status_transition_without_previous(self):
        condition = StatusTransition(to_status="Completed")
        assert condition.matches(_make_event(status="Completed"))
        assert not condition.matches(_make_event(status="Scheduled"))

    def test_status_transition_requires_change(self):
        condition = StatusTransition(to_status="Completed")
        before = _make_event(status="Scheduled")
        after = _make_event(status="Completed")
        assert condition.matches(after, before)
        assert not condition.matches(after, after)

    def test_status_transition_from_status(self):
        condition = StatusTransition(to_status="Done", from_status="InProgress")
        due = "2025-03-08T09:00:00+11:00"
        before = Task(task_id=1, description="x", due_date=due, status="InProgress")
        done = Task(task_id=1, description="x", due_date=due, status="Done", completed_on=due)
        pending = Task(task_id=1, description="x", due_date=due)
        assert condition.matches(done, before)
        assert not condition.matches(done, pending)
        # A from_status cannot be checked without a snapshot
        assert not condition.matches(done)

    def test_all_of(self):
        condition = AllOf(
            EventTypeEquals(event_type="Consultation"),
            StatusTransition(to_status="Completed"),
        )
        assert condition.matches(_make_event("Consultation", "Completed"))
        assert not condition.matches(_make_event("Booking", "Completed"))
        assert condition.describe() == "event_type == 'Consultation' and status * -> Completed"

    def test_predicate(self):
        condition = Predicate(name="has notes", fn=lambda e, p: bool(e.notes))
        assert not condition.matches(_make_event())
        assert condition.describe() == "has notes"


class TestRuleRegistry:
    def test_rules_for_keeps_declaration_order(self):
        registry = RuleRegistry([
            _make_rule("b"),
            _make_rule("client", trigger=Trigger.CLIENT_CREATED),
            _make_rule("a"),
        ])
        assert [r.rule_id for r in registry.rules_for(Trigger.EVENT_CREATED)] == ["b", "a"]
        assert [r.rule_id for r in registry.rules_for("client.created")] == ["client"]

    def test_disabled_rules_are_skipped(self):
        registry = RuleRegistry([_make_rule("on"), _make_rule("off", enabled=False)])
        assert [r.rule_id for r in registry.rules_for("Event.created")] == ["on"]
        assert len(registry) == 2

    def test_trigger_with_no_rules(self):
        registry = RuleRegistry([_make_rule("a")])
        assert registry.rules_for(Trigger.TASK_UPDATED) == ()

    def test_unsupported_trigger(self):
        registry = RuleRegistry([_make_rule("a")])
        with pytest.raises(UnsupportedTriggerError):
            registry.rules_for("Pet.created")

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            RuleRegistry([_make_rule("a"), _make_rule("a")])

    def test_get(self):
        registry = RuleRegistry([_make_rule("a")])
        assert registry.get("a").rule_id == "a"
        assert registry.get("missing") is None


class TestRuleEvaluator:
    def test_returns_matches_in_order(self):
        rules = [
            _make_rule("first"),
            _make_rule("skip", condition=EventTypeEquals(event_type="Payment")),
            _make_rule("last"),
        ]
        event = LifecycleEvent(trigger="Event.created", entity=_make_event())
        matched = RuleEvaluator().matching(rules, event)
        assert [r.rule_id for r in matched] == ["first", "last"]

    def test_raising_condition_is_a_non_match(self, caplog):
        rules = [
            _make_rule("broken", condition=Predicate(name="boom", fn=_boom)),
            _make_rule("healthy"),
        ]
        event = LifecycleEvent(trigger="Event.created", entity=_make_event())

        with caplog.at_level("WARNING", logger="pbs_core.rules.evaluator"):
            matched = RuleEvaluator().matching(rules, event)

        assert [r.rule_id for r in matched] == ["healthy"]
        assert "broken" in caplog.text

    def test_wrong_shape_entity_fails_closed(self):
        # Clients have no event_type
        rules = [_make_rule("typed", condition=EventTypeEquals(event_type="Booking"))]
        client = Client(client_id=1, first_name="A", last_name="B")
        event = LifecycleEvent(trigger="Event.created", entity=client)
        assert RuleEvaluator().matching(rules, event) == []


class TestDefaultRules:
    def test_rule_set(self):
        rules = build_default_rules(_make_clock())
        assert [r.rule_id for r in rules] == [
            "booking-questionnaire-check",
            "consultation-follow-up",
            "training-session-prep",
            "client-creation-note",
            "questionnaire-received-review",
        ]
        assert all(r.enabled for r in rules)

    def test_booking_task_payload(self):
        registry = build_default_registry(_make_clock())
        rule = registry.get("booking-questionnaire-check")
        draft = rule.actions[0].payload(_make_event("Booking"))

        assert isinstance(draft, NewTask)
        assert draft.description == "Check questionnaire returned ≥ 48 hours before consultation"
        assert draft.due_date.isoformat() == "2025-03-08T09:00:00+11:00"
        assert draft.priority == 1
        assert draft.automated_action == "CheckQuestionnaireReturned"
        assert draft.triggered_by == "Event:Booking"
        assert (draft.client_id, draft.event_id) == (42, 7)

    def test_configured_lead_time(self):
        config = AutomationConfig(questionnaire_check_hours_before=72)
        rule = build_default_registry(_make_clock(), config).get("booking-questionnaire-check")
        draft = rule.actions[0].payload(_make_event("Booking"))
        assert draft.description.startswith("Check questionnaire returned ≥ 72 hours")
        assert draft.due_date.isoformat() == "2025-03-07T09:00:00+11:00"

    def test_consultation_rule_needs_completion(self):
        rule = build_default_registry(_make_clock()).get("consultation-follow-up")
        scheduled = _make_event("Consultation", "Scheduled")
        completed = _make_event("Consultation", "Completed")

        assert rule.trigger == Trigger.EVENT_UPDATED
        assert rule.condition.matches(completed, scheduled)
        assert not rule.condition.matches(completed, completed)
        assert not rule.condition.matches(scheduled)

        draft = rule.actions[0].payload(completed)
        assert draft.due_date.isoformat() == "2025-03-11T09:00:00+11:00"
        assert draft.automated_action == "SendProtocol"

    def test_client_note_payload(self):
        rule = build_default_registry(_make_clock()).get("client-creation-note")
        draft = rule.actions[0].payload(Client(client_id=42, first_name="Sam", last_name="Lee"))
        assert draft.event_type == "Note"
        assert draft.notes == "Client created"
        assert draft.client_id == 42
        assert draft.date.isoformat() == "2025-03-01T13:30:00+11:00"
