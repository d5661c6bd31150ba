"""Tests for the Automation Engine."""

from datetime import datetime, timedelta, timezone

import pytest

from pbs_core.clock.business_time import BusinessClock
from pbs_core.engine.automation import AutomationEngine
from pbs_core.errors import StoreError, UnsupportedTriggerError
from pbs_core.models.automation import (
    Action,
    ActionType,
    AutomationRule,
    LifecycleEvent,
    NewTask,
    Trigger,
)
from pbs_core.models.entities import Client, EntityType, Event, Task
from pbs_core.rules.conditions import Always, EventTypeEquals, Predicate
from pbs_core.rules.defaults import build_default_registry, build_default_rules
from pbs_core.rules.registry import RuleRegistry
from pbs_core.store.memory import InMemoryEntityStore


NOW = datetime(2025, 3, 1, 2, 30, tzinfo=timezone.utc)


class RecordingStore(InMemoryEntityStore):
    """Remembers every public call made against it."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def create(self, entity_type, fields):
        self.calls.append(("create", entity_type))
        return super().create(entity_type, fields)

    def update(self, entity_type, entity_id, fields):
        self.calls.append(("update", entity_type))
        return super().update(entity_type, entity_id, fields)

    def get(self, entity_type, entity_id):
        self.calls.append(("get", entity_type))
        return super().get(entity_type, entity_id)

    def list(self, entity_type, **filters):
        self.calls.append(("list", entity_type))
        return super().list(entity_type, **filters)


class FlakyStore(InMemoryEntityStore):
    """Fails the first create call, then behaves."""

    def __init__(self):
        super().__init__()
        self.failed = False

    def create(self, entity_type, fields):
        if not self.failed:
            self.failed = True
            raise StoreError("database is locked", EntityType(entity_type).value)
        return super().create(entity_type, fields)


def _make_clock() -> BusinessClock:
    return BusinessClock("Australia/Melbourne", now_fn=lambda: NOW)


def _make_engine(store=None, registry=None) -> AutomationEngine:
    clock = _make_clock()
    store = store if store is not None else InMemoryEntityStore()
    return AutomationEngine(registry or build_default_registry(clock), store, clock)


def _make_event(event_type: str, date: str = "2025-03-10T09:00:00+11:00", status=None) -> Event:
    return Event(event_id=7, client_id=42, event_type=event_type, date=date, status=status)


def _task_rule(rule_id: str, condition=None) -> AutomationRule:
    return AutomationRule(
        rule_id=rule_id,
        name=rule_id,
        trigger=Trigger.EVENT_CREATED,
        condition=condition or Always(),
        actions=(
            Action(
                type=ActionType.CREATE_TASK,
                payload=lambda e: NewTask(
                    client_id=e.client_id,
                    event_id=e.event_id,
                    description=f"Task from {rule_id}",
                    due_date=e.date,
                    automated_action=rule_id,
                    triggered_by="Test",
                ),
            ),
        ),
    )


class TestBookingRule:
    def test_booking_creates_one_questionnaire_task(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)

        results = engine.handle_lifecycle_event(
            LifecycleEvent(trigger="Event.created", entity=_make_event("Booking"))
        )

        assert len(results) == 1
        result = results[0]
        assert result.rule_id == "booking-questionnaire-check"
        assert result.action_type == ActionType.CREATE_TASK
        assert result.success

        tasks = store.list(EntityType.TASK)
        assert len(tasks) == 1
        task = tasks[0]
        assert task.task_id == result.created_id
        assert task.due_date.isoformat() == "2025-03-08T09:00:00+11:00"
        assert task.priority == 1
        assert task.status == "Pending"
        assert task.automated_action == "CheckQuestionnaireReturned"
        assert task.triggered_by == "Event:Booking"

    def test_due_date_is_48_elapsed_hours_across_dst(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)
        booking = _make_event("Booking", date="2025-04-07T09:00:00+10:00")

        engine.on_event_created(booking)

        task = store.list(EntityType.TASK)[0]
        assert task.due_date.isoformat() == "2025-04-05T10:00:00+11:00"
        assert booking.date - task.due_date == timedelta(hours=48)

    def test_other_event_types_create_nothing(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)

        assert engine.on_event_created(_make_event("Payment")) == []
        assert store.count(EntityType.TASK) == 0

    def test_repeated_calls_are_deterministic(self):
        first, second = InMemoryEntityStore(), InMemoryEntityStore()
        booking = _make_event("Booking")

        a = _make_engine(first).on_event_created(booking)
        b = _make_engine(second).on_event_created(booking)

        assert [r.model_dump() for r in a] == [r.model_dump() for r in b]
        dump = lambda s: [t.model_dump() for t in s.list(EntityType.TASK)]
        assert dump(first) == dump(second)


class TestOtherDefaultRules:
    def test_client_created_adds_note_event(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)
        client = Client(client_id=42, first_name="Sam", last_name="Lee")

        results = engine.on_client_created(client)

        assert [(r.rule_id, r.action_type) for r in results] == [
            ("client-creation-note", ActionType.CREATE_EVENT)
        ]
        events = store.list(EntityType.EVENT)
        assert len(events) == 1
        assert events[0].event_type == "Note"
        assert events[0].notes == "Client created"
        assert events[0].client_id == 42

    def test_training_session_prep(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)

        engine.on_event_created(_make_event("TrainingSession"))

        task = store.list(EntityType.TASK)[0]
        assert task.automated_action == "PrepareTrainingMaterials"
        assert task.due_date.isoformat() == "2025-03-08T09:00:00+11:00"

    def test_training_prep_is_two_calendar_days_across_dst(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)

        engine.on_event_created(_make_event("TrainingSession", date="2025-04-07T09:00:00+10:00"))

        # Same wall-clock time two days earlier, 49 elapsed hours as DST ended in between
        task = store.list(EntityType.TASK)[0]
        assert task.due_date.isoformat() == "2025-04-05T09:00:00+11:00"

    def test_questionnaire_received_review(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)

        engine.on_event_created(_make_event("QuestionnaireReceived"))

        task = store.list(EntityType.TASK)[0]
        assert task.automated_action == "ReviewQuestionnaire"
        assert task.triggered_by == "Event:QuestionnaireReceived"

    def test_consultation_completed_once(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)
        scheduled = _make_event("Consultation", status="Scheduled")
        completed = _make_event("Consultation", status="Completed")

        first = engine.on_event_updated(completed, scheduled)
        again = engine.on_event_updated(completed, completed)

        assert [r.rule_id for r in first] == ["consultation-follow-up"]
        assert again == []
        task = store.list(EntityType.TASK)[0]
        assert task.automated_action == "SendProtocol"
        assert task.due_date.isoformat() == "2025-03-11T09:00:00+11:00"

    def test_task_triggers_have_no_default_rules(self):
        engine = _make_engine()
        task = Task(task_id=1, description="x", due_date="2025-03-08T09:00:00+11:00")
        assert engine.on_task_created(task) == []
        assert engine.on_task_updated(task, task) == []


class TestIsolation:
    def test_raising_condition_does_not_block_other_rules(self):
        def boom(entity, previous):
            raise AttributeError("no such field")

        store = InMemoryEntityStore()
        registry = RuleRegistry([
            _task_rule("broken", Predicate(name="boom", fn=boom)),
            _task_rule("healthy"),
        ])
        engine = _make_engine(store, registry)

        results = engine.on_event_created(_make_event("Booking"))

        assert [r.rule_id for r in results] == ["healthy"]
        assert results[0].success

    def test_store_failure_does_not_block_later_rule(self):
        store = FlakyStore()
        registry = RuleRegistry([_task_rule("first"), _task_rule("second")])
        engine = _make_engine(store, registry)

        results = engine.on_event_created(_make_event("Booking"))

        assert [(r.rule_id, r.success) for r in results] == [("first", False), ("second", True)]
        assert results[0].error == "database is locked"
        assert [t.automated_action for t in store.list(EntityType.TASK)] == ["second"]

    def test_rules_fire_in_registration_order(self):
        store = InMemoryEntityStore()
        registry = RuleRegistry([
            _task_rule("b"),
            _task_rule("a", EventTypeEquals(event_type="Booking")),
            _task_rule("c"),
        ])
        engine = _make_engine(store, registry)

        results = engine.on_event_created(_make_event("Booking"))

        assert [r.rule_id for r in results] == ["b", "a", "c"]


class TestTriggerValidation:
    def test_unsupported_trigger_raises_before_store_access(self):
        store = RecordingStore()
        engine = _make_engine(store)
        pet_event = LifecycleEvent(trigger="Pet.created", entity=_make_event("Booking"))

        with pytest.raises(UnsupportedTriggerError):
            engine.handle_lifecycle_event(pet_event)

        assert store.calls == []

    def test_trigger_is_case_insensitive(self):
        store = InMemoryEntityStore()
        engine = _make_engine(store)

        results = engine.handle_lifecycle_event(
            LifecycleEvent(trigger="event.CREATED", entity=_make_event("Booking"))
        )

        assert len(results) == 1

    def test_mismatched_entity_is_ignored(self):
        store = RecordingStore()
        engine = _make_engine(store)
        client = Client(client_id=42, first_name="Sam", last_name="Lee")

        results = engine.handle_lifecycle_event(LifecycleEvent(trigger="Event.created", entity=client))

        assert results == []
        assert store.calls == []


class TestCustomRules:
    def test_extra_rule_alongside_defaults(self):
        store = InMemoryEntityStore()
        clock = _make_clock()
        rules = build_default_rules(clock) + [_task_rule("extra", EventTypeEquals(event_type="Booking"))]
        engine = AutomationEngine(RuleRegistry(rules), store, clock)

        results = engine.on_event_created(_make_event("Booking"))

        assert [r.rule_id for r in results] == ["booking-questionnaire-check", "extra"]
        assert store.count(EntityType.TASK) == 2
