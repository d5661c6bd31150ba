"""
Default automation rules for the practice.

  booking-questionnaire-check    Booking created -> questionnaire check task, 48h before
  consultation-follow-up         Consultation completed -> send protocol task, next day
  training-session-prep          Training session created -> preparation task, 2 days before
  client-creation-note           Client created -> "Client created" note event
  questionnaire-received-review  Questionnaire received -> review/reconcile task
"""

from typing import Optional

from pbs_core.clock.business_time import BusinessClock
from pbs_core.models.automation import (
    Action,
    ActionType,
    AutomationRule,
    NewEvent,
    NewTask,
    Trigger,
)
from pbs_core.models.config import AutomationConfig
from pbs_core.models.entities import Client, Event, EventType, TaskStatus
from pbs_core.rules.conditions import AllOf, Always, EventTypeEquals, StatusTransition
from pbs_core.rules.registry import RuleRegistry


def _format_hours(hours: float) -> str:
    return str(int(hours)) if float(hours).is_integer() else str(hours)


def build_default_rules(clock: BusinessClock, config: Optional[AutomationConfig] = None):
    """Declare the practice's rules, in firing order."""
    config = config or AutomationConfig()
    questionnaire_hours = config.questionnaire_check_hours_before

    def questionnaire_check_task(event: Event) -> NewTask:
        return NewTask(
            client_id=event.client_id,
            event_id=event.event_id,
            description=(
                f"Check questionnaire returned ≥ {_format_hours(questionnaire_hours)} "
                "hours before consultation"
            ),
            due_date=clock.offset_before(event.date, questionnaire_hours),
            status=TaskStatus.PENDING,
            priority=1,
            automated_action="CheckQuestionnaireReturned",
            triggered_by="Event:Booking",
        )

    def send_protocol_task(event: Event) -> NewTask:
        return NewTask(
            client_id=event.client_id,
            event_id=event.event_id,
            description="Send protocol document to client",
            due_date=clock.calculate_due_date(event.date, config.protocol_send_offset),
            status=TaskStatus.PENDING,
            priority=2,
            automated_action="SendProtocol",
            triggered_by="Event:Consultation",
        )

    def training_prep_task(event: Event) -> NewTask:
        return NewTask(
            client_id=event.client_id,
            event_id=event.event_id,
            description="Prepare training session materials",
            due_date=clock.calculate_due_date(event.date, config.training_prep_offset),
            status=TaskStatus.PENDING,
            priority=2,
            automated_action="PrepareTrainingMaterials",
            triggered_by="Event:TrainingSession",
        )

    def client_created_note(client: Client) -> NewEvent:
        return NewEvent(
            client_id=client.client_id,
            event_type=EventType.NOTE.value,
            date=clock.now(),
            notes="Client created",
        )

    def questionnaire_review_task(event: Event) -> NewTask:
        return NewTask(
            client_id=event.client_id,
            event_id=event.event_id,
            description="Review questionnaire and reconcile client/pet information",
            due_date=clock.to_canonical(event.date),
            status=TaskStatus.PENDING,
            priority=2,
            automated_action="ReviewQuestionnaire",
            triggered_by="Event:QuestionnaireReceived",
        )

    return [
        AutomationRule(
            rule_id="booking-questionnaire-check",
            name="Booking → Questionnaire Check Task",
            description="Check the questionnaire has come back before the consultation",
            trigger=Trigger.EVENT_CREATED,
            condition=EventTypeEquals(event_type=EventType.BOOKING.value),
            actions=(Action(type=ActionType.CREATE_TASK, payload=questionnaire_check_task),),
        ),
        AutomationRule(
            rule_id="consultation-follow-up",
            name="Consultation → Follow-Up Tasks",
            description="Send the protocol document once a consultation is completed",
            trigger=Trigger.EVENT_UPDATED,
            condition=AllOf(
                EventTypeEquals(event_type=EventType.CONSULTATION.value),
                StatusTransition(to_status="Completed"),
            ),
            actions=(Action(type=ActionType.CREATE_TASK, payload=send_protocol_task),),
        ),
        AutomationRule(
            rule_id="training-session-prep",
            name="Training Session → Preparation Task",
            description="Prepare materials two calendar days before a training session",
            trigger=Trigger.EVENT_CREATED,
            condition=EventTypeEquals(event_type=EventType.TRAINING_SESSION.value),
            actions=(Action(type=ActionType.CREATE_TASK, payload=training_prep_task),),
        ),
        AutomationRule(
            rule_id="client-creation-note",
            name="Client Created → Note Event",
            description="Record a note event when a new client is created",
            trigger=Trigger.CLIENT_CREATED,
            condition=Always(),
            actions=(Action(type=ActionType.CREATE_EVENT, payload=client_created_note),),
        ),
        AutomationRule(
            rule_id="questionnaire-received-review",
            name="Questionnaire Received → Review Task",
            description="Review questionnaire data and reconcile client/pet records",
            trigger=Trigger.EVENT_CREATED,
            condition=EventTypeEquals(event_type=EventType.QUESTIONNAIRE_RECEIVED.value),
            actions=(Action(type=ActionType.CREATE_TASK, payload=questionnaire_review_task),),
        ),
    ]


def build_default_registry(
    clock: BusinessClock, config: Optional[AutomationConfig] = None
) -> RuleRegistry:
    return RuleRegistry(build_default_rules(clock, config))
