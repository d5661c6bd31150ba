"""Automation Rule, Action and Result — the declarative side of the rules engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from pbs_core.errors import UnsupportedTriggerError
from pbs_core.models.entities import Client, EntityType, Event, Pet, Task, TaskStatus
from pbs_core.rules.conditions import Condition


class Trigger(str, Enum):
    """Lifecycle transitions the engine reacts to."""
    CLIENT_CREATED = "Client.created"
    EVENT_CREATED = "Event.created"
    EVENT_UPDATED = "Event.updated"
    TASK_CREATED = "Task.created"
    TASK_UPDATED = "Task.updated"

    @property
    def entity_type(self) -> EntityType:
        return EntityType(self.value.split(".", 1)[0])

    @classmethod
    def parse(cls, value: Union[str, "Trigger"]) -> "Trigger":
        """Resolve a raw trigger string, case-insensitively."""
        if isinstance(value, Trigger):
            return value
        if isinstance(value, str):
            wanted = value.strip().lower()
            for trigger in cls:
                if trigger.value.lower() == wanted:
                    return trigger
        raise UnsupportedTriggerError(str(value))


class ActionType(str, Enum):
    CREATE_TASK = "create.task"
    CREATE_EVENT = "create.event"
    UPDATE_STATUS = "update.status"
    NOTIFY = "notify"


class NewTask(BaseModel):
    """Fields for a task produced by a create.task action."""

    client_id: Optional[int] = None
    event_id: Optional[int] = None
    description: str
    due_date: datetime
    status: TaskStatus = TaskStatus.PENDING
    priority: int = Field(ge=1, le=5, default=3)
    automated_action: str
    triggered_by: str
    parent_task_id: Optional[int] = None


class NewEvent(BaseModel):
    """Fields for an event produced by a create.event action."""

    client_id: int
    event_type: str
    date: datetime
    notes: Optional[str] = None
    parent_event_id: Optional[int] = None


class StatusChange(BaseModel):
    """Status to apply to the triggering entity by an update.status action."""

    status: str


class Action(BaseModel):
    """
    One effect of a matched rule.

    payload is called with the triggering entity and returns the concrete
    record to write: NewTask, NewEvent, StatusChange, or a message string
    for notify.
    """
    model_config = ConfigDict(frozen=True)

    type: ActionType
    payload: Callable[[BaseModel], Any]


class AutomationRule(BaseModel):
    """A (trigger, condition, actions) tuple. Immutable once declared."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    rule_id: str
    name: str
    description: str = ""
    trigger: Trigger
    condition: Condition
    actions: Tuple[Action, ...]
    enabled: bool = True

    def describe(self) -> dict:
        """Serializable summary, without the payload builders."""
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "description": self.description,
            "trigger": self.trigger.value,
            "condition": self.condition.describe(),
            "actions": [a.type.value for a in self.actions],
            "enabled": self.enabled,
        }


Entity = Union[Client, Pet, Event, Task]


class LifecycleEvent(BaseModel):
    """
    Notification that a record was created or updated.

    trigger is kept as the raw string so the engine can reject
    unsupported kinds itself. previous is the pre-update snapshot,
    when the caller has one.
    """

    trigger: str
    entity: Entity
    previous: Optional[Entity] = None


class ActionResult(BaseModel):
    """Outcome of applying one action of one matched rule."""

    rule_id: str
    action_type: ActionType
    success: bool
    created_id: Optional[int] = None
    error: Optional[str] = None
