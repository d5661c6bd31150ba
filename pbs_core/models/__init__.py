"""PBS Admin core data models."""

from pbs_core.models.automation import (
    Action,
    ActionResult,
    ActionType,
    AutomationRule,
    LifecycleEvent,
    NewEvent,
    NewTask,
    StatusChange,
    Trigger,
)
from pbs_core.models.config import AutomationConfig
from pbs_core.models.entities import (
    Client,
    EntityType,
    Event,
    EventType,
    Pet,
    Task,
    TaskStatus,
)

__all__ = [
    "Action",
    "ActionResult",
    "ActionType",
    "AutomationConfig",
    "AutomationRule",
    "Client",
    "EntityType",
    "Event",
    "EventType",
    "LifecycleEvent",
    "NewEvent",
    "NewTask",
    "Pet",
    "StatusChange",
    "Task",
    "TaskStatus",
    "Trigger",
]
