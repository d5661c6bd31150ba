"""
Action Executor — applies matched rules' actions against the Entity Store.

Behavioral Contract:
- Actions run in rule order, then in declaration order within each rule
- Each action is independent: a failure is logged, recorded in its
  ActionResult, and execution continues (best effort, no rollback)
- Created records are never fed back into rule evaluation
- Only InvalidDurationError escapes; it signals a broken rule definition
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from pydantic import BaseModel

from pbs_core.clock.business_time import BusinessClock
from pbs_core.errors import InvalidDurationError
from pbs_core.models.automation import (
    Action,
    ActionResult,
    ActionType,
    AutomationRule,
    LifecycleEvent,
    NewEvent,
    NewTask,
    StatusChange,
)
from pbs_core.models.entities import (
    ID_FIELDS,
    EntityType,
    TaskStatus,
    entity_id_of,
    entity_type_of,
)
from pbs_core.store.base import EntityStore


logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, message: str) -> None: ...


class LoggingNotifier:
    """Notification channel that writes to the pbs_core.notifications logger."""

    def __init__(self):
        self._logger = logging.getLogger("pbs_core.notifications")

    def send(self, message: str) -> None:
        self._logger.info(message)


class ActionExecutor:
    def __init__(
        self,
        store: EntityStore,
        clock: BusinessClock,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.clock = clock
        self.notifier = notifier
        self._handlers: Dict[ActionType, Callable] = {
            ActionType.CREATE_TASK: self._create_task,
            ActionType.CREATE_EVENT: self._create_event,
            ActionType.UPDATE_STATUS: self._update_status,
            ActionType.NOTIFY: self._notify,
        }

    def execute(
        self,
        rules: Iterable[AutomationRule],
        event: LifecycleEvent,
    ) -> List[ActionResult]:
        results = []
        for rule in rules:
            logger.debug("Executing rule %s for %s", rule.rule_id, event.trigger)
            for action in rule.actions:
                results.append(self._apply(rule, action, event.entity))
        return results

    def _apply(self, rule: AutomationRule, action: Action, entity: BaseModel) -> ActionResult:
        handler = self._handlers.get(action.type)
        if handler is None:
            return ActionResult(
                rule_id=rule.rule_id,
                action_type=action.type,
                success=False,
                error=f"No handler registered for action type: {action.type.value}",
            )

        try:
            created_id = handler(action, entity)
        except InvalidDurationError:
            raise
        except Exception as e:
            logger.error(
                "Action %s of rule %s failed: %s", action.type.value, rule.rule_id, e
            )
            return ActionResult(
                rule_id=rule.rule_id,
                action_type=action.type,
                success=False,
                error=str(e),
            )

        return ActionResult(
            rule_id=rule.rule_id,
            action_type=action.type,
            success=True,
            created_id=created_id,
        )

    # --- Handlers ---

    def _create_task(self, action: Action, entity: BaseModel) -> int:
        draft = action.payload(entity)
        if not isinstance(draft, NewTask):
            raise TypeError(f"create.task payload must build a NewTask, got {type(draft).__name__}")
        fields = draft.model_dump()
        fields["due_date"] = self.clock.to_canonical(draft.due_date)
        task = self.store.create(EntityType.TASK, fields)
        logger.debug("Created task %s: %s", task.task_id, task.description)
        return task.task_id

    def _create_event(self, action: Action, entity: BaseModel) -> int:
        draft = action.payload(entity)
        if not isinstance(draft, NewEvent):
            raise TypeError(f"create.event payload must build a NewEvent, got {type(draft).__name__}")
        fields = draft.model_dump()
        fields["date"] = self.clock.to_canonical(draft.date)
        created = self.store.create(EntityType.EVENT, fields)
        logger.debug("Created %s event %s", created.event_type, created.event_id)
        return created.event_id

    def _update_status(self, action: Action, entity: BaseModel) -> int:
        """Set the status of the triggering entity (not a new record)."""
        change = action.payload(entity)
        if not isinstance(change, StatusChange):
            raise TypeError(f"update.status payload must build a StatusChange, got {type(change).__name__}")

        entity_type = entity_type_of(entity)
        entity_id = entity_id_of(entity)
        fields = {"status": change.status}
        if entity_type == EntityType.TASK:
            status = TaskStatus(change.status)
            fields["completed_on"] = self.clock.now() if status == TaskStatus.DONE else None
        elif entity_type != EntityType.EVENT:
            raise TypeError(f"{entity_type.value} records have no status")

        updated = self.store.update(entity_type, entity_id, fields)
        logger.debug("Set %s %s status to %s", entity_type.value, entity_id, change.status)
        return getattr(updated, ID_FIELDS[entity_type])

    def _notify(self, action: Action, entity: BaseModel) -> None:
        message = action.payload(entity)
        if self.notifier is None:
            logger.debug("No notifier configured; dropping notification: %s", message)
            return None
        self.notifier.send(str(message))
        return None
