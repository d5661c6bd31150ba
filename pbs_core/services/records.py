"""
Record Service — persists client/pet/event/task changes and runs automation.

This is the host side of the engine: every write is persisted first, then the
matching lifecycle trigger is fired. A single lock runs each persist-then-automate
sequence to completion before the next one starts.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from pbs_core.clock.business_time import BusinessClock
from pbs_core.engine.automation import AutomationEngine
from pbs_core.errors import NotFoundError, StoreError
from pbs_core.models.automation import ActionResult
from pbs_core.models.entities import Client, EntityType, Event, Pet, Task, TaskStatus
from pbs_core.store.base import EntityStore


logger = logging.getLogger(__name__)


class AutomationOutcome(BaseModel):
    """A persisted record plus whatever the automation engine did in response."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    record: Any
    automation: List[ActionResult] = []

    @property
    def warnings(self) -> List[str]:
        return [
            f"{r.rule_id}: {r.action_type.value} failed: {r.error}"
            for r in self.automation if not r.success
        ]

    def to_response(self) -> dict:
        return {
            "record": self.record.model_dump(mode="json"),
            "automation": [r.model_dump(mode="json") for r in self.automation],
            "warnings": self.warnings,
        }


class RecordService:
    def __init__(self, store: EntityStore, engine: AutomationEngine, clock: BusinessClock):
        self.store = store
        self.engine = engine
        self.clock = clock
        self._lock = threading.Lock()

    # --- Clients & pets ---

    def create_client(self, fields: Dict[str, Any]) -> AutomationOutcome:
        with self._lock:
            client = self.store.create(EntityType.CLIENT, fields)
            logger.info("Created client %s (%s)", client.client_id, client.display_name)
            return AutomationOutcome(record=client, automation=self.engine.on_client_created(client))

    def update_client(self, client_id: int, fields: Dict[str, Any]) -> Client:
        with self._lock:
            return self.store.update(EntityType.CLIENT, client_id, fields)

    def create_pet(self, fields: Dict[str, Any]) -> Pet:
        with self._lock:
            self._require_owner(fields)
            return self.store.create(EntityType.PET, fields)

    # --- Events ---

    def create_event(self, fields: Dict[str, Any]) -> AutomationOutcome:
        with self._lock:
            self._require_owner(fields)
            event = self.store.create(EntityType.EVENT, self._with_canonical(fields, "date"))
            logger.info("Created %s event %s", event.event_type, event.event_id)
            return AutomationOutcome(record=event, automation=self.engine.on_event_created(event))

    def update_event(self, event_id: int, fields: Dict[str, Any]) -> AutomationOutcome:
        with self._lock:
            previous = self._require(EntityType.EVENT, event_id)
            event = self.store.update(EntityType.EVENT, event_id, self._with_canonical(fields, "date"))
            return AutomationOutcome(
                record=event, automation=self.engine.on_event_updated(event, previous)
            )

    def child_events(self, event_id: int) -> List[Event]:
        with self._lock:
            return self.store.list(EntityType.EVENT, parent_event_id=event_id)

    # --- Tasks ---

    def create_task(self, fields: Dict[str, Any]) -> AutomationOutcome:
        with self._lock:
            fields = self._with_canonical(fields, "due_date")
            fields.setdefault("triggered_by", "Manual")
            task = self.store.create(EntityType.TASK, self._with_completion(fields))
            return AutomationOutcome(record=task, automation=self.engine.on_task_created(task))

    def update_task(self, task_id: int, fields: Dict[str, Any]) -> AutomationOutcome:
        with self._lock:
            previous = self._require(EntityType.TASK, task_id)
            fields = self._with_canonical(fields, "due_date")
            if "status" in fields:
                fields = self._with_completion(fields, previous)
            task = self.store.update(EntityType.TASK, task_id, fields)
            return AutomationOutcome(
                record=task, automation=self.engine.on_task_updated(task, previous)
            )

    def update_task_status(self, task_id: int, status: str) -> AutomationOutcome:
        """Change a task's status, setting or clearing completed_on to match."""
        return self.update_task(task_id, {"status": status})

    def mark_task_done(self, task_id: int) -> AutomationOutcome:
        return self.update_task_status(task_id, TaskStatus.DONE.value)

    def overdue_tasks(self, now: Optional[datetime] = None) -> List[Task]:
        """Open tasks whose due date has passed."""
        cutoff = self.clock.parse(now if now is not None else self.clock.now())
        with self._lock:
            tasks = self.store.list(EntityType.TASK)
        return [t for t in tasks if not t.status.is_terminal and t.due_date < cutoff]

    def upcoming_tasks(self) -> List[Task]:
        """Pending and in-progress tasks, soonest first."""
        open_statuses = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
        with self._lock:
            tasks = [t for t in self.store.list(EntityType.TASK) if t.status in open_statuses]
        return sorted(tasks, key=lambda t: t.due_date)

    # --- Reads ---

    def get(self, entity_type: EntityType, entity_id: int) -> BaseModel:
        """Fetch one record, raising NotFoundError when it does not exist."""
        with self._lock:
            return self._require(entity_type, entity_id)

    def list(self, entity_type: EntityType, **filters: Any) -> List[BaseModel]:
        with self._lock:
            return self.store.list(entity_type, **filters)

    # --- Helpers ---

    def _require(self, entity_type: EntityType, entity_id: Optional[int]) -> BaseModel:
        record = self.store.get(entity_type, entity_id) if entity_id is not None else None
        if record is None:
            raise NotFoundError(entity_type.value, entity_id)
        return record

    def _require_owner(self, fields: Dict[str, Any]) -> None:
        if fields.get("client_id") is not None:
            self._require(EntityType.CLIENT, fields["client_id"])

    def _with_canonical(self, fields: Dict[str, Any], key: str) -> Dict[str, Any]:
        fields = dict(fields)
        if fields.get(key) is not None:
            fields[key] = self.clock.to_canonical(fields[key])
        return fields

    def _with_completion(self, fields: Dict[str, Any], previous: Optional[Task] = None) -> Dict[str, Any]:
        fields = dict(fields)
        try:
            status = TaskStatus(fields.get("status", TaskStatus.PENDING))
        except ValueError as e:
            raise StoreError(f"Invalid task status: {fields.get('status')!r}", EntityType.TASK.value) from e
        fields["status"] = status
        if status != TaskStatus.DONE:
            fields["completed_on"] = None
        elif previous is not None and previous.completed_on is not None:
            fields["completed_on"] = previous.completed_on
        else:
            fields["completed_on"] = self.clock.now()
        return fields
