"""
Automation Engine — public entry point of the rules engine.

Behavioral Contract:
- handle_lifecycle_event() validates the trigger, finds matching rules,
  executes their actions and returns one ActionResult per action
- Unsupported triggers raise UnsupportedTriggerError before any store call
- No matching rules is the common case and returns []
- Stateless between calls; the host serializes calls (see RecordService)
"""

import logging
from typing import List, Optional

from pydantic import BaseModel

from pbs_core.clock.business_time import BusinessClock
from pbs_core.execution.executor import ActionExecutor, Notifier
from pbs_core.models.automation import ActionResult, LifecycleEvent, Trigger
from pbs_core.models.entities import Client, Event, Task, entity_type_of
from pbs_core.rules.evaluator import RuleEvaluator
from pbs_core.rules.registry import RuleRegistry
from pbs_core.store.base import EntityStore


logger = logging.getLogger(__name__)


class AutomationEngine:
    """Composes the Rule Registry, Rule Evaluator and Action Executor."""

    def __init__(
        self,
        registry: RuleRegistry,
        store: EntityStore,
        clock: BusinessClock,
        notifier: Optional[Notifier] = None,
        evaluator: Optional[RuleEvaluator] = None,
        executor: Optional[ActionExecutor] = None,
    ):
        self.registry = registry
        self.store = store
        self.clock = clock
        self.evaluator = evaluator or RuleEvaluator()
        self.executor = executor or ActionExecutor(store, clock, notifier)

    def handle_lifecycle_event(self, event: LifecycleEvent) -> List[ActionResult]:
        trigger = Trigger.parse(event.trigger)

        if entity_type_of(event.entity) != trigger.entity_type:
            logger.warning(
                "Trigger %s received a %s record; no rules apply",
                trigger.value, type(event.entity).__name__,
            )
            return []

        matched = self.evaluator.matching(self.registry.rules_for(trigger), event)
        if not matched:
            return []

        results = self.executor.execute(matched, event)
        failed = [r for r in results if not r.success]
        if failed:
            logger.warning(
                "%d of %d automation actions failed for %s",
                len(failed), len(results), trigger.value,
            )
        return results

    # --- Convenience wrappers ---

    def on_client_created(self, client: Client) -> List[ActionResult]:
        return self._fire(Trigger.CLIENT_CREATED, client)

    def on_event_created(self, event: Event) -> List[ActionResult]:
        return self._fire(Trigger.EVENT_CREATED, event)

    def on_event_updated(self, event: Event, previous: Optional[Event] = None) -> List[ActionResult]:
        return self._fire(Trigger.EVENT_UPDATED, event, previous)

    def on_task_created(self, task: Task) -> List[ActionResult]:
        return self._fire(Trigger.TASK_CREATED, task)

    def on_task_updated(self, task: Task, previous: Optional[Task] = None) -> List[ActionResult]:
        return self._fire(Trigger.TASK_UPDATED, task, previous)

    def _fire(
        self, trigger: Trigger, entity: BaseModel, previous: Optional[BaseModel] = None
    ) -> List[ActionResult]:
        return self.handle_lifecycle_event(
            LifecycleEvent(trigger=trigger.value, entity=entity, previous=previous)
        )
