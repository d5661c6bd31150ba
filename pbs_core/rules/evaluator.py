"""
Rule Evaluator — decides which registered rules apply to a lifecycle event.

Fails closed: a condition that raises is logged and treated as a non-match,
so one malformed rule never blocks the others.
"""

import logging
from typing import Iterable, List

from pbs_core.models.automation import AutomationRule, LifecycleEvent


logger = logging.getLogger(__name__)


class RuleEvaluator:
    def matching(
        self,
        rules: Iterable[AutomationRule],
        event: LifecycleEvent,
    ) -> List[AutomationRule]:
        """Rules whose condition holds for the event's entity, in order."""
        matched = []
        for rule in rules:
            try:
                if rule.condition.matches(event.entity, event.previous):
                    matched.append(rule)
            except Exception:
                logger.warning(
                    "Condition of rule %s raised on %s; treating as no match",
                    rule.rule_id, event.trigger, exc_info=True,
                )
        return matched
