"""
Rule Registry — the ordered, immutable set of automation rules.

Declaration order matters: when several rules match one triggering entity,
their actions run in the order the rules were registered.
"""

from typing import Iterable, Optional, Tuple, Union

from pbs_core.models.automation import AutomationRule, Trigger


class RuleRegistry:
    """Built once at startup and handed to the engine. Never mutated."""

    def __init__(self, rules: Iterable[AutomationRule]):
        rules = tuple(rules)
        seen = set()
        for rule in rules:
            if rule.rule_id in seen:
                raise ValueError(f"Duplicate automation rule id: {rule.rule_id}")
            seen.add(rule.rule_id)
        self._rules: Tuple[AutomationRule, ...] = rules

    def rules_for(self, trigger: Union[Trigger, str]) -> Tuple[AutomationRule, ...]:
        """Enabled rules for a trigger, in declaration order."""
        trigger = Trigger.parse(trigger)
        return tuple(r for r in self._rules if r.enabled and r.trigger == trigger)

    def get(self, rule_id: str) -> Optional[AutomationRule]:
        return next((r for r in self._rules if r.rule_id == rule_id), None)

    def all(self) -> Tuple[AutomationRule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules)
