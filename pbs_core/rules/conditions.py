"""
Rule conditions — small declarative predicates over an entity snapshot.

Each condition is a pure check of the triggering entity (and, for updates,
the snapshot taken before the change). Conditions never touch the store.
"""

from typing import Any, Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class Condition(BaseModel):
    """Base class for rule conditions."""
    model_config = ConfigDict(frozen=True)

    def matches(self, entity: BaseModel, previous: Optional[BaseModel] = None) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__


class Always(Condition):
    def matches(self, entity: BaseModel, previous: Optional[BaseModel] = None) -> bool:
        return True

    def describe(self) -> str:
        return "always"


class EventTypeEquals(Condition):
    event_type: str

    def matches(self, entity: BaseModel, previous: Optional[BaseModel] = None) -> bool:
        return entity.event_type == self.event_type

    def describe(self) -> str:
        return f"event_type == {self.event_type!r}"


class FieldEquals(Condition):
    field: str
    value: Any

    def matches(self, entity: BaseModel, previous: Optional[BaseModel] = None) -> bool:
        return getattr(entity, self.field) == self.value

    def describe(self) -> str:
        return f"{self.field} == {self.value!r}"


class StatusTransition(Condition):
    """
    Matches when the entity's status moved into to_status.

    Without a previous snapshot only the current status is checked.
    With one, the previous status must differ from to_status, and equal
    from_status when that is given.
    """

    to_status: str
    from_status: Optional[str] = None

    def matches(self, entity: BaseModel, previous: Optional[BaseModel] = None) -> bool:
        if entity.status != self.to_status:
            return False
        if previous is None:
            return self.from_status is None
        before = previous.status
        if before == self.to_status:
            return False
        return self.from_status is None or before == self.from_status

    def describe(self) -> str:
        origin = self.from_status if self.from_status is not None else "*"
        return f"status {origin} -> {self.to_status}"


class AllOf(Condition):
    conditions: Tuple[Condition, ...]

    def __init__(self, *conditions: Condition, **data: Any):
        if conditions:
            data["conditions"] = conditions
        super().__init__(**data)

    def matches(self, entity: BaseModel, previous: Optional[BaseModel] = None) -> bool:
        return all(c.matches(entity, previous) for c in self.conditions)

    def describe(self) -> str:
        return " and ".join(c.describe() for c in self.conditions)


class Predicate(Condition):
    """A named function, for checks that don't fit the declarative kinds."""

    name: str
    fn: Callable[[BaseModel, Optional[BaseModel]], bool]

    def matches(self, entity: BaseModel, previous: Optional[BaseModel] = None) -> bool:
        return bool(self.fn(entity, previous))

    def describe(self) -> str:
        return self.name
