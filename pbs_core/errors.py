"""Error taxonomy shared by the clock, store and automation engine."""

from typing import Optional


class PbsCoreError(Exception):
    """Base class for all pbs_core errors."""
    pass


class InvalidDurationError(PbsCoreError, ValueError):
    """Raised when the clock utility receives a malformed duration or instant."""
    pass


class UnsupportedTriggerError(PbsCoreError):
    """Raised when a lifecycle event names a trigger the engine does not handle."""

    def __init__(self, trigger: str):
        self.trigger = trigger
        super().__init__(f"Unsupported automation trigger: {trigger!r}")


class StoreError(PbsCoreError):
    """Raised when the entity store rejects a write."""

    def __init__(self, message: str, entity_type: Optional[str] = None):
        self.entity_type = entity_type
        super().__init__(message)


class NotFoundError(StoreError):
    """Raised when an update targets a record that does not exist."""

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found", entity_type)
