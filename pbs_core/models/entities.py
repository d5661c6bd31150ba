"""Client, Pet, Event and Task records kept by the admin tool."""

from datetime import date, datetime
from enum import Enum
from typing import Dict, Optional, Type

from pydantic import BaseModel, Field, field_validator, model_validator


class EntityType(str, Enum):
    CLIENT = "Client"
    PET = "Pet"
    EVENT = "Event"
    TASK = "Task"


class EventType(str, Enum):
    """Known event types. Event.event_type stays a plain string so new kinds can be added."""
    BOOKING = "Booking"
    CONSULTATION = "Consultation"
    TRAINING_SESSION = "TrainingSession"
    PAYMENT = "Payment"
    FOLLOW_UP = "FollowUp"
    QUESTIONNAIRE_RECEIVED = "QuestionnaireReceived"
    REPORT_SENT = "ReportSent"
    NOTE = "Note"


class TaskStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    BLOCKED = "Blocked"
    DONE = "Done"          # terminal
    CANCELED = "Canceled"  # terminal

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.CANCELED)


class Client(BaseModel):
    """A customer of the business. Owns pets, events and tasks."""

    client_id: int
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = ""
    mobile: str = ""
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None
    folder_path: Optional[str] = None
    primary_care_vet: Optional[str] = None
    notes: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Pet(BaseModel):
    pet_id: int
    client_id: int
    name: str = Field(min_length=1)
    species: str = "Dog"                    # Dog | Cat | Bird | Rabbit | Other
    breed: Optional[str] = None
    sex: Optional[str] = None               # Male | Female | Unknown
    date_of_birth: Optional[date] = None
    notes: Optional[str] = None


class Event(BaseModel):
    """
    Something that happened (or will happen) for a client: a booking,
    a consultation, a payment, a note.

    Events form a lineage tree through parent_event_id.
    """

    event_id: int
    client_id: int
    event_type: str = Field(min_length=1)
    date: datetime
    notes: Optional[str] = None
    status: Optional[str] = None            # External booking status, e.g. "Completed"
    parent_event_id: Optional[int] = None

    @field_validator("event_type", mode="before")
    @classmethod
    def _unwrap_event_type(cls, value):
        if isinstance(value, EventType):
            return value.value
        return value

    @model_validator(mode="after")
    def _check_parent(self) -> "Event":
        if self.parent_event_id is not None and self.parent_event_id == self.event_id:
            raise ValueError("An event cannot be its own parent")
        return self


class Task(BaseModel):
    """
    A to-do item, either entered manually or produced by an automation rule.

    completed_on is set if and only if status is Done.
    """

    task_id: int
    client_id: Optional[int] = None
    event_id: Optional[int] = None
    description: str = Field(min_length=1)
    due_date: datetime
    status: TaskStatus = TaskStatus.PENDING
    priority: int = Field(ge=1, le=5, default=3)   # 1 = highest, 5 = lowest
    automated_action: str = ""                     # Rule label, empty when manual
    triggered_by: str = "Manual"
    completed_on: Optional[datetime] = None
    parent_task_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "Task":
        if (self.status == TaskStatus.DONE) != (self.completed_on is not None):
            raise ValueError("completed_on must be set exactly when status is Done")
        if self.parent_task_id is not None and self.parent_task_id == self.task_id:
            raise ValueError("A task cannot be its own parent")
        return self

    @property
    def is_automated(self) -> bool:
        return bool(self.automated_action)


ENTITY_MODELS: Dict[EntityType, Type[BaseModel]] = {
    EntityType.CLIENT: Client,
    EntityType.PET: Pet,
    EntityType.EVENT: Event,
    EntityType.TASK: Task,
}

ID_FIELDS: Dict[EntityType, str] = {
    EntityType.CLIENT: "client_id",
    EntityType.PET: "pet_id",
    EntityType.EVENT: "event_id",
    EntityType.TASK: "task_id",
}

PARENT_FIELDS: Dict[EntityType, str] = {
    EntityType.EVENT: "parent_event_id",
    EntityType.TASK: "parent_task_id",
}


def entity_type_of(entity: BaseModel) -> EntityType:
    """Map a record instance back to its EntityType."""
    for entity_type, model in ENTITY_MODELS.items():
        if isinstance(entity, model):
            return entity_type
    raise TypeError(f"Not a PBS entity: {type(entity).__name__}")


def entity_id_of(entity: BaseModel) -> int:
    return getattr(entity, ID_FIELDS[entity_type_of(entity)])
