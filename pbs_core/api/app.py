"""
PBS Admin API — FastAPI endpoints for the record-keeping host.

Every write persists the record and then runs the automation engine.
Responses carry the record, the per-action automation results, and
warnings for actions that failed. A failed action never fails the write itself.
"""

from datetime import date, datetime
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from pbs_core.clock.business_time import BusinessClock
from pbs_core.config.loader import load_config
from pbs_core.engine.automation import AutomationEngine
from pbs_core.errors import InvalidDurationError, NotFoundError, StoreError
from pbs_core.execution.executor import LoggingNotifier, Notifier
from pbs_core.logging_setup import configure_logging
from pbs_core.models.config import AutomationConfig
from pbs_core.models.entities import EntityType
from pbs_core.rules.defaults import build_default_registry
from pbs_core.rules.registry import RuleRegistry
from pbs_core.services.records import RecordService
from pbs_core.store.base import EntityStore
from pbs_core.store.sqlite import SqliteEntityStore


# --- Request Models ---

class ClientCreateRequest(BaseModel):
    first_name: str
    last_name: str
    email: str = ""
    mobile: str = ""
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None
    primary_care_vet: Optional[str] = None
    notes: Optional[str] = None


class PetCreateRequest(BaseModel):
    client_id: int
    name: str
    species: str = "Dog"
    breed: Optional[str] = None
    sex: Optional[str] = None
    date_of_birth: Optional[date] = None
    notes: Optional[str] = None


class EventCreateRequest(BaseModel):
    client_id: int
    event_type: str
    date: datetime
    notes: Optional[str] = None
    status: Optional[str] = None
    parent_event_id: Optional[int] = None


class EventUpdateRequest(BaseModel):
    event_type: Optional[str] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    parent_event_id: Optional[int] = None


class TaskCreateRequest(BaseModel):
    client_id: Optional[int] = None
    event_id: Optional[int] = None
    description: str
    due_date: datetime
    status: str = "Pending"
    priority: int = Field(ge=1, le=5, default=3)
    parent_task_id: Optional[int] = None


class TaskUpdateRequest(BaseModel):
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[str] = None
    priority: Optional[int] = Field(ge=1, le=5, default=None)
    parent_task_id: Optional[int] = None


class TaskStatusRequest(BaseModel):
    status: str


# --- Application Factory ---

def create_app(
    store: Optional[EntityStore] = None,
    config: Optional[AutomationConfig] = None,
    clock: Optional[BusinessClock] = None,
    registry: Optional[RuleRegistry] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    config = config or load_config()
    configure_logging(config.log_level, config.log_file)

    app = FastAPI(
        title="PBS Admin API",
        description="Pet Behaviour Services records and automation",
        version="0.1.0",
    )

    # Initialize components
    clk = clock or BusinessClock(config.business_timezone)
    st = store or SqliteEntityStore(config.database_path)
    reg = registry or build_default_registry(clk, config)
    engine = AutomationEngine(reg, st, clk, notifier=notifier or LoggingNotifier())
    records = RecordService(st, engine, clk)

    app.state.config = config
    app.state.store = st
    app.state.engine = engine
    app.state.records = records

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def _invalid_record(request: Request, exc: StoreError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(InvalidDurationError)
    async def _invalid_time(request: Request, exc: InvalidDurationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    # === CLIENTS ===

    @app.post("/clients")
    def create_client(req: ClientCreateRequest):
        return records.create_client(req.model_dump()).to_response()

    @app.get("/clients")
    def list_clients():
        return [c.model_dump(mode="json") for c in records.list(EntityType.CLIENT)]

    @app.get("/clients/{client_id}")
    def get_client(client_id: int):
        return records.get(EntityType.CLIENT, client_id).model_dump(mode="json")

    # === PETS ===

    @app.post("/pets")
    def create_pet(req: PetCreateRequest):
        return records.create_pet(req.model_dump()).model_dump(mode="json")

    @app.get("/pets")
    def list_pets(client_id: Optional[int] = None):
        filters = {"client_id": client_id} if client_id is not None else {}
        return [p.model_dump(mode="json") for p in records.list(EntityType.PET, **filters)]

    # === EVENTS ===

    @app.post("/events")
    def create_event(req: EventCreateRequest):
        return records.create_event(req.model_dump()).to_response()

    @app.put("/events/{event_id}")
    def update_event(event_id: int, req: EventUpdateRequest):
        return records.update_event(event_id, req.model_dump(exclude_unset=True)).to_response()

    @app.get("/events")
    def list_events(client_id: Optional[int] = None, event_type: Optional[str] = None):
        filters = {}
        if client_id is not None:
            filters["client_id"] = client_id
        if event_type is not None:
            filters["event_type"] = event_type
        return [e.model_dump(mode="json") for e in records.list(EntityType.EVENT, **filters)]

    @app.get("/events/{event_id}")
    def get_event(event_id: int):
        return records.get(EntityType.EVENT, event_id).model_dump(mode="json")

    # === TASKS ===

    @app.post("/tasks")
    def create_task(req: TaskCreateRequest):
        return records.create_task(req.model_dump()).to_response()

    @app.get("/tasks")
    def list_tasks(client_id: Optional[int] = None, status: Optional[str] = None):
        filters = {}
        if client_id is not None:
            filters["client_id"] = client_id
        if status is not None:
            filters["status"] = status
        return [t.model_dump(mode="json") for t in records.list(EntityType.TASK, **filters)]

    @app.get("/tasks/overdue")
    def list_overdue_tasks():
        return [t.model_dump(mode="json") for t in records.overdue_tasks()]

    @app.get("/tasks/{task_id}")
    def get_task(task_id: int):
        return records.get(EntityType.TASK, task_id).model_dump(mode="json")

    @app.put("/tasks/{task_id}")
    def update_task(task_id: int, req: TaskUpdateRequest):
        return records.update_task(task_id, req.model_dump(exclude_unset=True)).to_response()

    @app.post("/tasks/{task_id}/status")
    def update_task_status(task_id: int, req: TaskStatusRequest):
        return records.update_task_status(task_id, req.status).to_response()

    # === AUTOMATION ===

    @app.get("/automation/rules")
    def list_rules() -> List[dict]:
        return [r.describe() for r in reg.all()]

    return app


# Default application instance
app = create_app()
