"""
Entity Store contract — the CRUD surface the automation engine writes through.

Behavioral Contract:
- create() assigns the next integer id for the entity type and validates the record
- update() merges partial fields into an existing record and re-validates it
- Validation failures raise StoreError; unknown ids on update raise NotFoundError
- Parent links (parent_event_id, parent_task_id) may not form cycles
"""

from typing import Any, Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, ValidationError

from pbs_core.errors import NotFoundError, StoreError
from pbs_core.models.entities import ENTITY_MODELS, ID_FIELDS, PARENT_FIELDS, EntityType


EntityTypeLike = Union[EntityType, str]


class EntityStore(Protocol):
    def create(self, entity_type: EntityTypeLike, fields: Dict[str, Any]) -> BaseModel: ...

    def update(self, entity_type: EntityTypeLike, entity_id: int, fields: Dict[str, Any]) -> BaseModel: ...

    def get(self, entity_type: EntityTypeLike, entity_id: int) -> Optional[BaseModel]: ...

    def list(self, entity_type: EntityTypeLike, **filters: Any) -> List[BaseModel]: ...

    def delete(self, entity_type: EntityTypeLike, entity_id: int) -> bool: ...


def _coerce_type(entity_type: EntityTypeLike) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError as e:
        raise StoreError(f"Unknown entity type: {entity_type!r}") from e


def _summarize(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"]) or "record"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


class BaseEntityStore:
    """Validation and lineage checks shared by the concrete stores."""

    def _load(self, entity_type: EntityType, entity_id: int) -> Optional[BaseModel]:
        raise NotImplementedError

    def _next_id(self, entity_type: EntityType) -> int:
        raise NotImplementedError

    def _save(self, entity_type: EntityType, entity: BaseModel, is_new: bool) -> None:
        raise NotImplementedError

    def _validate(self, entity_type: EntityType, data: Dict[str, Any]) -> BaseModel:
        model = ENTITY_MODELS[entity_type]
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise StoreError(
                f"Invalid {entity_type.value}: {_summarize(e)}", entity_type.value
            ) from e

    def _check_lineage(self, entity_type: EntityType, entity: BaseModel) -> None:
        """Walk the parent chain and reject links that loop back to entity."""
        parent_field = PARENT_FIELDS.get(entity_type)
        if parent_field is None:
            return
        own_id = getattr(entity, ID_FIELDS[entity_type])
        seen = {own_id}
        parent_id = getattr(entity, parent_field)
        while parent_id is not None:
            if parent_id in seen:
                raise StoreError(
                    f"{entity_type.value} {own_id}: {parent_field} would create a cycle",
                    entity_type.value,
                )
            seen.add(parent_id)
            parent = self._load(entity_type, parent_id)
            if parent is None:
                raise StoreError(
                    f"{entity_type.value} {own_id}: parent {parent_id} does not exist",
                    entity_type.value,
                )
            parent_id = getattr(parent, parent_field)

    def create(self, entity_type: EntityTypeLike, fields: Dict[str, Any]) -> BaseModel:
        etype = _coerce_type(entity_type)
        data = dict(fields)
        data[ID_FIELDS[etype]] = self._next_id(etype)
        entity = self._validate(etype, data)
        self._check_lineage(etype, entity)
        self._save(etype, entity, is_new=True)
        return entity

    def update(self, entity_type: EntityTypeLike, entity_id: int, fields: Dict[str, Any]) -> BaseModel:
        etype = _coerce_type(entity_type)
        current = self._load(etype, entity_id)
        if current is None:
            raise NotFoundError(etype.value, entity_id)
        data = current.model_dump()
        data.update(fields)
        data[ID_FIELDS[etype]] = entity_id
        entity = self._validate(etype, data)
        self._check_lineage(etype, entity)
        self._save(etype, entity, is_new=False)
        return entity

    def get(self, entity_type: EntityTypeLike, entity_id: int) -> Optional[BaseModel]:
        return self._load(_coerce_type(entity_type), entity_id)
