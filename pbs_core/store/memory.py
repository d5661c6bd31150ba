"""In-memory Entity Store. Used by tests and as the default host store."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from pbs_core.models.entities import ID_FIELDS, EntityType
from pbs_core.store.base import BaseEntityStore, EntityTypeLike, _coerce_type


class InMemoryEntityStore(BaseEntityStore):
    """
    Dict-backed store, one table per entity type.
    Records are copied on the way in and out so callers can't mutate stored state.
    """

    def __init__(self):
        self._tables: Dict[EntityType, Dict[int, BaseModel]] = {t: {} for t in EntityType}
        self._sequences: Dict[EntityType, int] = {t: 0 for t in EntityType}

    def _load(self, entity_type: EntityType, entity_id: int) -> Optional[BaseModel]:
        entity = self._tables[entity_type].get(entity_id)
        return entity.model_copy(deep=True) if entity is not None else None

    def _next_id(self, entity_type: EntityType) -> int:
        return self._sequences[entity_type] + 1

    def _save(self, entity_type: EntityType, entity: BaseModel, is_new: bool) -> None:
        entity_id = getattr(entity, ID_FIELDS[entity_type])
        if is_new:
            self._sequences[entity_type] = entity_id
        self._tables[entity_type][entity_id] = entity.model_copy(deep=True)

    def list(self, entity_type: EntityTypeLike, **filters: Any) -> List[BaseModel]:
        """All records of a type matching the equality filters, in id order."""
        table = self._tables[_coerce_type(entity_type)]
        return [
            table[i].model_copy(deep=True)
            for i in sorted(table)
            if all(getattr(table[i], k) == v for k, v in filters.items())
        ]

    def delete(self, entity_type: EntityTypeLike, entity_id: int) -> bool:
        return self._tables[_coerce_type(entity_type)].pop(entity_id, None) is not None

    def count(self, entity_type: EntityTypeLike) -> int:
        return len(self._tables[_coerce_type(entity_type)])
