"""Repository interface for studyhub persistent state."""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union
from uuid import uuid4

from pydantic import BaseModel

from .domain import EntityType
from .models import Entity, model_for


Payload = Union[Mapping[str, Any], BaseModel]
PatchBuilder = Callable[[Entity], Payload]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_fields(payload: Payload) -> Dict[str, Any]:
    """Return the fields a caller actually supplied."""

    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_unset=True)
    return dict(payload)


class EntityStore(ABC):
    """Keyed collections of typed records, one per :class:`EntityType`.

    Absence is never an error: lookups return ``None`` and ``delete``
    returns ``False``. Only malformed payloads raise (``ValueError``).
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    @abstractmethod
    def create(self, entity_type: EntityType, payload: Payload) -> Entity:
        """Assign an id and timestamps, store and return the new record."""

    @abstractmethod
    def get(self, entity_type: EntityType, entity_id: str) -> Optional[Entity]:
        """Return the stored record or ``None``."""

    @abstractmethod
    def update_with(
        self, entity_type: EntityType, entity_id: str, build_patch: PatchBuilder
    ) -> Optional[Entity]:
        """Atomically read a record, build a patch from it and apply it."""

    @abstractmethod
    def delete(self, entity_type: EntityType, entity_id: str) -> bool:
        """Remove the record; report whether anything was removed."""

    @abstractmethod
    def list_by(self, entity_type: EntityType, field: str, value: Any) -> List[Entity]:
        """Return records whose ``field`` equals ``value``, in no guaranteed order."""

    @abstractmethod
    def count(self, entity_type: EntityType) -> int:
        """Return how many records of the type are stored."""

    def update(self, entity_type: EntityType, entity_id: str, patch: Payload) -> Optional[Entity]:
        """Shallow-merge ``patch`` over the stored record.

        Fields present in the patch overwrite, absent fields are kept and
        nested values are replaced wholesale.
        """

        return self.update_with(entity_type, entity_id, lambda _current: patch)

    # Helpers shared by implementations ---------------------------------
    def _new_record(self, entity_type: EntityType, payload: Payload) -> Entity:
        model = model_for(entity_type)
        fields = {
            key: value
            for key, value in as_fields(payload).items()
            if key not in model.server_fields()
        }
        now = self._clock()
        fields["id"] = str(uuid4())
        for name in (model.created_field, model.updated_field):
            if name:
                fields[name] = now
        return model.model_validate(fields)

    def _merge(self, current: Entity, patch: Payload) -> Entity:
        model: Type[Entity] = type(current)
        changes = as_fields(patch)
        existing = current.model_dump()
        for name in model.immutable_fields + model.server_fields():
            if name in changes and changes[name] != existing.get(name):
                raise ValueError(f"Field '{name}' of {model.__name__} cannot be changed")
        current.check_patch(changes)
        merged = {**existing, **changes}
        if model.updated_field:
            merged[model.updated_field] = self._clock()
        return model.model_validate(merged)

    @staticmethod
    def _check_field(entity_type: EntityType, field: str) -> None:
        model = model_for(entity_type)
        if field not in model.index_fields:
            raise ValueError(
                f"{model.__name__} records cannot be listed by '{field}'; "
                f"expected one of {', '.join(model.index_fields)}"
            )


__all__ = ["EntityStore", "Payload", "PatchBuilder", "as_fields", "utcnow"]
