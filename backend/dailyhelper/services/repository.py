"""Generic per-owner repository over SQLModel tables.

One :class:`Repository` subclass per entity type. An instance is bound to a
request's session and to the authenticated caller's id, and every statement
it issues filters on ``owner_id``: a row owned by someone else behaves
exactly like a row that does not exist.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Generic, List, Type, TypeVar

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..errors import NotFoundError, StorageError, ValidationError
from ..models import Note, OwnedEntity, ToDoTask, utcnow_iso

EntityT = TypeVar("EntityT", bound=OwnedEntity)

# never writable through create/update payloads
PROTECTED_FIELDS = frozenset({"id", "owner_id", "created_at", "updated_at"})


@dataclass
class Page(Generic[EntityT]):
    items: List[EntityT]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return (self.offset + len(self.items)) < self.total


class Repository(Generic[EntityT]):
    model: ClassVar[Type[Any]]
    entity_name: ClassVar[str]

    def __init__(self, session: Session, owner_id: int):
        self.session = session
        self.owner_id = owner_id

    def _scoped(self, stmt):
        return stmt.where(self.model.owner_id == self.owner_id)

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("{} {} failed for owner {}: {}", action, self.entity_name, self.owner_id, e)
            raise StorageError(f"Could not {action} {self.entity_name}", {"reason": e.__class__.__name__})

    def _check_fields(self, data: dict[str, Any]) -> None:
        unknown = set(data) - set(self.model.model_fields)
        protected = set(data) & PROTECTED_FIELDS
        if unknown or protected:
            raise ValidationError(
                f"Invalid fields for {self.entity_name}",
                {"fields": sorted(unknown | protected)},
            )

    def create(self, data: dict[str, Any]) -> EntityT:
        self._check_fields(data)
        now = utcnow_iso()
        entity = self.model(**data, owner_id=self.owner_id, created_at=now, updated_at=now)
        self.session.add(entity)
        self._commit("create")
        self.session.refresh(entity)
        logger.debug("created {} {} for owner {}", self.entity_name, entity.id, self.owner_id)
        return entity

    def get(self, entity_id: int) -> EntityT:
        stmt = self._scoped(select(self.model).where(self.model.id == entity_id))
        try:
            entity = self.session.exec(stmt).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read {self.entity_name}", {"reason": e.__class__.__name__})
        if entity is None:
            raise NotFoundError(self.entity_name, entity_id)
        return entity

    def list(self, limit: int = 50, offset: int = 0, **filters: Any) -> Page[EntityT]:
        self._check_fields(filters)
        stmt = self._scoped(select(self.model))
        for name, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, name) == value)
        try:
            total = self.session.exec(select(func.count()).select_from(stmt.subquery())).one()
            rows = list(self.session.exec(stmt.order_by(self.model.id).offset(offset).limit(limit)))
        except SQLAlchemyError as e:
            raise StorageError(f"Could not list {self.entity_name}", {"reason": e.__class__.__name__})
        return Page(items=rows, total=total, limit=limit, offset=offset)

    def update(self, entity_id: int, changes: dict[str, Any]) -> EntityT:
        self._check_fields(changes)
        entity = self.get(entity_id)
        for name, value in changes.items():
            setattr(entity, name, value)
        entity.updated_at = utcnow_iso()
        self.session.add(entity)
        self._commit("update")
        self.session.refresh(entity)
        return entity

    def delete(self, entity_id: int) -> None:
        entity = self.get(entity_id)
        self.session.delete(entity)
        self._commit("delete")
        logger.debug("deleted {} {} for owner {}", self.entity_name, entity_id, self.owner_id)


class NoteRepository(Repository[Note]):
    model = Note
    entity_name = "Note"


class TodoRepository(Repository[ToDoTask]):
    model = ToDoTask
    entity_name = "ToDoTask"


__all__ = ["Repository", "NoteRepository", "TodoRepository", "Page"]
