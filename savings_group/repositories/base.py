"""Session-backed repository contract shared by every entity.

Repositories only stage changes (``add`` + ``flush``); committing belongs to
the service's unit of work so several writes land together or not at all.
"""
from typing import Generic, List, Optional, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.orm import Session

ModelT = TypeVar("ModelT")


class Repository(Generic[ModelT]):
    model: Type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, entity: ModelT) -> ModelT:
        self.db.add(entity)
        self.db.flush()
        return entity

    def get_by_id(self, entity_id: UUID, for_update: bool = False) -> Optional[ModelT]:
        """Fetch by primary key; ``for_update`` row-locks and reloads the latest committed values."""
        query = self.db.query(self.model).filter(self.model.id == entity_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def update(self, entity: ModelT, changes: BaseModel) -> ModelT:
        """Apply the fields explicitly set on an update struct."""
        for field, value in changes.model_dump(exclude_unset=True).items():
            setattr(entity, field, value)
        self.db.flush()
        return entity

    def increment(self, entity_id: UUID, deltas: BaseModel) -> Optional[ModelT]:
        """
        Add deltas to numeric columns in SQL and return the reloaded row.

        The addition happens in the database, so two writers crediting the
        same row both land even when neither saw the other's change.
        """
        values = {
            getattr(self.model, field): getattr(self.model, field) + delta
            for field, delta in deltas.model_dump(exclude_unset=True).items()
            if delta
        }
        if values:
            self.db.execute(
                update(self.model)
                .where(self.model.id == entity_id)
                .values(values)
                .execution_options(synchronize_session=False)
            )
        return self.db.get(self.model, entity_id, populate_existing=True)

    def list_all(self) -> List[ModelT]:
        return self.db.query(self.model).all()
