"""
Base repository for fee records.

Repositories only flush; the caller's transaction (see db.session.atomic)
decides when work is committed.
"""

from typing import Generic, Optional, Type, TypeVar, Set

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.exceptions import ResourceNotFoundError, ImmutableRecordError
from campus_fees.app.db.session import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Explicit-id access to a single table. Financial rows are never deleted."""

    resource_name = "Record"

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    async def get(self, entity_id: int) -> Optional[ModelType]:
        return await self.db.get(self.model, entity_id)

    async def get_or_raise(self, entity_id: int) -> ModelType:
        entity = await self.get(entity_id)
        if entity is None:
            raise ResourceNotFoundError(self.resource_name, entity_id)
        return entity

    async def add(self, entity: ModelType) -> ModelType:
        self.db.add(entity)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity

    async def delete(self, entity: ModelType) -> None:
        raise ImmutableRecordError(
            f"{self.resource_name} records cannot be deleted",
            details={"id": getattr(entity, "id", None)}
        )

    @staticmethod
    def changed_fields(entity: ModelType) -> Set[str]:
        """Names of mapped attributes with pending, unflushed changes."""
        state = inspect(entity)
        return {attr.key for attr in state.attrs if attr.history.has_changes()}

    @staticmethod
    def previous_value(entity: ModelType, field: str):
        """Value of a field as last loaded from the database."""
        history = inspect(entity).attrs[field].history
        if history.deleted:
            return history.deleted[0]
        if history.unchanged:
            return history.unchanged[0]
        return getattr(entity, field)
