"""
Base repository.

Generic data access shared by the rewards repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic operations.

    Rewards rows are append-only or toggled in place; nothing is
    physically deleted, so there is no generic delete or bulk update.

    Example:
        class BudgetRunRepository(BaseRepository[BudgetRun]):
            def __init__(self, session: AsyncSession):
                super().__init__(BudgetRun, session)
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    @property
    def _pk(self):
        return inspect(self.model).primary_key[0]

    async def get_by_id(self, id: int, for_update: bool = False) -> ModelType | None:
        """
        Get entity by primary key.

        Args:
            id: Primary key value
            for_update: Lock the row and discard any cached copy

        Returns:
            Entity or None if not found
        """
        if not for_update:
            return await self.session.get(self.model, id)

        # Row lock on PostgreSQL; SQLite ignores FOR UPDATE
        stmt = (
            select(self.model)
            .where(self._pk == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by(self, **filters: Any) -> ModelType | None:
        """Get the single entity matching unique-column filters."""
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by(self, limit: int | None = None, **filters: Any) -> list[ModelType]:
        """
        Find entities by filters in primary key order.

        Args:
            limit: Max number of results
            **filters: Column filters

        Returns:
            List of matching entities
        """
        stmt = select(self.model).filter_by(**filters).order_by(self._pk)
        if limit:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **data: Any) -> ModelType:
        """
        Insert a new entity and flush it so database defaults are loaded.

        Unique violations surface as IntegrityError at this point; callers
        that race on an idempotency key catch it and re-read.
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def count(self, **filters: Any) -> int:
        """Count entities matching filters."""
        stmt = select(func.count()).select_from(self.model)
        if filters:
            stmt = stmt.filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(self, **filters: Any) -> bool:
        """Check if any entity matches filters."""
        return await self.count(**filters) > 0
