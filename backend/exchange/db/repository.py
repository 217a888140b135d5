"""
Base Repository Pattern Implementation
Exchange Trading Platform

Provides generic async data access. Repositories flush but never commit:
the caller's transaction decides when work becomes durable.
"""

from abc import ABC
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select, delete, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from exchange.db.base import Base


ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType], ABC):
    """
    Generic async repository.

    Type Parameters:
        ModelType: SQLAlchemy model class
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    # =========================================================================
    # Basic Operations
    # =========================================================================

    async def get(self, id: int, *, for_update: bool = False) -> Optional[ModelType]:
        """
        Get a single record by ID.

        Args:
            id: Primary key value
            for_update: Lock the row until the transaction ends

        Returns:
            Model instance or None
        """
        query = select(self.model).where(self.model.id == id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_all(
        self,
        *,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[ModelType]:
        """
        Get records matching every field -> value pair in `filters`,
        ordered by ID.
        """
        query = select(self.model)

        if filters:
            conditions = []
            for field_name, value in filters.items():
                field = getattr(self.model, field_name, None)
                if field is None:
                    raise ValueError(f"Field {field_name} not found on {self.model.__name__}")
                conditions.append(field == value)
            query = query.where(and_(*conditions))

        query = query.order_by(self.model.id)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def add(self, obj: ModelType) -> ModelType:
        """Stage a new record and assign its ID."""
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching `filters`."""
        query = select(func.count()).select_from(self.model)
        if filters:
            conditions = [getattr(self.model, k) == v for k, v in filters.items()]
            query = query.where(and_(*conditions))
        result = await self.session.execute(query)
        return result.scalar() or 0


class TimeSeriesRepository(BaseRepository[ModelType]):
    """
    Repository for append-only rows keyed by an epoch-seconds column.
    """

    def __init__(
        self,
        model: Type[ModelType],
        session: AsyncSession,
        time_column: str = "timestamp",
    ):
        super().__init__(model, session)
        self.time_column = time_column

    @property
    def _time_field(self):
        return getattr(self.model, self.time_column)

    async def get_range(
        self,
        start: int,
        end: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[ModelType]:
        """Rows with start <= time (< end), oldest first."""
        conditions = [self._time_field >= start]
        if end is not None:
            conditions.append(self._time_field < end)
        if filters:
            conditions.extend(getattr(self.model, k) == v for k, v in filters.items())

        result = await self.session.execute(
            select(self.model)
            .where(and_(*conditions))
            .order_by(self._time_field, self.model.id)
        )
        return list(result.scalars().all())

    async def delete_before(self, before: int) -> int:
        """
        Delete rows older than `before`.

        Returns:
            Number of deleted rows
        """
        result = await self.session.execute(
            delete(self.model).where(self._time_field < before)
        )
        return result.rowcount


__all__ = [
    "BaseRepository",
    "TimeSeriesRepository",
]
