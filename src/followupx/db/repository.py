"""Generic async record-store repository.

Handlers only ever touch domain records through this narrow surface:
``find_by_id``, ``find``, ``find_one``, ``update_one``, ``update_many``,
``count`` and ``insert_one``. Filters are plain SQLAlchemy criteria.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from followupx.db.session import Base

ModelT = TypeVar("ModelT", bound=Base)


class Repository(Generic[ModelT]):
    """Base repository providing the record-store operations."""

    def __init__(self, model: type[ModelT], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def find_by_id(self, id: str) -> ModelT | None:
        return await self.session.get(self.model, id)

    async def find(
        self,
        *criteria: ColumnElement[bool],
        order_by: Any = None,
        limit: int | None = None,
    ) -> list[ModelT]:
        stmt = select(self.model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_one(self, *criteria: ColumnElement[bool]) -> ModelT | None:
        result = await self.session.execute(select(self.model).where(*criteria).limit(1))
        return result.scalar_one_or_none()

    async def distinct(self, column: Any, *criteria: ColumnElement[bool]) -> list[Any]:
        result = await self.session.execute(select(column).where(*criteria).distinct())
        return list(result.scalars().all())

    async def count(self, *criteria: ColumnElement[bool]) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(self.model).where(*criteria)
        )
        return int(result.scalar_one())

    async def insert_one(self, **fields: Any) -> ModelT:
        obj = self.model(**fields)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def update_one(self, criteria: list[ColumnElement[bool]], patch: dict[str, Any]) -> bool:
        """Conditionally update the single row matching ``criteria``. Returns True on a hit."""
        return await self.update_many(criteria, patch) == 1

    async def update_many(
        self, criteria: list[ColumnElement[bool]], patch: dict[str, Any]
    ) -> int:
        result = await self.session.execute(
            update(self.model)
            .where(*criteria)
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_many(self, *criteria: ColumnElement[bool]) -> int:
        result = await self.session.execute(delete(self.model).where(*criteria))
        return result.rowcount or 0
