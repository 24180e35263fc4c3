"""
Generic persistence collaborator for the teams and team_members relations.

Each call runs in its own short-lived session and commits on its own, the
way a hosted REST datastore behaves. Multi-step operations therefore cannot
rely on a surrounding transaction and compensate explicitly instead (see
app.services.compensation).

Filters are mappings of column name to value:

    {"team_id": team_id}                     -> team_id = :team_id
    {"status": ["pending", "active"]}        -> status IN (...)
    {"user_id": None}                        -> user_id IS NULL
"""

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Generic, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import Base
from app.models.membership import TeamMember
from app.models.team import Team

ModelT = TypeVar("ModelT", bound=Base)

Filters = Mapping[str, Any]
OrderBy = str | Sequence[str] | None

_COLLECTION_TYPES = (list, tuple, set, frozenset)


class StoreError(Exception):
    """Raised when the underlying datastore call fails."""
    pass


class ConstraintViolationError(StoreError):
    """Raised when a write violates a uniqueness or integrity constraint."""
    pass


def _plain(value: Any) -> Any:
    """Unwrap enum members to the raw column value."""
    if isinstance(value, Enum):
        return value.value
    return value


class StoreTable(Generic[ModelT]):
    """Filtered CRUD access to one relation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], model: type[ModelT]):
        self._session_factory = session_factory
        self.model = model
        self.name = model.__tablename__

    def _column(self, name: str):
        try:
            return self.model.__table__.c[name]
        except KeyError:
            raise StoreError(f"Unknown column {self.name}.{name}") from None

    def _where(self, filters: Filters | None) -> list:
        clauses = []
        for name, value in (filters or {}).items():
            column = self._column(name)
            if value is None:
                clauses.append(column.is_(None))
            elif isinstance(value, _COLLECTION_TYPES):
                clauses.append(column.in_([_plain(v) for v in value]))
            else:
                clauses.append(column == _plain(value))
        return clauses

    def _order(self, order_by: OrderBy) -> list:
        if order_by is None:
            return []
        if isinstance(order_by, str):
            order_by = [order_by]
        ordering = []
        for name in order_by:
            if name.startswith("-"):
                ordering.append(self._column(name[1:]).desc())
            else:
                ordering.append(self._column(name).asc())
        return ordering

    def _values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        for name in values:
            self._column(name)
        return {name: _plain(value) for name, value in values.items()}

    @staticmethod
    def _require_filters(filters: Filters | None, action: str) -> None:
        if not filters:
            raise StoreError(f"Refusing to {action} without filters")

    async def select(
        self,
        filters: Filters | None = None,
        order_by: OrderBy = None,
        limit: int | None = None,
    ) -> list[ModelT]:
        """Return all rows matching the filters."""
        stmt = select(self.model).where(*self._where(filters)).order_by(*self._order(order_by))
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"select on {self.name} failed: {e}") from e

    async def first(self, filters: Filters | None = None, order_by: OrderBy = None) -> ModelT | None:
        """Return the first matching row or None."""
        rows = await self.select(filters, order_by=order_by, limit=1)
        return rows[0] if rows else None

    async def insert(self, values: Mapping[str, Any]) -> ModelT:
        """Insert one row and return it with generated columns filled in."""
        row = self.model(**self._values(values))
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
                return row
        except IntegrityError as e:
            raise ConstraintViolationError(f"insert into {self.name} violates a constraint: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"insert into {self.name} failed: {e}") from e

    async def update(self, filters: Filters, patch: Mapping[str, Any]) -> ModelT | None:
        """Apply the patch to every matching row and return the first one.

        Returns None when nothing matched.
        """
        self._require_filters(filters, "update")
        values = self._values(patch)
        stmt = select(self.model).where(*self._where(filters))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = list(result.scalars().all())
                if not rows:
                    return None
                for row in rows:
                    for name, value in values.items():
                        setattr(row, name, value)
                await session.commit()
                return rows[0]
        except IntegrityError as e:
            raise ConstraintViolationError(f"update of {self.name} violates a constraint: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"update of {self.name} failed: {e}") from e

    async def delete(self, filters: Filters) -> int:
        """Delete matching rows and return how many were removed."""
        self._require_filters(filters, "delete")
        stmt = delete(self.model).where(*self._where(filters))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreError(f"delete from {self.name} failed: {e}") from e

    async def count(self, filters: Filters | None = None) -> int:
        """Count matching rows."""
        stmt = select(func.count()).select_from(self.model).where(*self._where(filters))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise StoreError(f"count on {self.name} failed: {e}") from e


class TeamStore:
    """Access to the two relations the membership service works on."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.teams: StoreTable[Team] = StoreTable(session_factory, Team)
        self.members: StoreTable[TeamMember] = StoreTable(session_factory, TeamMember)
