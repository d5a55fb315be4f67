"""
Generic async repository.

One class serves every entity. Per-entity differences are data, not
subclasses:

- ``eager``: relationships to load with each query. An entry is either a
  relationship attribute (``User.person``) or a tuple describing a chain
  (``(User.role_users, RoleUser.role)``).
- soft deletion is only available for models that mix in
  :class:`~app.models.mixins.Deactivatable`.

The repository flushes but never commits; the caller owns the transaction.
"""

import logging
from typing import Any, Generic, Optional, Sequence, Type, TypeVar, Union

from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import InstrumentedAttribute
from sqlalchemy.sql import Select

from app.models.mixins import Deactivatable

logger = logging.getLogger(__name__)

T = TypeVar("T")

EagerLoad = Union[InstrumentedAttribute, tuple]

# Columns an update must never overwrite
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


def _loader_option(path: EagerLoad):
    if isinstance(path, tuple):
        option = selectinload(path[0])
        for attr in path[1:]:
            option = option.selectinload(attr)
        return option
    return selectinload(path)


class Repository(Generic[T]):
    """
    CRUD over a single model bound to a request session.

    Example:
        users = Repository(session, User, eager=(User.person, (User.role_users, RoleUser.role)))
        user = await users.find_one(User.username == "alice")
    """

    def __init__(
        self,
        session: AsyncSession,
        model: Type[T],
        eager: Sequence[EagerLoad] = (),
    ):
        self.session = session
        self.model = model
        self.eager = tuple(eager)
        self.supports_deactivation = issubclass(model, Deactivatable)

    def query(self, *criteria: Any, active_only: bool = False) -> Select:
        """Build a select with this repository's eager loads and filters."""
        stmt = select(self.model)
        if self.eager:
            stmt = stmt.options(*(_loader_option(path) for path in self.eager))
        if active_only:
            if not self.supports_deactivation:
                raise TypeError(f"{self.model.__name__} is not Deactivatable")
            stmt = stmt.where(self.model.is_active.is_(True))
        if criteria:
            stmt = stmt.where(*criteria)
        return stmt

    async def get(self, entity_id: int) -> Optional[T]:
        result = await self.session.execute(self.query(self.model.id == entity_id))
        return result.scalar_one_or_none()

    async def find_one(self, *criteria: Any, active_only: bool = False) -> Optional[T]:
        result = await self.session.execute(self.query(*criteria, active_only=active_only).limit(1))
        return result.scalars().first()

    async def list(self, *criteria: Any, active_only: bool = False) -> list[T]:
        result = await self.session.execute(
            self.query(*criteria, active_only=active_only).order_by(self.model.id)
        )
        return list(result.scalars().all())

    async def exists(self, *criteria: Any) -> bool:
        result = await self.session.execute(select(exists().where(*criteria)))
        return bool(result.scalar())

    async def add(self, entity: T) -> T:
        """Stage a new entity and flush so its primary key is assigned."""
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def update(self, entity_id: int, **values: Any) -> Optional[T]:
        """
        Apply column values to an existing row.

        ``id`` and ``created_at`` are preserved even if passed. Returns None
        when the row does not exist.
        """
        entity = await self.session.get(self.model, entity_id)
        if entity is None:
            logger.warning("%s %s not found for update", self.model.__name__, entity_id)
            return None

        for field, value in values.items():
            if field in IMMUTABLE_FIELDS:
                continue
            if not hasattr(self.model, field):
                raise AttributeError(f"{self.model.__name__} has no field '{field}'")
            setattr(entity, field, value)

        await self.session.flush()
        return entity

    async def deactivate(self, entity_id: int) -> bool:
        """Soft-delete: mark the row inactive. False when the row does not exist."""
        if not self.supports_deactivation:
            raise TypeError(f"{self.model.__name__} is not Deactivatable")

        entity = await self.session.get(self.model, entity_id)
        if entity is None:
            return False
        entity.set_active(False)
        await self.session.flush()
        return True

    async def delete(self, entity_id: int) -> bool:
        entity = await self.session.get(self.model, entity_id)
        if entity is None:
            return False
        await self.session.delete(entity)
        await self.session.flush()
        return True
