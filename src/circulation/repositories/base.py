"""
Base repository with the lookups every circulation aggregate needs.
"""

from abc import ABC
from typing import Any, Generic, Protocol, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.app_logger import get_logger
from circulation.exceptions import NotFoundError

logger = get_logger(__name__)


class HasId(Protocol):
    id: Any


ModelType = TypeVar("ModelType", bound=HasId)


class BaseRepository(Generic[ModelType], ABC):
    """
    Repositories never commit: they add and flush inside whatever
    transaction the calling service opened, so one circulation operation
    commits or rolls back as a whole.
    """

    def __init__(self, session: AsyncSession, model_class: type[ModelType]) -> None:
        self.session = session
        self.model_class = model_class
        self.model_name = model_class.__name__

    async def create(self, **kwargs: Any) -> ModelType:
        """Add a new row and flush it so its id and defaults are populated."""
        try:
            instance = self.model_class(**kwargs)
            self.session.add(instance)
            await self.session.flush()
        except Exception as e:
            logger.error(f"Failed to create {self.model_name}: {e}")
            raise

        logger.debug(f"Created {self.model_name}: {instance.id}")
        return instance

    async def get_by_id(
        self, id: UUID, *, for_update: bool = False, refresh: bool = False
    ) -> ModelType | None:
        """
        Load one row by primary key.

        Args:
            id: row id
            for_update: take a row lock (SELECT ... FOR UPDATE) where the
                backend supports it; implies ``refresh``
            refresh: overwrite an instance already held in the identity map,
                e.g. a copy whose status another session changed

        Returns:
            The instance, or None when the id is unknown
        """
        stmt = select(self.model_class).where(self.model_class.id == id)
        if for_update:
            stmt = stmt.with_for_update()
        if for_update or refresh:
            stmt = stmt.execution_options(populate_existing=True)
        try:
            result = await self.session.execute(stmt)
        except Exception as e:
            logger.error(f"Failed to load {self.model_name} {id}: {e}")
            raise
        return result.scalar_one_or_none()

    async def require(
        self, id: UUID, *, for_update: bool = False, refresh: bool = False
    ) -> ModelType:
        """Like ``get_by_id`` but raises ``NotFoundError``."""
        instance = await self.get_by_id(id, for_update=for_update, refresh=refresh)
        if instance is None:
            logger.debug(f"{self.model_name} not found: {id}")
            raise NotFoundError(self.model_name, id)
        return instance
