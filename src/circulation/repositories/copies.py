"""
Copy repository: availability lookups and compare-and-swap status changes.
"""

from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.app_logger import get_logger
from circulation.db.models import Copy, CopyStatus, Edition

from .base import BaseRepository

logger = get_logger(__name__)


class EditionRepository(BaseRepository[Edition]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Edition)


class CopyRepository(BaseRepository[Copy]):
    """
    Repository for physical copies.

    ``compare_and_set_status`` is the only way a copy's lending status
    changes; callers must check its result instead of trusting any status
    they read earlier.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Copy)

    async def first_available(
        self, edition_id: UUID, exclude: Iterable[UUID] = ()
    ) -> Copy | None:
        """Lowest-numbered available copy of an edition, skipping ``exclude``."""
        stmt = (
            select(Copy)
            .where(Copy.edition_id == edition_id, Copy.status == CopyStatus.available)
            .order_by(Copy.copy_number.asc())
            .limit(1)
        )
        excluded = list(exclude)
        if excluded:
            stmt = stmt.where(Copy.id.not_in(excluded))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self, copy_id: UUID, expected: CopyStatus, new: CopyStatus
    ) -> bool:
        """
        Atomically move a copy from ``expected`` to ``new``.

        Returns:
            True if exactly one row changed, False if the copy was not in
            ``expected`` (someone else got there first) or does not exist.
        """
        stmt = (
            update(Copy)
            .where(Copy.id == copy_id, Copy.status == expected)
            .values(status=new)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        swapped = result.rowcount == 1
        if swapped:
            # bring the identity-map instance in line with the row
            await self.get_by_id(copy_id, refresh=True)
        else:
            logger.debug(
                "copy %s: compare-and-set %s -> %s matched no row",
                copy_id, expected.value, new.value,
            )
        return swapped

    async def next_copy_number(self, edition_id: UUID) -> int:
        stmt = select(func.coalesce(func.max(Copy.copy_number), 0)).where(
            Copy.edition_id == edition_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0) + 1
