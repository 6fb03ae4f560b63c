"""
Borrow request repository: aggregate loading and loan-count queries.
"""

from datetime import date
from typing import Iterable
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.db.models import (
    ACTIVE_LOAN_STATUSES,
    BorrowDetail,
    BorrowRequest,
    BorrowStatus,
)

from .base import BaseRepository


class BorrowRequestRepository(BaseRepository[BorrowRequest]):
    """
    Repository for the BorrowRequest aggregate (request + details + fines).

    Details and fines are loaded eagerly (selectin), so an aggregate fetched
    here can be walked without further I/O.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, BorrowRequest)

    async def active_loan_count(self, card_id: UUID) -> int:
        """Copies currently out on a card: open details of borrowed/overdue requests."""
        stmt = (
            select(func.count(BorrowDetail.id))
            .join(BorrowRequest, BorrowDetail.borrow_request_id == BorrowRequest.id)
            .where(
                BorrowRequest.card_id == card_id,
                BorrowRequest.status.in_(ACTIVE_LOAN_STATUSES),
                BorrowDetail.actual_return_date.is_(None),
            )
        )
        return int((await self.session.execute(stmt)).scalar() or 0)

    async def list_for_card(
        self, card_id: UUID, statuses: Iterable[BorrowStatus] | None = None
    ) -> list[BorrowRequest]:
        stmt = select(BorrowRequest).where(BorrowRequest.card_id == card_id)
        if statuses:
            stmt = stmt.where(BorrowRequest.status.in_(list(statuses)))
        stmt = stmt.order_by(BorrowRequest.request_date.desc(), BorrowRequest.created_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_past_due(
        self,
        today: date,
        statuses: Iterable[BorrowStatus],
        *,
        for_update: bool = False,
    ) -> list[BorrowRequest]:
        stmt = (
            select(BorrowRequest)
            .where(BorrowRequest.status.in_(list(statuses)), BorrowRequest.due_date < today)
            .order_by(BorrowRequest.due_date.asc(), BorrowRequest.created_at.asc())
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_open_details_for_copy(self, copy_id: UUID) -> int:
        """Open lines of issued requests that hold this copy."""
        stmt = (
            select(func.count(BorrowDetail.id))
            .join(BorrowRequest, BorrowDetail.borrow_request_id == BorrowRequest.id)
            .where(
                BorrowDetail.copy_id == copy_id,
                BorrowDetail.actual_return_date.is_(None),
                BorrowRequest.status.in_(ACTIVE_LOAN_STATUSES),
            )
        )
        return int((await self.session.execute(stmt)).scalar() or 0)

    async def list_overdue(self, today: date) -> list[BorrowRequest]:
        """Swept overdue requests plus borrowed ones already past due."""
        stmt = (
            select(BorrowRequest)
            .where(
                or_(
                    BorrowRequest.status == BorrowStatus.overdue,
                    and_(
                        BorrowRequest.status == BorrowStatus.borrowed,
                        BorrowRequest.due_date < today,
                    ),
                )
            )
            .order_by(BorrowRequest.due_date.asc(), BorrowRequest.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
