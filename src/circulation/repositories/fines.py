"""
Fine repository.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.db.models import BorrowRequest, Fine, FineStatus

from .base import BaseRepository


class FineRepository(BaseRepository[Fine]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Fine)

    async def pending_for_request(self, borrow_request_id: UUID, *, for_update: bool = False) -> list[Fine]:
        stmt = (
            select(Fine)
            .where(Fine.borrow_request_id == borrow_request_id, Fine.status == FineStatus.pending)
            .order_by(Fine.created_at)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def pending_for_card(self, card_id: UUID) -> list[Fine]:
        stmt = (
            select(Fine)
            .join(BorrowRequest, Fine.borrow_request_id == BorrowRequest.id)
            .where(BorrowRequest.card_id == card_id, Fine.status == FineStatus.pending)
            .order_by(Fine.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def totals(self, card_id: UUID | None = None) -> dict[FineStatus, Decimal]:
        """Sum of fine amounts per status, optionally scoped to one card."""
        stmt = select(Fine.status, func.coalesce(func.sum(Fine.amount), 0)).group_by(Fine.status)
        if card_id is not None:
            stmt = stmt.join(BorrowRequest, Fine.borrow_request_id == BorrowRequest.id).where(
                BorrowRequest.card_id == card_id
            )
        rows = (await self.session.execute(stmt)).all()
        totals = {status: Decimal("0.00") for status in FineStatus}
        for status, amount in rows:
            totals[FineStatus(status)] = Decimal(str(amount)).quantize(Decimal("0.01"))
        return totals
