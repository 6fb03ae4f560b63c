"""
Card and deposit-ledger repositories.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.db.models import Card, CardStatus, DepositTransaction, DepositType

from .base import BaseRepository


class CardRepository(BaseRepository[Card]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Card)

    async def get_by_reader(self, reader_id: str) -> Card | None:
        result = await self.session.execute(select(Card).where(Card.reader_id == reader_id))
        return result.scalar_one_or_none()

    async def next_card_number(self, year: int) -> str:
        """Card numbers look like ``LC20240001``: prefix, issue year, sequence."""
        prefix = f"LC{year}"
        stmt = select(func.max(Card.card_number)).where(Card.card_number.like(f"{prefix}%"))
        last = (await self.session.execute(stmt)).scalar()
        seq = int(last[len(prefix):]) + 1 if last else 1
        return f"{prefix}{seq:04d}"

    async def list_expiring(self, today: date) -> list[Card]:
        """Active cards whose expiry date has passed."""
        stmt = (
            select(Card)
            .where(Card.status == CardStatus.active, Card.expiry_date < today)
            .order_by(Card.expiry_date)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class DepositRepository(BaseRepository[DepositTransaction]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, DepositTransaction)

    async def balance(self, card_id: UUID) -> Decimal:
        signed = case(
            (DepositTransaction.type == DepositType.deposit, DepositTransaction.amount),
            else_=-DepositTransaction.amount,
        )
        stmt = select(func.coalesce(func.sum(signed), 0)).where(
            DepositTransaction.card_id == card_id
        )
        total = (await self.session.execute(stmt)).scalar()
        return Decimal(str(total or 0)).quantize(Decimal("0.01"))

    async def list_for_card(self, card_id: UUID) -> list[DepositTransaction]:
        stmt = (
            select(DepositTransaction)
            .where(DepositTransaction.card_id == card_id)
            .order_by(DepositTransaction.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
