"""
Fine engine and fine settlement.

``FineEngine`` is pure arithmetic over prices, dates and the configured
rates. ``FineService`` persists fines and records their payment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from circulation.app_logger import get_logger
from circulation.core.config import CirculationPolicy
from circulation.db import transaction
from circulation.db.models import Fine, FineKind, FineStatus
from circulation.exceptions import InvalidOperationError, InvalidStateError
from circulation.repositories import FineRepository

log = get_logger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class FineEngine:
    """Fine arithmetic. No I/O; every rate comes from the policy or the caller."""

    def __init__(self, policy: Optional[CirculationPolicy] = None) -> None:
        self.policy = policy or CirculationPolicy()

    @staticmethod
    def days_late(due_date: date, return_date: date) -> int:
        return max(0, (return_date - due_date).days)

    def compute_overdue_fine(
        self,
        copy_price: Decimal,
        due_date: date,
        return_date: date,
        rate_percent: Optional[Decimal] = None,
    ) -> Decimal:
        """
        ``price * rate% * days_late``; zero when returned on or before the due date.

        >>> FineEngine().compute_overdue_fine(Decimal(95000), date(2024, 1, 1), date(2024, 1, 11), Decimal(5))
        Decimal('47500.00')
        """
        rate = self.policy.fine_rate_percent if rate_percent is None else Decimal(rate_percent)
        days = self.days_late(due_date, return_date)
        if days == 0:
            return _money(0)
        return _money(Decimal(copy_price) * rate / HUNDRED * days)

    @staticmethod
    def compute_loss_fine(copy_price: Decimal) -> Decimal:
        return _money(copy_price)

    def compute_damage_fine(
        self,
        copy_price: Decimal,
        staff_amount: Optional[Decimal] = None,
        damage_percent: Optional[Decimal] = None,
    ) -> Decimal:
        """Staff-assessed amount when given, otherwise a share of the price."""
        if staff_amount is not None:
            if Decimal(staff_amount) < 0:
                raise InvalidOperationError(
                    "Damage fine cannot be negative", context={"amount": staff_amount}
                )
            return _money(staff_amount)
        pct = self.policy.damage_fine_percent if damage_percent is None else Decimal(damage_percent)
        return _money(Decimal(copy_price) * pct / HUNDRED)


@dataclass(frozen=True)
class FineSummary:
    pending: Decimal
    paid: Decimal

    @property
    def total(self) -> Decimal:
        return self.pending + self.paid


class FineService:
    def __init__(
        self,
        session: AsyncSession,
        policy: Optional[CirculationPolicy] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.policy = policy or CirculationPolicy()
        self.engine = FineEngine(self.policy)
        self.today = today
        self.fines = FineRepository(session)

    async def record_fine(
        self,
        borrow_request_id: UUID,
        copy_id: UUID,
        kind: FineKind,
        reason: str,
        amount: Decimal,
    ) -> Fine:
        """Add a pending fine inside the caller's transaction."""
        fine = await self.fines.create(
            borrow_request_id=borrow_request_id,
            copy_id=copy_id,
            kind=FineKind(kind),
            reason=reason,
            amount=_money(amount),
            status=FineStatus.pending,
        )
        log.info(
            "fine %s: %s %s on request %s copy %s",
            fine.id, fine.kind.value, fine.amount, borrow_request_id, copy_id,
        )
        return fine

    def _settle(self, fine: Fine, collected_by: Optional[str]) -> None:
        if fine.status is not FineStatus.pending:
            raise InvalidStateError(
                "Fine", fine.status, FineStatus.paid, context={"fine_id": fine.id}
            )
        fine.status = FineStatus.paid
        fine.paid_date = self.today()
        fine.collected_by = collected_by

    async def pay_fine(self, fine_id: UUID, collected_by: Optional[str] = None) -> Fine:
        async with transaction(self.session):
            fine = await self.fines.require(fine_id, for_update=True)
            self._settle(fine, collected_by)
            await self.session.flush()
        log.info("fine %s: paid %s (collected by %s)", fine.id, fine.amount, collected_by)
        return fine

    async def pay_all_fines(self, borrow_request_id: UUID, collected_by: Optional[str] = None) -> int:
        """Settle every pending fine of a request; returns how many were paid."""
        async with transaction(self.session):
            pending = await self.fines.pending_for_request(borrow_request_id, for_update=True)
            for fine in pending:
                self._settle(fine, collected_by)
            await self.session.flush()
        log.info("request %s: %d fine(s) paid", borrow_request_id, len(pending))
        return len(pending)

    async def outstanding_for_request(self, borrow_request_id: UUID) -> list[Fine]:
        return await self.fines.pending_for_request(borrow_request_id)

    async def outstanding_for_card(self, card_id: UUID) -> list[Fine]:
        return await self.fines.pending_for_card(card_id)

    async def summarize(self, card_id: Optional[UUID] = None) -> FineSummary:
        totals = await self.fines.totals(card_id)
        return FineSummary(pending=totals[FineStatus.pending], paid=totals[FineStatus.paid])
