"""
Membership ledger: library cards, borrowing limits and the deposit ledger.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from circulation.app_logger import get_logger
from circulation.core.config import CirculationPolicy
from circulation.db import transaction
from circulation.db.models import Card, CardStatus, DepositTransaction, DepositType
from circulation.exceptions import InvalidOperationError, InvalidStateError
from circulation.repositories import (
    BorrowRequestRepository,
    CardRepository,
    DepositRepository,
    FineRepository,
)

log = get_logger(__name__)


class MembershipLedger:
    """
    Card lifecycle and deposits.

    ``card.deposit_amount`` is a cached copy of the ledger balance and is
    rewritten from the ledger after every deposit or refund.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: Optional[CirculationPolicy] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.policy = policy or CirculationPolicy()
        self.today = today
        self.cards = CardRepository(session)
        self.deposits = DepositRepository(session)
        self.requests = BorrowRequestRepository(session)
        self.fines = FineRepository(session)

    # ------------------------------------------------------------------ reads

    async def get_card(self, card_id: UUID) -> Card:
        return await self.cards.require(card_id)

    def is_usable(self, card: Card) -> bool:
        return card.status is CardStatus.active and not card.is_expired(self.today())

    async def active_loan_count(self, card_id: UUID) -> int:
        return await self.requests.active_loan_count(card_id)

    async def can_borrow(self, card_id: UUID) -> bool:
        card = await self.cards.require(card_id)
        if not self.is_usable(card):
            return False
        return await self.active_loan_count(card_id) < card.max_books

    async def compute_deposit_balance(self, card_id: UUID) -> Decimal:
        await self.cards.require(card_id)
        return await self.deposits.balance(card_id)

    async def list_deposits(self, card_id: UUID) -> list[DepositTransaction]:
        return await self.deposits.list_for_card(card_id)

    # ---------------------------------------------------------------- deposits

    async def _append(
        self,
        card: Card,
        amount: Decimal,
        kind: DepositType,
        staff_id: Optional[str],
        notes: Optional[str],
    ) -> DepositTransaction:
        txn = await self.deposits.create(
            card_id=card.id,
            amount=amount,
            type=kind,
            transaction_date=self.today(),
            staff_id=staff_id,
            notes=notes,
        )
        card.deposit_amount = await self.deposits.balance(card.id)
        await self.session.flush()
        return txn

    @staticmethod
    def _positive(amount) -> Decimal:
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidOperationError("Amount must be positive", context={"amount": amount})
        return amount

    async def record_deposit(
        self,
        card_id: UUID,
        amount: Decimal,
        staff_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DepositTransaction:
        amount = self._positive(amount)
        async with transaction(self.session):
            card = await self.cards.require(card_id, for_update=True)
            txn = await self._append(card, amount, DepositType.deposit, staff_id, notes)
        log.info("card %s: deposit %s, balance %s", card_id, amount, card.deposit_amount)
        return txn

    async def refund_deposit(
        self,
        card_id: UUID,
        amount: Decimal,
        staff_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DepositTransaction:
        amount = self._positive(amount)
        async with transaction(self.session):
            card = await self.cards.require(card_id, for_update=True)
            balance = await self.deposits.balance(card_id)
            if amount > balance:
                log.warning("card %s: refund %s exceeds balance %s", card_id, amount, balance)
                raise InvalidOperationError(
                    "Refund exceeds deposit balance",
                    context={"card_id": card_id, "amount": amount, "balance": balance},
                )
            if await self.requests.active_loan_count(card_id):
                raise InvalidOperationError(
                    "Cannot refund deposit while books are on loan",
                    context={"card_id": card_id},
                )
            if await self.fines.pending_for_card(card_id):
                raise InvalidOperationError(
                    "Cannot refund deposit while fines are unpaid",
                    context={"card_id": card_id},
                )
            txn = await self._append(card, amount, DepositType.refund, staff_id, notes)
        log.info("card %s: refund %s, balance %s", card_id, amount, card.deposit_amount)
        return txn

    # ------------------------------------------------------------ card lifecycle

    async def register_card(
        self,
        reader_id: str,
        *,
        max_books: Optional[int] = None,
        max_borrow_days: Optional[int] = None,
        expiry_date: Optional[date] = None,
    ) -> Card:
        """Issue the reader's card; a reader holds at most one."""
        today = self.today()
        async with transaction(self.session):
            if await self.cards.get_by_reader(reader_id) is not None:
                raise InvalidOperationError(
                    "Reader already has a library card", context={"reader_id": reader_id}
                )
            card = await self.cards.create(
                card_number=await self.cards.next_card_number(today.year),
                reader_id=reader_id,
                status=CardStatus.active,
                issue_date=today,
                expiry_date=expiry_date or today + timedelta(days=self.policy.card_validity_days),
                max_books=max_books or self.policy.default_max_books,
                max_borrow_days=max_borrow_days or self.policy.default_borrow_days,
                deposit_amount=Decimal("0"),
            )
        log.info("card %s: registered %s for reader %s", card.id, card.card_number, reader_id)
        return card

    async def lock_card(self, card_id: UUID) -> Card:
        async with transaction(self.session):
            card = await self.cards.require(card_id, for_update=True)
            if card.status is not CardStatus.active:
                raise InvalidStateError("Card", card.status, CardStatus.locked, context={"card_id": card_id})
            card.status = CardStatus.locked
            await self.session.flush()
        log.info("card %s: locked", card_id)
        return card

    async def unlock_card(self, card_id: UUID) -> Card:
        async with transaction(self.session):
            card = await self.cards.require(card_id, for_update=True)
            if card.status is not CardStatus.locked:
                raise InvalidStateError("Card", card.status, CardStatus.active, context={"card_id": card_id})
            if card.is_expired(self.today()):
                raise InvalidOperationError(
                    "Card has expired; renew it instead", context={"card_id": card_id}
                )
            card.status = CardStatus.active
            await self.session.flush()
        log.info("card %s: unlocked", card_id)
        return card

    async def renew_card(self, card_id: UUID, new_expiry_date: Optional[date] = None) -> Card:
        today = self.today()
        new_expiry_date = new_expiry_date or today + timedelta(days=self.policy.card_validity_days)
        if new_expiry_date <= today:
            raise InvalidOperationError(
                "New expiry date must be in the future",
                context={"card_id": card_id, "expiry_date": new_expiry_date},
            )
        async with transaction(self.session):
            card = await self.cards.require(card_id, for_update=True)
            card.expiry_date = new_expiry_date
            card.status = CardStatus.active
            await self.session.flush()
        log.info("card %s: renewed until %s", card_id, new_expiry_date)
        return card

    async def update_limits(
        self,
        card_id: UUID,
        *,
        max_books: Optional[int] = None,
        max_borrow_days: Optional[int] = None,
    ) -> Card:
        for name, value in (("max_books", max_books), ("max_borrow_days", max_borrow_days)):
            if value is not None and value <= 0:
                raise InvalidOperationError(f"{name} must be positive", context={name: value})
        async with transaction(self.session):
            card = await self.cards.require(card_id, for_update=True)
            if max_books is not None:
                card.max_books = max_books
            if max_borrow_days is not None:
                card.max_borrow_days = max_borrow_days
            await self.session.flush()
        log.info(
            "card %s: limits max_books=%s max_borrow_days=%s",
            card_id, card.max_books, card.max_borrow_days,
        )
        return card

    async def expire_cards(self, today: Optional[date] = None) -> list[Card]:
        today = today or self.today()
        async with transaction(self.session):
            cards = await self.cards.list_expiring(today)
            for card in cards:
                card.status = CardStatus.expired
            await self.session.flush()
        if cards:
            log.info("%d card(s) expired as of %s", len(cards), today)
        return cards
