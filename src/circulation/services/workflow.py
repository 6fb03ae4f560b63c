"""
Borrow workflow: a borrow request from creation to return.

Allocation happens in two phases. ``create`` picks specific copies without
touching their status (soft allocation); ``issue`` reserves them with
compare-and-swap updates (hard allocation), and losing any one of those
races rolls the whole issuance back with a retryable ``ConflictError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from circulation.app_logger import get_logger
from circulation.core.config import CirculationPolicy
from circulation.db import transaction
from circulation.db.models import (
    BorrowDetail,
    BorrowRequest,
    BorrowStatus,
    CardStatus,
    Copy,
    CopyStatus,
    Fine,
    FineKind,
    ReturnCondition,
)
from circulation.exceptions import (
    CardInvalidError,
    InsufficientDepositError,
    InvalidOperationError,
    LimitExceededError,
    NoAvailableCopyError,
)
from circulation.repositories import BorrowRequestRepository, CardRepository, DepositRepository

from .fines import FineService
from .inventory import InventoryLedger
from .membership import MembershipLedger
from .notifications import LoggingNotifier, OverdueNotifier, OverdueReminder
from .state_machine import (
    EXTENDABLE,
    REALLOCATABLE,
    RETURNABLE,
    ensure_in,
    ensure_transition,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class BorrowItem:
    """One requested line: an edition (any free copy) or one named copy."""

    edition_id: Optional[UUID] = None
    copy_id: Optional[UUID] = None


@dataclass(frozen=True)
class ReturnItem:
    copy_id: UUID
    condition: ReturnCondition = ReturnCondition.normal
    notes: Optional[str] = None
    damage_fine: Optional[Decimal] = None  # staff-assessed; falls back to the policy share


@dataclass
class ReturnResult:
    request: BorrowRequest
    fines: list[Fine] = field(default_factory=list)


class BorrowWorkflow:
    def __init__(
        self,
        session: AsyncSession,
        policy: Optional[CirculationPolicy] = None,
        notifier: Optional[OverdueNotifier] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.policy = policy or CirculationPolicy()
        self.notifier = notifier or LoggingNotifier()
        self.today = today

        self.requests = BorrowRequestRepository(session)
        self.cards = CardRepository(session)
        self.deposits = DepositRepository(session)
        self.inventory = InventoryLedger(session)
        self.membership = MembershipLedger(session, self.policy, today)
        self.fines = FineService(session, self.policy, today)

    # ------------------------------------------------------------------ reads

    async def get(self, request_id: UUID) -> BorrowRequest:
        return await self.requests.require(request_id, refresh=True)

    async def list_for_card(
        self, card_id: UUID, statuses: Optional[Iterable[BorrowStatus]] = None
    ) -> list[BorrowRequest]:
        await self.cards.require(card_id)
        return await self.requests.list_for_card(card_id, statuses)

    async def list_overdue(self, today: Optional[date] = None) -> list[BorrowRequest]:
        """Overdue requests, including borrowed ones the sweep has not reached yet."""
        return await self.requests.list_overdue(today or self.today())

    async def _load(self, request_id: UUID) -> BorrowRequest:
        return await self.requests.require(request_id, for_update=True)

    # ---------------------------------------------------------------- creation

    async def _allocate(self, item: BorrowItem, taken: set[UUID]) -> Copy:
        if item.copy_id is not None:
            copy = await self.inventory.get_copy(item.copy_id, refresh=True)
            if copy.id in taken:
                raise InvalidOperationError(
                    "Copy requested more than once", context={"copy_id": copy.id}
                )
            if copy.status is not CopyStatus.available:
                raise NoAvailableCopyError(
                    f"Copy {copy.id} is not available",
                    context={"copy_id": copy.id, "status": copy.status.value},
                )
            return copy
        if item.edition_id is not None:
            await self.inventory.editions.require(item.edition_id)
            copy = await self.inventory.find_available_copy(item.edition_id, exclude=taken)
            if copy is None:
                raise NoAvailableCopyError(
                    f"No available copy of edition {item.edition_id}",
                    context={"edition_id": item.edition_id},
                )
            return copy
        raise InvalidOperationError("Each item needs an edition_id or a copy_id")

    async def create(
        self,
        card_id: UUID,
        items: Sequence[BorrowItem],
        *,
        due_date: Optional[date] = None,
        requested_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BorrowRequest:
        if not items:
            raise InvalidOperationError("A borrow request needs at least one item")
        today = self.today()

        async with transaction(self.session):
            card = await self.cards.require(card_id, for_update=True)
            if card.status is not CardStatus.active or card.is_expired(today):
                raise CardInvalidError(
                    f"Card {card.card_number} cannot borrow",
                    context={"card_id": card_id, "status": card.status.value, "expiry_date": card.expiry_date},
                )

            balance = await self.deposits.balance(card_id)
            if balance < self.policy.min_deposit_amount:
                raise InsufficientDepositError(
                    "Deposit balance is below the required minimum",
                    context={"card_id": card_id, "balance": balance, "required": self.policy.min_deposit_amount},
                )

            due = due_date or today + timedelta(days=card.max_borrow_days)
            if due <= today or (due - today).days > card.max_borrow_days:
                raise InvalidOperationError(
                    f"Due date must be within {card.max_borrow_days} days from today",
                    context={"card_id": card_id, "due_date": due},
                )

            active = await self.requests.active_loan_count(card_id)
            if active + len(items) > card.max_books:
                log.warning(
                    "card %s: %d on loan + %d requested exceeds limit %d",
                    card_id, active, len(items), card.max_books,
                )
                raise LimitExceededError(
                    f"Card may hold at most {card.max_books} books",
                    context={"card_id": card_id, "active": active, "requested": len(items)},
                )

            taken: set[UUID] = set()
            details = []
            for item in items:
                copy = await self._allocate(item, taken)
                taken.add(copy.id)
                details.append(BorrowDetail(copy_id=copy.id, copy=copy))

            request = BorrowRequest(
                card_id=card_id,
                requested_by=requested_by,
                status=BorrowStatus.pending,
                request_date=today,
                due_date=due,
                notes=notes,
                details=details,
                fines=[],
            )
            self.session.add(request)
            await self.session.flush()

        log.info(
            "request %s: created for card %s with copies %s, due %s",
            request.id, card_id, [str(c) for c in taken], due,
        )
        return request

    # ------------------------------------------------------------ staff actions

    async def approve(self, request_id: UUID, approver_id: Optional[str] = None) -> BorrowRequest:
        async with transaction(self.session):
            request = await self._load(request_id)
            ensure_transition(request.status, BorrowStatus.approved, request_id=request_id)
            request.status = BorrowStatus.approved
            request.approver_id = approver_id
            await self.session.flush()
        log.info("request %s: pending -> approved by %s", request_id, approver_id)
        return request

    async def issue(self, request_id: UUID) -> BorrowRequest:
        """
        Reserve every allocated copy; all of them or none.

        The card must still be usable, and its loans including these copies
        must stay within ``max_books``.
        """
        async with transaction(self.session):
            request = await self._load(request_id)
            ensure_transition(request.status, BorrowStatus.borrowed, request_id=request_id)

            card = await self.cards.require(request.card_id, for_update=True)
            if not self.membership.is_usable(card):
                log.warning("request %s: card %s not usable at issue", request_id, card.id)
                raise CardInvalidError(
                    f"Card {card.card_number} cannot borrow",
                    context={"request_id": request_id, "card_id": card.id, "status": card.status.value},
                )
            active = await self.requests.active_loan_count(card.id)
            if active + len(request.details) > card.max_books:
                log.warning(
                    "request %s: card %s has %d on loan, issuing %d exceeds limit %d",
                    request_id, card.id, active, len(request.details), card.max_books,
                )
                raise LimitExceededError(
                    f"Card may hold at most {card.max_books} books",
                    context={"request_id": request_id, "card_id": card.id, "active": active},
                )

            for detail in request.details:
                detail.copy = await self.inventory.reserve_copy(detail.copy_id)
            request.status = BorrowStatus.borrowed
            request.borrow_date = self.today()
            await self.session.flush()
        log.info("request %s: approved -> borrowed, due %s", request_id, request.due_date)
        return request

    async def reallocate(self, request_id: UUID) -> BorrowRequest:
        """Swap out allocated copies that are no longer available."""
        async with transaction(self.session):
            request = await self._load(request_id)
            ensure_in(request.status, REALLOCATABLE, "reallocate", request_id=request_id)
            taken = {d.copy_id for d in request.details}
            for detail in request.details:
                current = await self.inventory.get_copy(detail.copy_id, refresh=True)
                if current.status is CopyStatus.available:
                    continue
                replacement = await self.inventory.find_available_copy(current.edition_id, exclude=taken)
                if replacement is None:
                    raise NoAvailableCopyError(
                        f"No available copy of edition {current.edition_id}",
                        context={"request_id": request_id, "edition_id": current.edition_id},
                    )
                log.info(
                    "request %s: copy %s reallocated to %s", request_id, current.id, replacement.id
                )
                taken.add(replacement.id)
                detail.copy_id = replacement.id
                detail.copy = replacement
            await self.session.flush()
        return request

    async def reject(
        self, request_id: UUID, approver_id: Optional[str] = None, reason: Optional[str] = None
    ) -> BorrowRequest:
        async with transaction(self.session):
            request = await self._load(request_id)
            ensure_transition(request.status, BorrowStatus.rejected, request_id=request_id)
            request.status = BorrowStatus.rejected
            request.approver_id = approver_id
            if reason:
                request.notes = reason
            await self.session.flush()
        log.info("request %s: pending -> rejected by %s (%s)", request_id, approver_id, reason)
        return request

    async def cancel(
        self, request_id: UUID, actor_id: Optional[str] = None, *, is_staff: bool = True
    ) -> BorrowRequest:
        """Staff may cancel pending or approved requests; a reader only their own pending one."""
        async with transaction(self.session):
            request = await self._load(request_id)
            ensure_transition(request.status, BorrowStatus.cancelled, request_id=request_id)
            if not is_staff:
                if actor_id is None or request.requested_by != actor_id:
                    raise InvalidOperationError(
                        "Only the requester may cancel this request",
                        context={"request_id": request_id, "actor_id": actor_id},
                    )
                if request.status is not BorrowStatus.pending:
                    raise InvalidOperationError(
                        "Approved requests can only be cancelled by staff",
                        context={"request_id": request_id},
                    )
            previous = request.status
            request.status = BorrowStatus.cancelled
            await self.session.flush()
        log.info("request %s: %s -> cancelled by %s", request_id, previous.value, actor_id)
        return request

    async def extend(self, request_id: UUID, new_due_date: date) -> BorrowRequest:
        today = self.today()
        async with transaction(self.session):
            request = await self._load(request_id)
            ensure_in(request.status, EXTENDABLE, "extend", request_id=request_id)
            if new_due_date <= request.due_date:
                raise InvalidOperationError(
                    "New due date must be later than the current one",
                    context={"request_id": request_id, "due_date": request.due_date, "new_due_date": new_due_date},
                )
            if self.policy.block_extension_with_unpaid_fines:
                if await self.fines.outstanding_for_request(request_id):
                    log.warning("request %s: extension refused, unpaid fines", request_id)
                    raise InvalidOperationError(
                        "Settle outstanding fines before extending",
                        context={"request_id": request_id},
                    )
            previous = request.due_date
            request.due_date = new_due_date
            if request.status is BorrowStatus.overdue and not request.is_past_due(today):
                ensure_transition(request.status, BorrowStatus.borrowed, request_id=request_id)
                request.status = BorrowStatus.borrowed
            await self.session.flush()
        log.info(
            "request %s: due date %s -> %s (%s)",
            request_id, previous, new_due_date, request.status.value,
        )
        return request

    # ----------------------------------------------------------------- returns

    async def _assess(
        self, request: BorrowRequest, copy: Copy, item: ReturnItem, returned_on: date
    ) -> list[Fine]:
        engine = self.fines.engine
        assessed: list[tuple[FineKind, str, Decimal]] = []

        days = engine.days_late(request.due_date, returned_on)
        if days:
            amount = engine.compute_overdue_fine(copy.price, request.due_date, returned_on)
            assessed.append((FineKind.overdue, f"Returned {days} day(s) late", amount))
        if item.condition is ReturnCondition.lost:
            assessed.append((FineKind.lost, "Copy lost", engine.compute_loss_fine(copy.price)))
        elif item.condition is ReturnCondition.damaged:
            amount = engine.compute_damage_fine(copy.price, item.damage_fine)
            assessed.append((FineKind.damaged, item.notes or "Copy damaged", amount))

        recorded = []
        for kind, reason, amount in assessed:
            if amount > 0:
                recorded.append(
                    await self.fines.record_fine(request.id, copy.id, kind, reason, amount)
                )
        return recorded

    async def return_books(self, request_id: UUID, items: Sequence[ReturnItem]) -> ReturnResult:
        """
        Close the returned lines, settle their copies and assess fines.

        The request becomes ``returned`` once every line is closed; until then
        it keeps its status.
        """
        if not items:
            raise InvalidOperationError("Nothing to return")
        today = self.today()

        async with transaction(self.session):
            request = await self._load(request_id)
            ensure_in(request.status, RETURNABLE, "return", request_id=request_id)
            by_copy = {d.copy_id: d for d in request.details}

            new_fines: list[Fine] = []
            for item in items:
                detail = by_copy.get(item.copy_id)
                if detail is None:
                    raise InvalidOperationError(
                        f"Copy {item.copy_id} is not part of this request",
                        context={"request_id": request_id, "copy_id": item.copy_id},
                    )
                if not detail.is_open:
                    log.debug("request %s: copy %s already returned", request_id, item.copy_id)
                    continue
                condition = ReturnCondition(item.condition)
                copy = await self.inventory.release_copy(item.copy_id, condition)
                detail.actual_return_date = today
                detail.return_condition = condition
                if item.notes:
                    detail.notes = item.notes
                new_fines.extend(await self._assess(request, copy, item, today))

            if request.fully_returned:
                previous = request.status
                ensure_transition(previous, BorrowStatus.returned, request_id=request_id)
                request.status = BorrowStatus.returned
                log.info("request %s: %s -> returned", request_id, previous.value)
            await self.session.flush()
            request = await self.requests.require(request_id, refresh=True)

        if new_fines:
            log.info(
                "request %s: %d fine(s) assessed, total %s",
                request_id, len(new_fines), sum((f.amount for f in new_fines), Decimal("0")),
            )
        return ReturnResult(request=request, fines=new_fines)

    # ------------------------------------------------------------------- sweep

    def _reminder(self, request: BorrowRequest, today: date) -> OverdueReminder:
        engine = self.fines.engine
        open_details = request.open_details
        estimated = sum(
            (engine.compute_overdue_fine(d.copy.price, request.due_date, today) for d in open_details),
            Decimal("0.00"),
        )
        return OverdueReminder(
            borrow_request_id=request.id,
            card_id=request.card_id,
            due_date=request.due_date,
            days_overdue=engine.days_late(request.due_date, today),
            estimated_fine=estimated,
            copy_ids=tuple(d.copy_id for d in open_details),
        )

    async def sweep_overdue(self, today: Optional[date] = None) -> list[BorrowRequest]:
        """
        Persist ``borrowed`` -> ``overdue`` for everything past due, expire
        lapsed cards, then hand reminders for the newly overdue requests to
        the notifier.
        """
        today = today or self.today()
        async with transaction(self.session):
            swept = await self.requests.list_past_due(today, [BorrowStatus.borrowed], for_update=True)
            for request in swept:
                ensure_transition(request.status, BorrowStatus.overdue, request_id=request.id)
                request.status = BorrowStatus.overdue
            reminders = [self._reminder(r, today) for r in swept]
            await self.session.flush()
        for request in swept:
            log.info("request %s: borrowed -> overdue (due %s)", request.id, request.due_date)

        await self.membership.expire_cards(today)

        if reminders:
            await self.notifier.notify_overdue(reminders)
        return swept
