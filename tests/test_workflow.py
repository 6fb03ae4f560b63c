from datetime import timedelta
from decimal import Decimal

import pytest

from circulation.core.config import CirculationPolicy
from circulation.db.models import BorrowStatus, CardStatus, CopyStatus, FineKind, FineStatus, ReturnCondition
from circulation.exceptions import (
    CardInvalidError,
    InsufficientDepositError,
    InvalidOperationError,
    InvalidStateError,
    LimitExceededError,
    NoAvailableCopyError,
)
from circulation.services import BorrowItem, BorrowWorkflow, ReturnItem

from .conftest import borrow

pytestmark = pytest.mark.anyio


# ---------------------------------------------------------------- creation

async def test_create_soft_allocates_without_touching_status(seed, workflow, clock):
    edition, copies = await seed.edition(copies=2)
    card = await seed.card()

    request = await workflow.create(
        card.id, [BorrowItem(edition_id=edition.id), BorrowItem(edition_id=edition.id)],
        requested_by="reader-1",
    )
    assert request.status is BorrowStatus.pending
    assert request.request_date == clock()
    assert request.due_date == clock() + timedelta(days=14)
    assert [d.copy_id for d in request.details] == [copies[0].id, copies[1].id]
    assert request.fines == []
    for copy in copies:
        assert (await workflow.inventory.get_copy(copy.id, refresh=True)).status is CopyStatus.available


async def test_create_with_named_copy(seed, workflow):
    _, copies = await seed.edition(copies=3)
    card = await seed.card()
    request = await workflow.create(card.id, [BorrowItem(copy_id=copies[2].id)])
    assert [d.copy_id for d in request.details] == [copies[2].id]


async def test_create_when_edition_exhausted(seed, workflow):
    edition, _ = await seed.edition(copies=1)
    card = await seed.card()
    with pytest.raises(NoAvailableCopyError):
        await workflow.create(card.id, [BorrowItem(edition_id=edition.id)] * 2)


async def test_create_rejects_unavailable_named_copy(seed, workflow):
    _, copies = await seed.edition(copies=1)
    first, second = await seed.card(), await seed.card()
    await borrow(workflow, first, copies)
    with pytest.raises(NoAvailableCopyError):
        await workflow.create(second.id, [BorrowItem(copy_id=copies[0].id)])


async def test_create_rejects_locked_card(seed, workflow, membership):
    edition, _ = await seed.edition()
    card = await seed.card()
    card_id = card.id
    await membership.lock_card(card_id)
    with pytest.raises(CardInvalidError):
        await workflow.create(card_id, [BorrowItem(edition_id=edition.id)])


async def test_create_rejects_expired_card(seed, workflow, clock):
    edition, _ = await seed.edition()
    card = await seed.card()
    clock.advance(366)
    with pytest.raises(CardInvalidError):
        await workflow.create(card.id, [BorrowItem(edition_id=edition.id)])


async def test_create_requires_minimum_deposit(seed, workflow):
    edition, _ = await seed.edition()
    card = await seed.card(deposit=Decimal("1000"))
    with pytest.raises(InsufficientDepositError):
        await workflow.create(card.id, [BorrowItem(edition_id=edition.id)])


@pytest.mark.parametrize("days", [0, -1, 15])
async def test_create_validates_due_date(seed, workflow, clock, days):
    edition, _ = await seed.edition()
    card = await seed.card()
    with pytest.raises(InvalidOperationError):
        await workflow.create(
            card.id, [BorrowItem(edition_id=edition.id)], due_date=clock() + timedelta(days=days)
        )


async def test_sixth_book_exceeds_limit(seed, workflow):
    edition, copies = await seed.edition(copies=6)
    card = await seed.card(max_books=5)
    card_id = card.id
    for copy in copies[:5]:
        await borrow(workflow, card, [copy])
    assert await workflow.requests.active_loan_count(card_id) == 5

    with pytest.raises(LimitExceededError):
        await workflow.create(card_id, [BorrowItem(edition_id=edition.id)])


async def test_limit_counts_requested_items(seed, workflow):
    edition, _ = await seed.edition(copies=3)
    card = await seed.card(max_books=2)
    with pytest.raises(LimitExceededError):
        await workflow.create(card.id, [BorrowItem(edition_id=edition.id)] * 3)


# ------------------------------------------------------------ staff actions

async def test_round_trip_on_time(seed, workflow, clock):
    _, (copy,) = await seed.edition()
    card = await seed.card()

    request = await workflow.create(card.id, [BorrowItem(copy_id=copy.id)])
    approved = await workflow.approve(request.id, "staff-1")
    assert approved.status is BorrowStatus.approved
    assert approved.approver_id == "staff-1"

    issued = await workflow.issue(request.id)
    assert issued.status is BorrowStatus.borrowed
    assert issued.borrow_date == clock()
    assert issued.details[0].copy.status is CopyStatus.borrowed

    clock.advance(14)
    result = await workflow.return_books(request.id, [ReturnItem(copy_id=copy.id)])
    assert result.request.status is BorrowStatus.returned
    assert result.fines == []
    assert result.request.details[0].actual_return_date == clock()
    assert result.request.details[0].return_condition is ReturnCondition.normal
    assert (await workflow.inventory.get_copy(copy.id, refresh=True)).status is CopyStatus.available


async def test_late_return_creates_one_overdue_fine_per_copy(seed, session, clock):
    policy = CirculationPolicy(fine_rate_percent=Decimal("5"))
    workflow = BorrowWorkflow(session, policy, today=clock)
    _, copies = await seed.edition(copies=2, price=Decimal("95000"))
    card = await seed.card()
    request = await borrow(workflow, card, copies)

    clock.advance(14 + 10)
    result = await workflow.return_books(request.id, [ReturnItem(copy_id=c.id) for c in copies])
    assert result.request.status is BorrowStatus.returned
    assert [f.kind for f in result.fines] == [FineKind.overdue, FineKind.overdue]
    assert all(f.amount == Decimal("47500.00") for f in result.fines)
    assert all(f.status is FineStatus.pending for f in result.fines)
    assert len(result.request.fines) == 2


async def test_partial_return_keeps_status(seed, workflow):
    _, copies = await seed.edition(copies=2)
    card = await seed.card()
    request = await borrow(workflow, card, copies)

    result = await workflow.return_books(request.id, [ReturnItem(copy_id=copies[0].id)])
    assert result.request.status is BorrowStatus.borrowed
    assert [d.copy_id for d in result.request.open_details] == [copies[1].id]

    # returning the same copy again is a no-op
    again = await workflow.return_books(request.id, [ReturnItem(copy_id=copies[0].id)])
    assert again.fines == []
    assert again.request.status is BorrowStatus.borrowed

    done = await workflow.return_books(request.id, [ReturnItem(copy_id=copies[1].id)])
    assert done.request.status is BorrowStatus.returned


async def test_return_of_foreign_copy_rolls_back(seed, workflow):
    _, copies = await seed.edition(copies=2)
    _, (stranger,) = await seed.edition(title="Emma")
    card = await seed.card()
    request = await borrow(workflow, card, copies)
    request_id, first_id, stranger_id = request.id, copies[0].id, stranger.id

    with pytest.raises(InvalidOperationError):
        await workflow.return_books(
            request_id, [ReturnItem(copy_id=first_id), ReturnItem(copy_id=stranger_id)]
        )
    assert (await workflow.inventory.get_copy(first_id, refresh=True)).status is CopyStatus.borrowed
    reloaded = await workflow.get(request_id)
    assert len(reloaded.open_details) == 2


async def test_lost_and_damaged_returns(seed, workflow):
    _, copies = await seed.edition(copies=3, price=Decimal("80000"))
    card = await seed.card()
    request = await borrow(workflow, card, copies)

    result = await workflow.return_books(
        request.id,
        [
            ReturnItem(copy_id=copies[0].id, condition=ReturnCondition.lost),
            ReturnItem(copy_id=copies[1].id, condition=ReturnCondition.damaged),
            ReturnItem(copy_id=copies[2].id, condition=ReturnCondition.damaged, damage_fine=Decimal("5000")),
        ],
    )
    assert [(f.kind, f.amount) for f in result.fines] == [
        (FineKind.lost, Decimal("80000.00")),
        (FineKind.damaged, Decimal("40000.00")),
        (FineKind.damaged, Decimal("5000.00")),
    ]
    statuses = [
        (await workflow.inventory.get_copy(c.id, refresh=True)).status for c in copies
    ]
    assert statuses == [CopyStatus.disposed, CopyStatus.damaged, CopyStatus.damaged]


async def test_return_requires_issued_request(seed, workflow):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    request = await workflow.create(card.id, [BorrowItem(copy_id=copy.id)])
    with pytest.raises(InvalidStateError):
        await workflow.return_books(request.id, [ReturnItem(copy_id=copy.id)])


async def test_reject_and_terminal_states(seed, workflow):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    request = await workflow.create(card.id, [BorrowItem(copy_id=copy.id)])
    request_id = request.id

    rejected = await workflow.reject(request_id, "staff-1", reason="damaged card")
    assert rejected.status is BorrowStatus.rejected
    assert rejected.notes == "damaged card"

    with pytest.raises(InvalidStateError):
        await workflow.approve(request_id, "staff-1")
    assert (await workflow.get(request_id)).status is BorrowStatus.rejected


async def test_reject_after_approval_is_illegal(seed, workflow):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    request = await workflow.create(card.id, [BorrowItem(copy_id=copy.id)])
    await workflow.approve(request.id, "staff-1")
    with pytest.raises(InvalidStateError):
        await workflow.reject(request.id, "staff-1")


async def test_reader_cancels_own_pending_request(seed, workflow):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    request = await workflow.create(card.id, [BorrowItem(copy_id=copy.id)], requested_by="reader-1")
    request_id = request.id

    with pytest.raises(InvalidOperationError):
        await workflow.cancel(request_id, "someone-else", is_staff=False)

    cancelled = await workflow.cancel(request_id, "reader-1", is_staff=False)
    assert cancelled.status is BorrowStatus.cancelled


async def test_only_staff_cancel_approved_request(seed, workflow):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    request = await workflow.create(card.id, [BorrowItem(copy_id=copy.id)], requested_by="reader-1")
    request_id = request.id
    await workflow.approve(request_id, "staff-1")

    with pytest.raises(InvalidOperationError):
        await workflow.cancel(request_id, "reader-1", is_staff=False)

    cancelled = await workflow.cancel(request_id, "staff-1")
    assert cancelled.status is BorrowStatus.cancelled
    with pytest.raises(InvalidStateError):
        await workflow.issue(request_id)


async def test_issue_rechecks_card_limit(seed, workflow):
    _, copies = await seed.edition(copies=4)
    card = await seed.card(max_books=2)
    card_id = card.id

    # each request fits the limit on its own while nothing is on loan yet
    request_ids = []
    for copy in copies:
        request = await workflow.create(card_id, [BorrowItem(copy_id=copy.id)])
        await workflow.approve(request.id, "staff-1")
        request_ids.append(request.id)
    copy_ids = [c.id for c in copies]

    for request_id in request_ids[:2]:
        await workflow.issue(request_id)

    with pytest.raises(LimitExceededError):
        await workflow.issue(request_ids[2])

    assert await workflow.requests.active_loan_count(card_id) == 2
    assert (await workflow.get(request_ids[2])).status is BorrowStatus.approved
    assert (await workflow.inventory.get_copy(copy_ids[2], refresh=True)).status is CopyStatus.available


async def test_issue_refuses_locked_card(seed, workflow, membership):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    card_id, copy_id = card.id, copy.id
    request = await workflow.create(card_id, [BorrowItem(copy_id=copy_id)])
    request_id = request.id
    await workflow.approve(request_id, "staff-1")

    await membership.lock_card(card_id)
    with pytest.raises(CardInvalidError):
        await workflow.issue(request_id)
    assert (await workflow.get(request_id)).status is BorrowStatus.approved
    assert (await workflow.inventory.get_copy(copy_id, refresh=True)).status is CopyStatus.available

    await membership.unlock_card(card_id)
    issued = await workflow.issue(request_id)
    assert issued.status is BorrowStatus.borrowed


async def test_issue_refuses_card_expired_since_creation(seed, workflow, membership, clock):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    card_id = card.id
    await membership.renew_card(card_id, clock() + timedelta(days=3))
    request = await workflow.create(card_id, [BorrowItem(copy_id=copy.id)], due_date=clock() + timedelta(days=3))
    request_id = request.id
    await workflow.approve(request_id, "staff-1")

    clock.advance(4)
    with pytest.raises(CardInvalidError):
        await workflow.issue(request_id)
    assert (await workflow.get(request_id)).status is BorrowStatus.approved


async def test_cancel_after_issue_is_illegal(seed, workflow):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    request = await borrow(workflow, card, [copy])
    with pytest.raises(InvalidStateError):
        await workflow.cancel(request.id, "staff-1")


# --------------------------------------------------------------- extension

async def test_extend_moves_due_date_forward(seed, workflow):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    request = await borrow(workflow, card, [copy])
    request_id, due = request.id, request.due_date

    with pytest.raises(InvalidOperationError):
        await workflow.extend(request_id, due)

    extended = await workflow.extend(request_id, due + timedelta(days=7))
    assert extended.due_date == due + timedelta(days=7)
    assert extended.status is BorrowStatus.borrowed


async def test_extend_recomputes_overdue(seed, workflow, clock):
    _, (copy,) = await seed.edition()
    card = await seed.card()
    request = await borrow(workflow, card, [copy])
    due = request.due_date

    clock.advance(20)
    await workflow.sweep_overdue()
    assert (await workflow.get(request.id)).status is BorrowStatus.overdue

    # still in the past: stays overdue
    still = await workflow.extend(request.id, due + timedelta(days=3))
    assert still.status is BorrowStatus.overdue

    back = await workflow.extend(request.id, clock() + timedelta(days=5))
    assert back.status is BorrowStatus.borrowed


async def test_extend_blocked_by_unpaid_fines(seed, workflow, fines, clock):
    _, copies = await seed.edition(copies=2)
    card = await seed.card()
    request = await borrow(workflow, card, copies)
    request_id = request.id

    clock.advance(16)
    partial = await workflow.return_books(request_id, [ReturnItem(copy_id=copies[0].id)])
    assert len(partial.fines) == 1

    with pytest.raises(InvalidOperationError):
        await workflow.extend(request_id, clock() + timedelta(days=7))

    assert await fines.pay_all_fines(request_id, "staff-1") == 1
    extended = await workflow.extend(request_id, clock() + timedelta(days=7))
    assert extended.status is BorrowStatus.borrowed


async def test_extension_allowed_with_fines_when_policy_permits(seed, session, clock):
    workflow = BorrowWorkflow(
        session, CirculationPolicy(block_extension_with_unpaid_fines=False), today=clock
    )
    _, copies = await seed.edition(copies=2)
    card = await seed.card()
    request = await borrow(workflow, card, copies)

    clock.advance(16)
    await workflow.return_books(request.id, [ReturnItem(copy_id=copies[0].id)])
    extended = await workflow.extend(request.id, clock() + timedelta(days=7))
    assert extended.due_date == clock() + timedelta(days=7)


# ------------------------------------------------------------------- sweep

async def test_sweep_marks_overdue_and_notifies(seed, workflow, notifier, clock):
    _, (copy,) = await seed.edition(price=Decimal("1000"))
    card = await seed.card()
    request = await borrow(workflow, card, [copy])

    clock.advance(14)
    assert await workflow.sweep_overdue() == []

    clock.advance(3)
    swept = await workflow.sweep_overdue()
    assert [r.id for r in swept] == [request.id]
    assert swept[0].status is BorrowStatus.overdue

    (reminder,) = notifier.received
    assert reminder.borrow_request_id == request.id
    assert reminder.card_id == card.id
    assert reminder.days_overdue == 3
    assert reminder.estimated_fine == Decimal("300.00")
    assert reminder.copy_ids == (copy.id,)

    # already overdue: not swept or notified again
    assert await workflow.sweep_overdue() == []
    assert len(notifier.received) == 1


async def test_sweep_expires_lapsed_cards(seed, workflow, membership, clock):
    card = await seed.card()
    clock.advance(366)
    await workflow.sweep_overdue()
    assert (await membership.get_card(card.id)).status is CardStatus.expired


async def test_list_overdue_includes_unswept_requests(seed, workflow, clock):
    _, copies = await seed.edition(copies=2)
    card = await seed.card()
    early = await borrow(workflow, card, [copies[0]], due_date=clock() + timedelta(days=3))
    late = await borrow(workflow, card, [copies[1]], due_date=clock() + timedelta(days=10))

    clock.advance(5)
    await workflow.sweep_overdue()
    clock.advance(10)

    listed = await workflow.list_overdue()
    assert [r.id for r in listed] == [early.id, late.id]
    assert [r.status for r in listed] == [BorrowStatus.overdue, BorrowStatus.borrowed]


async def test_list_for_card(seed, workflow):
    _, copies = await seed.edition(copies=2)
    card = await seed.card()
    issued = await borrow(workflow, card, [copies[0]])
    pending = await workflow.create(card.id, [BorrowItem(copy_id=copies[1].id)])

    assert {r.id for r in await workflow.list_for_card(card.id)} == {issued.id, pending.id}
    only_pending = await workflow.list_for_card(card.id, [BorrowStatus.pending])
    assert [r.id for r in only_pending] == [pending.id]
