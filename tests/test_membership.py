from datetime import date, timedelta
from decimal import Decimal

import pytest

from circulation.db.models import CardStatus
from circulation.exceptions import InvalidOperationError, InvalidStateError

from .conftest import borrow

pytestmark = pytest.mark.anyio


async def test_register_card_uses_policy_defaults(membership, clock):
    card = await membership.register_card("reader-42")
    assert card.card_number == "LC20240001"
    assert card.status is CardStatus.active
    assert card.issue_date == clock()
    assert card.expiry_date == clock() + timedelta(days=365)
    assert (card.max_books, card.max_borrow_days) == (5, 14)
    assert card.deposit_amount == Decimal("0")

    second = await membership.register_card("reader-43")
    assert second.card_number == "LC20240002"


async def test_one_card_per_reader(membership):
    await membership.register_card("reader-42")
    with pytest.raises(InvalidOperationError):
        await membership.register_card("reader-42")


async def test_deposit_then_full_refund(membership):
    card = await membership.register_card("reader-1")
    card_id = card.id

    await membership.record_deposit(card_id, Decimal("200000"), staff_id="staff-1")
    assert await membership.compute_deposit_balance(card_id) == Decimal("200000.00")
    assert card.deposit_amount == Decimal("200000.00")

    refund = await membership.refund_deposit(card_id, Decimal("200000"), staff_id="staff-1")
    assert refund.signed_amount == Decimal("-200000.00")
    assert await membership.compute_deposit_balance(card_id) == Decimal("0.00")

    with pytest.raises(InvalidOperationError):
        await membership.refund_deposit(card_id, Decimal("1"))
    assert await membership.compute_deposit_balance(card_id) == Decimal("0.00")
    assert len(await membership.list_deposits(card_id)) == 2


async def test_amounts_must_be_positive(membership):
    card = await membership.register_card("reader-1")
    with pytest.raises(InvalidOperationError):
        await membership.record_deposit(card.id, Decimal("0"))


async def test_refund_refused_while_books_on_loan(seed, membership, workflow):
    card = await seed.card()
    card_id = card.id
    _, copies = await seed.edition()
    await borrow(workflow, card, copies)

    with pytest.raises(InvalidOperationError):
        await membership.refund_deposit(card_id, Decimal("1000"))


async def test_can_borrow_tracks_status_and_limit(seed, membership, workflow):
    card = await seed.card(max_books=1)
    card_id = card.id
    assert await membership.can_borrow(card_id)

    _, copies = await seed.edition()
    await borrow(workflow, card, copies)
    assert await membership.active_loan_count(card_id) == 1
    assert not await membership.can_borrow(card_id)


async def test_lock_and_unlock(membership):
    card = await membership.register_card("reader-1")
    card_id = card.id
    locked = await membership.lock_card(card_id)
    assert locked.status is CardStatus.locked
    assert not await membership.can_borrow(card_id)

    with pytest.raises(InvalidStateError):
        await membership.lock_card(card_id)

    unlocked = await membership.unlock_card(card_id)
    assert unlocked.status is CardStatus.active


async def test_unlock_refuses_expired_card(membership, clock):
    card = await membership.register_card("reader-1", expiry_date=clock() + timedelta(days=10))
    card_id = card.id
    await membership.lock_card(card_id)
    clock.advance(11)
    with pytest.raises(InvalidOperationError):
        await membership.unlock_card(card_id)

    renewed = await membership.renew_card(card_id, date(2025, 6, 30))
    assert renewed.status is CardStatus.active
    assert renewed.expiry_date == date(2025, 6, 30)


async def test_renew_requires_future_date(membership, clock):
    card = await membership.register_card("reader-1")
    with pytest.raises(InvalidOperationError):
        await membership.renew_card(card.id, clock())


async def test_update_limits(membership):
    card = await membership.register_card("reader-1")
    updated = await membership.update_limits(card.id, max_books=8)
    assert (updated.max_books, updated.max_borrow_days) == (8, 14)
    with pytest.raises(InvalidOperationError):
        await membership.update_limits(card.id, max_borrow_days=0)


async def test_expire_cards(membership, clock):
    soon = await membership.register_card("reader-1", expiry_date=clock() + timedelta(days=5))
    later = await membership.register_card("reader-2")
    soon_id, later_id = soon.id, later.id

    assert await membership.expire_cards(clock() + timedelta(days=5)) == []
    expired = await membership.expire_cards(clock() + timedelta(days=6))
    assert [c.id for c in expired] == [soon_id]
    assert (await membership.get_card(later_id)).status is CardStatus.active
