import pytest

from circulation.db.models import BorrowStatus, CopyStatus, ReturnCondition
from circulation.exceptions import InvalidStateError
from circulation.services.state_machine import (
    BORROW_TRANSITIONS,
    RELEASE_OUTCOMES,
    TERMINAL_BORROW_STATUSES,
    can_transition,
    ensure_copy_transition,
    ensure_transition,
)


def test_every_status_has_an_entry():
    assert set(BORROW_TRANSITIONS) == set(BorrowStatus)


def test_terminal_statuses():
    assert TERMINAL_BORROW_STATUSES == {
        BorrowStatus.rejected,
        BorrowStatus.cancelled,
        BorrowStatus.returned,
    }


@pytest.mark.parametrize(
    "current,target",
    [
        (BorrowStatus.pending, BorrowStatus.approved),
        (BorrowStatus.pending, BorrowStatus.rejected),
        (BorrowStatus.pending, BorrowStatus.cancelled),
        (BorrowStatus.approved, BorrowStatus.borrowed),
        (BorrowStatus.approved, BorrowStatus.cancelled),
        (BorrowStatus.borrowed, BorrowStatus.overdue),
        (BorrowStatus.borrowed, BorrowStatus.returned),
        (BorrowStatus.overdue, BorrowStatus.returned),
        (BorrowStatus.overdue, BorrowStatus.borrowed),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (BorrowStatus.pending, BorrowStatus.borrowed),
        (BorrowStatus.approved, BorrowStatus.rejected),
        (BorrowStatus.borrowed, BorrowStatus.cancelled),
        (BorrowStatus.returned, BorrowStatus.borrowed),
        (BorrowStatus.rejected, BorrowStatus.approved),
        (BorrowStatus.cancelled, BorrowStatus.pending),
    ],
)
def test_illegal_transitions_raise(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidStateError) as exc:
        ensure_transition(current, target, request_id="r-1")
    assert exc.value.current is current
    assert exc.value.target is target
    assert exc.value.context["request_id"] == "r-1"
    assert exc.value.to_dict()["error_code"] == "invalid_state"


def test_release_outcomes():
    assert RELEASE_OUTCOMES[ReturnCondition.normal] is CopyStatus.available
    assert RELEASE_OUTCOMES[ReturnCondition.damaged] is CopyStatus.damaged
    assert RELEASE_OUTCOMES[ReturnCondition.lost] is CopyStatus.disposed


def test_lending_moves_only_touch_borrowed():
    ensure_copy_transition(CopyStatus.available, CopyStatus.borrowed)
    ensure_copy_transition(CopyStatus.borrowed, CopyStatus.disposed)
    with pytest.raises(InvalidStateError):
        ensure_copy_transition(CopyStatus.damaged, CopyStatus.available)
    with pytest.raises(InvalidStateError):
        ensure_copy_transition(CopyStatus.available, CopyStatus.damaged)


def test_corrections_never_involve_borrowed():
    ensure_copy_transition(CopyStatus.disposed, CopyStatus.available, correction=True)
    ensure_copy_transition(CopyStatus.available, CopyStatus.damaged, correction=True)
    with pytest.raises(InvalidStateError):
        ensure_copy_transition(CopyStatus.available, CopyStatus.borrowed, correction=True)
    with pytest.raises(InvalidStateError):
        ensure_copy_transition(CopyStatus.borrowed, CopyStatus.available, correction=True)
