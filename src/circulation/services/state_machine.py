"""
Explicit transition tables for borrow requests and copies.

Every status write in the services goes through ``ensure_transition`` (or
``ensure_copy_transition``) so an illegal move is rejected here, once, rather
than trusted to each call site.
"""

from __future__ import annotations

from typing import Mapping

from circulation.db.models import BorrowStatus, CopyStatus, ReturnCondition
from circulation.exceptions import InvalidStateError

BORROW_TRANSITIONS: Mapping[BorrowStatus, frozenset[BorrowStatus]] = {
    BorrowStatus.pending: frozenset(
        {BorrowStatus.approved, BorrowStatus.rejected, BorrowStatus.cancelled}
    ),
    BorrowStatus.approved: frozenset({BorrowStatus.borrowed, BorrowStatus.cancelled}),
    BorrowStatus.borrowed: frozenset({BorrowStatus.overdue, BorrowStatus.returned}),
    # back to borrowed only when an extension moves the due date into the future
    BorrowStatus.overdue: frozenset({BorrowStatus.borrowed, BorrowStatus.returned}),
    BorrowStatus.rejected: frozenset(),
    BorrowStatus.cancelled: frozenset(),
    BorrowStatus.returned: frozenset(),
}

TERMINAL_BORROW_STATUSES = frozenset(s for s, nxt in BORROW_TRANSITIONS.items() if not nxt)

# Statuses that accept each staff action without changing status.
EXTENDABLE = frozenset({BorrowStatus.borrowed, BorrowStatus.overdue})
RETURNABLE = EXTENDABLE
REALLOCATABLE = frozenset({BorrowStatus.pending, BorrowStatus.approved})

# Lending moves: reservation at issue, release at return.
COPY_TRANSITIONS: Mapping[CopyStatus, frozenset[CopyStatus]] = {
    CopyStatus.available: frozenset({CopyStatus.borrowed}),
    CopyStatus.borrowed: frozenset({CopyStatus.available, CopyStatus.damaged, CopyStatus.disposed}),
    CopyStatus.damaged: frozenset(),
    CopyStatus.disposed: frozenset(),
}

# Staff corrections may additionally undo damaged/disposed, never touch borrowed.
CORRECTION_TRANSITIONS: Mapping[CopyStatus, frozenset[CopyStatus]] = {
    CopyStatus.available: frozenset({CopyStatus.damaged, CopyStatus.disposed}),
    CopyStatus.borrowed: frozenset(),
    CopyStatus.damaged: frozenset({CopyStatus.available, CopyStatus.disposed}),
    CopyStatus.disposed: frozenset({CopyStatus.available, CopyStatus.damaged}),
}

RELEASE_OUTCOMES: Mapping[ReturnCondition, CopyStatus] = {
    ReturnCondition.normal: CopyStatus.available,
    ReturnCondition.damaged: CopyStatus.damaged,
    ReturnCondition.lost: CopyStatus.disposed,
}


def can_transition(current: BorrowStatus, target: BorrowStatus) -> bool:
    return target in BORROW_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: BorrowStatus, target: BorrowStatus, **context) -> None:
    if not can_transition(current, target):
        raise InvalidStateError("BorrowRequest", current, target, context=context)


def ensure_in(current: BorrowStatus, allowed: frozenset[BorrowStatus], action: str, **context) -> None:
    """For actions that keep the status (extend, partial return, reallocate)."""
    if current not in allowed:
        raise InvalidStateError("BorrowRequest", current, action, context=context)


def ensure_copy_transition(
    current: CopyStatus,
    target: CopyStatus,
    *,
    correction: bool = False,
    **context,
) -> None:
    table = CORRECTION_TRANSITIONS if correction else COPY_TRANSITIONS
    if target not in table.get(current, frozenset()):
        raise InvalidStateError("Copy", current, target, context=context)
