# src/circulation/db/models/common_enums.py
from __future__ import annotations

import enum


class CardStatus(str, enum.Enum):
    active = "active"
    expired = "expired"
    locked = "locked"


class CopyStatus(str, enum.Enum):
    available = "available"
    borrowed = "borrowed"
    damaged = "damaged"
    disposed = "disposed"


class BorrowStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    borrowed = "borrowed"
    overdue = "overdue"
    returned = "returned"


class ReturnCondition(str, enum.Enum):
    normal = "normal"
    damaged = "damaged"
    lost = "lost"


class FineKind(str, enum.Enum):
    overdue = "overdue"
    damaged = "damaged"
    lost = "lost"


class FineStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"


class DepositType(str, enum.Enum):
    deposit = "deposit"
    refund = "refund"


# Statuses that hold a copy off the shelf for a card.
ACTIVE_LOAN_STATUSES = (BorrowStatus.borrowed, BorrowStatus.overdue)
