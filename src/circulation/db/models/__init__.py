from circulation.db.base import Base

from .borrow_details import BorrowDetail
from .borrow_requests import BorrowRequest
from .cards import Card
from .common_enums import (
    ACTIVE_LOAN_STATUSES,
    BorrowStatus,
    CardStatus,
    CopyStatus,
    DepositType,
    FineKind,
    FineStatus,
    ReturnCondition,
)
from .copies import Copy
from .deposit_transactions import DepositTransaction
from .editions import Edition
from .fines import Fine

__all__ = [
    "Base",
    "ACTIVE_LOAN_STATUSES",
    "BorrowDetail",
    "BorrowRequest",
    "BorrowStatus",
    "Card",
    "CardStatus",
    "Copy",
    "CopyStatus",
    "DepositTransaction",
    "DepositType",
    "Edition",
    "Fine",
    "FineKind",
    "FineStatus",
    "ReturnCondition",
]
