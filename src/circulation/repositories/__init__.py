"""
Repository pattern implementation for circulation data access.

Repositories flush but never commit; the service that owns the operation
opens the transaction.
"""

from .base import BaseRepository
from .borrow_requests import BorrowRequestRepository
from .cards import CardRepository, DepositRepository
from .copies import CopyRepository, EditionRepository
from .fines import FineRepository

__all__ = [
    "BaseRepository",
    "BorrowRequestRepository",
    "CardRepository",
    "CopyRepository",
    "DepositRepository",
    "EditionRepository",
    "FineRepository",
]
