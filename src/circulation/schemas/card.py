from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from circulation.db.models import CardStatus, DepositType

from .base import APIModel, ORMBase


class CardCreate(APIModel):
    reader_id: str = Field(..., min_length=1, max_length=64)
    max_books: Optional[int] = Field(default=None, gt=0)
    max_borrow_days: Optional[int] = Field(default=None, gt=0)
    expiry_date: Optional[date] = None


class CardLimits(APIModel):
    max_books: Optional[int] = Field(default=None, gt=0)
    max_borrow_days: Optional[int] = Field(default=None, gt=0)


class CardRenewal(APIModel):
    expiry_date: Optional[date] = None


class CardOut(ORMBase):
    id: UUID
    card_number: str
    reader_id: str
    status: CardStatus
    issue_date: date
    expiry_date: date
    max_books: int
    max_borrow_days: int
    deposit_amount: Decimal


class DepositIn(APIModel):
    amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = None


class DepositOut(ORMBase):
    id: UUID
    card_id: UUID
    amount: Decimal
    type: DepositType
    transaction_date: date
    staff_id: Optional[str] = None
    notes: Optional[str] = None


class BalanceOut(APIModel):
    card_id: UUID
    balance: Decimal
    can_borrow: bool
