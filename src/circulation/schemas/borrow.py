from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from circulation.db.models import BorrowStatus, ReturnCondition

from .base import APIModel, ORMBase
from .fine import FineOut


class BorrowItemIn(APIModel):
    edition_id: Optional[UUID] = None
    copy_id: Optional[UUID] = None

    @model_validator(mode="after")
    def _one_target(self) -> "BorrowItemIn":
        if (self.edition_id is None) == (self.copy_id is None):
            raise ValueError("give exactly one of edition_id or copy_id")
        return self


class BorrowRequestCreate(APIModel):
    card_id: UUID
    items: List[BorrowItemIn] = Field(..., min_length=1)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class RejectIn(APIModel):
    reason: Optional[str] = None


class ExtendIn(APIModel):
    due_date: date


class ReturnItemIn(APIModel):
    copy_id: UUID
    condition: ReturnCondition = ReturnCondition.normal
    notes: Optional[str] = None
    damage_fine: Optional[Decimal] = Field(default=None, ge=0)


class ReturnIn(APIModel):
    items: List[ReturnItemIn] = Field(..., min_length=1)


class BorrowDetailOut(ORMBase):
    id: UUID
    copy_id: UUID
    actual_return_date: Optional[date] = None
    return_condition: Optional[ReturnCondition] = None
    notes: Optional[str] = None


class BorrowRequestOut(ORMBase):
    id: UUID
    card_id: UUID
    requested_by: Optional[str] = None
    approver_id: Optional[str] = None
    status: BorrowStatus
    request_date: date
    borrow_date: Optional[date] = None
    due_date: date
    notes: Optional[str] = None
    details: List[BorrowDetailOut] = []
    fines: List[FineOut] = []
    created_at: datetime
    updated_at: datetime


class ReturnOut(APIModel):
    request: BorrowRequestOut
    fines: List[FineOut]


class SweepOut(APIModel):
    swept: int
    requests: List[BorrowRequestOut]
