from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from circulation.db.models import FineKind, FineStatus

from .base import APIModel, ORMBase


class FineOut(ORMBase):
    id: UUID
    borrow_request_id: UUID
    copy_id: UUID
    kind: FineKind
    reason: str
    amount: Decimal
    status: FineStatus
    paid_date: Optional[date] = None
    collected_by: Optional[str] = None
    created_at: datetime


class FinePayment(APIModel):
    collected_by: Optional[str] = None


class PayAllOut(APIModel):
    borrow_request_id: UUID
    paid: int


class FineSummaryOut(APIModel):
    pending: Decimal
    paid: Decimal
